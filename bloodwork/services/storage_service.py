"""Storage service for handling Supabase storage operations."""

import re
import time
from typing import Any, Dict, Optional

import httpx

from bloodwork.core.config import settings
from bloodwork.core.exceptions import StorageError
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def build_storage_path(user_id: Any, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """Build the per-user object path for an uploaded file.

    Args:
        user_id: Owner of the file; used as the top-level folder
        filename: Original filename as sent by the client
        timestamp_ms: Upload time in epoch milliseconds, defaults to now

    Returns:
        str: ``{user_id}/{timestamp}_{cleaned filename}``
    """
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", filename)
    return f"{user_id}/{stamp}_{cleaned}"


class StorageService:
    """Reads, writes and deletes document blobs in Supabase storage."""

    def __init__(
        self,
        url: Optional[str] = None,
        service_role_key: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.url = url if url is not None else settings.supabase_url
        self.service_role_key = service_role_key if service_role_key is not None else settings.supabase_service_role_key
        self.timeout = timeout or settings.http_timeout
        self.base_api_url = f"{self.url}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }

    async def upload_file(
        self,
        content: bytes,
        bucket: str,
        path: str,
        content_type: str = "application/octet-stream",
    ) -> Dict[str, Any]:
        """Upload raw bytes to Supabase storage.

        Args:
            content: File bytes
            bucket: Target bucket name
            path: Target path within the bucket
            content_type: MIME type sent with the object

        Returns:
            Dict containing the upload result.

        Raises:
            StorageError: If the upload fails.
        """
        upload_url = f"{self.base_api_url}/object/{bucket}/{path}"

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    upload_url,
                    headers={**self.headers, "Content-Type": content_type},
                    content=content,
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error uploading file to Supabase: {str(e)}", exc_info=True)
            raise StorageError(f"Storage upload error: {str(e)}", original_error=e)

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to upload file to Supabase: {response.text}",
                extra={"bucket": bucket, "path": path, "status_code": response.status_code}
            )
            raise StorageError(f"Upload failed: {response.text}")

        return response.json()

    async def download_file(self, bucket: str, path: str) -> bytes:
        """Download an object's bytes.

        Raises:
            StorageError: If the object cannot be fetched.
        """
        download_url = f"{self.base_api_url}/object/{bucket}/{path}"

        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    download_url,
                    headers=self.headers,
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error downloading file from Supabase: {str(e)}", exc_info=True)
            raise StorageError(f"Storage download error: {str(e)}", original_error=e)

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to download file from Supabase: {response.text}",
                extra={"bucket": bucket, "path": path, "status_code": response.status_code}
            )
            raise StorageError(f"Failed to download file: {response.text}")

        LOGGER.info(
            "Downloaded file from storage",
            extra={"bucket": bucket, "path": path, "size": len(response.content)}
        )
        return response.content

    async def delete_file(self, bucket: str, path: str) -> None:
        """Delete an object. A missing object is not an error."""
        delete_url = f"{self.base_api_url}/object/{bucket}/{path}"

        try:
            async with httpx.AsyncClient() as client:
                response = await client.delete(
                    delete_url,
                    headers=self.headers,
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error deleting file from Supabase: {str(e)}", exc_info=True)
            raise StorageError(f"Storage delete error: {str(e)}", original_error=e)

        if response.status_code not in (200, 204, 404):
            LOGGER.error(
                f"Failed to delete file from Supabase: {response.text}",
                extra={"bucket": bucket, "path": path, "status_code": response.status_code}
            )
            raise StorageError(f"Delete failed: {response.text}")
