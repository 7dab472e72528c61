"""Format-specific text extraction for uploaded lab documents.

The MIME type is resolved to a ``DocumentFormat`` once, up front, and the
matching extractor is built from it. Unsupported types are rejected by
``get_text_extractor`` before any storage or network access happens.
"""

import base64
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from io import BytesIO
from typing import Any, Dict, List, Optional

import httpx
import pdfplumber

from bloodwork.core.config import settings
from bloodwork.core.exceptions import (
    APITimeoutError,
    OCRExtractionError,
    TextExtractionError,
    UnsupportedDocumentTypeError,
)
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)

PDF_MIME_TYPES = frozenset({"application/pdf"})
IMAGE_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/bmp",
    "image/webp",
})
SUPPORTED_MIME_TYPES = PDF_MIME_TYPES | IMAGE_MIME_TYPES

PDF_TEXT_LAYER_CONFIDENCE = 0.95
OCR_PARSED_CONFIDENCE = 0.8
OCR_PARTIAL_CONFIDENCE = 0.6


class DocumentFormat(str, Enum):
    """Extraction strategy for a document."""
    PDF = "pdf"
    IMAGE = "image"

    @classmethod
    def from_mime_type(cls, mime_type: Optional[str]) -> "DocumentFormat":
        """Resolve a declared MIME type.

        Raises:
            UnsupportedDocumentTypeError: If no extractor handles the type
        """
        normalized = (mime_type or "").split(";")[0].strip().lower()
        if normalized in PDF_MIME_TYPES:
            return cls.PDF
        if normalized in IMAGE_MIME_TYPES:
            return cls.IMAGE
        raise UnsupportedDocumentTypeError(f"Unsupported file type: {mime_type}")


@dataclass
class ExtractedText:
    """Text pulled from a document plus a confidence in [0, 1]."""
    text: str
    confidence: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseTextExtractor(ABC):
    """Common contract for PDF and image extraction."""

    format: DocumentFormat

    @abstractmethod
    async def extract(self, content: bytes) -> ExtractedText:
        """Extract text from raw file bytes.

        Raises:
            TextExtractionError: If no usable text can be produced
        """


class PdfTextExtractor(BaseTextExtractor):
    """Reads the embedded text layer of a PDF with pdfplumber.

    Scanned, image-only PDFs have no text layer and fail; they are not
    sent to OCR.
    """

    format = DocumentFormat.PDF

    async def extract(self, content: bytes) -> ExtractedText:
        start_time = time.time()
        try:
            with pdfplumber.open(BytesIO(content)) as pdf:
                page_texts = [page.extract_text() or "" for page in pdf.pages]
        except Exception as e:
            LOGGER.error("PDF parsing failed", exc_info=True, extra={"error": str(e)})
            raise TextExtractionError(f"PDF parsing failed: {str(e)}", original_error=e) from e

        text = "\n".join(page_texts)
        if not text.strip():
            raise TextExtractionError(
                "No text layer found in PDF; scanned PDFs are not supported"
            )

        LOGGER.info(
            "PDF text extracted",
            extra={
                "page_count": len(page_texts),
                "text_length": len(text),
                "processing_time": round(time.time() - start_time, 2),
            },
        )
        return ExtractedText(
            text=text,
            confidence=PDF_TEXT_LAYER_CONFIDENCE,
            metadata={"method": "pdf_text_layer", "page_count": len(page_texts)},
        )


class ImageTextExtractor(BaseTextExtractor):
    """Sends an image to the OCR.space parse API."""

    format = DocumentFormat.IMAGE

    def __init__(
        self,
        mime_type: str = "image/jpeg",
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        language: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.mime_type = mime_type
        self.api_url = api_url or settings.ocr.api_url
        self.api_key = api_key if api_key is not None else settings.ocr.api_key
        self.language = language or settings.ocr.language
        self.timeout = timeout or settings.ocr.timeout

    async def extract(self, content: bytes) -> ExtractedText:
        encoded = base64.b64encode(content).decode("ascii")
        form = {
            "base64Image": f"data:{self.mime_type};base64,{encoded}",
            "language": self.language,
            "isOverlayRequired": "false",
        }
        headers = {"apikey": self.api_key} if self.api_key else {}

        LOGGER.info("Calling OCR.space API", extra={"size_bytes": len(content)})
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.api_url, data=form, headers=headers)
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException as e:
            LOGGER.error("OCR request timed out", exc_info=True)
            raise APITimeoutError(f"OCR processing timed out after {self.timeout}s", original_error=e) from e
        except httpx.HTTPStatusError as e:
            LOGGER.error(
                "OCR API returned an error status",
                extra={"status_code": e.response.status_code},
            )
            raise OCRExtractionError(
                f"OCR API failed: HTTP {e.response.status_code}", original_error=e
            ) from e
        except (httpx.RequestError, ValueError) as e:
            LOGGER.error("OCR API request failed", exc_info=True, extra={"error": str(e)})
            raise OCRExtractionError(f"OCR API failed: {str(e)}", original_error=e) from e

        return self._parse_response(payload)

    def _parse_response(self, payload: Dict[str, Any]) -> ExtractedText:
        parsed_results: List[Dict[str, Any]] = payload.get("ParsedResults") or []
        if payload.get("IsErroredOnProcessing") or not parsed_results:
            error_message = payload.get("ErrorMessage") or "OCR processing failed"
            if isinstance(error_message, list):
                error_message = "; ".join(str(m) for m in error_message)
            raise OCRExtractionError(f"Image OCR failed: {error_message}")

        text = "\n".join(result.get("ParsedText") or "" for result in parsed_results)
        if not text.strip():
            raise OCRExtractionError("Image OCR failed: no text recognized")

        exit_code = parsed_results[0].get("FileParseExitCode")
        confidence = OCR_PARSED_CONFIDENCE if exit_code == 1 else OCR_PARTIAL_CONFIDENCE

        LOGGER.info(
            "OCR completed",
            extra={"text_length": len(text), "exit_code": exit_code},
        )
        return ExtractedText(
            text=text,
            confidence=confidence,
            metadata={"method": "ocr_space", "exit_code": exit_code},
        )


def get_text_extractor(mime_type: Optional[str], **ocr_options: Any) -> BaseTextExtractor:
    """Build the extractor for a MIME type.

    Args:
        mime_type: Declared MIME type of the document
        **ocr_options: Overrides passed to ``ImageTextExtractor``

    Raises:
        UnsupportedDocumentTypeError: Before any I/O, if the type is unsupported
    """
    document_format = DocumentFormat.from_mime_type(mime_type)
    if document_format is DocumentFormat.PDF:
        return PdfTextExtractor()
    return ImageTextExtractor(mime_type=mime_type.split(";")[0].strip().lower(), **ocr_options)
