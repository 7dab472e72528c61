"""Custom exception hierarchy."""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class StorageError(APIClientError):
    """Raised when blob storage rejects a read, write or delete."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class FileTooLargeError(ValidationError):
    """Raised when an upload exceeds the size limit."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class DocumentNotFoundError(AppError):
    """Raised when a document is missing or not owned by the caller."""
    pass


class AnalysisNotFoundError(AppError):
    """Raised when a health analysis is missing or not owned by the caller."""
    pass


class PipelineError(AppError):
    """Base exception for pipeline errors."""
    pass


class UnsupportedDocumentTypeError(PipelineError, ValidationError):
    """Validation: the declared MIME type has no text extractor."""
    pass


class TextExtractionError(PipelineError):
    """Text layer could not be read from the document."""
    pass


class OCRExtractionError(TextExtractionError):
    """External OCR service failed or reported a processing error."""
    pass


class AIResponseError(PipelineError):
    """The model stream failed, was cut short or reported an error event."""
    pass


class StructuredResponseError(AIResponseError):
    """The model output was not valid JSON or did not match the schema."""
    pass


class AnalysisError(PipelineError):
    """Health analysis could not be prepared or produced."""
    pass


class PollingTimeoutError(AppError):
    """A status poller gave up before the job reached a terminal state."""
    def __init__(self, message: str, last_status: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.last_status = last_status


class JobFailedError(AppError):
    """The server reported the polled job as failed."""
    def __init__(self, message: str, last_status: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.last_status = last_status
