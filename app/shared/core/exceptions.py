import re
from typing import Optional, Dict, Any

UNREADABLE_DOCUMENT_MESSAGE = (
    "Document could not be read. Verify the file is not corrupted or password-protected."
)


class CloudshiftException(Exception):
    """Base exception for all Cloudshift errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

class UnsupportedFileError(CloudshiftException):
    """Raised when the upload is not a PDF, CSV or XLSX file."""
    def __init__(
        self,
        message: str = "Unsupported file type. Upload a PDF invoice, a CSV billing export, or an XLSX workbook.",
        code: str = "unsupported_file",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code=code, status_code=415, details=details)

class EmptyUploadError(CloudshiftException):
    """Raised when no file content was provided."""
    def __init__(self, message: str = "No file provided", code: str = "empty_upload", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=400, details=details)

class FileTooLargeError(CloudshiftException):
    """Raised when an upload exceeds the configured size limit."""
    def __init__(self, message: str, code: str = "file_too_large", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=400, details=details)

class ConfigurationError(CloudshiftException):
    """Raised when a requested backend is not configured."""
    def __init__(self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=503, details=details)

class DocumentReadError(CloudshiftException):
    """
    Raised when a document cannot be read (corrupted, encrypted, OCR unavailable).
    The user-facing message never carries the underlying library error.
    """
    def __init__(
        self,
        message: str = UNREADABLE_DOCUMENT_MESSAGE,
        code: str = "document_unreadable",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code=code, status_code=422, details=details)

class ExtractionError(CloudshiftException):
    """
    Raised when an AI or structured-document backend fails.
    Sanitizes messages to avoid leaking credentials and request ids.
    """
    def __init__(self, message: str, code: str = "extraction_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(self._sanitize(message), code=code, status_code=502, details=details)

    @staticmethod
    def _sanitize(msg: str) -> str:
        msg = re.sub(
            r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
            '[REDACTED_ID]', msg, flags=re.IGNORECASE,
        )
        msg = re.sub(r'(?i)(access_key|secret_key|api_key|key|token|signature)=[^&\s]+', r'\1=[REDACTED]', msg)
        if "AccessDenied" in msg or "UnrecognizedClient" in msg or "PERMISSION_DENIED" in msg:
            return "Permission denied by the document extraction service. Check the configured credentials."
        if "Throttling" in msg or "RESOURCE_EXHAUSTED" in msg:
            return "Document extraction service rate limit exceeded. Retry the upload later."
        return msg

class ResourceNotFoundError(CloudshiftException):
    """Raised when a requested resource is not found."""
    def __init__(self, message: str, code: str = "not_found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=404, details=details)

class StorageError(CloudshiftException):
    """Raised when the remote billing bucket cannot be listed or read."""
    def __init__(self, message: str, code: str = "storage_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=502, details=details)


_UNREADABLE_HINTS = ("password", "corrupt", "cannot read", "invalid", "parse", "unreadable")


def sanitize_ingestion_error(exc: BaseException) -> str:
    """Map any ingestion failure to a message that is safe to persist and show."""
    if isinstance(exc, CloudshiftException):
        message = exc.message
    else:
        message = str(exc) or "Ingestion failed"
    lowered = message.lower()
    if any(hint in lowered for hint in _UNREADABLE_HINTS):
        return UNREADABLE_DOCUMENT_MESSAGE
    return message
