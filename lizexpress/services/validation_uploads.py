# lizexpress/services/validation_uploads.py
from lizexpress.core.settings import settings
from lizexpress.workflow.errors import (
    EvidenceValidationError,
    FileTooLargeError,
    UnsupportedMediaTypeError,
)


def validate_mime(content_type: str) -> None:
    prefix = settings.allowed_mime_prefix
    if not (content_type or "").lower().startswith(prefix):
        raise UnsupportedMediaTypeError()


def validate_size(size_bytes: int) -> None:
    if size_bytes <= 0:
        raise EvidenceValidationError("File is empty")
    if size_bytes > settings.max_upload_bytes:
        raise FileTooLargeError(f"File size must be less than {settings.max_upload_mb}MB")
