# lizexpress/workflow/evidence.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from lizexpress.services.validation_uploads import validate_mime, validate_size


@dataclass(frozen=True)
class EvidenceFile:
    """Bestand in het geheugen, alleen zolang de stap er mee bezig is."""

    data: bytes = field(repr=False)
    content_type: str
    filename: str

    @property
    def size(self) -> int:
        return len(self.data)

    def validate(self) -> "EvidenceFile":
        validate_mime(self.content_type)
        validate_size(self.size)
        return self


@dataclass(frozen=True)
class StoredEvidence:
    key: str
    url: str
    source: Optional[EvidenceFile] = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class VerificationSubmission:
    user_id: str
    identity_document_url: str
    address_document_url: str
    selfie_image_url: str
    status: str = "pending"
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
