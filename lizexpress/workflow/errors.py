# lizexpress/workflow/errors.py
"""
Foutclassificatie van de verificatie-flow.

Elke fout draagt een ``message`` die zo aan de gebruiker getoond kan worden.
Geen van deze fouten is fataal: de flow vangt ze af en toont ze inline.
"""
from typing import Optional


class VerificationError(Exception):
    default_message = "Verification failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class EvidenceValidationError(VerificationError):
    default_message = "Invalid file"


class UnsupportedMediaTypeError(EvidenceValidationError):
    default_message = "Please select an image file"


class FileTooLargeError(EvidenceValidationError):
    default_message = "File size must be less than 5MB"


class UploadError(VerificationError):
    default_message = "Failed to upload file"


class UploadTimeoutError(UploadError):
    default_message = "Upload timeout"


class SubmissionError(VerificationError):
    default_message = "Failed to complete verification"


class CaptureDeviceError(VerificationError):
    default_message = "Unable to access camera. Please allow camera permissions."


class InvalidTransitionError(VerificationError):
    default_message = "This action is not available right now"


class WorkflowBusyError(InvalidTransitionError):
    """Er loopt al een upload; de lopende actie bepaalt de foutmelding."""

    default_message = "An upload is already in progress"
