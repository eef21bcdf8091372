# lizexpress/workflow/steps.py
import enum
from dataclasses import dataclass
from typing import Optional, Tuple


class EvidenceType(str, enum.Enum):
    identity = "identity"
    address = "address"
    selfie = "selfie"


class CaptureMode(str, enum.Enum):
    upload = "upload"
    camera = "camera"


@dataclass(frozen=True)
class VerificationStep:
    number: int
    evidence_type: EvidenceType
    title: str
    description: str
    capture_mode: CaptureMode = CaptureMode.upload

    @property
    def uses_camera(self) -> bool:
        return self.capture_mode is CaptureMode.camera


STEPS: Tuple[VerificationStep, ...] = (
    VerificationStep(
        number=1,
        evidence_type=EvidenceType.identity,
        title="Proof of Identity",
        description="Upload Verified ID (National/State ID, Drivers' Licence, Voter Card, etc)",
    ),
    VerificationStep(
        number=2,
        evidence_type=EvidenceType.address,
        title="Proof of Address",
        description="Upload Utility Bill or Bank Statement",
    ),
    VerificationStep(
        number=3,
        evidence_type=EvidenceType.selfie,
        title="Selfie",
        description="Capture a live selfie with a clear face and good lighting.",
        capture_mode=CaptureMode.camera,
    ),
)


def step_for(evidence_type: EvidenceType, steps: Tuple[VerificationStep, ...] = STEPS) -> Optional[VerificationStep]:
    for step in steps:
        if step.evidence_type == evidence_type:
            return step
    return None
