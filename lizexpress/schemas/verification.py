# lizexpress/schemas/verification.py
from typing import Dict, List, Optional

from pydantic import BaseModel

from lizexpress.workflow.engine import VerificationWorkflow


class StepOut(BaseModel):
    number: int
    evidence_type: str
    title: str
    description: str
    capture_mode: str
    completed: bool


class HeldFileOut(BaseModel):
    filename: str
    content_type: str
    size: int


class WorkflowStateOut(BaseModel):
    session_id: str
    current_step: int
    steps: List[StepOut]
    held_file: Optional[HeldFileOut] = None
    uploaded: Dict[str, str] = {}
    camera_active: bool
    selfie_captured: bool
    can_skip: bool
    busy: bool
    outcome: Optional[str] = None
    submission_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_workflow(cls, session_id: str, wf: VerificationWorkflow) -> "WorkflowStateOut":
        uploaded = wf.uploaded_urls
        held = wf.held_file()
        return cls(
            session_id=session_id,
            current_step=wf.current_step,
            steps=[
                StepOut(
                    number=s.number,
                    evidence_type=s.evidence_type.value,
                    title=s.title,
                    description=s.description,
                    capture_mode=s.capture_mode.value,
                    completed=s.evidence_type.value in uploaded,
                )
                for s in wf.steps
            ],
            held_file=(
                HeldFileOut(filename=held.filename, content_type=held.content_type, size=held.size)
                if held is not None
                else None
            ),
            uploaded=uploaded,
            camera_active=wf.camera_active,
            selfie_captured=wf.selfie_captured,
            can_skip=wf.can_skip,
            busy=wf.busy,
            outcome=wf.outcome.value if wf.outcome else None,
            submission_id=wf.submission_id,
            error=wf.error.message if wf.error else None,
        )


class StartSessionIn(BaseModel):
    allow_skip: bool = True


class VerificationStatusOut(BaseModel):
    user_id: str
    needs_verification: bool
