# lizexpress/workflow/engine.py
"""
Verificatie-flow: identiteitsbewijs, adresbewijs en een live selfie.

Elke stap houdt één bestand vast tot ``advance`` het uploadt. Pas als alle
drie uploads gelukt zijn wordt één verificatie-record weggeschreven.
Fouten komen nooit omhoog: ze staan in ``error`` tot de volgende actie of
``dismiss_error``.
"""
import asyncio
import enum
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Set, Tuple

from lizexpress.capture.device import CameraSession
from lizexpress.core.logging_config import logger
from lizexpress.core.settings import settings
from lizexpress.observability.metrics import submission_counter, validation_counter
from lizexpress.services.evidence_uploads import discard_evidence, upload_evidence
from lizexpress.services.notifications import VERIFICATION_SUBMITTED
from lizexpress.workflow.errors import (
    EvidenceValidationError,
    InvalidTransitionError,
    SubmissionError,
    VerificationError,
    WorkflowBusyError,
)
from lizexpress.workflow.evidence import EvidenceFile, StoredEvidence, VerificationSubmission
from lizexpress.workflow.ports import VerificationServices
from lizexpress.workflow.steps import STEPS, EvidenceType, VerificationStep

SELFIE_FILENAME = "selfie.jpg"
SELFIE_CONTENT_TYPE = "image/jpeg"


class WorkflowOutcome(str, enum.Enum):
    completed = "completed"
    skipped = "skipped"
    abandoned = "abandoned"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VerificationWorkflow:
    def __init__(
        self,
        user_id: str,
        services: VerificationServices,
        *,
        on_complete: Callable[[], None],
        on_skip: Optional[Callable[[], None]] = None,
        steps: Tuple[VerificationStep, ...] = STEPS,
        upload_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if not user_id:
            raise ValueError("user_id is required")
        self.user_id = str(user_id)
        self.steps = steps
        self._services = services
        self._on_complete = on_complete
        self._on_skip = on_skip
        self._upload_timeout = (
            settings.upload_timeout_sec if upload_timeout is None else upload_timeout
        )
        self._clock = clock

        self._index = 0
        self._started = False
        self._busy = False
        self._files: Dict[EvidenceType, Optional[EvidenceFile]] = {
            s.evidence_type: None for s in steps
        }
        self._uploaded: Dict[EvidenceType, StoredEvidence] = {}
        self._camera = CameraSession(services.capture_device)
        self._submission_id: Optional[str] = None
        self._profile_flagged = False
        self._background: Set[asyncio.Task] = set()

        self.outcome: Optional[WorkflowOutcome] = None
        self.error: Optional[VerificationError] = None
        self._log = logger.bind(user_id=self.user_id)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def step(self) -> VerificationStep:
        return self.steps[self._index]

    @property
    def current_step(self) -> int:
        return self.step.number

    @property
    def is_final_step(self) -> bool:
        return self._index == len(self.steps) - 1

    @property
    def finished(self) -> bool:
        return self.outcome is not None

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def can_skip(self) -> bool:
        return self._on_skip is not None and self._index == 0 and not self.finished

    @property
    def camera_active(self) -> bool:
        return self._camera.active

    @property
    def selfie_captured(self) -> bool:
        return self._files.get(EvidenceType.selfie) is not None

    @property
    def submission_id(self) -> Optional[str]:
        return self._submission_id

    def held_file(self, evidence_type: Optional[EvidenceType] = None) -> Optional[EvidenceFile]:
        return self._files.get(evidence_type or self.step.evidence_type)

    @property
    def uploaded_urls(self) -> Dict[str, str]:
        return {t.value: stored.url for t, stored in self._uploaded.items()}

    @property
    def background_tasks(self) -> frozenset:
        return frozenset(self._background)

    async def drain(self) -> None:
        """Wacht op best-effort achtergrondtaken (notificatie, opruimen)."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def dismiss_error(self) -> None:
        self.error = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> "VerificationWorkflow":
        if not self._started and not self.finished:
            self._started = True
            self._log.info("verification_started")
            self._enter_step(0)
        return self

    def close(self) -> None:
        """Gebruiker verlaat de flow: niets wordt bewaard, camera gaat uit."""
        self._camera.release()
        if self.finished:
            return
        self.outcome = WorkflowOutcome.abandoned
        self._discard_attempt()
        self._log.info("verification_abandoned", step=self.current_step)

    def __enter__(self) -> "VerificationWorkflow":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ------------------------------------------------------------------
    # Evidence
    # ------------------------------------------------------------------
    def select_file(self, data: bytes, content_type: str, filename: str) -> bool:
        try:
            self._ensure_ready()
            if self.step.uses_camera:
                raise InvalidTransitionError("Please capture a live selfie for this step")
            evidence = EvidenceFile(data=data, content_type=content_type, filename=filename).validate()
        except VerificationError as e:
            return self._fail(e)

        self._files[self.step.evidence_type] = evidence
        self.error = None
        self._log.info(
            "evidence_selected",
            evidence_type=self.step.evidence_type.value,
            filename=filename,
            size=evidence.size,
        )
        return True

    def remove_file(self) -> bool:
        try:
            self._ensure_ready()
        except VerificationError as e:
            return self._fail(e)

        self._files[self.step.evidence_type] = None
        if self.step.uses_camera:
            return self._arm_camera()
        return True

    def capture_selfie(self) -> bool:
        try:
            self._ensure_ready()
            if not self.step.uses_camera:
                raise InvalidTransitionError("Selfie capture is only available on the selfie step")
            if self.selfie_captured:
                raise InvalidTransitionError("Selfie already captured")
            data = self._camera.snapshot()
            evidence = EvidenceFile(
                data=data, content_type=SELFIE_CONTENT_TYPE, filename=SELFIE_FILENAME
            ).validate()
        except VerificationError as e:
            return self._fail(e)

        self._files[self.step.evidence_type] = evidence
        self._camera.release()
        self.error = None
        self._log.info("selfie_captured", size=evidence.size)
        return True

    def retake_selfie(self) -> bool:
        try:
            self._ensure_ready()
            if not self.step.uses_camera:
                raise InvalidTransitionError("Selfie capture is only available on the selfie step")
        except VerificationError as e:
            return self._fail(e)

        self._files[self.step.evidence_type] = None
        return self._arm_camera()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def advance(self) -> bool:
        try:
            self._ensure_ready()
            step = self.step
            evidence = self._files[step.evidence_type]
            if evidence is None:
                raise InvalidTransitionError("Please capture or upload a file to continue")

            self._busy = True
            self.error = None
            try:
                await self._upload(step.evidence_type, evidence)
                if self.finished:
                    # flow is tijdens de upload verlaten
                    self._uploaded.clear()
                    return False
                if not self.is_final_step:
                    self._enter_step(self._index + 1)
                else:
                    await self._submit()
            finally:
                self._busy = False
        except VerificationError as e:
            return self._fail(e)
        return True

    def retreat(self) -> bool:
        try:
            self._ensure_ready()
            if self._index == 0:
                raise InvalidTransitionError("Already at the first step")
        except VerificationError as e:
            return self._fail(e)

        self._enter_step(self._index - 1)
        return True

    def skip(self) -> bool:
        try:
            self._ensure_ready()
            if self._on_skip is None:
                raise InvalidTransitionError("Verification cannot be skipped here")
            if self._index != 0:
                raise InvalidTransitionError("Verification can only be skipped at the first step")
        except VerificationError as e:
            return self._fail(e)

        self._log.info("verification_skipped")
        self._finish(WorkflowOutcome.skipped)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _ensure_ready(self) -> None:
        if self.finished:
            raise InvalidTransitionError("Verification is already finished")
        if not self._started:
            raise InvalidTransitionError("Verification has not been started")
        if self._busy:
            raise WorkflowBusyError()

    def _fail(self, error: VerificationError) -> bool:
        if isinstance(error, WorkflowBusyError):
            # melding van de lopende upload niet overschrijven
            self._log.info("verification_busy", step=self.current_step)
            return False
        self.error = error
        if isinstance(error, EvidenceValidationError):
            validation_counter.labels(reason=type(error).__name__).inc()
        self._log.info(
            "verification_error",
            error_type=type(error).__name__,
            message=error.message,
            step=self.current_step,
        )
        return False

    def _enter_step(self, index: int) -> None:
        if not self.steps[index].uses_camera:
            self._camera.release()
        self._index = index
        self._log.info("verification_step", step=self.current_step)
        if self.step.uses_camera and self._files[self.step.evidence_type] is None:
            self._arm_camera()

    def _arm_camera(self) -> bool:
        try:
            self._camera.acquire()
        except VerificationError as e:
            return self._fail(e)
        return True

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _upload(self, evidence_type: EvidenceType, evidence: EvidenceFile) -> StoredEvidence:
        previous = self._uploaded.get(evidence_type)
        if previous is not None and previous.source is evidence:
            # al geüpload en sindsdien niet vervangen
            return previous

        stored = await upload_evidence(
            self._services.storage,
            self.user_id,
            evidence_type.value,
            evidence,
            timeout=self._upload_timeout,
            now=self._clock(),
        )
        self._uploaded[evidence_type] = stored
        if previous is not None:
            self._spawn(discard_evidence(self._services.storage, previous))
        return stored

    async def _submit(self) -> None:
        missing = [s.evidence_type.value for s in self.steps if s.evidence_type not in self._uploaded]
        if missing:
            raise SubmissionError(f"Missing evidence: {', '.join(missing)}")

        if self._submission_id is None:
            submission = VerificationSubmission(
                user_id=self.user_id,
                identity_document_url=self._uploaded[EvidenceType.identity].url,
                address_document_url=self._uploaded[EvidenceType.address].url,
                selfie_image_url=self._uploaded[EvidenceType.selfie].url,
                submitted_at=self._clock(),
            )
            try:
                self._submission_id = await asyncio.to_thread(
                    self._services.verifications.insert, submission
                )
            except Exception as e:
                submission_counter.labels(result="error").inc()
                self._log.warning("verification_insert_failed", error=repr(e))
                raise SubmissionError() from e

        if not self._profile_flagged:
            try:
                await asyncio.to_thread(
                    self._services.accounts.update_profile,
                    self.user_id,
                    verification_submitted=True,
                )
            except Exception as e:
                submission_counter.labels(result="error").inc()
                self._log.warning("profile_update_failed", error=repr(e))
                if not self.finished:
                    raise SubmissionError() from e
                # flow is intussen gesloten: geen retry meer mogelijk, het record staat al
            else:
                self._profile_flagged = True

        if self.outcome is WorkflowOutcome.abandoned:
            # close() kwam tijdens het wegschrijven; het record bestaat, dus afronden
            self._log.info("verification_closed_during_submit", submission_id=self._submission_id)
            self.outcome = None

        submission_counter.labels(result="success").inc()
        self._log.info("verification_submitted", submission_id=self._submission_id)
        self._spawn(self._notify())
        self._finish(WorkflowOutcome.completed)

    async def _notify(self) -> None:
        try:
            await asyncio.to_thread(
                self._services.notifications.enqueue, self.user_id, **VERIFICATION_SUBMITTED
            )
        except Exception as e:
            self._log.warning("verification_notification_failed", error=repr(e))

    def _discard_attempt(self) -> None:
        for t in self._files:
            self._files[t] = None
        self._uploaded.clear()

    def _finish(self, outcome: WorkflowOutcome) -> None:
        if self.finished:
            return
        self.outcome = outcome
        self._camera.release()
        self._discard_attempt()
        self.error = None

        callback = self._on_complete if outcome is WorkflowOutcome.completed else self._on_skip
        if callback is not None:
            callback()


def start_verification(
    user_id: str,
    services: VerificationServices,
    *,
    on_complete: Callable[[], None],
    on_skip: Optional[Callable[[], None]] = None,
    **kwargs,
) -> VerificationWorkflow:
    """Maak en start een verificatiepoging voor ``user_id``."""
    return VerificationWorkflow(
        user_id, services, on_complete=on_complete, on_skip=on_skip, **kwargs
    ).start()
