import asyncio

import pytest

from lizexpress.services.storage import StorageError
from lizexpress.workflow.engine import VerificationWorkflow, WorkflowOutcome, start_verification
from lizexpress.workflow.errors import (
    CaptureDeviceError,
    FileTooLargeError,
    InvalidTransitionError,
    SubmissionError,
    UnsupportedMediaTypeError,
    UploadError,
    UploadTimeoutError,
)
from lizexpress.workflow.steps import EvidenceType

from conftest import JPEG

MB = 1024 * 1024


@pytest.fixture
def events():
    return []


@pytest.fixture
def workflow(services, clock, events):
    wf = start_verification(
        "user-1",
        services,
        on_complete=lambda: events.append("completed"),
        on_skip=lambda: events.append("skipped"),
        clock=clock,
        upload_timeout=1.0,
    )
    yield wf
    wf.close()


async def _complete_documents(wf):
    assert wf.select_file(b"\xff" * (2 * MB), "image/jpeg", "id.jpg")
    assert await wf.advance()
    assert wf.select_file(JPEG, "image/png", "bill.png")
    assert await wf.advance()


# -------------------------
# Acquisition
# -------------------------
def test_starts_at_identity_step(workflow, camera):
    assert workflow.current_step == 1
    assert workflow.step.evidence_type is EvidenceType.identity
    assert not workflow.camera_active
    assert camera.streams == []


def test_rejects_non_image_without_state_change(workflow, storage):
    assert not workflow.select_file(b"%PDF-1.4", "application/pdf", "id.pdf")
    assert isinstance(workflow.error, UnsupportedMediaTypeError)
    assert workflow.held_file() is None
    assert workflow.current_step == 1
    assert storage.attempts == []


@pytest.mark.anyio
async def test_rejects_oversized_file_scenario_b(workflow, storage):
    assert not workflow.select_file(b"\x00" * (6 * MB), "image/jpeg", "big.jpg")
    assert isinstance(workflow.error, FileTooLargeError)
    assert workflow.held_file() is None

    assert not await workflow.advance()
    assert workflow.current_step == 1
    assert storage.attempts == []


def test_exactly_five_mib_is_accepted(workflow):
    assert workflow.select_file(b"\x00" * (5 * MB), "image/jpeg", "edge.jpg")
    assert workflow.held_file().size == 5 * MB


def test_replacing_file_keeps_only_latest(workflow):
    workflow.select_file(JPEG, "image/jpeg", "first.jpg")
    workflow.select_file(JPEG, "image/png", "second.png")
    assert workflow.held_file().filename == "second.png"


def test_successful_selection_clears_previous_error(workflow):
    workflow.select_file(b"x", "text/plain", "notes.txt")
    assert workflow.error is not None
    assert workflow.select_file(JPEG, "image/jpeg", "id.jpg")
    assert workflow.error is None


def test_remove_file(workflow):
    workflow.select_file(JPEG, "image/jpeg", "id.jpg")
    assert workflow.remove_file()
    assert workflow.held_file() is None


# -------------------------
# Transitions
# -------------------------
@pytest.mark.anyio
async def test_advance_without_evidence_is_rejected(workflow, storage):
    assert not await workflow.advance()
    assert isinstance(workflow.error, InvalidTransitionError)
    assert workflow.current_step == 1
    assert storage.attempts == []


@pytest.mark.anyio
async def test_scenario_a_upload_moves_to_step_two(workflow, storage):
    assert workflow.select_file(b"\xff" * (2 * MB), "image/jpeg", "id.jpg")
    assert await workflow.advance()

    assert workflow.current_step == 2
    assert len(storage.objects) == 1
    key = next(iter(storage.objects))
    assert key.startswith("user-1/verification/identity_")
    assert key.endswith(".jpg")
    assert workflow.uploaded_urls == {"identity": f"https://cdn.test/verification/{key}"}


@pytest.mark.anyio
async def test_upload_failure_keeps_step_and_file(workflow, storage):
    storage.fail_with = StorageError("bucket unavailable")
    workflow.select_file(JPEG, "image/jpeg", "id.jpg")

    assert not await workflow.advance()
    assert isinstance(workflow.error, UploadError)
    assert workflow.current_step == 1
    assert workflow.held_file() is not None
    assert workflow.uploaded_urls == {}

    storage.fail_with = None
    assert await workflow.advance()
    assert workflow.current_step == 2


@pytest.mark.anyio
async def test_retreat_keeps_uploaded_evidence(workflow, storage):
    await _complete_documents(workflow)
    assert workflow.current_step == 3

    assert workflow.retreat()
    assert workflow.current_step == 2
    assert workflow.held_file().filename == "bill.png"
    assert set(workflow.uploaded_urls) == {"identity", "address"}


@pytest.mark.anyio
async def test_revisited_step_is_not_uploaded_twice(workflow, storage):
    await _complete_documents(workflow)
    workflow.retreat()
    assert await workflow.advance()
    assert len(storage.attempts) == 2


@pytest.mark.anyio
async def test_replaced_evidence_is_reuploaded_and_old_object_removed(workflow, storage):
    workflow.select_file(JPEG, "image/jpeg", "id.jpg")
    await workflow.advance()
    first_key = storage.attempts[0]

    workflow.retreat()
    workflow.select_file(JPEG, "image/png", "id-better.png")
    assert await workflow.advance()
    await workflow.drain()

    assert len(storage.attempts) == 2
    assert storage.deleted == [first_key]
    assert storage.attempts[1].endswith(".png")


def test_retreat_at_first_step_is_rejected(workflow):
    assert not workflow.retreat()
    assert isinstance(workflow.error, InvalidTransitionError)
    assert workflow.current_step == 1


def test_skip_at_step_one(workflow, storage, services, events):
    assert workflow.skip()
    assert events == ["skipped"]
    assert workflow.outcome is WorkflowOutcome.skipped
    assert storage.attempts == []
    assert services.verifications.records == []


@pytest.mark.anyio
async def test_skip_only_at_step_one(workflow, events):
    workflow.select_file(JPEG, "image/jpeg", "id.jpg")
    await workflow.advance()
    assert not workflow.skip()
    assert events == []
    assert workflow.current_step == 2


def test_skip_without_handler_is_rejected(services, clock):
    wf = start_verification("user-1", services, on_complete=lambda: None, clock=clock)
    assert not wf.can_skip
    assert not wf.skip()
    assert not wf.finished


def test_operations_before_start_are_rejected(services):
    wf = VerificationWorkflow("user-1", services, on_complete=lambda: None)
    assert not wf.select_file(JPEG, "image/jpeg", "id.jpg")
    assert isinstance(wf.error, InvalidTransitionError)


def test_user_id_is_required(services):
    with pytest.raises(ValueError):
        VerificationWorkflow("", services, on_complete=lambda: None)


# -------------------------
# Camera
# -------------------------
@pytest.mark.anyio
async def test_camera_follows_selfie_step(workflow, camera):
    await _complete_documents(workflow)
    assert workflow.current_step == 3
    assert workflow.camera_active
    assert len(camera.running) == 1

    assert workflow.retreat()
    assert not workflow.camera_active
    assert camera.running == []

    assert await workflow.advance()
    assert workflow.camera_active
    assert len(camera.running) == 1


@pytest.mark.anyio
async def test_capture_releases_camera(workflow, camera):
    await _complete_documents(workflow)

    assert workflow.capture_selfie()
    assert workflow.selfie_captured
    assert not workflow.camera_active
    assert camera.running == []
    held = workflow.held_file()
    assert held.filename == "selfie.jpg"
    assert held.content_type == "image/jpeg"
    assert held.data == JPEG


@pytest.mark.anyio
async def test_captured_selfie_does_not_rearm_camera_on_return(workflow, camera):
    await _complete_documents(workflow)
    workflow.capture_selfie()
    workflow.retreat()
    await workflow.advance()
    assert workflow.selfie_captured
    assert not workflow.camera_active
    assert len(camera.streams) == 1


@pytest.mark.anyio
async def test_retake_reacquires_camera(workflow, camera):
    await _complete_documents(workflow)
    workflow.capture_selfie()

    assert workflow.retake_selfie()
    assert not workflow.selfie_captured
    assert workflow.camera_active
    assert len(camera.streams) == 2
    assert len(camera.running) == 1


@pytest.mark.anyio
async def test_removing_selfie_rearms_camera(workflow, camera):
    await _complete_documents(workflow)
    workflow.capture_selfie()
    assert workflow.remove_file()
    assert workflow.camera_active


@pytest.mark.anyio
async def test_camera_denied_is_reported(workflow, camera):
    camera.denied = True
    await _complete_documents(workflow)

    assert workflow.current_step == 3
    assert isinstance(workflow.error, CaptureDeviceError)
    assert not workflow.camera_active
    assert not workflow.capture_selfie()
    assert not await workflow.advance()
    assert workflow.current_step == 3


@pytest.mark.anyio
async def test_file_upload_not_allowed_on_selfie_step(workflow):
    await _complete_documents(workflow)
    assert not workflow.select_file(JPEG, "image/jpeg", "face.jpg")
    assert isinstance(workflow.error, InvalidTransitionError)
    assert not workflow.selfie_captured


def test_capture_only_on_selfie_step(workflow):
    assert not workflow.capture_selfie()
    assert isinstance(workflow.error, InvalidTransitionError)


@pytest.mark.anyio
async def test_close_releases_camera(workflow, camera, events):
    await _complete_documents(workflow)
    assert workflow.camera_active

    workflow.close()
    assert camera.running == []
    assert workflow.outcome is WorkflowOutcome.abandoned
    assert events == []
    assert not workflow.select_file(JPEG, "image/jpeg", "x.jpg")


@pytest.mark.anyio
async def test_context_manager_releases_camera(services, camera, clock):
    with VerificationWorkflow("user-1", services, on_complete=lambda: None, clock=clock) as wf:
        await _complete_documents(wf)
        assert wf.camera_active
    assert camera.running == []


# -------------------------
# Submission
# -------------------------
@pytest.mark.anyio
async def test_scenario_c_full_flow_submits_once(workflow, services, storage, events):
    await _complete_documents(workflow)
    workflow.capture_selfie()
    urls = dict(workflow.uploaded_urls)

    assert await workflow.advance()
    await workflow.drain()

    assert events == ["completed"]
    assert workflow.outcome is WorkflowOutcome.completed
    assert len(services.verifications.records) == 1
    record = services.verifications.records[0]
    assert record.user_id == "user-1"
    assert record.status == "pending"
    assert record.identity_document_url == urls["identity"]
    assert record.address_document_url == urls["address"]
    selfie_key = [k for k in storage.objects if "/selfie_" in k][0]
    assert record.selfie_image_url == storage.public_url(selfie_key)

    assert services.accounts.updates == [("user-1", {"verification_submitted": True})]
    assert [n["title"] for n in services.notifications.sent] == ["Verification Submitted"]
    assert workflow.submission_id == "ver-1"


@pytest.mark.anyio
async def test_insert_failure_keeps_final_step(workflow, services, storage, events):
    services.verifications.fail = True
    await _complete_documents(workflow)
    workflow.capture_selfie()

    assert not await workflow.advance()
    assert isinstance(workflow.error, SubmissionError)
    assert workflow.current_step == 3
    assert services.verifications.records == []
    assert services.accounts.updates == []
    assert events == []
    assert set(workflow.uploaded_urls) == {"identity", "address", "selfie"}
    assert workflow.selfie_captured

    # retry zonder opnieuw te uploaden
    services.verifications.fail = False
    assert await workflow.advance()
    assert len(storage.attempts) == 3
    assert len(services.verifications.records) == 1
    assert events == ["completed"]


@pytest.mark.anyio
async def test_profile_update_failure_does_not_duplicate_record(workflow, services, events):
    services.accounts.fail = True
    await _complete_documents(workflow)
    workflow.capture_selfie()

    assert not await workflow.advance()
    assert isinstance(workflow.error, SubmissionError)
    assert len(services.verifications.records) == 1

    services.accounts.fail = False
    assert await workflow.advance()
    assert len(services.verifications.records) == 1
    assert events == ["completed"]


@pytest.mark.anyio
async def test_notification_failure_is_not_surfaced(workflow, services, events):
    services.notifications.fail = True
    await _complete_documents(workflow)
    workflow.capture_selfie()

    assert await workflow.advance()
    await workflow.drain()
    assert workflow.error is None
    assert events == ["completed"]
    assert len(services.verifications.records) == 1


@pytest.mark.anyio
async def test_terminal_callback_fires_once(workflow, events):
    await _complete_documents(workflow)
    workflow.capture_selfie()
    await workflow.advance()

    assert not await workflow.advance()
    assert not workflow.skip()
    workflow.close()
    assert events == ["completed"]
    assert workflow.outcome is WorkflowOutcome.completed


@pytest.mark.anyio
async def test_scenario_d_timeout_keeps_selfie_and_retries_with_new_path(services, storage, clock, events):
    wf = start_verification(
        "user-1",
        services,
        on_complete=lambda: events.append("completed"),
        clock=clock,
        upload_timeout=0.05,
    )
    await _complete_documents(wf)
    wf.capture_selfie()

    storage.delay = 0.3
    assert not await wf.advance()
    assert isinstance(wf.error, UploadTimeoutError)
    assert wf.current_step == 3
    assert wf.selfie_captured
    assert services.verifications.records == []

    storage.delay = 0.0
    assert await wf.advance()
    selfie_attempts = [k for k in storage.attempts if "/selfie_" in k]
    assert len(selfie_attempts) == 2
    assert selfie_attempts[0] != selfie_attempts[1]
    assert events == ["completed"]
    assert services.verifications.records[0].selfie_image_url == storage.public_url(selfie_attempts[1])


@pytest.mark.anyio
async def test_dismiss_error(workflow):
    await workflow.advance()
    assert workflow.error is not None
    workflow.dismiss_error()
    assert workflow.error is None


# -------------------------
# Concurrency
# -------------------------
@pytest.mark.anyio
async def test_concurrent_advance_uploads_once(workflow, storage):
    assert workflow.select_file(JPEG, "image/jpeg", "id.jpg")
    storage.delay = 0.1

    first, second = await asyncio.gather(workflow.advance(), workflow.advance())

    assert (first, second) == (True, False)
    assert len(storage.attempts) == 1
    assert workflow.current_step == 2
    assert workflow.error is None


@pytest.mark.anyio
async def test_actions_during_upload_leave_error_untouched(workflow, storage):
    assert workflow.select_file(JPEG, "image/jpeg", "id.jpg")
    storage.delay = 0.1

    async def _meddle():
        await asyncio.sleep(0.02)
        assert workflow.busy
        assert not workflow.select_file(JPEG, "image/png", "other.png")
        assert not workflow.retreat()
        assert workflow.error is None

    ok, _ = await asyncio.gather(workflow.advance(), _meddle())
    assert ok
    assert workflow.error is None
    assert workflow.held_file(EvidenceType.identity).filename == "id.jpg"


@pytest.mark.anyio
async def test_close_during_insert_still_completes(workflow, services, camera, events):
    await _complete_documents(workflow)
    assert workflow.capture_selfie()
    services.verifications.delay = 0.2

    async def _leave():
        await asyncio.sleep(0.05)
        workflow.close()

    ok, _ = await asyncio.gather(workflow.advance(), _leave())

    assert ok
    assert workflow.outcome is WorkflowOutcome.completed
    assert events == ["completed"]
    assert len(services.verifications.records) == 1
    assert services.accounts.updates == [("user-1", {"verification_submitted": True})]
    assert camera.running == []


@pytest.mark.anyio
async def test_close_during_selfie_upload_persists_nothing(workflow, services, storage, events):
    await _complete_documents(workflow)
    assert workflow.capture_selfie()
    storage.delay = 0.2

    async def _leave():
        await asyncio.sleep(0.05)
        workflow.close()

    ok, _ = await asyncio.gather(workflow.advance(), _leave())

    assert not ok
    assert workflow.outcome is WorkflowOutcome.abandoned
    assert events == []
    assert services.verifications.records == []
    assert services.accounts.updates == []
