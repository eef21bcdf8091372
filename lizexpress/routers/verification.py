# lizexpress/routers/verification.py
from functools import lru_cache
from typing import Callable, Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, UploadFile

from lizexpress.capture.frame_device import PushedFrameDevice
from lizexpress.core.logging_config import logger
from lizexpress.db import SessionLocal
from lizexpress.schemas.verification import (
    StartSessionIn,
    VerificationStatusOut,
    WorkflowStateOut,
)
from lizexpress.services.accounts import SqlAccountService
from lizexpress.services.notifications import SqlNotificationService
from lizexpress.services.storage import Storage, get_storage
from lizexpress.services.verification_store import SqlVerificationStore
from lizexpress.workflow.engine import start_verification
from lizexpress.workflow.ports import VerificationServices
from lizexpress.workflow.registry import SessionRegistry, VerificationSession, registry

router = APIRouter(prefix="/verification", tags=["verification"])

ServicesFactory = Callable[[PushedFrameDevice], VerificationServices]


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------
def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    # Auth zit buiten deze service; de gateway zet X-User-Id
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id.strip()


def get_registry() -> SessionRegistry:
    return registry


@lru_cache(maxsize=1)
def _storage() -> Storage:
    return get_storage()


def get_accounts() -> SqlAccountService:
    return SqlAccountService(SessionLocal)


def get_services_factory() -> ServicesFactory:
    def _build(camera: PushedFrameDevice) -> VerificationServices:
        return VerificationServices(
            storage=_storage(),
            accounts=SqlAccountService(SessionLocal),
            verifications=SqlVerificationStore(SessionLocal),
            notifications=SqlNotificationService(SessionLocal),
            capture_device=camera,
        )

    return _build


def _load(session_id: str, user_id: str, reg: SessionRegistry) -> VerificationSession:
    session = reg.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Verification session not found")
    if session.user_id != user_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return session


def _respond(session: VerificationSession, reg: SessionRegistry) -> WorkflowStateOut:
    state = WorkflowStateOut.from_workflow(session.id, session.workflow)
    if session.workflow.finished:
        # afgeronde poging: de response is het laatste wat de client ervan ziet
        reg.discard(session.id)
        logger.info(
            "verification_session_finished",
            session_id=session.id,
            user_id=session.user_id,
            outcome=state.outcome,
        )
    return state


# -----------------------------------------------------------------------------
# Status
# -----------------------------------------------------------------------------
@router.get("/status", response_model=VerificationStatusOut)
def verification_status(
    user_id: str = Depends(get_user_id),
    accounts: SqlAccountService = Depends(get_accounts),
):
    return VerificationStatusOut(
        user_id=user_id, needs_verification=accounts.needs_verification(user_id)
    )


# -----------------------------------------------------------------------------
# Sessions
# -----------------------------------------------------------------------------
@router.post("/sessions", response_model=WorkflowStateOut, status_code=201)
async def start_session(
    payload: Optional[StartSessionIn] = None,
    user_id: str = Depends(get_user_id),
    reg: SessionRegistry = Depends(get_registry),
    accounts: SqlAccountService = Depends(get_accounts),
    build_services: ServicesFactory = Depends(get_services_factory),
):
    payload = payload or StartSessionIn()
    accounts.ensure_profile(user_id)

    session_id = reg.new_id()
    camera = PushedFrameDevice()
    log = logger.bind(session_id=session_id, user_id=user_id)
    workflow = start_verification(
        user_id,
        build_services(camera),
        on_complete=lambda: log.info("verification_completed"),
        on_skip=(lambda: log.info("verification_skipped")) if payload.allow_skip else None,
    )
    session = reg.add(
        VerificationSession(id=session_id, user_id=user_id, workflow=workflow, camera=camera)
    )
    logger.info("verification_session_started", session_id=session_id, user_id=user_id)
    return _respond(session, reg)


@router.get("/sessions/{session_id}", response_model=WorkflowStateOut)
async def get_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    reg: SessionRegistry = Depends(get_registry),
):
    return _respond(_load(session_id, user_id, reg), reg)


@router.delete("/sessions/{session_id}", status_code=204)
async def abandon_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    reg: SessionRegistry = Depends(get_registry),
):
    _load(session_id, user_id, reg)
    reg.discard(session_id)
    logger.info("verification_session_closed", session_id=session_id, user_id=user_id)


# -----------------------------------------------------------------------------
# Evidence
# -----------------------------------------------------------------------------
@router.put("/sessions/{session_id}/evidence", response_model=WorkflowStateOut)
async def select_evidence(
    session_id: str,
    file: UploadFile = File(...),
    user_id: str = Depends(get_user_id),
    reg: SessionRegistry = Depends(get_registry),
):
    session = _load(session_id, user_id, reg)
    data = await file.read()
    session.workflow.select_file(
        data, file.content_type or "application/octet-stream", file.filename or "upload"
    )
    return _respond(session, reg)


@router.delete("/sessions/{session_id}/evidence", response_model=WorkflowStateOut)
async def remove_evidence(
    session_id: str,
    user_id: str = Depends(get_user_id),
    reg: SessionRegistry = Depends(get_registry),
):
    session = _load(session_id, user_id, reg)
    session.workflow.remove_file()
    return _respond(session, reg)


@router.post("/sessions/{session_id}/selfie", response_model=WorkflowStateOut)
async def capture_selfie(
    session_id: str,
    frame: UploadFile = File(...),
    user_id: str = Depends(get_user_id),
    reg: SessionRegistry = Depends(get_registry),
):
    """Browser stuurt het huidige camera-frame (JPEG); dat wordt de selfie."""
    session = _load(session_id, user_id, reg)
    if session.workflow.camera_active:
        session.camera.push_frame(await frame.read())
    session.workflow.capture_selfie()
    return _respond(session, reg)


@router.post("/sessions/{session_id}/selfie/retake", response_model=WorkflowStateOut)
async def retake_selfie(
    session_id: str,
    user_id: str = Depends(get_user_id),
    reg: SessionRegistry = Depends(get_registry),
):
    session = _load(session_id, user_id, reg)
    session.workflow.retake_selfie()
    return _respond(session, reg)


# -----------------------------------------------------------------------------
# Transitions
# -----------------------------------------------------------------------------
@router.post("/sessions/{session_id}/advance", response_model=WorkflowStateOut)
async def advance(
    session_id: str,
    user_id: str = Depends(get_user_id),
    reg: SessionRegistry = Depends(get_registry),
):
    session = _load(session_id, user_id, reg)
    await session.workflow.advance()
    return _respond(session, reg)


@router.post("/sessions/{session_id}/retreat", response_model=WorkflowStateOut)
async def retreat(
    session_id: str,
    user_id: str = Depends(get_user_id),
    reg: SessionRegistry = Depends(get_registry),
):
    session = _load(session_id, user_id, reg)
    session.workflow.retreat()
    return _respond(session, reg)


@router.post("/sessions/{session_id}/skip", response_model=WorkflowStateOut)
async def skip(
    session_id: str,
    user_id: str = Depends(get_user_id),
    reg: SessionRegistry = Depends(get_registry),
):
    session = _load(session_id, user_id, reg)
    session.workflow.skip()
    return _respond(session, reg)


@router.delete("/sessions/{session_id}/error", response_model=WorkflowStateOut)
async def dismiss_error(
    session_id: str,
    user_id: str = Depends(get_user_id),
    reg: SessionRegistry = Depends(get_registry),
):
    session = _load(session_id, user_id, reg)
    session.workflow.dismiss_error()
    return _respond(session, reg)
