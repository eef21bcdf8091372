# lizexpress/workflow/registry.py
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from lizexpress.capture.frame_device import PushedFrameDevice
from lizexpress.core.logging_config import logger
from lizexpress.core.settings import settings
from lizexpress.workflow.engine import VerificationWorkflow


@dataclass
class VerificationSession:
    id: str
    user_id: str
    workflow: VerificationWorkflow
    camera: PushedFrameDevice
    touched_at: float = field(default_factory=time.monotonic)


class SessionRegistry:
    """
    In-memory verificatiepogingen per sessie-id (per proces).

    Afgeronde pogingen worden door de router direct afgemeld; pogingen die
    langer dan ``idle_ttl`` seconden niet aangeraakt zijn worden gesloten
    en verwijderd bij de volgende ``add``.
    """

    def __init__(
        self,
        idle_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.idle_ttl = settings.session_idle_ttl_sec if idle_ttl is None else idle_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, VerificationSession] = {}

    def new_id(self) -> str:
        return uuid4().hex

    def add(self, session: VerificationSession) -> VerificationSession:
        self.prune()
        session.touched_at = self._clock()
        with self._lock:
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> Optional[VerificationSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.touched_at = self._clock()
            return session

    def discard(self, session_id: str) -> Optional[VerificationSession]:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.workflow.close()
        return session

    def prune(self) -> int:
        """Sluit en verwijdert pogingen die te lang stil liggen."""
        cutoff = self._clock() - self.idle_ttl
        with self._lock:
            stale: List[VerificationSession] = [
                s
                for s in self._sessions.values()
                if s.touched_at < cutoff and not s.workflow.busy
            ]
            for s in stale:
                del self._sessions[s.id]
        for s in stale:
            s.workflow.close()
            logger.info("verification_session_expired", session_id=s.id, user_id=s.user_id)
        return len(stale)

    def close_all(self) -> None:
        with self._lock:
            sessions, self._sessions = list(self._sessions.values()), {}
        for s in sessions:
            s.workflow.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


registry = SessionRegistry()
