# lizexpress/services/notifications.py
import logging
from typing import Callable

from sqlalchemy.orm import Session

from lizexpress.models.notification import Notification

logger = logging.getLogger(__name__)

VERIFICATION_SUBMITTED = {
    "type": "verification_submitted",
    "title": "Verification Submitted",
    "content": (
        "Your verification documents have been submitted for review. "
        "You will be notified once approved."
    ),
}


class SqlNotificationService:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def enqueue(self, user_id: str, *, type: str, title: str, content: str) -> None:
        db = self._session_factory()
        try:
            db.add(Notification(user_id=user_id, type=type, title=title, content=content))
            db.commit()
            logger.info("Notification %s queued for user_id=%s", type, user_id)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
