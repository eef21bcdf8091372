# lizexpress/services/verification_store.py
import logging
from typing import Callable, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lizexpress.models.verification import Verification
from lizexpress.workflow.evidence import VerificationSubmission

logger = logging.getLogger(__name__)


class VerificationStoreError(RuntimeError):
    pass


class SqlVerificationStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def insert(self, submission: VerificationSubmission) -> str:
        record = Verification(
            user_id=submission.user_id,
            identity_document=submission.identity_document_url,
            address_document=submission.address_document_url,
            selfie_image=submission.selfie_image_url,
            status=submission.status,
            submitted_at=submission.submitted_at,
        )
        db = self._session_factory()
        try:
            db.add(record)
            db.commit()
            db.refresh(record)
            logger.info("Verification %s stored for user_id=%s", record.id, record.user_id)
            return record.id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Verification insert failed user_id=%s: %s", submission.user_id, e)
            raise VerificationStoreError(str(e)) from e
        finally:
            db.close()

    def for_user(self, user_id: str) -> List[Verification]:
        db = self._session_factory()
        try:
            return (
                db.query(Verification)
                .filter(Verification.user_id == user_id)
                .order_by(Verification.submitted_at.desc())
                .all()
            )
        finally:
            db.close()
