# lizexpress/services/accounts.py
import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lizexpress.models.profile import Profile

logger = logging.getLogger(__name__)

# Velden die de verificatie-flow aan het profiel mag wijzigen
_UPDATABLE = {"full_name", "verification_submitted"}


class ProfileNotFound(LookupError):
    pass


class AccountError(RuntimeError):
    pass


class SqlAccountService:
    """Profielopslag in de eigen database."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def get_profile(self, user_id: str) -> Optional[Profile]:
        db = self._session_factory()
        try:
            return db.get(Profile, user_id)
        finally:
            db.close()

    def ensure_profile(self, user_id: str, full_name: Optional[str] = None) -> Profile:
        # idempotent
        db = self._session_factory()
        try:
            profile = db.get(Profile, user_id)
            if profile is None:
                profile = Profile(id=user_id, full_name=full_name)
                db.add(profile)
                db.commit()
                db.refresh(profile)
            return profile
        finally:
            db.close()

    def update_profile(self, user_id: str, **fields) -> None:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update profile fields: {sorted(unknown)}")

        db = self._session_factory()
        try:
            profile = db.get(Profile, user_id)
            if profile is None:
                raise ProfileNotFound(f"No profile for user {user_id}")
            for name, value in fields.items():
                setattr(profile, name, value)
            db.add(profile)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Profile update failed user_id=%s: %s", user_id, e)
            raise AccountError(str(e)) from e
        finally:
            db.close()

    def needs_verification(self, user_id: str) -> bool:
        """Nog niet geverifieerd en nog niets ingediend -> flow tonen."""
        profile = self.get_profile(user_id)
        if profile is None:
            return True
        return not (profile.is_verified or profile.verification_submitted)
