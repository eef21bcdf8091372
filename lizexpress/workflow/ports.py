# lizexpress/workflow/ports.py
"""Collaborators van de verificatie-flow; concrete adapters staan in lizexpress.services."""
from dataclasses import dataclass
from typing import Protocol

from lizexpress.capture.device import CaptureDevice
from lizexpress.services.storage import Storage
from lizexpress.workflow.evidence import VerificationSubmission


class AccountService(Protocol):
    def update_profile(self, user_id: str, **fields) -> None: ...


class VerificationStore(Protocol):
    def insert(self, submission: VerificationSubmission) -> str: ...


class NotificationService(Protocol):
    def enqueue(self, user_id: str, *, type: str, title: str, content: str) -> None: ...


@dataclass
class VerificationServices:
    storage: Storage
    accounts: AccountService
    verifications: VerificationStore
    notifications: NotificationService
    capture_device: CaptureDevice
