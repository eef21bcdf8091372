# Models package for LizExpress

from .notification import Notification
from .profile import Profile
from .verification import Verification

__all__ = [
    "Notification",
    "Profile",
    "Verification",
]
