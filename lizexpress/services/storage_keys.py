# lizexpress/services/storage_keys.py
import os
import re
from datetime import datetime, timezone
from typing import Optional

# Mapping: MIME -> veilige extensie (fallback als de bestandsnaam er geen heeft)
_MIME_EXT = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/heic": "heic",
    "image/bmp": "bmp",
}

_SLUG_RE = re.compile(r"[^a-z0-9_-]+")


def _slugify(value: str, max_len: int = 64) -> str:
    value = (value or "").lower().strip()
    value = _SLUG_RE.sub("-", value)
    value = value.strip("-")[:max_len]
    return value or "na"


def extension_for(filename: str, content_type: Optional[str] = None) -> str:
    # 1) uit bestandsnaam (zoals de client het aanlevert)
    _, ext = os.path.splitext(filename or "")
    ext = _slugify(ext.lstrip("."), max_len=8) if ext else ""
    if ext and ext != "na":
        return ext
    # 2) fallback op basis van MIME
    return _MIME_EXT.get((content_type or "").lower(), "bin")


def epoch_millis(now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    return int(now.timestamp() * 1000)


def build_verification_key(
    user_id: str,
    evidence_type: str,
    filename: str,
    *,
    content_type: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    {user_id}/verification/{type}_{timestamp}.{ext}

    De timestamp (epoch ms) maakt elke poging uniek, ook bij een retry
    van dezelfde stap. De user-id blijft ongewijzigd; ids met een pad-
    scheiding of ".." worden geweigerd.
    """
    user = str(user_id) if user_id else ""
    if not user or "/" in user or "\\" in user or ".." in user:
        raise ValueError(f"invalid user id for storage key: {user_id!r}")
    kind = _slugify(evidence_type, max_len=16)
    ext = extension_for(filename, content_type)
    return f"{user}/verification/{kind}_{epoch_millis(now)}.{ext}"
