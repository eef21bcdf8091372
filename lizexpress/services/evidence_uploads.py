# lizexpress/services/evidence_uploads.py
import asyncio
import time
from datetime import datetime
from typing import Optional

from lizexpress.core.logging_config import logger
from lizexpress.core.settings import settings
from lizexpress.infra.deadline import DeadlineExceeded, first_settled
from lizexpress.observability.metrics import (
    evidence_upload_counter,
    upload_latency_hist,
    upload_size_hist,
)
from lizexpress.services.storage import Storage, StorageError
from lizexpress.services.storage_keys import build_verification_key
from lizexpress.workflow.errors import UploadError, UploadTimeoutError
from lizexpress.workflow.evidence import EvidenceFile, StoredEvidence


async def upload_evidence(
    storage: Storage,
    user_id: str,
    evidence_type: str,
    evidence: EvidenceFile,
    *,
    timeout: Optional[float] = None,
    now: Optional[datetime] = None,
) -> StoredEvidence:
    """
    Upload één evidence-bestand naar de verificatie-bucket.

    De upload draait buiten de event loop en racet tegen ``timeout``
    (default ``settings.upload_timeout_sec``). Timeout en opslagfouten
    komen allebei als ``UploadError`` terug.
    """
    timeout = settings.upload_timeout_sec if timeout is None else timeout
    try:
        key = build_verification_key(
            user_id, evidence_type, evidence.filename, content_type=evidence.content_type, now=now
        )
    except ValueError as e:
        evidence_upload_counter.labels(evidence_type=evidence_type, result="error").inc()
        logger.warning("evidence_key_rejected", user_id=user_id, error=str(e))
        raise UploadError() from e
    log = logger.bind(user_id=user_id, evidence_type=evidence_type, key=key)
    log.info("evidence_upload_started", size=evidence.size, content_type=evidence.content_type)

    started = time.perf_counter()
    try:
        stored_key = await first_settled(
            asyncio.to_thread(
                storage.save_bytes,
                key,
                evidence.data,
                evidence.content_type,
                cache_control=settings.upload_cache_control,
            ),
            timeout,
            label=f"{evidence_type} upload",
        )
    except DeadlineExceeded:
        evidence_upload_counter.labels(evidence_type=evidence_type, result="timeout").inc()
        log.warning("evidence_upload_timeout", timeout=timeout)
        raise UploadTimeoutError()
    except StorageError as e:
        evidence_upload_counter.labels(evidence_type=evidence_type, result="error").inc()
        log.warning("evidence_upload_failed", error=str(e), code=e.code)
        raise UploadError(str(e)) from e
    except Exception as e:
        evidence_upload_counter.labels(evidence_type=evidence_type, result="error").inc()
        log.exception("evidence_upload_crashed")
        raise UploadError() from e

    upload_latency_hist.labels(evidence_type=evidence_type).observe(time.perf_counter() - started)
    upload_size_hist.observe(evidence.size)
    evidence_upload_counter.labels(evidence_type=evidence_type, result="success").inc()

    url = storage.public_url(stored_key)
    log.info("evidence_upload_finished", url=url)
    return StoredEvidence(key=stored_key, url=url, source=evidence)


async def discard_evidence(storage: Storage, stored: StoredEvidence) -> None:
    """Best-effort opruimen van een vervangen upload; fouten worden alleen gelogd."""
    try:
        removed = await asyncio.to_thread(storage.delete, stored.key)
    except Exception as e:
        logger.warning("evidence_discard_failed", key=stored.key, error=repr(e))
        return
    logger.info("evidence_discarded", key=stored.key, removed=removed)
