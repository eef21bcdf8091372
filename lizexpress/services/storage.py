# lizexpress/services/storage.py
import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from lizexpress.core.settings import settings

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Opslag mislukt (netwerk, rechten, bestaand object, ...)."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(message)


def _check_key(key: str) -> str:
    """Basis path-validaties om traversal/misbruik te voorkomen."""
    if not key:
        raise StorageError("Empty object key", code="empty_key")
    if key.startswith("/") or key.endswith("/"):
        raise StorageError(f"Bad object key: {key}", code="bad_slashes")
    if ".." in PurePosixPath(key).parts:
        raise StorageError(f"Bad object key: {key}", code="path_traversal")
    return key


# =========================
# Abstracte Storage
# =========================
class Storage(ABC):
    """Abstracte Storage interface voor de verificatie-bucket."""

    @abstractmethod
    def save_bytes(
        self,
        key: str,
        data: bytes,
        content_type: str,
        *,
        cache_control: Optional[str] = None,
    ) -> str:
        """Sla bytes op onder key (nooit overschrijven); geeft de opgeslagen key terug."""

    @abstractmethod
    def public_url(self, key: str) -> str:
        """Publieke URL voor een opgeslagen object."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        pass


# =========================
# Local Storage
# =========================
class LocalStorage(Storage):
    """Lokale bestandsopslag (dev/test)."""

    def __init__(
        self,
        base_path: str = "./.local_storage",
        bucket: str = "verification",
        public_base_url: str = "http://localhost:8000",
    ):
        self.bucket = bucket
        self.base_path = Path(base_path) / bucket
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    def _full_path(self, key: str) -> Path:
        return self.base_path / _check_key(key)

    def save_bytes(self, key, data, content_type, *, cache_control=None):
        file_path = self._full_path(key)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            # "xb": upsert=False, bestaand object is een fout
            with open(file_path, "xb") as f:
                f.write(data)
        except FileExistsError:
            raise StorageError(f"The resource already exists: {key}", code="already_exists")
        except OSError as e:
            raise StorageError(f"Local write failed: {e}", code="io_error") from e
        logger.info("Bestand opgeslagen: %s (%s, %d bytes)", file_path, content_type, len(data))
        return key

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/files/{self.bucket}/{_check_key(key)}"

    def exists(self, key: str) -> bool:
        return self._full_path(key).exists()

    def delete(self, key: str) -> bool:
        try:
            p = self._full_path(key)
            if p.exists():
                p.unlink()
                logger.info("Bestand verwijderd: %s", p)
                return True
            return False
        except (OSError, StorageError) as e:
            logger.error("Fout bij verwijderen van bestand %s: %s", key, e)
            return False


# =========================
# S3 Storage
# =========================
def map_s3_client_error(e: ClientError) -> StorageError:
    err = e.response.get("Error", {}) or {}
    code = err.get("Code", "") or "ClientError"
    msg = err.get("Message", "") or str(e)

    if code in {"PreconditionFailed", "ConditionalRequestConflict"}:
        return StorageError("The resource already exists", code="already_exists")
    if code in {"AccessDenied", "SignatureDoesNotMatch"}:
        return StorageError(f"Storage access denied: {msg}", code=code)
    if code in {"RequestTimeout", "SlowDown", "Throttling"}:
        return StorageError(f"Storage is busy, please try again: {msg}", code=code)
    return StorageError(f"S3 upload failed: {msg}", code=code)


class S3Storage(Storage):
    """Amazon S3 implementatie van de verificatie-bucket."""

    def __init__(
        self,
        bucket: str,
        region: str = "eu-west-1",
        *,
        client: Any = None,
        cdn_domain: Optional[str] = None,
        verify_bucket: bool = True,
    ):
        self.bucket = bucket
        self.region = region
        self.cdn_domain = cdn_domain

        if client is None:
            from lizexpress.infra.s3_client import get_s3

            client = get_s3()
        self.s3_client = client

        if verify_bucket:
            try:
                self.s3_client.head_bucket(Bucket=bucket)
                logger.info("S3 bucket %s is toegankelijk", bucket)
            except (ClientError, NoCredentialsError) as e:
                logger.error("Kan geen toegang krijgen tot S3 bucket %s: %s", bucket, e)
                raise

    def save_bytes(self, key, data, content_type, *, cache_control=None):
        params: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": _check_key(key),
            "Body": data,
            "ContentType": content_type,
            "IfNoneMatch": "*",
        }
        if cache_control:
            params["CacheControl"] = cache_control
        try:
            self.s3_client.put_object(**params)
        except ClientError as e:
            logger.error("Fout bij uploaden naar S3 key=%s: %s", key, e)
            raise map_s3_client_error(e) from e
        except BotoCoreError as e:
            logger.error("Netwerkfout bij uploaden naar S3 key=%s: %s", key, e)
            raise StorageError(f"S3 upload failed: {e}", code=type(e).__name__) from e
        logger.info("Bestand geüpload naar S3: %s", key)
        return key

    def public_url(self, key: str) -> str:
        key = _check_key(key)
        if self.cdn_domain:
            return f"{self.cdn_domain.rstrip('/')}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def exists(self, key: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket, Key=_check_key(key))
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            logger.error("Fout bij controleren van S3 object: %s", e)
            return False

    def delete(self, key: str) -> bool:
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=_check_key(key))
            logger.info("Bestand verwijderd uit S3: %s", key)
            return True
        except (ClientError, BotoCoreError, StorageError) as e:
            logger.error("Fout bij verwijderen uit S3: %s", e)
            return False


# =========================
# Factory
# =========================
def get_storage() -> Storage:
    """
    Factory functie om de juiste storage backend te retourneren.
    """
    backend = settings.STORAGE_BACKEND.lower()

    if backend == "s3":
        return S3Storage(
            bucket=settings.VERIFICATION_BUCKET,
            region=settings.S3_REGION,
            cdn_domain=settings.CLOUDFRONT_DOMAIN,
        )

    if backend == "local":
        return LocalStorage(
            base_path=settings.LOCAL_STORAGE_ROOT,
            bucket=settings.VERIFICATION_BUCKET,
            public_base_url=settings.PUBLIC_BASE_URL,
        )

    raise ValueError(f"Onbekende storage backend: {backend}")
