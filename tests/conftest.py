import os
import tempfile

# Settings worden bij import gelezen: env eerst zetten
_TMP = tempfile.mkdtemp(prefix="lizexpress-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP}/test.db")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_ROOT", os.path.join(_TMP, "storage"))
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")

import itertools
import time
from datetime import datetime, timedelta, timezone

import pytest

from lizexpress.db import Base, SessionLocal, engine
from lizexpress.services.storage import Storage, StorageError
from lizexpress.workflow.errors import CaptureDeviceError
from lizexpress.workflow.ports import VerificationServices

JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 2048


@pytest.fixture(scope="session", autouse=True)
def _create_test_db():
    # zorg dat modellen geladen zijn, anders kent Base de tabellen niet
    from lizexpress import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def anyio_backend():
    # Dwing anyio om alleen asyncio te gebruiken (geen Trio nodig)
    return "asyncio"


@pytest.fixture
def db_clean():
    yield SessionLocal
    db = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
    finally:
        db.close()


# -------------------------
# Fakes voor de collaborators
# -------------------------
class FakeStorage(Storage):
    def __init__(self):
        self.objects = {}
        self.attempts = []
        self.deleted = []
        self.fail_with = None
        self.delay = 0.0

    def save_bytes(self, key, data, content_type, *, cache_control=None):
        self.attempts.append(key)
        if self.delay:
            time.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        if key in self.objects:
            raise StorageError("The resource already exists", code="already_exists")
        self.objects[key] = (data, content_type, cache_control)
        return key

    def public_url(self, key):
        return f"https://cdn.test/verification/{key}"

    def exists(self, key):
        return key in self.objects

    def delete(self, key):
        self.deleted.append(key)
        return self.objects.pop(key, None) is not None


class FakeAccounts:
    def __init__(self):
        self.updates = []
        self.fail = False

    def update_profile(self, user_id, **fields):
        if self.fail:
            raise RuntimeError("profile update failed")
        self.updates.append((user_id, fields))


class FakeVerificationStore:
    def __init__(self):
        self.records = []
        self.fail = False
        self.delay = 0.0

    def insert(self, submission):
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise RuntimeError("insert failed")
        self.records.append(submission)
        return f"ver-{len(self.records)}"


class FakeNotifications:
    def __init__(self):
        self.sent = []
        self.fail = False

    def enqueue(self, user_id, *, type, title, content):
        if self.fail:
            raise RuntimeError("notifications down")
        self.sent.append({"user_id": user_id, "type": type, "title": title, "content": content})


class FakeStream:
    def __init__(self, frame=JPEG):
        self.frame = frame
        self.stopped = False

    def snapshot(self):
        if self.stopped:
            raise CaptureDeviceError("Camera is not active")
        return self.frame

    def stop(self):
        self.stopped = True


class FakeCamera:
    def __init__(self):
        self.denied = False
        self.streams = []

    def request_video_stream(self):
        if self.denied:
            raise CaptureDeviceError()
        stream = FakeStream()
        self.streams.append(stream)
        return stream

    @property
    def running(self):
        return [s for s in self.streams if not s.stopped]


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def services(storage, camera):
    return VerificationServices(
        storage=storage,
        accounts=FakeAccounts(),
        verifications=FakeVerificationStore(),
        notifications=FakeNotifications(),
        capture_device=camera,
    )


@pytest.fixture
def clock():
    # elke aanroep 1 ms later, zodat opeenvolgende keys verschillen
    base = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    counter = itertools.count()
    return lambda: base + timedelta(milliseconds=next(counter))
