"""Pytest fixtures."""

import os
import tempfile
import threading
import time
from types import SimpleNamespace

# Point the app at a throwaway database before anything from shakti is imported
_TEST_DIR = tempfile.mkdtemp(prefix="shakti-tests-")
TEST_DATABASE_URL = f"sqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["ENABLE_TEST_ENDPOINTS"] = "true"

import pytest
from fastapi.testclient import TestClient
from firebase_admin import messaging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from shakti.crud import crud
from shakti.database.database import Base, get_db
from shakti.main import app
from shakti.models import models  # noqa: F401 - register for create_all
from shakti.schemas.enums import AlertMethod
from shakti.schemas.notifications import ChannelResult
from shakti.utils.notifier import NotificationHub, get_notification_hub
from shakti.utils.security import create_access_token

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


# ---------------- Fakes ----------------
class FakeChannel:
    """Stands in for SmsChannel / EmailChannel: records every send, returns a canned outcome."""

    def __init__(self, method: AlertMethod, fail: bool = False, raises: Exception = None, delay: float = 0,
                 fail_targets=()):
        self.method = method
        self.fail = fail
        self.fail_targets = set(fail_targets)
        self.raises = raises
        self.delay = delay
        self.sent = []
        self._lock = threading.Lock()

    def send(self, target, payload):
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            self.sent.append((target, payload))
        if self.raises:
            raise self.raises
        if self.fail or target in self.fail_targets:
            return ChannelResult.failed(self.method, f"{self.method.value} provider down")
        return ChannelResult(method=self.method, success=True, provider_message_id=f"{self.method.value}-{len(self.sent)}")

    @property
    def targets(self):
        return [target for target, _ in self.sent]


class FakeMessaging:
    """Stands in for FirebaseMessaging without touching Google."""

    def __init__(self, available=True, invalid_tokens=(), failing_tokens=(), raise_on_multicast=False):
        self._available = available
        self.invalid_tokens = set(invalid_tokens)
        self.failing_tokens = set(failing_tokens)
        self.raise_on_multicast = raise_on_multicast
        self.single_messages = []
        self.multicast_batches = []

    @property
    def available(self):
        return self._available

    @property
    def init_error(self):
        return None if self._available else "Firebase credentials not configured"

    def send(self, message):
        if message.token in self.invalid_tokens:
            raise messaging.UnregisteredError("Requested entity was not found.")
        self.single_messages.append(message)
        return f"projects/test/messages/{len(self.single_messages)}"

    def send_each_for_multicast(self, message):
        tokens = list(message.tokens)
        self.multicast_batches.append(tokens)
        if self.raise_on_multicast:
            raise RuntimeError("FCM unavailable")
        responses = []
        for token in tokens:
            if token in self.invalid_tokens:
                exc = messaging.UnregisteredError("Requested entity was not found.")
                responses.append(SimpleNamespace(success=False, exception=exc))
            elif token in self.failing_tokens:
                responses.append(SimpleNamespace(success=False, exception=RuntimeError("internal error")))
            else:
                responses.append(SimpleNamespace(success=True, exception=None))
        success_count = sum(1 for r in responses if r.success)
        return SimpleNamespace(
            responses=responses,
            success_count=success_count,
            failure_count=len(responses) - success_count,
        )


# ---------------- Fixtures ----------------
@pytest.fixture(autouse=True)
def setup_db():
    """Fresh tables for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_sms():
    return FakeChannel(AlertMethod.SMS)


@pytest.fixture
def fake_email():
    return FakeChannel(AlertMethod.EMAIL)


@pytest.fixture
def fake_fcm():
    return FakeMessaging()


@pytest.fixture
def hub(fake_sms, fake_email, fake_fcm):
    return NotificationHub(
        sms=fake_sms,
        email=fake_email,
        fcm=fake_fcm,
        session_factory=TestingSessionLocal,
        channel_timeout=2,
        broadcast_timeout=5,
    )


@pytest.fixture
def client(hub):
    """Test client with overridden DB and notification clients."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_hub] = lambda: hub
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(name="Asha", email=None, phone=None, fcm_token=None):
        counter["n"] += 1
        n = counter["n"]
        return crud.create_user(
            db,
            name=name,
            email=email or f"user{n}@test.com",
            phone=phone or f"+9198765400{n:02d}",
            fcm_token=fcm_token,
        )

    return _make


@pytest.fixture
def auth_header():
    def _header(user):
        return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}

    return _header
