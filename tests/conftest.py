# tests/conftest.py
import os
import tempfile

# Point the app at a throwaway SQLite file before anything imports flows.database
_TMP_DIR = tempfile.mkdtemp(prefix="mailtrack-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'mailtrack.db')}"

import pytest
from fastapi.testclient import TestClient

from core.credential_pool import CredentialPool
from core.dispatcher import KeyRotatingDispatcher
from core.exceptions import LLMError, QuotaExceededError


class FakeService:
    """
    Scripted stand-in for the inference service.

    Each script entry is consumed by one attempt: an exception instance is
    raised, anything else is returned. Every credential used is recorded.
    """

    def __init__(self, *script):
        self.script = list(script)
        self.calls = []

    async def __call__(self, credential, payload):
        self.calls.append(credential)
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step

    @property
    def attempts(self):
        return len(self.calls)


@pytest.fixture
def fake_service():
    return FakeService


@pytest.fixture
def quota_error():
    return lambda: QuotaExceededError("Rate limit: quota exceeded", status_code=429)


@pytest.fixture
def hard_error():
    return lambda: LLMError("invalid argument", status_code=400)


@pytest.fixture
def make_dispatcher():
    def _make(*keys, attempt_timeout=None):
        return KeyRotatingDispatcher(CredentialPool(list(keys)), attempt_timeout=attempt_timeout)
    return _make


@pytest.fixture
def clean_db():
    from flows.database import Base, engine

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(clean_db):
    """
    TestClient whose dispatcher has no credentials: every AI call takes the
    fallback path unless a test overrides get_dispatcher itself.
    """
    from api.app import app, get_dispatcher

    dispatcher = KeyRotatingDispatcher(CredentialPool([]))
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
