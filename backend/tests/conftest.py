"""Shared test fixtures and configuration for backend tests."""
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from app.main import app
from app.sessions import SessionStore, get_session_store


class FakeClock:
    """Settable stand-in for time.time()."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def client_error(code: str, message: str = "", operation: str = "CreateToken") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def boto3_factory(mock_boto3: MagicMock, **clients: MagicMock) -> None:
    """Route ``boto3.client(service_name, ...)`` to per-service mocks.

    Keyword names use underscores (``sso_oidc`` -> ``sso-oidc``).
    """
    by_name = {name.replace("_", "-"): c for name, c in clients.items()}

    def client_factory(service_name, **kwargs):
        return by_name.get(service_name, MagicMock())

    mock_boto3.client.side_effect = client_factory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(clock=clock)


@pytest.fixture
def api_client(store):
    """Provide a TestClient for the main FastAPI app bound to a fresh store.

    The lifespan is not entered, so no sweep task runs during tests.
    """
    app.dependency_overrides[get_session_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def authorized_session(store):
    """A session that has completed the device flow (token, no credentials)."""
    session_id = store.create(
        client_id="cid", client_secret="csecret", device_code="dcode", sso_region="us-east-1"
    )

    def _authorize(s):
        s.access_token = "test-access-token"
        s.token_expires_at = s.created_at + 28800

    store.update(session_id, _authorize)
    return session_id


@pytest.fixture
def credentialed_session(store, authorized_session):
    """A session holding role credentials."""
    from app.sessions import RoleCredentials

    def _grant(s):
        s.credentials = RoleCredentials(
            access_key_id="ASIATEST",
            secret_access_key="secret-key",
            session_token="session-token",
            expiration=1_700_003_600_000,
        )

    store.update(authorized_session, _grant)
    return authorized_session
