"""Tests for the session-scoped SSO device authorization flow."""
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import EndpointConnectionError, InvalidRegionError

from app.errors import SessionNotFoundError, SSOFlowError
from app.sso.service import DEVICE_CODE_GRANT, PollResult, PollStatus, SSOService

from conftest import client_error

START_URL = "https://portal.example/start"


def _device_auth(user_code: str = "ABCD-1234") -> dict:
    return {
        "verificationUri": "https://device.sso.us-east-1.amazonaws.com/",
        "verificationUriComplete": f"https://device.sso.us-east-1.amazonaws.com/?user_code={user_code}",
        "userCode": user_code,
        "deviceCode": "test-device-code",
        "expiresIn": 600,
        "interval": 5,
    }


@pytest.fixture
def oidc():
    with patch("app.sso.service.boto3") as mock_boto3:
        mock_client = MagicMock()
        mock_boto3.client.return_value = mock_client
        mock_client.register_client.return_value = {
            "clientId": "test-client-id",
            "clientSecret": "test-client-secret",
        }
        mock_client.start_device_authorization.return_value = _device_auth()
        mock_client.boto3 = mock_boto3
        yield mock_client


class TestSSOServiceStart:

    def test_start_success(self, oidc, store):
        service = SSOService(store, client_name="sso-resource-proxy")
        result = service.start(START_URL, "us-east-1")

        assert result["user_code"] == "ABCD-1234"
        assert result["verification_url"] == "https://device.sso.us-east-1.amazonaws.com/"
        assert result["verification_url_complete"].endswith("user_code=ABCD-1234")
        assert result["expires_in"] == 600
        assert result["interval"] == 5
        assert "device_code" not in result
        assert "client_secret" not in result

        session = store.get(result["session_id"])
        assert session.client_id == "test-client-id"
        assert session.client_secret == "test-client-secret"
        assert session.device_code == "test-device-code"
        assert session.sso_region == "us-east-1"

        oidc.boto3.client.assert_called_with("sso-oidc", region_name="us-east-1")
        oidc.register_client.assert_called_once_with(
            clientName="sso-resource-proxy",
            clientType="public",
        )
        oidc.start_device_authorization.assert_called_once_with(
            clientId="test-client-id",
            clientSecret="test-client-secret",
            startUrl=START_URL,
        )

    def test_start_defaults_interval(self, oidc, store):
        auth = _device_auth()
        del auth["interval"]
        oidc.start_device_authorization.return_value = auth
        result = SSOService(store).start(START_URL, "us-east-1")
        assert result["interval"] == 5

    def test_start_twice_gives_distinct_sessions(self, oidc, store):
        service = SSOService(store)
        first = service.start(START_URL, "us-east-1")
        second = service.start(START_URL, "eu-west-1")
        assert first["session_id"] != second["session_id"]
        assert store.get(second["session_id"]).sso_region == "eu-west-1"
        assert len(store) == 2

    def test_start_provider_error(self, oidc, store):
        oidc.register_client.side_effect = client_error(
            "InvalidRequestException", "Invalid start URL", "RegisterClient"
        )
        with pytest.raises(SSOFlowError, match="Invalid start URL"):
            SSOService(store).start(START_URL, "us-east-1")
        assert len(store) == 0

    def test_start_connection_error(self, oidc, store):
        oidc.start_device_authorization.side_effect = EndpointConnectionError(
            endpoint_url="https://oidc.us-east-1.amazonaws.com"
        )
        with pytest.raises(SSOFlowError):
            SSOService(store).start(START_URL, "us-east-1")
        assert len(store) == 0

    def test_start_malformed_region(self, oidc, store):
        oidc.boto3.client.side_effect = InvalidRegionError(region_name="us east 1")
        with pytest.raises(SSOFlowError, match="us east 1"):
            SSOService(store).start(START_URL, "us east 1")
        assert len(store) == 0


class TestSSOServicePoll:

    @pytest.fixture
    def session_id(self, oidc, store):
        return SSOService(store).start(START_URL, "us-west-2")["session_id"]

    def test_poll_unknown_session(self, oidc, store):
        with pytest.raises(SessionNotFoundError):
            SSOService(store).poll("session_missing")

    def test_poll_pending_leaves_session_unchanged(self, oidc, store, session_id):
        oidc.create_token.side_effect = client_error("AuthorizationPendingException", "pending")

        result = SSOService(store).poll(session_id)

        assert result == PollResult.pending()
        session = store.get(session_id)
        assert session.access_token is None
        assert session.token_expires_at is None

    def test_poll_slow_down_leaves_session_unchanged(self, oidc, store, session_id):
        oidc.create_token.side_effect = client_error("SlowDownException", "slow down")

        result = SSOService(store).poll(session_id)

        assert result.status is PollStatus.SLOW_DOWN
        assert store.get(session_id).access_token is None

    def test_poll_can_repeat_after_pending(self, oidc, store, session_id):
        oidc.create_token.side_effect = [
            client_error("AuthorizationPendingException"),
            client_error("SlowDownException"),
            {"accessToken": "tok", "expiresIn": 100},
        ]
        service = SSOService(store)
        assert service.poll(session_id).status is PollStatus.PENDING
        assert service.poll(session_id).status is PollStatus.SLOW_DOWN
        assert service.poll(session_id).status is PollStatus.AUTHORIZED

    def test_poll_expired_deletes_session(self, oidc, store, session_id):
        oidc.create_token.side_effect = client_error("ExpiredTokenException", "expired")
        service = SSOService(store)

        result = service.poll(session_id)

        assert result.status is PollStatus.EXPIRED
        assert session_id not in store
        with pytest.raises(SessionNotFoundError):
            service.poll(session_id)

    def test_poll_success_stores_token(self, oidc, store, clock, session_id):
        oidc.create_token.return_value = {
            "accessToken": "test-access-token",
            "tokenType": "Bearer",
            "expiresIn": 28800,
        }

        result = SSOService(store, clock=clock).poll(session_id)

        assert result.status is PollStatus.AUTHORIZED
        assert result.access_token == "test-access-token"
        assert result.expires_in == 28800
        session = store.get(session_id)
        assert session.access_token == "test-access-token"
        assert session.token_expires_at == clock.now + 28800

        oidc.boto3.client.assert_called_with("sso-oidc", region_name="us-west-2")
        oidc.create_token.assert_called_once_with(
            clientId="test-client-id",
            clientSecret="test-client-secret",
            grantType=DEVICE_CODE_GRANT,
            deviceCode="test-device-code",
        )

    def test_poll_other_error_is_failed(self, oidc, store, session_id):
        oidc.create_token.side_effect = client_error("AccessDeniedException", "User denied")

        result = SSOService(store).poll(session_id)

        assert result.status is PollStatus.FAILED
        assert result.error == "User denied"
        assert session_id in store

    def test_poll_connection_error_is_failed(self, oidc, store, session_id):
        oidc.create_token.side_effect = EndpointConnectionError(
            endpoint_url="https://oidc.us-west-2.amazonaws.com"
        )
        result = SSOService(store).poll(session_id)
        assert result.status is PollStatus.FAILED
        assert "oidc.us-west-2.amazonaws.com" in result.error
