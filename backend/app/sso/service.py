"""AWS SSO device authorization flow, session-scoped.

Implements the same flow as ``aws sso login``, with state kept server-side:
1. Register an OIDC client
2. Start device authorization (user gets a verification URL)
3. Poll for token completion, storing the access token on the session

The client secret and device code never leave the session store.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.errors import SessionNotFoundError, SSOFlowError, provider_message
from app.sessions import Session, SessionStore

logger = logging.getLogger(__name__)

DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"
DEFAULT_POLL_INTERVAL = 5


class PollStatus(str, Enum):
    AUTHORIZED = "authorized"
    PENDING = "pending"
    SLOW_DOWN = "slow_down"
    EXPIRED = "expired"
    FAILED = "failed"


@dataclass(frozen=True)
class PollResult:
    """Outcome of a single token poll."""
    status: PollStatus
    access_token: Optional[str] = None
    expires_in: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def authorized(cls, access_token: str, expires_in: int) -> "PollResult":
        return cls(PollStatus.AUTHORIZED, access_token=access_token, expires_in=expires_in)

    @classmethod
    def pending(cls) -> "PollResult":
        return cls(PollStatus.PENDING)

    @classmethod
    def slow_down(cls) -> "PollResult":
        return cls(PollStatus.SLOW_DOWN)

    @classmethod
    def expired(cls) -> "PollResult":
        return cls(PollStatus.EXPIRED)

    @classmethod
    def failed(cls, message: str) -> "PollResult":
        return cls(PollStatus.FAILED, error=message)


# Identity Center error codes -> poll outcome.  Anything else is FAILED.
_POLL_OUTCOMES = {
    "AuthorizationPendingException": PollResult.pending(),
    "SlowDownException": PollResult.slow_down(),
    "ExpiredTokenException": PollResult.expired(),
}


def error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


class SSOService:
    """Handles AWS SSO OIDC device authorization against a session store."""

    def __init__(
        self,
        store: SessionStore,
        client_name: str = "sso-resource-proxy",
        clock=time.time,
    ):
        self.store = store
        self.client_name = client_name
        self._clock = clock

    def start(self, start_url: str, region: str) -> dict:
        """Register an OIDC client, start device authorization, open a session.

        Returns:
            Dict with session_id, user_code, verification_url,
            verification_url_complete, expires_in, and interval.

        Raises:
            SSOFlowError: Identity Center rejected registration or authorization.
        """
        try:
            # Region comes from the request; a malformed one fails here
            oidc_client = boto3.client("sso-oidc", region_name=region)

            # Step 1: Register a public OIDC client
            reg = oidc_client.register_client(
                clientName=self.client_name,
                clientType="public",
            )
            client_id = reg["clientId"]
            client_secret = reg["clientSecret"]

            # Step 2: Start device authorization
            auth = oidc_client.start_device_authorization(
                clientId=client_id,
                clientSecret=client_secret,
                startUrl=start_url,
            )
        except (ClientError, BotoCoreError) as e:
            raise SSOFlowError(provider_message(e)) from e

        session_id = self.store.create(
            client_id=client_id,
            client_secret=client_secret,
            device_code=auth["deviceCode"],
            sso_region=region,
        )
        logger.info(
            "Device authorization started: session=%s user_code=%s region=%s",
            session_id, auth.get("userCode", ""), region,
        )

        return {
            "session_id": session_id,
            "user_code": auth.get("userCode", ""),
            "verification_url": auth.get("verificationUri", ""),
            "verification_url_complete": auth.get("verificationUriComplete", ""),
            "expires_in": auth.get("expiresIn", 600),
            "interval": auth.get("interval") or DEFAULT_POLL_INTERVAL,
        }

    def poll(self, session_id: str) -> PollResult:
        """Poll once for token completion.

        Raises:
            SessionNotFoundError: The session does not exist.
        """
        session = self.store.get(session_id)

        try:
            oidc_client = boto3.client("sso-oidc", region_name=session.sso_region)
            token_resp = oidc_client.create_token(
                clientId=session.client_id,
                clientSecret=session.client_secret,
                grantType=DEVICE_CODE_GRANT,
                deviceCode=session.device_code,
            )
        except ClientError as e:
            outcome = _POLL_OUTCOMES.get(error_code(e))
            if outcome is None:
                logger.error("Poll failed for session %s: %s", session_id, provider_message(e))
                return PollResult.failed(provider_message(e))
            if outcome.status is PollStatus.EXPIRED:
                try:
                    self.store.delete(session_id)
                except SessionNotFoundError:
                    pass  # swept concurrently
                logger.info("Device authorization expired; session %s removed", session_id)
            return outcome
        except BotoCoreError as e:
            logger.error("Poll failed for session %s: %s", session_id, e)
            return PollResult.failed(str(e))

        access_token = token_resp["accessToken"]
        expires_in = token_resp.get("expiresIn", 0)
        expires_at = self._clock() + expires_in

        def _authorize(s: Session) -> None:
            s.access_token = access_token
            s.token_expires_at = expires_at

        self.store.update(session_id, _authorize)
        logger.info("Token received for session %s", session_id)
        return PollResult.authorized(access_token, expires_in)
