"""Python client for the proxy's HTTP API.

Plays the part of the browser UI: start the flow, show the user code,
poll with a bounded policy, exchange credentials, then list resources.
"""
import logging
import time
from typing import Optional

import httpx

from app.config import get_config
from app.errors import ProxyRequestError, SessionNotFoundError
from app.sso.credentials import validate_account_id
from app.sso.poller import PollPolicy, wait_for_authorization
from app.sso.service import PollResult

logger = logging.getLogger(__name__)


class SSOProxyClient:
    """Thin synchronous client over the proxy endpoints.

    Args:
        base_url:    Proxy root, e.g. ``http://localhost:3001``.
        http_client: Optional pre-built ``httpx.Client`` (tests pass a
                     ``TestClient`` or a client on a ``MockTransport``).
    """

    def __init__(self, base_url: str = "http://localhost:3001", http_client: Optional[httpx.Client] = None):
        self._http = http_client or httpx.Client(base_url=base_url, timeout=30.0)

    def close(self) -> None:
        self._http.close()

    def _post(self, path: str, payload: dict) -> dict:
        resp = self._http.post(path, json=payload)
        if resp.status_code >= 400:
            raise ProxyRequestError(resp.status_code, _error_message(resp))
        return resp.json()

    # ------------------------------------------------------------------
    # SSO flow
    # ------------------------------------------------------------------

    def start(self, portal_url: str, region: Optional[str] = None) -> dict:
        return self._post("/sso/start", {"portal_url": portal_url, "region": region})

    def poll(self, session_id: str) -> PollResult:
        """Poll once and map the HTTP status back to a PollResult."""
        resp = self._http.post("/sso/poll", json={"session_id": session_id})
        if resp.status_code == 200:
            data = resp.json()
            return PollResult.authorized(data["access_token"], data.get("expires_in", 0))
        if resp.status_code == 202:
            return PollResult.pending()
        if resp.status_code == 429:
            return PollResult.slow_down()
        if resp.status_code == 401:
            return PollResult.expired()
        if resp.status_code == 404:
            raise SessionNotFoundError(session_id)
        return PollResult.failed(_error_message(resp))

    def accounts(self, session_id: str) -> list:
        return self._post("/sso/accounts", {"session_id": session_id})["accounts"]

    def roles(self, session_id: str, account_id: str) -> list:
        return self._post(
            "/sso/roles", {"session_id": session_id, "account_id": account_id}
        )["roles"]

    def credentials(self, session_id: str, account_id: str, role_name: str) -> dict:
        return self._post(
            "/sso/credentials",
            {"session_id": session_id, "account_id": account_id, "role_name": role_name},
        )

    def login(
        self,
        portal_url: str,
        region: str,
        account_id: str,
        role_name: str,
        policy: Optional[PollPolicy] = None,
        sleep=time.sleep,
        on_user_code=None,
    ) -> dict:
        """Run the whole flow and return session id plus credentials.

        The account id is checked before anything is sent.  *on_user_code*
        is called with the start response so the caller can show the code.
        Without an explicit *policy* the configured polling cadence is used.
        """
        validate_account_id(account_id)
        if policy is None:
            policy = PollPolicy.from_settings(get_config().polling)
        started = self.start(portal_url, region)
        session_id = started["session_id"]
        if on_user_code is not None:
            on_user_code(started)
        logger.info("Waiting for approval of user code %s", started.get("user_code"))

        wait_for_authorization(lambda: self.poll(session_id), policy, sleep=sleep)

        creds = self.credentials(session_id, account_id, role_name)
        return {"session_id": session_id, "credentials": creds}

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def instances(self, session_id: str, region: Optional[str] = None) -> list:
        return self._post(
            "/resources/instances", {"session_id": session_id, "region": region}
        )["instances"]

    def regions(self, session_id: str) -> list:
        return self._post("/resources/regions", {"session_id": session_id})["regions"]

    def stacks(self, session_id: str, region: Optional[str] = None) -> list:
        return self._post("/stacks", {"session_id": session_id, "region": region})["stacks"]

    def stack_details(self, session_id: str, stack_name: str, region: Optional[str] = None) -> dict:
        return self._post(
            "/stacks/details",
            {"session_id": session_id, "region": region, "stack_name": stack_name},
        )["stack"]


def _error_message(resp: httpx.Response) -> str:
    try:
        return resp.json().get("error", resp.text)
    except ValueError:
        return resp.text
