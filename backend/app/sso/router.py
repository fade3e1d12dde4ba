"""SSO router for the device authorization flow and credential exchange.

Endpoints:
    POST /sso/start        - Register a client and start device authorization
    POST /sso/poll         - Poll once for the access token
    POST /sso/accounts     - List accounts reachable with the access token
    POST /sso/roles        - List roles in one account
    POST /sso/credentials  - Exchange the token for role credentials
"""
import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.config import get_config
from app.errors import (
    InvalidAccountIdError,
    NotAuthenticatedError,
    SessionNotFoundError,
    SSOFlowError,
)
from app.sessions import SessionStore, get_session_store

from .credentials import CredentialService
from .schemas import CredentialsRequest, RolesRequest, SessionRequest, SSOStartRequest
from .service import PollStatus, SSOService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sso", tags=["sso"])


async def _run_blocking(fn, *args):
    """Run a boto3-backed call off the event loop."""
    return await asyncio.get_event_loop().run_in_executor(None, fn, *args)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@router.post("/start")
async def sso_start(
    request: SSOStartRequest,
    store: SessionStore = Depends(get_session_store),
) -> JSONResponse:
    """Start the SSO OIDC device authorization flow.

    Returns the session id plus the user code and verification URLs
    the user needs to approve the request in a browser.
    """
    config = get_config()
    region = request.region or config.sso.default_region
    service = SSOService(store, client_name=config.sso.client_name)
    try:
        result = await _run_blocking(service.start, request.portal_url, region)
    except SSOFlowError as e:
        logger.error("SSO start failed: %s", e)
        return _error(str(e), 500)
    return JSONResponse(result)


@router.post("/poll")
async def sso_poll(
    request: SessionRequest,
    store: SessionStore = Depends(get_session_store),
) -> JSONResponse:
    """Poll once for token completion.

    Returns 200 with the token, 202 while pending, 429 on slow down,
    401 once the authorization has expired (session removed), 404 for
    an unknown session.
    """
    service = SSOService(store, client_name=get_config().sso.client_name)
    try:
        result = await _run_blocking(service.poll, request.session_id)
    except SessionNotFoundError:
        return _error("session not found", 404)

    if result.status is PollStatus.AUTHORIZED:
        return JSONResponse({
            "status": "success",
            "access_token": result.access_token,
            "expires_in": result.expires_in,
        })
    if result.status is PollStatus.PENDING:
        return JSONResponse({"status": "pending"}, status_code=202)
    if result.status is PollStatus.SLOW_DOWN:
        return JSONResponse({"status": "slow_down"}, status_code=429)
    if result.status is PollStatus.EXPIRED:
        return _error("session expired", 401)
    return _error(result.error or "poll failed", 500)


async def _with_token(fn, *args):
    """Run a credential-service call; failures come back as an error response."""
    try:
        return await _run_blocking(fn, *args)
    except InvalidAccountIdError as e:
        return _error(str(e), 400)
    except (SessionNotFoundError, NotAuthenticatedError):
        return _error("Not authenticated", 401)
    except SSOFlowError as e:
        logger.error("SSO call failed: %s", e)
        return _error(str(e), 500)


@router.post("/accounts")
async def sso_accounts(
    request: SessionRequest,
    store: SessionStore = Depends(get_session_store),
) -> JSONResponse:
    """List accounts available to the authenticated user."""
    result = await _with_token(CredentialService(store).list_accounts, request.session_id)
    if isinstance(result, JSONResponse):
        return result
    return JSONResponse({"accounts": result})


@router.post("/roles")
async def sso_roles(
    request: RolesRequest,
    store: SessionStore = Depends(get_session_store),
) -> JSONResponse:
    """List roles the authenticated user may assume in one account."""
    result = await _with_token(
        CredentialService(store).list_roles, request.session_id, request.account_id
    )
    if isinstance(result, JSONResponse):
        return result
    return JSONResponse({"roles": result})


@router.post("/credentials")
async def sso_credentials(
    request: CredentialsRequest,
    store: SessionStore = Depends(get_session_store),
) -> JSONResponse:
    """Exchange the session's access token for role credentials."""
    result = await _with_token(
        CredentialService(store).get_credentials,
        request.session_id,
        request.account_id,
        request.role_name,
    )
    if isinstance(result, JSONResponse):
        return result
    return JSONResponse(result.to_dict())
