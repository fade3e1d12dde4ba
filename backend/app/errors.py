"""Exception hierarchy shared by the session, SSO and resource modules.

Routers translate these into ``{"error": ...}`` JSON responses.  Messages
are user-visible, so they must never include client secrets, device codes,
access tokens or key material.
"""
from botocore.exceptions import ClientError


class ProxyError(Exception):
    """Base class for all proxy-level failures."""


class SessionNotFoundError(ProxyError):
    """No session with the given id (never created, swept, or expired)."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("Session not found")


class NotAuthenticatedError(ProxyError):
    """Session exists but has not reached the stage the operation needs."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class InvalidAccountIdError(ProxyError, ValueError):
    """Account id is not exactly 12 ASCII digits."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__("Account ID must be a 12-digit number")


class StackNotFoundError(ProxyError):
    def __init__(self, stack_name: str):
        self.stack_name = stack_name
        super().__init__("Stack not found")


class SSOFlowError(ProxyError):
    """Identity Center rejected a call; carries the provider's message."""


class ResourceQueryError(ProxyError):
    """EC2 / CloudFormation rejected a call; carries the provider's message."""


class AuthorizationExpiredError(ProxyError):
    """The device authorization expired before the user approved it."""

    def __init__(self, message: str = "Session expired"):
        super().__init__(message)


class PollTimeoutError(ProxyError):
    """Client-side poll budget ran out before the flow finished."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Authorization not completed after {attempts} attempts")


class ProxyRequestError(ProxyError):
    """The proxy answered a client request with an error status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"{status_code}: {message}")


def provider_message(exc: Exception) -> str:
    """Best human-readable message from a boto3 failure."""
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        return error.get("Message") or error.get("Code") or str(exc)
    return str(exc)
