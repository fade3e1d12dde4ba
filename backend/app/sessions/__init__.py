"""In-memory session state for SSO device-authorization flows.

Classes:
    - SessionStore: lock-guarded map of session id -> Session.
    - SessionSweeper: background task evicting sessions past retention.
"""
from .store import (
    RoleCredentials,
    Session,
    SessionStore,
    SessionSweeper,
    get_session_store,
    set_session_store,
)

__all__ = [
    "RoleCredentials",
    "Session",
    "SessionStore",
    "SessionSweeper",
    "get_session_store",
    "set_session_store",
]
