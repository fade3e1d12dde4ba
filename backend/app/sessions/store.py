"""In-memory session store with creation-time retention.

Sessions are NEVER written to disk.  The store lives for the process
lifetime only.  A background task sweeps sessions older than the
retention window, regardless of token or credential expiry.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from app.errors import SessionNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class RoleCredentials:
    """Temporary credentials for one account/role pair."""
    access_key_id:     str
    secret_access_key: str = field(repr=False)
    session_token:     str = field(repr=False)
    expiration:        int = 0   # epoch milliseconds, as Identity Center reports it

    def to_dict(self) -> dict:
        return {
            "access_key_id":     self.access_key_id,
            "secret_access_key": self.secret_access_key,
            "session_token":     self.session_token,
            "expiration":        self.expiration,
        }


@dataclass
class Session:
    session_id:       str
    client_id:        str
    client_secret:    str = field(repr=False)
    device_code:      str = field(repr=False)
    sso_region:       str = "us-east-1"
    created_at:       float = field(default_factory=time.time)
    access_token:     Optional[str] = field(default=None, repr=False)
    token_expires_at: Optional[float] = None
    credentials:      Optional[RoleCredentials] = field(default=None, repr=False)

    @property
    def is_authorized(self) -> bool:
        return self.access_token is not None

    @property
    def has_credentials(self) -> bool:
        return self.credentials is not None


class SessionStore:
    """Thread-safe in-memory map of session id -> Session.

    Services run boto3 calls in executor threads, so a plain
    ``threading.Lock`` guards the map rather than an asyncio lock.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock  = threading.Lock()
        self._clock = clock

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(
        self,
        client_id: str,
        client_secret: str,
        device_code: str,
        sso_region: str,
    ) -> str:
        """Create a session for a freshly started flow and return its id."""
        session_id = f"session_{uuid.uuid4().hex}"
        session = Session(
            session_id=session_id,
            client_id=client_id,
            client_secret=client_secret,
            device_code=device_code,
            sso_region=sso_region,
            created_at=self._clock(),
        )
        with self._lock:
            self._sessions[session_id] = session
        logger.debug("Session %s created (region=%s)", session_id, sso_region)
        return session_id

    def get(self, session_id: str) -> Session:
        """Return the session or raise *SessionNotFoundError*."""
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def update(self, session_id: str, mutator: Callable[[Session], None]) -> Session:
        """Apply *mutator* to the session in place, under the store lock."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            mutator(session)
        return session

    def delete(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFoundError(session_id)
        logger.debug("Session %s removed", session_id)

    def sweep(self, max_age_seconds: float) -> int:
        """Evict every session created more than *max_age_seconds* ago."""
        now = self._clock()
        with self._lock:
            expired = [
                sid for sid, s in self._sessions.items()
                if now - s.created_at > max_age_seconds
            ]
            for sid in expired:
                del self._sessions[sid]
        for sid in expired:
            logger.info("Cleaned up expired session: %s", sid)
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions


class SessionSweeper:
    """Background task that periodically calls ``SessionStore.sweep``."""

    def __init__(
        self,
        store: SessionStore,
        retention_seconds: float = 3600,
        interval_seconds: float = 600,
    ) -> None:
        self._store     = store
        self._retention = retention_seconds
        self._interval  = interval_seconds
        self._task: Optional[asyncio.Task] = None  # type: ignore[type-arg]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start background sweep task."""
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "Session sweep started (every %ss, retention=%ss)",
            self._interval, self._retention,
        )

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Session sweep stopped")

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.sweep_once()

    def sweep_once(self) -> int:
        evicted = self._store.sweep(self._retention)
        if evicted:
            logger.info("Session sweep: evicted %d sessions", evicted)
        return evicted


# Global store instance (replaced on startup)
_store: SessionStore = SessionStore()


def get_session_store() -> SessionStore:
    """Get the process-wide session store (FastAPI dependency)."""
    return _store


def set_session_store(store: SessionStore) -> None:
    """Set the process-wide session store."""
    global _store
    _store = store
