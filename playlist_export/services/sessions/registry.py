"""
In-memory session registry.

Correlates a browser session with its live notification channel, the OAuth
correlation token of its current login attempt and the requested export
format. The OAuth callback carries no session id, so the correlation token
is the only way back to a session from there.

Ordering: ``begin_login`` always completes before the browser is redirected
to the authorization server, so a callback can never reference a token that
has not been stored yet.

Every read and write of the registry tables happens under one lock so the
token -> session -> channel indexes stay consistent with each other.
"""
import asyncio
import secrets
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import structlog

from playlist_export.core.exceptions import (
    CorrelationTokenCollisionError,
    NoMatchingSessionError,
    SessionNotFoundError,
)
from playlist_export.services.export.export_service import ExportFormat

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ClientSession:
    """Snapshot of one browser tab's export journey."""
    session_id: str
    channel_id: str
    correlation_token: Optional[str] = None
    export_format: Optional[ExportFormat] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SessionRegistry:
    """Owns every ClientSession; callers only ever receive snapshots."""

    def __init__(
        self,
        grace_period_seconds: float = 3600,
        token_factory: Optional[Callable[[], str]] = None,
    ):
        self.grace_period = grace_period_seconds
        self._token_factory = token_factory or (lambda: secrets.token_urlsafe(32))
        self._lock = asyncio.Lock()

        self._sessions: Dict[str, ClientSession] = {}
        self._by_channel: Dict[str, str] = {}
        self._by_token: Dict[str, str] = {}
        self._evictions: Dict[str, asyncio.Task] = {}

        # Statistics
        self.sessions_created = 0
        self.sessions_evicted = 0

    def __len__(self) -> int:
        return len(self._sessions)

    async def bind_channel(self, session_id: str, channel_id: str) -> None:
        """
        Bind a channel to a session, creating the session if needed.

        The most recent call wins. Rebinding disarms any eviction armed for
        the session's previous channel.
        """
        async with self._lock:
            now = _utcnow()
            session = self._sessions.get(session_id)

            if session is None:
                session = ClientSession(
                    session_id=session_id,
                    channel_id=channel_id,
                    created_at=now,
                    updated_at=now,
                )
                self.sessions_created += 1
                logger.info("session_created", session_id=session_id, channel_id=channel_id)
            else:
                previous = session.channel_id
                if previous != channel_id:
                    self._by_channel.pop(previous, None)
                    self._cancel_eviction_locked(previous)
                session = replace(session, channel_id=channel_id, updated_at=now)
                logger.info(
                    "session_rebound",
                    session_id=session_id,
                    channel_id=channel_id,
                    previous_channel_id=previous,
                )

            # A channel may only announce one session at a time
            other = self._by_channel.get(channel_id)
            if other is not None and other != session_id:
                self._remove_locked(other)

            self._sessions[session_id] = session
            self._by_channel[channel_id] = session_id
            self._cancel_eviction_locked(channel_id)

    async def begin_login(self, session_id: str, export_format: ExportFormat) -> str:
        """
        Start a login attempt and mint its correlation token.

        Raises:
            SessionNotFoundError: No channel ever announced this session
            CorrelationTokenCollisionError: The minted token is already pending
        """
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.warning("login_without_session", session_id=session_id)
                raise SessionNotFoundError(session_id)

            token = self._token_factory()
            holder = self._by_token.get(token)
            if holder is not None and holder != session_id:
                logger.error("correlation_token_collision", session_id=session_id, state=token[:8])
                raise CorrelationTokenCollisionError()

            # The previous attempt's token stops resolving
            if session.correlation_token:
                self._by_token.pop(session.correlation_token, None)

            self._sessions[session_id] = replace(
                session,
                correlation_token=token,
                export_format=ExportFormat(export_format),
                updated_at=_utcnow(),
            )
            self._by_token[token] = session_id

        logger.info(
            "correlation_token_issued",
            session_id=session_id,
            export_format=ExportFormat(export_format).value,
            state=token[:8],
        )
        return token

    async def resolve_by_correlation_token(self, token: Optional[str]) -> ClientSession:
        """
        Resolve and consume a correlation token.

        Raises:
            NoMatchingSessionError: The token was never issued, was already
                consumed or replaced, or its session has been evicted
        """
        async with self._lock:
            session_id = self._by_token.pop(token, None) if token else None
            session = self._sessions.get(session_id) if session_id else None
            if session is None:
                logger.warning("correlation_token_unmatched", state=token[:8] if token else None)
                raise NoMatchingSessionError()

            session = replace(session, correlation_token=None, updated_at=_utcnow())
            self._sessions[session_id] = session

        logger.info("correlation_token_consumed", session_id=session_id, state=token[:8])
        return session

    async def get(self, session_id: str) -> Optional[ClientSession]:
        async with self._lock:
            return self._sessions.get(session_id)

    async def channel_for(self, session_id: str) -> Optional[str]:
        """Current channel of a session, or None once it has been evicted."""
        async with self._lock:
            session = self._sessions.get(session_id)
            return session.channel_id if session else None

    async def session_for_channel(self, channel_id: str) -> Optional[ClientSession]:
        async with self._lock:
            session_id = self._by_channel.get(channel_id)
            return self._sessions.get(session_id) if session_id else None

    async def schedule_eviction(self, channel_id: str) -> None:
        """Arm removal of the session bound to ``channel_id`` after the grace period."""
        async with self._lock:
            if channel_id not in self._by_channel:
                return
            self._cancel_eviction_locked(channel_id)
            self._evictions[channel_id] = asyncio.create_task(self._evict_later(channel_id))

        logger.info(
            "session_eviction_scheduled",
            channel_id=channel_id,
            grace_period_seconds=self.grace_period,
        )

    async def cancel_eviction(self, channel_id: str) -> None:
        async with self._lock:
            self._cancel_eviction_locked(channel_id)

    def has_pending_eviction(self, channel_id: str) -> bool:
        return channel_id in self._evictions

    async def close(self) -> None:
        """Disarm every pending eviction."""
        async with self._lock:
            for channel_id in list(self._evictions):
                self._cancel_eviction_locked(channel_id)

    def stats(self) -> Dict[str, Any]:
        return {
            "active_sessions": len(self._sessions),
            "pending_logins": len(self._by_token),
            "pending_evictions": len(self._evictions),
            "sessions_created": self.sessions_created,
            "sessions_evicted": self.sessions_evicted,
        }

    async def _evict_later(self, channel_id: str) -> None:
        try:
            await asyncio.sleep(self.grace_period)
        except asyncio.CancelledError:
            return

        async with self._lock:
            if self._evictions.get(channel_id) is not asyncio.current_task():
                return
            del self._evictions[channel_id]

            session_id = self._by_channel.get(channel_id)
            session = self._sessions.get(session_id) if session_id else None
            # Rebound to a newer channel in the meantime
            if session is None or session.channel_id != channel_id:
                return
            self._remove_locked(session_id)
            self.sessions_evicted += 1

        logger.info("session_evicted", session_id=session_id, channel_id=channel_id)

    def _cancel_eviction_locked(self, channel_id: str) -> None:
        task = self._evictions.pop(channel_id, None)
        if task is not None and not task.done():
            task.cancel()

    def _remove_locked(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        if self._by_channel.get(session.channel_id) == session_id:
            del self._by_channel[session.channel_id]
        if session.correlation_token and self._by_token.get(session.correlation_token) == session_id:
            del self._by_token[session.correlation_token]
        self._cancel_eviction_locked(session.channel_id)
