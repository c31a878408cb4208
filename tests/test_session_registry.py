"""
Tests for the in-memory session registry.
"""
import asyncio
import itertools

import pytest

from playlist_export.core.exceptions import (
    CorrelationTokenCollisionError,
    NoMatchingSessionError,
    SessionNotFoundError,
)
from playlist_export.services.export import ExportFormat
from playlist_export.services.sessions import SessionRegistry


class TestBindChannel:
    """Channel binding and rebinding."""

    @pytest.mark.asyncio
    async def test_first_announce_creates_session(self, registry):
        await registry.bind_channel("session-1", "channel-a")

        session = await registry.get("session-1")
        assert session is not None
        assert session.channel_id == "channel-a"
        assert session.correlation_token is None
        assert session.export_format is None
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_last_announce_wins(self, registry):
        channel_ids = [f"channel-{i}" for i in range(10)]
        for channel_id in channel_ids:
            await registry.bind_channel("session-1", channel_id)

        assert await registry.channel_for("session-1") == channel_ids[-1]
        assert len(registry) == 1
        # Stale channels no longer resolve to the session
        assert await registry.session_for_channel("channel-0") is None
        assert (await registry.session_for_channel("channel-9")).session_id == "session-1"

    @pytest.mark.asyncio
    async def test_rebind_keeps_login_state(self, registry):
        await registry.bind_channel("session-1", "channel-a")
        token = await registry.begin_login("session-1", ExportFormat.JSON)

        await registry.bind_channel("session-1", "channel-b")

        session = await registry.get("session-1")
        assert session.channel_id == "channel-b"
        assert session.correlation_token == token
        assert session.export_format == ExportFormat.JSON

    @pytest.mark.asyncio
    async def test_concurrent_binds_for_distinct_sessions(self, registry):
        await asyncio.gather(*(
            registry.bind_channel(f"session-{i}", f"channel-{i}") for i in range(100)
        ))

        assert len(registry) == 100
        for i in range(100):
            assert await registry.channel_for(f"session-{i}") == f"channel-{i}"

    @pytest.mark.asyncio
    async def test_concurrent_binds_for_same_session_serialize(self, registry):
        await asyncio.gather(*(
            registry.bind_channel("session-1", f"channel-{i}") for i in range(50)
        ))

        # Calls acquire the lock in submission order
        assert await registry.channel_for("session-1") == "channel-49"
        assert len(registry) == 1
        assert registry.stats()["sessions_created"] == 1


class TestBeginLogin:
    """Correlation token issuance."""

    @pytest.mark.asyncio
    async def test_login_without_channel_fails(self, registry):
        with pytest.raises(SessionNotFoundError) as exc:
            await registry.begin_login("unknown-session", ExportFormat.TXT)

        assert exc.value.status_code == 404
        assert exc.value.details["session_id"] == "unknown-session"

    @pytest.mark.asyncio
    async def test_login_stores_format_and_token(self, registry):
        await registry.bind_channel("session-1", "channel-a")

        token = await registry.begin_login("session-1", "csv")

        session = await registry.get("session-1")
        assert session.correlation_token == token
        assert session.export_format == ExportFormat.CSV
        assert len(token) >= 32

    @pytest.mark.asyncio
    async def test_second_login_replaces_token(self, registry):
        await registry.bind_channel("session-1", "channel-a")

        first = await registry.begin_login("session-1", ExportFormat.TXT)
        second = await registry.begin_login("session-1", ExportFormat.ZIP)

        assert first != second
        with pytest.raises(NoMatchingSessionError):
            await registry.resolve_by_correlation_token(first)

        session = await registry.resolve_by_correlation_token(second)
        assert session.session_id == "session-1"
        assert session.export_format == ExportFormat.ZIP

    @pytest.mark.asyncio
    async def test_token_collision_is_an_error(self):
        tokens = itertools.cycle(["same-token"])
        registry = SessionRegistry(token_factory=lambda: next(tokens))
        await registry.bind_channel("session-1", "channel-a")
        await registry.bind_channel("session-2", "channel-b")

        await registry.begin_login("session-1", ExportFormat.TXT)
        with pytest.raises(CorrelationTokenCollisionError):
            await registry.begin_login("session-2", ExportFormat.TXT)

        # The first session's pending login is untouched
        session = await registry.resolve_by_correlation_token("same-token")
        assert session.session_id == "session-1"
        assert (await registry.get("session-2")).correlation_token is None


class TestResolveByCorrelationToken:
    """Callback-side session lookup."""

    @pytest.mark.asyncio
    async def test_unknown_token(self, registry):
        with pytest.raises(NoMatchingSessionError):
            await registry.resolve_by_correlation_token("never-issued")

    @pytest.mark.asyncio
    async def test_missing_token(self, registry):
        with pytest.raises(NoMatchingSessionError):
            await registry.resolve_by_correlation_token(None)

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, registry):
        await registry.bind_channel("session-1", "channel-a")
        token = await registry.begin_login("session-1", ExportFormat.TXT)

        session = await registry.resolve_by_correlation_token(token)
        assert session.session_id == "session-1"
        assert session.channel_id == "channel-a"

        with pytest.raises(NoMatchingSessionError):
            await registry.resolve_by_correlation_token(token)

        # The session itself survives
        assert (await registry.get("session-1")).export_format == ExportFormat.TXT

    @pytest.mark.asyncio
    async def test_token_of_evicted_session(self, registry):
        await registry.bind_channel("session-1", "channel-a")
        token = await registry.begin_login("session-1", ExportFormat.TXT)

        await registry.schedule_eviction("channel-a")
        await asyncio.sleep(registry.grace_period * 4)

        with pytest.raises(NoMatchingSessionError):
            await registry.resolve_by_correlation_token(token)


class TestEviction:
    """Grace-period cleanup after disconnect."""

    @pytest.mark.asyncio
    async def test_disconnect_without_reconnect_evicts(self, registry):
        await registry.bind_channel("session-1", "channel-a")

        await registry.schedule_eviction("channel-a")
        assert registry.has_pending_eviction("channel-a")
        assert await registry.get("session-1") is not None

        await asyncio.sleep(registry.grace_period * 4)

        assert await registry.get("session-1") is None
        assert not registry.has_pending_eviction("channel-a")
        assert registry.stats()["sessions_evicted"] == 1

    @pytest.mark.asyncio
    async def test_reconnect_within_grace_period_keeps_session(self, registry):
        await registry.bind_channel("session-1", "channel-a")
        token = await registry.begin_login("session-1", ExportFormat.JSON)

        await registry.schedule_eviction("channel-a")
        await registry.bind_channel("session-1", "channel-b")

        assert not registry.has_pending_eviction("channel-a")
        await asyncio.sleep(registry.grace_period * 4)

        session = await registry.get("session-1")
        assert session is not None
        assert session.channel_id == "channel-b"
        assert (await registry.resolve_by_correlation_token(token)).session_id == "session-1"

    @pytest.mark.asyncio
    async def test_old_channel_timer_cannot_evict_rebound_session(self, registry):
        await registry.bind_channel("session-1", "channel-a")
        await registry.bind_channel("session-1", "channel-b")

        # A late disconnect of the stale channel finds nothing to arm
        await registry.schedule_eviction("channel-a")
        assert not registry.has_pending_eviction("channel-a")

        await asyncio.sleep(registry.grace_period * 4)
        assert await registry.channel_for("session-1") == "channel-b"

    @pytest.mark.asyncio
    async def test_second_disconnect_after_rebind_evicts(self, registry):
        await registry.bind_channel("session-1", "channel-a")
        await registry.schedule_eviction("channel-a")
        await registry.bind_channel("session-1", "channel-b")
        await registry.schedule_eviction("channel-b")

        await asyncio.sleep(registry.grace_period * 4)

        assert await registry.get("session-1") is None

    @pytest.mark.asyncio
    async def test_cancel_eviction(self, registry):
        await registry.bind_channel("session-1", "channel-a")
        await registry.schedule_eviction("channel-a")

        await registry.cancel_eviction("channel-a")
        await asyncio.sleep(registry.grace_period * 4)

        assert await registry.get("session-1") is not None

    @pytest.mark.asyncio
    async def test_close_disarms_pending_evictions(self, registry):
        for i in range(3):
            await registry.bind_channel(f"session-{i}", f"channel-{i}")
            await registry.schedule_eviction(f"channel-{i}")

        await registry.close()
        await asyncio.sleep(registry.grace_period * 4)

        assert len(registry) == 3
        assert registry.stats()["pending_evictions"] == 0
