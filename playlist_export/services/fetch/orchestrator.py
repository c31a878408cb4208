"""
Fetch orchestration for the OAuth callback.

Drives one callback from code exchange through paginated retrieval to the
final delivery, pushing progress to the browser tab that started the login.

    AWAITING_CALLBACK -> EXCHANGING_TOKEN -> FETCHING_PAGE -> DELIVERING -> DONE

FAILED is reachable from every step and absorbs. Nothing is retried; the
user starts a new login instead.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from playlist_export.core.exceptions import (
    NoMatchingSessionError,
    PlaylistExportException,
    ProviderExchangeError,
)
from playlist_export.core.logging import log_error_details, short_token
from playlist_export.services.auth.oauth import OAuthError, OAuthProviderInterface
from playlist_export.services.export.export_service import ExportFormat, ExportService
from playlist_export.services.notifications import ChannelManager
from playlist_export.services.sessions import ClientSession, SessionRegistry
from playlist_export.services.spotify import SpotifyClient

logger = structlog.get_logger(__name__)


class FetchState(str, Enum):
    """Callback pipeline states."""
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING_TOKEN = "exchanging_token"
    FETCHING_PAGE = "fetching_page"
    DELIVERING = "delivering"
    DONE = "done"
    FAILED = "failed"


@dataclass
class FetchResult:
    """Outcome of one callback run."""
    state: FetchState = FetchState.AWAITING_CALLBACK
    session_id: Optional[str] = None
    pages_fetched: int = 0
    item_count: int = 0
    track_count: int = 0
    error: Optional[str] = None
    history: List[FetchState] = field(default_factory=lambda: [FetchState.AWAITING_CALLBACK])

    def transition(self, state: FetchState) -> None:
        self.state = state
        self.history.append(state)

    @property
    def succeeded(self) -> bool:
        return self.state == FetchState.DONE


class FetchOrchestrator:
    """Runs the callback pipeline for one login attempt at a time per call."""

    SIGNED_IN_MESSAGE = "Successfully signed in to your Spotify account"
    FAILURE_MESSAGE = "Something went wrong while retrieving your playlists. Please try again."
    DENIED_MESSAGE = "Spotify authorization was not granted. Please try again."

    def __init__(
        self,
        registry: SessionRegistry,
        channels: ChannelManager,
        auth_provider: OAuthProviderInterface,
        data_client: SpotifyClient,
        export_service: Optional[ExportService] = None,
        fetch_tracks: bool = True,
    ):
        self.registry = registry
        self.channels = channels
        self.auth_provider = auth_provider
        self.data_client = data_client
        self.export_service = export_service or ExportService()
        self.fetch_tracks = fetch_tracks

    async def handle_callback(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> FetchResult:
        """
        Run the pipeline for one OAuth callback.

        Never raises: by the time this runs the browser has already been
        redirected, so the push channel (or the log) is the only outlet.
        """
        result = FetchResult()

        if not code:
            await self._handle_denied(result, state, error)
            return result

        try:
            session = await self.registry.resolve_by_correlation_token(state)
        except NoMatchingSessionError as e:
            logger.warning("callback_unmatched", state=short_token(state))
            result.error = e.message
            result.transition(FetchState.FAILED)
            return result

        result.session_id = session.session_id

        try:
            await self._run(session, code, state, result)
        except Exception as e:
            # Runs as a background task after the redirect; nothing may escape
            logger.error(
                "callback_pipeline_failed",
                stage=result.state.value,
                **log_error_details(e, session_id=session.session_id),
            )
            result.error = e.message if isinstance(e, PlaylistExportException) else str(e)
            result.transition(FetchState.FAILED)
            await self._notify_best_effort(session.session_id, self.FAILURE_MESSAGE)

        return result

    async def _handle_denied(
        self,
        result: FetchResult,
        state: Optional[str],
        error: Optional[str],
    ) -> None:
        result.error = error or "missing_code"
        result.transition(FetchState.FAILED)
        logger.warning("callback_without_code", error=error, state=short_token(state))

        if not state:
            return
        try:
            session = await self.registry.resolve_by_correlation_token(state)
        except NoMatchingSessionError:
            return
        result.session_id = session.session_id
        await self._notify_best_effort(session.session_id, self.DENIED_MESSAGE)

    async def _run(
        self,
        session: ClientSession,
        code: str,
        state: Optional[str],
        result: FetchResult,
    ) -> None:
        session_id = session.session_id

        result.transition(FetchState.EXCHANGING_TOKEN)
        try:
            tokens = await self.auth_provider.exchange_code_for_tokens(code, state)
        except OAuthError as e:
            raise ProviderExchangeError(str(e)) from e
        await self._notify(session_id, self.SIGNED_IN_MESSAGE)

        result.transition(FetchState.FETCHING_PAGE)
        playlists = await self._fetch_playlists(session_id, tokens.access_token, result)

        if self.fetch_tracks and playlists:
            await self._fetch_tracks(session_id, tokens.access_token, playlists, result)

        result.transition(FetchState.DELIVERING)
        export_format = session.export_format or ExportFormat.TXT
        export = self.export_service.generate(playlists, export_format)
        channel_id = await self.registry.channel_for(session_id)
        delivered = await self.channels.send_delivery(
            channel_id,
            export.content,
            export.file_type.value,
            encoding=export.encoding,
            filename=export.filename,
        )

        result.transition(FetchState.DONE)
        logger.info(
            "export_delivered" if delivered else "export_delivery_dropped",
            session_id=session_id,
            export_format=export_format.value,
            playlists=result.item_count,
            tracks=result.track_count,
            pages=result.pages_fetched,
        )

    async def _fetch_playlists(
        self,
        session_id: str,
        access_token: str,
        result: FetchResult,
    ) -> List[Dict[str, Any]]:
        playlists: List[Dict[str, Any]] = []
        cursor: Optional[str] = None

        while True:
            page = await self.data_client.get_playlists_page(access_token, cursor)
            playlists.extend(page.items)
            result.pages_fetched += 1
            result.item_count = len(playlists)

            logger.debug(
                "playlists_page_fetched",
                session_id=session_id,
                page=result.pages_fetched,
                running_total=len(playlists),
            )
            await self._notify(
                session_id,
                f"Retrieved {len(playlists)} playlists from your Spotify account",
            )

            if page.next_cursor is None:
                return playlists
            cursor = page.next_cursor

    async def _fetch_tracks(
        self,
        session_id: str,
        access_token: str,
        playlists: List[Dict[str, Any]],
        result: FetchResult,
    ) -> None:
        total = len(playlists)
        for index, playlist in enumerate(playlists, start=1):
            # The listing may contain null entries
            if not isinstance(playlist, dict):
                continue
            tracks: List[Dict[str, Any]] = []
            cursor: Optional[str] = None
            while True:
                page = await self.data_client.get_playlist_tracks_page(access_token, playlist, cursor)
                tracks.extend(page.items)
                if page.next_cursor is None:
                    break
                cursor = page.next_cursor

            playlist["tracks"] = tracks
            result.track_count += len(tracks)
            await self._notify(
                session_id,
                f"Retrieved tracks for {index}/{total} playlists ({result.track_count} tracks)",
            )

    async def _notify(self, session_id: str, message: str, level: str = "info") -> bool:
        # The tab may have reconnected since the login started
        channel_id = await self.registry.channel_for(session_id)
        return await self.channels.send_progress(channel_id, message, level=level)

    async def _notify_best_effort(self, session_id: str, message: str) -> bool:
        """Push an error-level message; a failure here is logged, never raised."""
        try:
            return await self._notify(session_id, message, level="error")
        except Exception as e:
            logger.warning("failure_notification_failed", **log_error_details(e, session_id=session_id))
            return False
