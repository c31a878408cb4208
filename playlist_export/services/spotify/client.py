"""
Spotify Web API client for paginated playlist listings.

Each call returns one page of raw items together with the cursor for the
next page. Spotify paginates with absolute ``next`` URLs, which are used
verbatim as the cursor.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from playlist_export.core.config import Settings, get_settings
from playlist_export.core.exceptions import ProviderFetchError

logger = structlog.get_logger(__name__)

MAX_TRACKS_PAGE_SIZE = 100
MAX_BACKOFF_SECONDS = 30


@dataclass
class Page:
    """A single page of upstream items."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[str] = None
    total: Optional[int] = None

    @property
    def is_last(self) -> bool:
        return self.next_cursor is None


class SpotifyClient:
    """Thin async wrapper around the Spotify listing endpoints."""

    def __init__(
        self,
        api_base_url: str = "https://api.spotify.com/v1",
        page_size: int = 50,
        max_retries: int = 3,
        timeout_seconds: int = 30,
        backoff_base_seconds: float = 1.0,
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self.page_size = page_size
        self.max_retries = max_retries
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.backoff_base_seconds = backoff_base_seconds

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SpotifyClient":
        settings = settings or get_settings()
        return cls(
            api_base_url=settings.SPOTIFY_API_BASE_URL,
            page_size=settings.SPOTIFY_PAGE_SIZE,
            max_retries=settings.SPOTIFY_MAX_RETRIES,
            timeout_seconds=settings.SPOTIFY_TIMEOUT_SECONDS,
        )

    async def get_playlists_page(
        self,
        access_token: str,
        cursor: Optional[str] = None,
    ) -> Page:
        """
        Fetch one page of the current user's playlists.

        Args:
            access_token: OAuth access token
            cursor: ``next`` URL from the previous page, or None for the first page

        Returns:
            Page of playlist objects

        Raises:
            ProviderFetchError: If the request fails after retries
        """
        url = cursor or f"{self.api_base_url}/me/playlists?limit={self.page_size}&offset=0"
        return await self._get_page(access_token, url)

    async def get_playlist_tracks_page(
        self,
        access_token: str,
        playlist: Dict[str, Any],
        cursor: Optional[str] = None,
    ) -> Page:
        """
        Fetch one page of a playlist's tracks.

        Args:
            access_token: OAuth access token
            playlist: Playlist object as returned by the playlists listing
            cursor: ``next`` URL from the previous page, or None for the first page

        Returns:
            Page of playlist track objects

        Raises:
            ProviderFetchError: If the request fails after retries
        """
        if cursor:
            url = cursor
        else:
            tracks_ref = playlist.get("tracks") or {}
            href = tracks_ref.get("href") if isinstance(tracks_ref, dict) else None
            if not href:
                href = f"{self.api_base_url}/playlists/{playlist['id']}/tracks"
            url = f"{href}?limit={MAX_TRACKS_PAGE_SIZE}&offset=0"
        return await self._get_page(access_token, url)

    async def _get_page(self, access_token: str, url: str) -> Page:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

        attempt = 0
        while True:
            try:
                async with aiohttp.ClientSession(timeout=self.timeout) as session:
                    async with session.get(url, headers=headers) as response:
                        if response.status == 200:
                            body = await response.json()
                            return Page(
                                items=list(body.get("items") or []),
                                next_cursor=body.get("next"),
                                total=body.get("total"),
                            )

                        error_text = await response.text()
                        retryable = response.status == 429 or response.status >= 500
                        if not retryable or attempt >= self.max_retries:
                            logger.error(
                                "spotify_page_fetch_failed",
                                status=response.status,
                                url=url,
                                attempts=attempt + 1,
                                error=error_text,
                            )
                            raise ProviderFetchError(
                                f"Spotify returned {response.status}: {error_text}",
                                status=response.status,
                            )

                        delay = self._retry_delay(attempt, response.headers.get("Retry-After"))

            except ProviderFetchError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt >= self.max_retries:
                    logger.error("spotify_page_request_failed", url=url, error=str(e))
                    raise ProviderFetchError(f"Failed to connect to Spotify: {str(e)}")
                delay = self._retry_delay(attempt, None)

            attempt += 1
            logger.warning(
                "spotify_page_fetch_retry",
                url=url,
                attempt=attempt,
                delay_seconds=delay,
            )
            await asyncio.sleep(delay)

    def _retry_delay(self, attempt: int, retry_after: Optional[str]) -> float:
        if retry_after:
            try:
                return min(MAX_BACKOFF_SECONDS, max(0.0, float(retry_after)))
            except ValueError:
                pass
        # Exponential backoff
        return min(MAX_BACKOFF_SECONDS, self.backoff_base_seconds * (2 ** attempt))
