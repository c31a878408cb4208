"""
Tests for the paginated Spotify Web API client.
"""
import aiohttp
import pytest

from playlist_export.core.exceptions import ProviderFetchError
from playlist_export.services.spotify import SpotifyClient
from tests.mocks.spotify import MockClientSession, MockResponse, make_playlists, spotify_page

NEXT_URL = "https://api.test/v1/me/playlists?offset=2&limit=2"


@pytest.fixture
def spotify_client(monkeypatch) -> SpotifyClient:
    monkeypatch.setattr(aiohttp, "ClientSession", MockClientSession)
    return SpotifyClient(
        api_base_url="https://api.test/v1/",
        page_size=2,
        max_retries=2,
        backoff_base_seconds=0,
    )


@pytest.mark.asyncio
async def test_first_page_url_and_auth_header(spotify_client):
    MockClientSession.queue(MockResponse(200, spotify_page(make_playlists(2), NEXT_URL)))

    page = await spotify_client.get_playlists_page("token-123")

    request = MockClientSession.requests[0]
    assert request["url"] == "https://api.test/v1/me/playlists?limit=2&offset=0"
    assert request["headers"]["Authorization"] == "Bearer token-123"
    assert [p["id"] for p in page.items] == ["playlist-0", "playlist-1"]
    assert page.next_cursor == NEXT_URL
    assert not page.is_last


@pytest.mark.asyncio
async def test_cursor_is_followed_verbatim(spotify_client):
    MockClientSession.queue(MockResponse(200, spotify_page(make_playlists(1, start=2))))

    page = await spotify_client.get_playlists_page("token-123", cursor=NEXT_URL)

    assert MockClientSession.requests[0]["url"] == NEXT_URL
    assert page.is_last
    assert page.items[0]["id"] == "playlist-2"


@pytest.mark.asyncio
async def test_tracks_page_uses_playlist_href(spotify_client):
    playlist = make_playlists(1)[0]
    MockClientSession.queue(MockResponse(200, spotify_page([])))

    page = await spotify_client.get_playlist_tracks_page("token-123", playlist)

    assert MockClientSession.requests[0]["url"] == (
        "https://api.test/playlists/playlist-0/tracks?limit=100&offset=0"
    )
    assert page.items == []


@pytest.mark.asyncio
async def test_tracks_page_falls_back_to_playlist_id(spotify_client):
    MockClientSession.queue(MockResponse(200, spotify_page([])))

    await spotify_client.get_playlist_tracks_page("token-123", {"id": "abc"})

    assert MockClientSession.requests[0]["url"] == (
        "https://api.test/v1/playlists/abc/tracks?limit=100&offset=0"
    )


@pytest.mark.asyncio
async def test_rate_limit_is_retried(spotify_client):
    MockClientSession.queue(
        MockResponse(429, "slow down", headers={"Retry-After": "0"}),
        MockResponse(200, spotify_page(make_playlists(2))),
    )

    page = await spotify_client.get_playlists_page("token-123")

    assert len(MockClientSession.requests) == 2
    assert len(page.items) == 2


@pytest.mark.asyncio
async def test_server_errors_exhaust_retries(spotify_client):
    MockClientSession.queue(*[MockResponse(503, "unavailable") for _ in range(3)])

    with pytest.raises(ProviderFetchError) as exc:
        await spotify_client.get_playlists_page("token-123")

    assert exc.value.status == 503
    assert exc.value.status_code == 502
    assert len(MockClientSession.requests) == 3


@pytest.mark.asyncio
async def test_client_errors_are_not_retried(spotify_client):
    MockClientSession.queue(MockResponse(401, {"error": {"status": 401, "message": "expired"}}))

    with pytest.raises(ProviderFetchError) as exc:
        await spotify_client.get_playlists_page("token-123")

    assert exc.value.status == 401
    assert len(MockClientSession.requests) == 1


@pytest.mark.asyncio
async def test_network_error_then_success(spotify_client):
    MockClientSession.queue(
        aiohttp.ClientConnectionError("reset"),
        MockResponse(200, spotify_page(make_playlists(1))),
    )

    page = await spotify_client.get_playlists_page("token-123")

    assert len(page.items) == 1


@pytest.mark.asyncio
async def test_network_errors_exhaust_retries(spotify_client):
    MockClientSession.queue(*[aiohttp.ClientConnectionError("reset") for _ in range(3)])

    with pytest.raises(ProviderFetchError, match="Failed to connect to Spotify"):
        await spotify_client.get_playlists_page("token-123")


def test_retry_delay():
    client = SpotifyClient(backoff_base_seconds=1.0)

    assert client._retry_delay(0, None) == 1.0
    assert client._retry_delay(3, None) == 8.0
    assert client._retry_delay(10, None) == 30
    assert client._retry_delay(0, "7") == 7.0
    assert client._retry_delay(0, "3600") == 30
    assert client._retry_delay(0, "-5") == 0.0
    assert client._retry_delay(1, "soon") == 2.0
