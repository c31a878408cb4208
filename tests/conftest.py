"""
Shared fixtures for the playlist export tests.
"""
import pytest
from fastapi.testclient import TestClient

from playlist_export.core.config import Settings
from playlist_export.core.dependencies import ServiceContainer
from playlist_export.main import create_app
from playlist_export.services.export import ExportService
from playlist_export.services.fetch import FetchOrchestrator
from playlist_export.services.notifications import ChannelManager
from playlist_export.services.sessions import SessionRegistry
from tests.mocks.spotify import MockSpotifyClient, MockSpotifyOAuthProvider


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        ENVIRONMENT="test",
        SPOTIFY_CLIENT_ID="test-spotify-client-id",
        SPOTIFY_CLIENT_SECRET="test-spotify-client-secret",
        SESSION_GRACE_PERIOD_SECONDS=3600,
    )


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry(grace_period_seconds=0.05)


@pytest.fixture
def channels() -> ChannelManager:
    return ChannelManager()


@pytest.fixture
def auth_provider() -> MockSpotifyOAuthProvider:
    return MockSpotifyOAuthProvider()


@pytest.fixture
def data_client() -> MockSpotifyClient:
    return MockSpotifyClient(page_sizes=(20, 20, 7))


@pytest.fixture
def orchestrator(registry, channels, auth_provider, data_client) -> FetchOrchestrator:
    return FetchOrchestrator(
        registry=registry,
        channels=channels,
        auth_provider=auth_provider,
        data_client=data_client,
        export_service=ExportService(),
        fetch_tracks=False,
    )


@pytest.fixture
def services(test_settings, auth_provider, data_client) -> ServiceContainer:
    return ServiceContainer(
        settings=test_settings,
        auth_provider=auth_provider,
        data_client=data_client,
    )


@pytest.fixture
def client(services):
    app = create_app(services)
    with TestClient(app) as test_client:
        yield test_client
