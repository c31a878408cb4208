"""
Dependency injection for FastAPI.

The registry, channel manager and orchestrator are process-wide singletons
created by the application lifespan and stored on ``app.state``.
"""
from fastapi import Request, WebSocket

from playlist_export.core.config import Settings, get_settings
from playlist_export.services.auth.oauth import OAuthProviderInterface, SpotifyOAuthProvider
from playlist_export.services.export import ExportService
from playlist_export.services.fetch import FetchOrchestrator
from playlist_export.services.notifications import ChannelManager
from playlist_export.services.sessions import SessionRegistry
from playlist_export.services.spotify import SpotifyClient


class ServiceContainer:
    """Wires the long-lived services together."""

    def __init__(
        self,
        settings: Settings | None = None,
        registry: SessionRegistry | None = None,
        channels: ChannelManager | None = None,
        auth_provider: OAuthProviderInterface | None = None,
        data_client: SpotifyClient | None = None,
        export_service: ExportService | None = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or SessionRegistry(
            grace_period_seconds=self.settings.SESSION_GRACE_PERIOD_SECONDS,
        )
        self.channels = channels or ChannelManager()
        self.auth_provider = auth_provider or SpotifyOAuthProvider.from_settings(self.settings)
        self.data_client = data_client or SpotifyClient.from_settings(self.settings)
        self.export_service = export_service or ExportService()
        self.orchestrator = FetchOrchestrator(
            registry=self.registry,
            channels=self.channels,
            auth_provider=self.auth_provider,
            data_client=self.data_client,
            export_service=self.export_service,
            fetch_tracks=self.settings.FETCH_PLAYLIST_TRACKS,
        )

    async def shutdown(self) -> None:
        await self.registry.close()


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_services_ws(websocket: WebSocket) -> ServiceContainer:
    return websocket.app.state.services


def get_session_registry(request: Request) -> SessionRegistry:
    return get_services(request).registry


def get_auth_provider(request: Request) -> OAuthProviderInterface:
    return get_services(request).auth_provider


def get_orchestrator(request: Request) -> FetchOrchestrator:
    return get_services(request).orchestrator
