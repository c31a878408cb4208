"""
Spotify OAuth Provider Implementation

Authorization code flow against the Spotify accounts service.
"""
from typing import Dict, Optional

import aiohttp
import structlog

from playlist_export.core.config import Settings, get_settings
from .base import OAuthError, OAuthProviderInterface, OAuthTokens

logger = structlog.get_logger(__name__)


class SpotifyOAuthProvider(OAuthProviderInterface):
    """Spotify OAuth provider for read access to a user's playlists."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: str = "playlist-read-private playlist-read-collaborative",
        show_dialog: bool = True,
        timeout_seconds: int = 30,
    ):
        super().__init__(client_id, client_secret, redirect_uri)
        self._scopes = scopes
        self.show_dialog = show_dialog
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SpotifyOAuthProvider":
        """Build a provider from application settings."""
        settings = settings or get_settings()
        return cls(
            client_id=settings.SPOTIFY_CLIENT_ID,
            client_secret=settings.SPOTIFY_CLIENT_SECRET,
            redirect_uri=settings.spotify_redirect_uri,
            scopes=settings.SPOTIFY_SCOPES,
            show_dialog=settings.SPOTIFY_SHOW_DIALOG,
            timeout_seconds=settings.SPOTIFY_TIMEOUT_SECONDS,
        )

    @property
    def authorization_base_url(self) -> str:
        """Spotify OAuth authorization endpoint."""
        return "https://accounts.spotify.com/authorize"

    @property
    def token_url(self) -> str:
        """Spotify OAuth token endpoint."""
        return "https://accounts.spotify.com/api/token"

    @property
    def scope(self) -> str:
        """Required Spotify OAuth scopes."""
        return self._scopes

    def _get_additional_auth_params(self) -> Dict[str, str]:
        """Get Spotify-specific authorization parameters."""
        # Let the user pick another account instead of silently reusing one
        return {"show_dialog": "true" if self.show_dialog else "false"}

    async def exchange_code_for_tokens(self, code: str, state: str) -> OAuthTokens:
        """Exchange authorization code for Spotify OAuth tokens."""
        token_data = {
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(
                    self.token_url,
                    data=token_data,
                    auth=aiohttp.BasicAuth(self.client_id, self.client_secret),
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(
                            "spotify_token_exchange_failed",
                            status=response.status,
                            error=error_text,
                            state=state[:8] if state else None,
                        )
                        raise OAuthError("token_exchange_failed", error_text)

                    token_response = await response.json()

                    if "error" in token_response:
                        error = token_response["error"]
                        description = token_response.get("error_description")
                        logger.error(
                            "spotify_token_exchange_error",
                            error=error,
                            description=description,
                        )
                        raise OAuthError(error, description)

                    tokens = OAuthTokens(
                        access_token=token_response["access_token"],
                        token_type=token_response.get("token_type", "Bearer"),
                        expires_in=token_response.get("expires_in"),
                        refresh_token=token_response.get("refresh_token"),
                        scope=token_response.get("scope"),
                    )

                    logger.info(
                        "spotify_tokens_obtained",
                        has_refresh_token=bool(tokens.refresh_token),
                        expires_in=tokens.expires_in,
                        scope=tokens.scope,
                    )

                    return tokens

        except OAuthError:
            raise
        except aiohttp.ClientError as e:
            logger.error("spotify_token_request_failed", error=str(e))
            raise OAuthError("network_error", f"Failed to connect to Spotify: {str(e)}")
        except KeyError as e:
            logger.error("spotify_token_invalid_response", missing_field=str(e))
            raise OAuthError("invalid_response", f"Missing required field: {str(e)}")
        except Exception as e:
            logger.error("spotify_token_exchange_unexpected_error", error=str(e))
            raise OAuthError("unexpected_error", str(e))
