"""
OAuth integration for Spotify account authorization.

The provider builds the authorization redirect and exchanges the one-time
code returned on the callback for an access token.
"""

from .base import (
    OAuthError,
    OAuthProviderInterface,
    OAuthTokens,
)
from .spotify import SpotifyOAuthProvider

__all__ = [
    # Base classes and types
    "OAuthError",
    "OAuthProviderInterface",
    "OAuthTokens",

    # Providers
    "SpotifyOAuthProvider",
]
