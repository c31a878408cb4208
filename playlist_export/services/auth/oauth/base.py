"""
OAuth Provider Base Interface

Defines the abstract interface that all OAuth providers must implement.
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional
from urllib.parse import urlencode

import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


class OAuthTokens(BaseModel):
    """OAuth token information."""
    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None


class OAuthError(Exception):
    """OAuth-specific error."""
    def __init__(self, error: str, description: Optional[str] = None):
        self.error = error
        self.description = description
        super().__init__(f"{error}: {description}" if description else error)


class OAuthProviderInterface(ABC):
    """Abstract base class for OAuth providers."""

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.provider_name = self.__class__.__name__.lower().replace("oauthprovider", "")

    @property
    @abstractmethod
    def authorization_base_url(self) -> str:
        """Base URL for OAuth authorization."""
        pass

    @property
    @abstractmethod
    def token_url(self) -> str:
        """URL for token exchange."""
        pass

    @property
    @abstractmethod
    def scope(self) -> str:
        """Required OAuth scopes."""
        pass

    def generate_authorization_url(self, state: str, **kwargs) -> str:
        """
        Generate OAuth authorization URL.

        Args:
            state: Correlation token echoed back on the callback
            **kwargs: Additional provider-specific parameters

        Returns:
            Authorization URL
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self.scope,
            "response_type": "code",
            "state": state,
            **kwargs
        }

        # Add provider-specific parameters
        params.update(self._get_additional_auth_params())

        url = f"{self.authorization_base_url}?{urlencode(params)}"
        logger.info(
            "oauth_authorization_url_generated",
            provider=self.provider_name,
            state=state[:8],  # Only log first 8 chars
        )
        return url

    @abstractmethod
    async def exchange_code_for_tokens(self, code: str, state: str) -> OAuthTokens:
        """
        Exchange authorization code for access tokens.

        Args:
            code: Authorization code from OAuth callback
            state: Correlation token received with the code

        Returns:
            OAuth tokens

        Raises:
            OAuthError: If token exchange fails
        """
        pass

    def _get_additional_auth_params(self) -> Dict[str, str]:
        """
        Get provider-specific authorization parameters.
        Override in subclasses if needed.

        Returns:
            Additional parameters for authorization URL
        """
        return {}
