"""
Custom exceptions for the application.
"""
from typing import Any, Dict, Optional


class PlaylistExportException(Exception):
    """Base exception for all playlist export exceptions."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class SessionNotFoundError(PlaylistExportException):
    """Login attempted for a session no channel has announced."""

    def __init__(self, session_id: str):
        super().__init__(
            "Request not coming from an active session",
            status_code=404,
            details={"session_id": session_id},
        )


class NoMatchingSessionError(PlaylistExportException):
    """Correlation token does not belong to any pending session."""

    def __init__(self, message: str = "No active session found for the received state"):
        super().__init__(message, status_code=404)


class CorrelationTokenCollisionError(PlaylistExportException):
    """A freshly minted correlation token is already held by another session."""

    def __init__(self, message: str = "Correlation token already in use"):
        super().__init__(message, status_code=409)


class ExternalServiceError(PlaylistExportException):
    """External service error exception."""

    def __init__(self, service: str, message: str):
        self.service = service
        full_message = f"External service error ({service}): {message}"
        super().__init__(full_message, status_code=502, details={"service": service})


class ProviderExchangeError(ExternalServiceError):
    """Exchanging the authorization code for an access token failed."""

    def __init__(self, message: str, service: str = "spotify-accounts"):
        super().__init__(service, message)


class ProviderFetchError(ExternalServiceError):
    """A paginated upstream listing call failed."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        service: str = "spotify-api",
    ):
        super().__init__(service, message)
        self.status = status
        if status is not None:
            self.details["status"] = status


class ExportGenerationError(PlaylistExportException):
    """Serializing the accumulated playlists failed."""

    def __init__(self, message: str, export_format: Optional[str] = None):
        details = {"export_format": export_format} if export_format else {}
        super().__init__(message, status_code=500, details=details)
