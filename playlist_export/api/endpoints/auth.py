"""
Spotify login and OAuth callback endpoints.
"""
from typing import Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from fastapi.responses import RedirectResponse

from playlist_export.core.dependencies import (
    get_auth_provider,
    get_orchestrator,
    get_session_registry,
)
from playlist_export.core.logging import short_token
from playlist_export.services.auth.oauth import OAuthProviderInterface
from playlist_export.services.export import ExportFormat
from playlist_export.services.fetch import FetchOrchestrator
from playlist_export.services.sessions import SessionRegistry

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/login")
async def login(
    session_id: str = Query(..., alias="sessionId", min_length=1),
    file_type: ExportFormat = Query(ExportFormat.TXT, alias="fileType"),
    registry: SessionRegistry = Depends(get_session_registry),
    provider: OAuthProviderInterface = Depends(get_auth_provider),
) -> RedirectResponse:
    """
    Start the Spotify authorization flow for a connected browser tab.

    The correlation token is stored before the redirect is issued, so the
    callback can always find it.

    Raises:
        SessionNotFoundError: No channel has announced ``sessionId``
    """
    state = await registry.begin_login(session_id, file_type)
    auth_url = provider.generate_authorization_url(state=state)

    logger.info(
        "spotify_oauth_initiated",
        session_id=session_id,
        file_type=file_type.value,
        state=short_token(state),
    )
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


@router.get("/callback")
@router.get("/spotify-app-callback", include_in_schema=False)
async def callback(
    background_tasks: BackgroundTasks,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    orchestrator: FetchOrchestrator = Depends(get_orchestrator),
) -> RedirectResponse:
    """
    Handle the Spotify OAuth callback.

    The browser is sent back to the app root straight away so the code
    leaves the URL bar; the fetch runs afterwards and reports over the
    session's notification channel.
    """
    logger.info(
        "spotify_oauth_callback",
        has_code=bool(code),
        error=error,
        state=short_token(state),
    )
    background_tasks.add_task(orchestrator.handle_callback, code, state, error)
    return RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)
