"""
API router configuration.
"""
from fastapi import APIRouter

from playlist_export.api.endpoints import auth, websocket

api_router = APIRouter()

# Paths are fixed by the Spotify app registration and the browser client
api_router.include_router(auth.router, tags=["authentication"])
api_router.include_router(websocket.router, tags=["websocket"])
