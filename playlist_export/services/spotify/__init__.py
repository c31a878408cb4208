"""Spotify Web API access."""

from .client import Page, SpotifyClient

__all__ = ["Page", "SpotifyClient"]
