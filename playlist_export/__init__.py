"""Export Spotify playlists with live progress over WebSocket."""

__version__ = "0.1.0"
