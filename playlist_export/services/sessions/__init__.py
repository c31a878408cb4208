"""Browser session tracking."""

from .registry import ClientSession, SessionRegistry

__all__ = ["ClientSession", "SessionRegistry"]
