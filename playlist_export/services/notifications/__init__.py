"""Push notifications to connected browser tabs."""

from .channel import ChannelConnection, ChannelEvent, ChannelManager

__all__ = ["ChannelConnection", "ChannelEvent", "ChannelManager"]
