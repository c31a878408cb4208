"""
WebSocket notification channels.

One channel per browser tab. A channel id is assigned on connect, is never
reused, and dies with the socket. Sending to a channel that is gone is a
silent no-op: nobody is left to tell.
"""
import asyncio
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog
from fastapi import WebSocket

logger = structlog.get_logger(__name__)


class ChannelEvent(str, Enum):
    """Server to client event kinds."""
    CONNECTED = "connected"
    ANNOUNCED = "announced"
    PROGRESS = "progress"
    DELIVERY = "delivery"
    PONG = "pong"
    ERROR = "error"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChannelConnection:
    """Manages individual WebSocket connection state."""

    def __init__(self, websocket: WebSocket, channel_id: str):
        self.websocket = websocket
        self.channel_id = channel_id
        self.session_id: Optional[str] = None
        self.connected_at = datetime.now(timezone.utc)
        self.last_ping = self.connected_at
        self.is_active = True
        self._send_lock = asyncio.Lock()

    async def send_message(self, message: Dict[str, Any]) -> bool:
        """Send message to WebSocket connection."""
        if not self.is_active:
            return False
        try:
            async with self._send_lock:
                await self.websocket.send_text(json.dumps(message, default=str))
            return True
        except Exception as e:
            logger.warning("channel_send_failed", channel_id=self.channel_id, error=str(e))
            self.is_active = False
            return False

    async def send_error(self, error_message: str, error_code: str = "GENERAL_ERROR") -> None:
        """Send error message to client."""
        await self.send_message({
            "type": ChannelEvent.ERROR.value,
            "error_code": error_code,
            "message": error_message,
            "timestamp": _timestamp(),
        })

    async def send_pong(self) -> None:
        """Send pong response to ping."""
        self.last_ping = datetime.now(timezone.utc)
        await self.send_message({
            "type": ChannelEvent.PONG.value,
            "timestamp": _timestamp(),
        })


class ChannelManager:
    """Manages all notification channels and message routing."""

    def __init__(self):
        self.connections: Dict[str, ChannelConnection] = {}

        # Statistics
        self.total_connections = 0
        self.messages_sent = 0
        self.messages_dropped = 0

    async def connect(self, websocket: WebSocket) -> ChannelConnection:
        """Accept new WebSocket connection."""
        await websocket.accept()

        channel_id = str(uuid4())
        connection = ChannelConnection(websocket, channel_id)
        self.connections[channel_id] = connection
        self.total_connections += 1

        logger.info("channel_connected", channel_id=channel_id)

        await connection.send_message({
            "type": ChannelEvent.CONNECTED.value,
            "channel_id": channel_id,
            "timestamp": _timestamp(),
        })
        return connection

    def disconnect(self, channel_id: str) -> None:
        """Handle WebSocket disconnection."""
        connection = self.connections.pop(channel_id, None)
        if connection is None:
            return
        connection.is_active = False
        logger.info("channel_disconnected", channel_id=channel_id, session_id=connection.session_id)

    def is_connected(self, channel_id: Optional[str]) -> bool:
        connection = self.connections.get(channel_id) if channel_id else None
        return connection is not None and connection.is_active

    async def send(
        self,
        channel_id: Optional[str],
        event: ChannelEvent,
        payload: Dict[str, Any],
    ) -> bool:
        """
        Fire-and-forget push to one channel.

        Returns:
            True if the frame was written, False if the channel is gone
        """
        connection = self.connections.get(channel_id) if channel_id else None
        if connection is None or not connection.is_active:
            self.messages_dropped += 1
            logger.debug("channel_message_dropped", channel_id=channel_id, event_type=ChannelEvent(event).value)
            return False

        success = await connection.send_message({
            "type": ChannelEvent(event).value,
            "data": payload,
            "timestamp": _timestamp(),
        })
        if success:
            self.messages_sent += 1
        else:
            self.messages_dropped += 1
            self.disconnect(channel_id)
        return success

    async def send_progress(
        self,
        channel_id: Optional[str],
        message: str,
        level: str = "info",
    ) -> bool:
        """Push a free-text status message."""
        return await self.send(channel_id, ChannelEvent.PROGRESS, {"message": message, "level": level})

    async def send_delivery(
        self,
        channel_id: Optional[str],
        payload: str,
        file_type: str,
        encoding: str = "utf-8",
        filename: Optional[str] = None,
    ) -> bool:
        """Push the finished export file."""
        return await self.send(
            channel_id,
            ChannelEvent.DELIVERY,
            {
                "payload": payload,
                "file_type": file_type,
                "encoding": encoding,
                "filename": filename,
            },
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get channel manager statistics."""
        return {
            "active_connections": len(self.connections),
            "total_connections": self.total_connections,
            "messages_sent": self.messages_sent,
            "messages_dropped": self.messages_dropped,
        }
