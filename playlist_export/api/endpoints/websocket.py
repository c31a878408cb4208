"""
WebSocket endpoint for the per-tab notification channel.

Protocol:
- client sends ``{"type": "announce", "session_id": ...}`` on every
  (re)connect, and may send ``{"type": "ping"}``
- server pushes ``progress`` and ``delivery`` frames for the session
"""
import json
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, Field, ValidationError

from playlist_export.core.dependencies import ServiceContainer, get_services, get_services_ws
from playlist_export.services.notifications import ChannelConnection, ChannelEvent

logger = structlog.get_logger(__name__)

router = APIRouter()


class AnnounceMessage(BaseModel):
    """Session announcement sent by the browser."""
    type: str = Field(..., pattern="^announce$")
    session_id: str = Field(..., min_length=1, max_length=256, description="Browser-generated session id")


@router.websocket("/ws")
async def notification_channel(
    websocket: WebSocket,
    services: ServiceContainer = Depends(get_services_ws),
):
    """
    Notification channel for one browser tab.

    The channel is useless to the export pipeline until the tab announces
    its session id. On disconnect the session is kept for the grace period
    so a reconnecting tab can resume it.
    """
    channels = services.channels
    registry = services.registry
    connection: Optional[ChannelConnection] = None

    try:
        connection = await channels.connect(websocket)

        while True:
            try:
                message_text = await websocket.receive_text()
                message_data = json.loads(message_text)
                if not isinstance(message_data, dict):
                    raise ValueError("message must be a JSON object")

                message_type = message_data.get("type")

                if message_type == "announce":
                    try:
                        announce = AnnounceMessage(**message_data)
                    except ValidationError as e:
                        await connection.send_error(
                            f"Invalid announce message: {e}",
                            "VALIDATION_ERROR",
                        )
                        continue

                    await registry.bind_channel(announce.session_id, connection.channel_id)
                    connection.session_id = announce.session_id
                    await connection.send_message({
                        "type": ChannelEvent.ANNOUNCED.value,
                        "session_id": announce.session_id,
                        "channel_id": connection.channel_id,
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                    })

                elif message_type == "ping":
                    await connection.send_pong()

                else:
                    await connection.send_error(
                        f"Unknown message type: {message_type}",
                        "UNKNOWN_MESSAGE_TYPE",
                    )

            except (json.JSONDecodeError, ValueError):
                await connection.send_error(
                    "Invalid JSON format",
                    "JSON_DECODE_ERROR",
                )

    except WebSocketDisconnect:
        logger.info(
            "channel_client_disconnected",
            channel_id=connection.channel_id if connection else None,
        )
    except Exception as e:
        logger.error("channel_error", error=str(e))
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        if connection:
            channels.disconnect(connection.channel_id)
            await registry.schedule_eviction(connection.channel_id)


@router.get("/ws/stats", summary="Channel and session statistics")
async def get_channel_stats(services: ServiceContainer = Depends(get_services)):
    """Get notification channel and session registry statistics."""
    return {
        "channels": services.channels.get_stats(),
        "sessions": services.registry.stats(),
    }
