"""WebSocket fan-out of domain events.

Clients subscribe to a channel at ``/ws/{channel}``. The broadcaster is an
event-bus subscriber; it is called from sync route handlers running in the
threadpool, so it hands each send to the application's event loop.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from rms.services.events import DomainEvent

logger = logging.getLogger(__name__)

_CHANNEL_PATTERN = re.compile(r"^(kitchen(:\d+)?|tables|waitlist|payments|orders)$")


def channels_for(event: DomainEvent) -> List[str]:
    """Channels an event is delivered to."""
    family = event.type.value.split(".", 1)[0]
    if family in ("kitchen_order", "kitchen_item"):
        channels = ["kitchen"]
        station_id = event.data.get("station_id")
        if station_id is not None:
            channels.append(f"kitchen:{station_id}")
        return channels
    if family == "table":
        return ["tables"]
    if family == "waitlist":
        return ["waitlist"]
    if family == "payment":
        return ["payments"]
    if family == "order":
        return ["orders"]
    return []


class ConnectionManager:
    """Manages WebSocket connections per channel."""

    MAX_CONNECTIONS_PER_CHANNEL = 1000

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}
        self.connection_metadata: Dict[int, Dict[str, Any]] = {}

    async def connect(self, websocket: WebSocket, channel: str) -> bool:
        """Accept ``websocket`` onto ``channel``; False if the channel is full."""
        if len(self.active_connections.get(channel, [])) >= self.MAX_CONNECTIONS_PER_CHANNEL:
            logger.warning(f"WebSocket connection rejected: channel '{channel}' at capacity")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return False

        await websocket.accept()
        self.active_connections.setdefault(channel, []).append(websocket)
        self.connection_metadata[id(websocket)] = {
            "connected_at": datetime.now(timezone.utc),
            "channel": channel,
            "last_ping": datetime.now(timezone.utc),
        }
        logger.debug(f"WebSocket connected to channel '{channel}'")
        return True

    def disconnect(self, websocket: WebSocket, channel: str) -> None:
        connections = self.active_connections.get(channel, [])
        if websocket in connections:
            connections.remove(websocket)
        self.connection_metadata.pop(id(websocket), None)
        logger.debug(f"WebSocket disconnected from channel '{channel}'")

    def update_ping(self, websocket: WebSocket) -> None:
        meta = self.connection_metadata.get(id(websocket))
        if meta is not None:
            meta["last_ping"] = datetime.now(timezone.utc)

    async def broadcast(self, message: Dict[str, Any], channel: str) -> None:
        disconnected = []
        for connection in list(self.active_connections.get(channel, [])):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.debug(f"WebSocket send failed: {e}")
                disconnected.append(connection)
        for conn in disconnected:
            self.disconnect(conn, channel)

    def get_connection_count(self, channel: Optional[str] = None) -> int:
        if channel:
            return len(self.active_connections.get(channel, []))
        return sum(len(conns) for conns in self.active_connections.values())


class RealtimeBroadcaster:
    """Event-bus subscriber that pushes events to WebSocket channels."""

    def __init__(self, manager: ConnectionManager):
        self.manager = manager
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop

    def __call__(self, event: DomainEvent) -> None:
        channels = [c for c in channels_for(event) if self.manager.get_connection_count(c)]
        if not channels or self.loop is None or self.loop.is_closed():
            return
        message = event.to_dict()
        for channel in channels:
            asyncio.run_coroutine_threadsafe(self.manager.broadcast(message, channel), self.loop)


ws_manager = ConnectionManager()
broadcaster = RealtimeBroadcaster(ws_manager)

router = APIRouter()


@router.websocket("/ws/{channel}")
async def websocket_channel(websocket: WebSocket, channel: str):
    """Live updates for one channel: kitchen, kitchen:{station_id}, tables, waitlist, payments, orders."""
    if not _CHANNEL_PATTERN.match(channel):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    if not await ws_manager.connect(websocket, channel):
        return

    try:
        await websocket.send_json({
            "event": "connected",
            "data": {"channel": channel},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                ws_manager.update_ping(websocket)
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        ws_manager.disconnect(websocket, channel)
    except Exception as e:
        logger.error(f"WebSocket error in {channel}: {e}", exc_info=True)
        ws_manager.disconnect(websocket, channel)
