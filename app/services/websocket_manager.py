"""
WebSocket Manager

Pushes bulk-load progress and cache notices to connected clients, standing
in for the progress label on the load button.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Manages WebSocket connections for load progress updates.

    Channels:
    - load_progress: per-page progress while a bulk load runs
    - cache_status: staleness notices and load completion
    """

    def __init__(self):
        self.active_connections: List[WebSocket] = []

        self.channels: Dict[str, Set[WebSocket]] = {
            "load_progress": set(),
            "cache_status": set(),
        }

        self.connection_info: Dict[WebSocket, Dict[str, Any]] = {}

    async def connect(self, websocket: WebSocket, channels: Optional[List[str]] = None):
        """Accept a connection and subscribe it (default: every channel)."""
        await websocket.accept()
        self.active_connections.append(websocket)

        channels = channels or list(self.channels.keys())
        for channel in channels:
            if channel in self.channels:
                self.channels[channel].add(websocket)

        self.connection_info[websocket] = {
            "connected_at": datetime.now().isoformat(),
            "channels": channels,
            "client_ip": websocket.client.host if websocket.client else "unknown"
        }

        logger.info(f"[WS] Client connected. Total: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket):
        """Remove connection from all channels and active list."""
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

        for channel in self.channels.values():
            channel.discard(websocket)

        self.connection_info.pop(websocket, None)

        logger.info(f"[WS] Client disconnected. Total: {len(self.active_connections)}")

    async def send_personal(self, message: dict, websocket: WebSocket):
        """Send message to a specific client."""
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.warning(f"[WS] Send error: {e}")
            self.disconnect(websocket)

    async def broadcast_to_channel(self, channel: str, message: dict):
        """Broadcast message to specific channel subscribers."""
        if channel not in self.channels:
            return

        disconnected = []
        message["channel"] = channel
        message["timestamp"] = datetime.now().isoformat()

        for connection in list(self.channels[channel]):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning(f"[WS] Channel broadcast error ({channel}): {e}")
                disconnected.append(connection)

        for ws in disconnected:
            self.disconnect(ws)

    async def send_load_progress(self, mode: str, loaded: int, total: int, percent: int):
        await self.broadcast_to_channel("load_progress", {
            "type": "load_progress",
            "mode": mode,
            "loaded": loaded,
            "total": total,
            "percent": percent
        })

    async def send_cache_status(self, status: dict):
        await self.broadcast_to_channel("cache_status", {
            "type": "cache_status",
            "data": status
        })

    def get_status(self) -> dict:
        """Get current connection status."""
        return {
            "total_connections": len(self.active_connections),
            "channels": {
                channel: len(connections)
                for channel, connections in self.channels.items()
            }
        }


# Singleton instance
manager = ConnectionManager()


def get_ws_manager() -> ConnectionManager:
    """Get the singleton WebSocket manager."""
    return manager
