"""
Real-time Router

WebSocket endpoint streaming bulk-load progress and cache notices.
"""

import asyncio
import logging
from datetime import datetime

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.services.analysis_service import get_analysis_service
from app.services.websocket_manager import get_ws_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_progress(websocket: WebSocket):
    """
    Progress stream for the analysis page.

    Usage:
        const ws = new WebSocket('ws://localhost:8000/api/realtime/ws');
        ws.onmessage = (event) => {
            const data = JSON.parse(event.data);
            if (data.type === 'load_progress') updateButton(data.percent);
        };

    Message types received:
        - cache_status: current cache status on connect, then after each load
        - load_progress: one per fetched page (mode, loaded, total, percent)
        - heartbeat: connection health check (every 30s)
    """
    manager = get_ws_manager()
    await manager.connect(websocket)

    try:
        await manager.send_personal({
            "type": "cache_status",
            "data": get_analysis_service().cache_status().to_dict()
        }, websocket)

        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_json(),
                    timeout=30.0
                )

                if data.get("type") == "subscribe":
                    for channel in data.get("channels", []):
                        if channel in manager.channels:
                            manager.channels[channel].add(websocket)

                elif data.get("type") == "unsubscribe":
                    for channel in data.get("channels", []):
                        if channel in manager.channels:
                            manager.channels[channel].discard(websocket)

                elif data.get("type") == "ping":
                    await manager.send_personal({"type": "pong"}, websocket)

            except asyncio.TimeoutError:
                await manager.send_personal({
                    "type": "heartbeat",
                    "timestamp": datetime.now().isoformat()
                }, websocket)

    except WebSocketDisconnect:
        manager.disconnect(websocket)
    except Exception as e:
        logger.warning(f"[WS] Error: {e}")
        manager.disconnect(websocket)


@router.get("/status")
async def websocket_status():
    """Connected clients per channel"""
    return get_ws_manager().get_status()
