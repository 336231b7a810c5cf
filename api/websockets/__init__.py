"""WebSocket endpoints for real-time updates."""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query, status
from typing import Dict, Set, Optional, Any
from datetime import datetime
import logging
import asyncio
from asyncio import Task

from auth import AuthError, decode_access_token

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/ws",
    tags=["WebSocket"]
)

CHANNELS = ('listings', 'orders', 'notifications')

# Heartbeat settings
HEARTBEAT_INTERVAL = 30  # seconds

class ConnectionManager:
    """Track subscribers per channel and fan updates out to them.

    Every connection belongs to a signed-in user. Updates that carry a
    ``user_id`` are only delivered to that user's connections.
    """

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {c: set() for c in CHANNELS}
        self.owners: Dict[WebSocket, str] = {}
        self.heartbeat_tasks: Dict[WebSocket, Task] = {}

    async def connect(self, websocket: WebSocket, channel: str, user_id: str):
        """Accept connection and add to active connections."""
        await websocket.accept()
        self.active_connections[channel].add(websocket)
        self.owners[websocket] = user_id
        self.heartbeat_tasks[websocket] = asyncio.create_task(
            self.heartbeat_loop(websocket, channel)
        )
        logger.info(f"New connection established for channel: {channel}")

    def disconnect(self, websocket: WebSocket, channel: str):
        """Remove connection from active connections."""
        self.active_connections[channel].discard(websocket)
        self.owners.pop(websocket, None)
        task = self.heartbeat_tasks.pop(websocket, None)
        if task and task is not asyncio.current_task():
            task.cancel()
        logger.info(f"Connection closed for channel: {channel}")

    async def heartbeat_loop(self, websocket: WebSocket, channel: str):
        """Ping the client until the socket goes away."""
        try:
            while True:
                await asyncio.sleep(HEARTBEAT_INTERVAL)
                await websocket.send_json({
                    "type": "ping",
                    "timestamp": datetime.utcnow().isoformat()
                })
        except asyncio.CancelledError:
            pass
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.info(f"Heartbeat stopped in channel {channel}: {e}")
            self.disconnect(websocket, channel)

    async def broadcast(self, channel: str, data: Dict[str, Any]):
        """Broadcast message to the connections in a channel."""
        if channel not in self.active_connections:
            raise ValueError(f"Invalid channel: {channel}")

        recipient = data.get('user_id')
        dead_connections = set()
        message = {
            "type": "update",
            "channel": channel,
            "data": data,
            "timestamp": datetime.utcnow().isoformat()
        }

        for connection in list(self.active_connections[channel]):
            if recipient and self.owners.get(connection) != str(recipient):
                continue
            try:
                await connection.send_json(message)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.error(f"Failed to send to connection: {e}")
                dead_connections.add(connection)

        # Clean up dead connections
        for dead in dead_connections:
            self.disconnect(dead, channel)

# Create connection manager instance
manager = ConnectionManager()

@router.websocket("/{channel}")
async def channel_endpoint(websocket: WebSocket, channel: str, token: Optional[str] = Query(None)):
    """Subscribe to a channel. The bearer token is passed as ``?token=``."""
    if channel not in CHANNELS:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Unknown channel")
        return
    try:
        user = decode_access_token(token or '')
    except AuthError as e:
        logger.warning(f"Rejected websocket for {channel}: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Unauthorized")
        return

    await manager.connect(websocket, channel, str(user.id))
    try:
        while True:
            message = await websocket.receive_json()
            if message.get("type") == "ping":
                await websocket.send_json({
                    "type": "pong",
                    "timestamp": datetime.utcnow().isoformat()
                })
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket, channel)

async def broadcast_update(channel: str, data: Dict[str, Any]):
    """Broadcast an update to all clients subscribed to a channel."""
    await manager.broadcast(channel, data)

__all__ = ['router', 'manager', 'broadcast_update', 'ConnectionManager', 'CHANNELS']
