from datetime import datetime, timezone
from typing import Optional

from fastapi import WebSocket

from cardauth.core.auth import decode_subject
from cardauth.core.logging import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance.active_connections = {}
        return cls._instance

    async def connect(self, websocket: WebSocket, token: str) -> Optional[str]:
        user_id = decode_subject(token)
        if user_id is None:
            logger.info("Rejected WebSocket subscriber with invalid token")
            await websocket.close(code=4001)
            return None

        await websocket.accept()
        self.active_connections.setdefault(user_id, set()).add(websocket)

        await websocket.send_json(
            {
                "type": "connection_status",
                "data": {"status": "connected", "user_id": user_id},
                "timestamp": str(datetime.now(timezone.utc)),
            }
        )
        return user_id

    async def send_personal_message(self, message: dict, user_id: str) -> int:
        """Push to every socket of one user. Returns how many sockets received it."""
        connections = self.active_connections.get(user_id)
        if not connections:
            logger.debug("No active connections found for user %s", user_id)
            return 0

        delivered = 0
        dead_connections = set()
        for connection in connections:
            try:
                await connection.send_json(message)
                delivered += 1
            except Exception:
                logger.warning("Error sending to connection of user %s", user_id, exc_info=True)
                dead_connections.add(connection)

        for dead in dead_connections:
            connections.discard(dead)
        if not connections:
            self.active_connections.pop(user_id, None)
        return delivered

    def disconnect(self, websocket: WebSocket, user_id: str) -> None:
        """Disconnect a WebSocket connection and remove it from active connections."""
        connections = self.active_connections.get(user_id)
        if connections is None:
            return
        connections.discard(websocket)
        # Clean up empty sets
        if not connections:
            del self.active_connections[user_id]
