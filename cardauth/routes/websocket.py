from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from cardauth.core.logging import get_logger
from cardauth.core.websocket_manager import ConnectionManager

router = APIRouter()
manager = ConnectionManager()
logger = get_logger(__name__)


@router.websocket("/ws/user")
async def user_websocket(websocket: WebSocket, token: str = Query(...)):
    user_id = await manager.connect(websocket, token)
    if not user_id:
        return

    logger.info("User %s subscribed to card notifications", user_id)
    try:
        while True:
            # Subscribers only listen; inbound frames keep the socket alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("User %s disconnected", user_id)
    finally:
        manager.disconnect(websocket, user_id)
