from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from cardauth.core.logging import get_logger
from cardauth.core.websocket_manager import ConnectionManager
from cardauth.models.notification import Notification

logger = get_logger(__name__)
manager = ConnectionManager()


async def emit_event(
    event_type: str,
    data: dict,
    user_id: str,
    background_tasks: Optional[BackgroundTasks] = None,
):
    message = {
        "type": event_type,
        "data": data,
        "timestamp": str(datetime.now(timezone.utc)),
    }

    async def send_notification():
        try:
            await manager.send_personal_message(message, user_id)
        except Exception:
            logger.exception("Failed to emit event %s", event_type)

    if background_tasks:
        background_tasks.add_task(send_notification)
    else:
        await send_notification()


def transaction_message(merchant_name: str, currency: str, amount) -> str:
    return f"{merchant_name}: {currency} {float(amount):.2f}"


def save_notification(
    session_factory: Callable[[], Session], user_id: str, body: str, metadata: Dict[str, Any]
) -> int:
    db = session_factory()
    try:
        notification = Notification(
            UserID=user_id,
            Type="transaction",
            Title="Card Transaction",
            Body=body,
            Channels=["push", "in-app"],
            Priority="high",
            Status="pending",
            Metadata=metadata,
        )
        db.add(notification)
        db.commit()
        return notification.NotificationID
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


async def notify_transaction(
    session_factory: Callable[[], Session], user_id: str, metadata: Dict[str, Any]
) -> None:
    """Fire-and-forget notice of an approved authorization.

    Runs after the response went out, so failures are only logged.
    """
    body = transaction_message(
        metadata["merchantName"], metadata["currency"], metadata["amount"]
    )
    try:
        await run_in_threadpool(save_notification, session_factory, user_id, body, metadata)
    except Exception:
        logger.exception(
            "Failed to store notification for transaction %s", metadata.get("transactionId")
        )

    await emit_event(
        "card_transaction_approved", {"message": body, **metadata}, user_id=user_id
    )
