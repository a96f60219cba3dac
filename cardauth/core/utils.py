# cardauth/core/utils.py
import threading
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from cardauth.core.exceptions import AuthorizationTimeout


def utcnow() -> datetime:
    # Stored timestamps are naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_transaction_id() -> str:
    return str(uuid.uuid4())


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class Deadline:
    """Latency budget shared between the request handler and its worker thread.

    The worker calls ``begin_commit`` right before its final commit and the
    handler calls ``cancel`` when it gives up waiting. Whichever gets the lock
    first wins: a cancelled deadline refuses the commit, and a commit that has
    started cannot be cancelled, so the handler must wait for its result.
    """

    def __init__(self, seconds: float):
        self.expires_at = time.monotonic() + seconds
        self._lock = threading.Lock()
        self._cancelled = False
        self._committing = False

    def cancel(self) -> bool:
        """Cancel the work. False when the worker is already committing."""
        with self._lock:
            if self._committing:
                return False
            self._cancelled = True
            return True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def committing(self) -> bool:
        return self._committing

    @property
    def expired(self) -> bool:
        return self._cancelled or time.monotonic() >= self.expires_at

    def check(self, stage: str) -> None:
        if self.expired:
            raise AuthorizationTimeout(stage)

    def begin_commit(self) -> None:
        with self._lock:
            if self.expired:
                raise AuthorizationTimeout("commit")
            self._committing = True
