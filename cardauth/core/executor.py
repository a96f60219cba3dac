"""Worker pool for decision pipelines.

Pipelines run blocking SQLAlchemy sessions, so each one gets a thread. The
pool is bounded: a worker abandoned by a timed-out request keeps its thread
until the database answers, and further requests queue behind it.
"""
import asyncio
import functools
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from cardauth.core.config import Settings
from cardauth.core.logging import get_logger

logger = get_logger(__name__)


class AuthorizationExecutor:
    def __init__(self, max_workers: int):
        self.max_workers = max_workers
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="authz")
        self._lock = threading.Lock()
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        """Submitted pipelines that have not finished, queued ones included."""
        return self._in_flight

    def submit(self, fn: Callable[..., Any], *args: Any) -> asyncio.Future:
        with self._lock:
            self._in_flight += 1
            in_flight = self._in_flight
        if in_flight > self.max_workers:
            logger.warning(
                "Authorization pool saturated: %s in flight for %s workers",
                in_flight,
                self.max_workers,
            )
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._pool, functools.partial(self._run, fn, *args))

    def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        finally:
            with self._lock:
                self._in_flight -= 1

    def shutdown(self) -> None:
        self._pool.shutdown(wait=False)


_executor: Optional[AuthorizationExecutor] = None
_executor_lock = threading.Lock()


def get_executor(settings: Settings) -> AuthorizationExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = AuthorizationExecutor(settings.authorization_workers)
            logger.info("Started authorization pool with %s workers", settings.authorization_workers)
        return _executor


def shutdown_executor() -> None:
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown()
            _executor = None
