"""Tests for the authorization worker pool."""

import asyncio
import logging
import threading

from cardauth.core.config import Settings
from cardauth.core.executor import AuthorizationExecutor, get_executor, shutdown_executor


class TestAuthorizationExecutor:
    def test_runs_work(self) -> None:
        executor = AuthorizationExecutor(max_workers=2)

        async def go():
            return await executor.submit(lambda a, b: a + b, 2, 3)

        assert asyncio.run(go()) == 5
        assert executor.in_flight == 0
        executor.shutdown()

    def test_saturation_logged(self, caplog) -> None:
        executor = AuthorizationExecutor(max_workers=1)
        release = threading.Event()

        async def go():
            first = executor.submit(release.wait, 5)
            second = executor.submit(lambda: "queued")
            in_flight = executor.in_flight
            release.set()
            return in_flight, await first, await second

        with caplog.at_level(logging.WARNING, logger="cardauth.core.executor"):
            in_flight, first, second = asyncio.run(go())

        assert in_flight == 2
        assert (first, second) == (True, "queued")
        assert "saturated" in caplog.text
        assert executor.in_flight == 0
        executor.shutdown()

    def test_no_warning_within_capacity(self, caplog) -> None:
        executor = AuthorizationExecutor(max_workers=4)

        async def go():
            return await executor.submit(lambda: "done")

        with caplog.at_level(logging.WARNING, logger="cardauth.core.executor"):
            asyncio.run(go())

        assert "saturated" not in caplog.text
        executor.shutdown()

    def test_failures_release_the_slot(self) -> None:
        executor = AuthorizationExecutor(max_workers=1)

        def boom():
            raise RuntimeError("no database")

        async def go():
            try:
                await executor.submit(boom)
            except RuntimeError:
                return "raised"

        assert asyncio.run(go()) == "raised"
        assert executor.in_flight == 0
        executor.shutdown()


class TestSharedExecutor:
    def test_sized_from_settings(self) -> None:
        shutdown_executor()
        try:
            executor = get_executor(Settings(authorization_workers=3))
            assert executor.max_workers == 3
            assert get_executor(Settings()) is executor
        finally:
            shutdown_executor()
