from __future__ import annotations

import asyncio

import pytest

from skystep.retry import retry

pytestmark = [pytest.mark.unit]


class TestRetry:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        calls = 0

        @retry(on=OSError, max_attempts=5, base_delay=0, jitter=False)
        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise OSError("refused")
            return "ok"

        assert await flaky() == "ok"
        assert calls == 3

    @pytest.mark.asyncio
    async def test_reraises_last_error_when_exhausted(self):
        calls = 0

        @retry(on=OSError, max_attempts=3, base_delay=0)
        async def down() -> None:
            nonlocal calls
            calls += 1
            raise OSError(f"attempt {calls}")

        with pytest.raises(OSError, match="attempt 3"):
            await down()

    @pytest.mark.asyncio
    async def test_unmatched_error_is_not_retried(self):
        calls = 0

        @retry(on=(OSError, TimeoutError), max_attempts=5, base_delay=0)
        async def broken() -> None:
            nonlocal calls
            calls += 1
            raise ValueError("bad key")

        with pytest.raises(ValueError):
            await broken()
        assert calls == 1

    @pytest.mark.asyncio
    async def test_predicate(self):
        calls = 0

        @retry(on=lambda e: "again" in str(e), max_attempts=5, base_delay=0)
        async def picky() -> None:
            nonlocal calls
            calls += 1
            raise RuntimeError("again" if calls < 2 else "stop")

        with pytest.raises(RuntimeError, match="stop"):
            await picky()
        assert calls == 2

    @pytest.mark.asyncio
    async def test_cancellation_stops_retrying(self):
        calls = 0

        @retry(on=OSError, max_attempts=100, base_delay=10, jitter=False)
        async def slow() -> None:
            nonlocal calls
            calls += 1
            raise OSError("refused")

        task = asyncio.create_task(slow())
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert calls == 1
