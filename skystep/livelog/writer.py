"""Live log writer.

Collects step output, streams it to the log service in debounced
batches and uploads the complete history when closed.

Streaming is bounded: once the retained output exceeds the byte limit,
the oldest retained lines are evicted and live streaming stops for the
rest of the step. The full history is kept regardless, so the final
upload still carries every line.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import sys
import threading
from collections import deque
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from loguru import logger

from skystep.constants import LIVELOG_DEFAULT_INTERVAL, LIVELOG_DEFAULT_LIMIT, LIVELOG_LEVEL
from skystep.core.exceptions import LogUploadError
from skystep.livelog.client import LogClient
from skystep.livelog.record import LogRecord, encode_history, split_lines

if TYPE_CHECKING:
    from loguru import Logger


class LogWriter:
    """Output sink that streams lines to a log service.

    Build it with ``LogWriter.create`` so the remote stream is opened
    and the flush task started on the running loop:

        >>> async with await LogWriter.create(client, key) as writer:
        ...     await executor.run(spec, step, writer)
    """

    def __init__(
        self,
        client: LogClient,
        key: str,
        *,
        limit: int = LIVELOG_DEFAULT_LIMIT,
        interval: float = LIVELOG_DEFAULT_INTERVAL,
        echo: bool = True,
        log: Logger | None = None,
    ) -> None:
        self._client = client
        self._key = key
        self._limit = limit
        self._interval = interval
        self._echo = echo
        self._log = log or logger.bind(component="livelog", key=key)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        self._lock = threading.Lock()
        self._num = 0
        self._size = 0
        self._retained: deque[int] = deque()
        self._pending: list[LogRecord] = []
        self._history: list[LogRecord] = []
        self._stopped = False
        self._closed = False

        self._ready: asyncio.Queue[None] = asyncio.Queue(maxsize=1)
        self._closing = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @classmethod
    async def create(
        cls,
        client: LogClient,
        key: str,
        *,
        limit: int = LIVELOG_DEFAULT_LIMIT,
        interval: float = LIVELOG_DEFAULT_INTERVAL,
        echo: bool = True,
        log: Logger | None = None,
    ) -> LogWriter:
        """Open the remote stream and start the flush task.

        An open failure is logged and the writer carries on; batches and
        the final upload are still attempted.
        """
        writer = cls(client, key, limit=limit, interval=interval, echo=echo, log=log)
        try:
            await client.open(key)
        except Exception as e:
            writer._log.warning("Error while opening log stream: {error}", error=e)
        writer._task = asyncio.create_task(writer._flush_loop())
        return writer

    # -------------------------------------------------------------------------
    # Configuration (before the first write only)
    # -------------------------------------------------------------------------

    def set_limit(self, limit: int) -> None:
        self._limit = limit

    def set_interval(self, interval: float) -> None:
        self._interval = interval

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def write(self, data: bytes, /) -> int:
        """Record ``data`` and wake the flush task. Always consumes everything."""
        with self._lock:
            if self._closed:
                return len(data)
            text = self._decoder.decode(data)
            for part in split_lines(text):
                self._append(part)

        if self._echo:
            sys.stdout.write(text)

        with contextlib.suppress(asyncio.QueueFull):
            self._ready.put_nowait(None)
        return len(data)

    def _append(self, message: str) -> None:
        size = len(message.encode())
        record = LogRecord(
            number=self._num,
            message=message,
            timestamp=datetime.now(UTC),
            level=LIVELOG_LEVEL,
        )

        while self._size + size > self._limit:
            # buffer is full, stop streaming
            self._stopped = True
            if not self._retained:
                break
            self._size -= self._retained.popleft()

        self._size += size
        self._num += 1
        self._retained.append(size)

        if not self._stopped:
            self._pending.append(record)
        self._history.append(record)

    # -------------------------------------------------------------------------
    # Flushing
    # -------------------------------------------------------------------------

    async def _flush_loop(self) -> None:
        closing = asyncio.create_task(self._closing.wait())
        try:
            while True:
                ready = asyncio.create_task(self._ready.get())
                done, _ = await asyncio.wait({closing, ready}, return_when=asyncio.FIRST_COMPLETED)
                if closing in done:
                    ready.cancel()
                    return

                # debounce, so bursts of writes go out as one batch
                done, _ = await asyncio.wait({closing}, timeout=self._interval)
                if closing in done:
                    return
                await self._flush_quietly()
        finally:
            closing.cancel()

    async def _flush(self) -> None:
        with self._lock:
            records = list(self._pending)
            self._pending.clear()
        if records:
            await self._client.batch(self._key, records)

    async def _flush_quietly(self) -> None:
        # log streams are best effort and must never fail the pipeline
        try:
            await self._flush()
        except Exception as e:
            self._log.warning("Could not flush logs: {error}", error=e)

    # -------------------------------------------------------------------------
    # Closing
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Stop streaming, upload the full history and close the stream.

        Only the first call does anything.

        Raises:
            LogUploadError: If the full-history upload failed.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._closing.set()
        if self._task is not None:
            await self._task
        await self._flush_quietly()

        upload_error: Exception | None = None
        try:
            await self._client.upload(self._key, encode_history(self.history))
        except Exception as e:
            self._log.error("Could not upload logs: {error}", error=e)
            upload_error = e

        try:
            await self._client.close(self._key)
        except Exception as e:
            self._log.warning("Failed to close log stream: {error}", error=e)

        if upload_error is not None:
            raise LogUploadError(self._key, str(upload_error)) from upload_error

    async def __aenter__(self) -> LogWriter:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def key(self) -> str:
        return self._key

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def streaming(self) -> bool:
        """False once the byte limit was exceeded."""
        return not self._stopped

    @property
    def size(self) -> int:
        """Bytes currently retained against the limit."""
        return self._size

    @property
    def pending(self) -> list[LogRecord]:
        with self._lock:
            return list(self._pending)

    @property
    def history(self) -> list[LogRecord]:
        with self._lock:
            return list(self._history)
