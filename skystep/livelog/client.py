"""Log service clients.

The log service keeps one stream per key: it is opened once, fed with
batches while the step runs, and receives the full history as a blob
before the stream is closed.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from skystep.infra.http import Auth, HttpClient, TokenAuth
from skystep.livelog.record import LogRecord


@runtime_checkable
class LogClient(Protocol):
    async def open(self, key: str) -> None: ...

    async def close(self, key: str) -> None: ...

    async def batch(self, key: str, records: Sequence[LogRecord]) -> None:
        """Append records to the live stream."""
        ...

    async def upload(self, key: str, data: bytes) -> None:
        """Store the complete log, one JSON record per line."""
        ...


class HttpLogClient:
    """LogClient for an HTTP log service.

    Example:
        >>> client = HttpLogClient("https://logs.example.com", account_id="acc", token="t")
        >>> writer = await LogWriter.create(client, "pipeline/1/step/2")
    """

    def __init__(
        self,
        endpoint: str,
        *,
        account_id: str,
        token: str = "",
        auth: Auth | None = None,
        timeout: float = 30,
    ) -> None:
        self._account_id = account_id
        self._http = HttpClient(
            endpoint,
            auth or (TokenAuth(token) if token else None),
            timeout=timeout,
        )

    def _params(self, key: str, **extra: str) -> dict[str, str]:
        return {"accountID": self._account_id, "key": key, **extra}

    async def open(self, key: str) -> None:
        await self._http.request("POST", "/stream", params=self._params(key))

    async def close(self, key: str) -> None:
        await self._http.request("DELETE", "/stream", params=self._params(key, snapshot="true"))

    async def batch(self, key: str, records: Sequence[LogRecord]) -> None:
        await self._http.request(
            "PUT", "/stream", params=self._params(key), json=[r.to_dict() for r in records]
        )

    async def upload(self, key: str, data: bytes) -> None:
        await self._http.request("POST", "/blob", params=self._params(key), data=data)

    async def aclose(self) -> None:
        """Release the underlying HTTP session."""
        await self._http.close()
