"""Minimal aiohttp client for status-only service calls.

The log service answers with an empty body, so requests return just the
HTTP status. One ClientSession is opened lazily and reused until close.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

import aiohttp
from loguru import logger

_MAX_LOGGED_BODY = 500


# ─── Errors ──────────────────────────────────────────────────────────


class HttpError(Exception):
    """Non-2xx/3xx answer, or a transport failure (``status == 0``)."""

    def __init__(self, status: int, body: str, url: str = "") -> None:
        self.status = status
        self.body = body
        self.url = url
        super().__init__(f"HTTP {status}: {body}")


# ─── Auth ────────────────────────────────────────────────────────────


@runtime_checkable
class Auth(Protocol):
    async def headers(self) -> dict[str, str]: ...


class TokenAuth:
    """Static token sent in a fixed header."""

    def __init__(self, token: str, header: str = "X-Harness-Token") -> None:
        self._header = header
        self._value = token

    async def headers(self) -> dict[str, str]:
        return {self._header: self._value}


# ─── Client ──────────────────────────────────────────────────────────


class HttpClient:
    def __init__(self, base_url: str, auth: Auth | None = None, *, timeout: float = 30) -> None:
        self._root = base_url.rstrip("/")
        self._auth = auth
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None
        self._log = logger.bind(component="http")

    def _session_or_new(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        data: bytes | None = None,
        params: Mapping[str, str] | None = None,
    ) -> int:
        """Send one request and return its status.

        Raises:
            HttpError: On a status >= 400 or when the request never got an answer.
        """
        url = self._root + path
        headers = await self._auth.headers() if self._auth else {}
        self._log.debug("{method} {url}", method=method, url=url)

        try:
            async with self._session_or_new().request(
                method, url, headers=headers, json=json, data=data, params=params
            ) as resp:
                if resp.status < 400:
                    return resp.status
                body = await resp.text()
        except aiohttp.ClientError as e:
            raise HttpError(0, str(e), url) from e

        self._log.warning(
            "{method} {url} answered {status}: {body}",
            method=method, url=url, status=resp.status, body=body[:_MAX_LOGGED_BODY],
        )
        raise HttpError(resp.status, body, url)

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> HttpClient:
        self._session_or_new()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()
