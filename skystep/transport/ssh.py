"""AsyncSSH-based transport for staging and step execution.

Service class pattern - connection settings bound at construction,
not passed on every call. SFTP channels and command sessions are
opened over the one connection and scoped with ``async with``.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import asyncssh
from loguru import logger

from skystep.constants import (
    SSH_CONNECT_TIMEOUT,
    SSH_PORT,
    SSH_RETRY_BASE_DELAY,
    SSH_RETRY_MAX_ATTEMPTS,
    SSH_RETRY_MAX_DELAY,
)
from skystep.retry import retry

log = logger.bind(component="ssh")

_READ_CHUNK = 32 * 1024


@runtime_checkable
class OutputSink(Protocol):
    """Anything that accepts raw output bytes, e.g. a LogWriter."""

    def write(self, data: bytes, /) -> int: ...


# =============================================================================
# Exceptions
# =============================================================================


class RemoteExitError(Exception):
    """A remote command did not finish with status zero.

    ``exit_status`` is None when the process was killed by ``signal`` or
    the channel closed without reporting a status.
    """

    def __init__(
        self, command: str, exit_status: int | None, *, signal: str | None = None
    ) -> None:
        self.command = command
        self.exit_status = exit_status
        self.signal = signal
        if signal is not None:
            reason = f"was killed by signal {signal}"
        elif exit_status is None:
            reason = "exited without a status"
        else:
            reason = f"exited with status {exit_status}"
        super().__init__(f"Command '{command}' {reason}")


# =============================================================================
# SFTP
# =============================================================================


class RemoteFiles:
    """File-transfer sub-channel over an SSH connection."""

    __slots__ = ("_sftp",)

    def __init__(self, sftp: asyncssh.SFTPClient) -> None:
        self._sftp = sftp

    async def mkdir_all(self, path: str, mode: int) -> None:
        """Create ``path`` and its parents, then apply ``mode``."""
        await self._sftp.makedirs(path, exist_ok=True)
        await self._sftp.chmod(path, mode)

    async def write(self, path: str, data: bytes, mode: int) -> None:
        """Create or truncate ``path``, write ``data`` and apply ``mode``."""
        async with self._sftp.open(path, "wb") as f:
            await f.write(data)
        await self._sftp.chmod(path, mode)


# =============================================================================
# Command Session
# =============================================================================


class RemoteSession:
    """One remote command at a time over an SSH connection."""

    __slots__ = ("_conn", "_proc")

    def __init__(self, conn: asyncssh.SSHClientConnection) -> None:
        self._conn = conn
        self._proc: asyncssh.SSHClientProcess[bytes] | None = None

    async def run(
        self,
        command: str,
        stdout: OutputSink | None = None,
        stderr: OutputSink | None = None,
    ) -> None:
        """Run ``command`` to completion, streaming its output to the sinks.

        Raises:
            RemoteExitError: If the command exits non-zero, is killed by a
                signal or ends without reporting a status.
        """
        async with self._conn.create_process(command, encoding=None) as proc:
            self._proc = proc
            try:
                await asyncio.gather(
                    _pump(proc.stdout, stdout),
                    _pump(proc.stderr, stderr),
                )
                await proc.wait()
            finally:
                self._proc = None

        _check_exit(command, proc.exit_status, proc.exit_signal)

    def signal(self, name: str) -> None:
        """Send a signal to the running command.

        Many SSH servers ignore signal requests, so delivery is not
        guaranteed even when this returns normally.
        """
        if self._proc is None:
            raise RuntimeError("No command is running")
        self._proc.send_signal(name)


async def _pump(reader: asyncssh.SSHReader[bytes], sink: OutputSink | None) -> None:
    while chunk := await reader.read(_READ_CHUNK):
        if sink is not None:
            sink.write(chunk)


def _check_exit(
    command: str, status: int | None, signal: tuple[str, bool, str, str] | None
) -> None:
    # a missing status or a signal death has no meaningful exit code
    if signal is not None:
        raise RemoteExitError(command, None, signal=signal[0])
    if status is None or status < 0:
        raise RemoteExitError(command, None)
    if status != 0:
        raise RemoteExitError(command, status)


# =============================================================================
# SSH Transport
# =============================================================================


@dataclass
class SSHTransport:
    """Async SSH transport using asyncssh.

    Example:
        >>> transport = SSHTransport(host="10.0.0.1", user="ubuntu", private_key=pem)
        >>> await transport.connect()  # Retries while the instance boots
        >>> async with transport.session() as session:
        ...     await session.run("docker ps", stdout=writer)
        >>> await transport.close()
    """

    host: str
    user: str
    private_key: str = field(repr=False)
    port: int = SSH_PORT
    connect_timeout: float = SSH_CONNECT_TIMEOUT
    retry_max_attempts: int = SSH_RETRY_MAX_ATTEMPTS
    retry_base_delay: float = SSH_RETRY_BASE_DELAY
    retry_max_delay: float = SSH_RETRY_MAX_DELAY

    _conn: asyncssh.SSHClientConnection | None = field(default=None, repr=False)

    async def connect(self) -> None:
        """Establish the connection, retrying with backoff until it responds.

        Cancelling the calling task stops the retry loop.
        """
        if self._conn is not None:
            return

        @retry(
            on=(OSError, asyncssh.Error),
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )
        async def do_connect() -> asyncssh.SSHClientConnection:
            return await self._dial()

        self._conn = await do_connect()

    async def connect_once(self) -> None:
        """Establish the connection without retrying."""
        if self._conn is None:
            self._conn = await self._dial()

    async def _dial(self) -> asyncssh.SSHClientConnection:
        log.debug("Dialing {user}@{host}:{port}", user=self.user, host=self.host, port=self.port)
        keys = [asyncssh.import_private_key(self.private_key)] if self.private_key else None
        return await asyncssh.connect(
            self.host,
            port=self.port,
            username=self.user,
            client_keys=keys,
            known_hosts=None,
            connect_timeout=self.connect_timeout,
        )

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._conn.wait_closed(), timeout=5.0)
            self._conn = None

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def _require_connection(self) -> asyncssh.SSHClientConnection:
        if self._conn is None:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._conn

    @contextlib.asynccontextmanager
    async def sftp(self) -> AsyncIterator[RemoteFiles]:
        """Open a file-transfer sub-channel over the connection."""
        conn = self._require_connection()
        async with conn.start_sftp_client() as client:
            yield RemoteFiles(client)

    @contextlib.asynccontextmanager
    async def session(self) -> AsyncIterator[RemoteSession]:
        """Open a command session over the connection."""
        yield RemoteSession(self._require_connection())
