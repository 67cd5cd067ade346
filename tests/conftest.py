from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import pytest

from skystep.livelog.record import LogRecord
from skystep.options import EngineOptions
from skystep.providers.base import ProvisionArgs
from skystep.types import Credentials, Instance

# =============================================================================
# Provisioner
# =============================================================================


@dataclass
class FakeProvisioner:
    free: list[Instance] = field(default_factory=list)
    create_error: Exception | None = None
    destroy_error: Exception | None = None
    ping_error: Exception | None = None
    reserve_error: Exception | None = None
    count_error: Exception | None = None

    created: list[ProvisionArgs] = field(default_factory=list)
    destroyed: list[Instance] = field(default_factory=list)
    reserve_calls: list[str] = field(default_factory=list)
    count_calls: list[str] = field(default_factory=list)

    async def create(self, credentials: Credentials, args: ProvisionArgs) -> Instance:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(args)
        n = len(self.created)
        return Instance(id=f"i-{n:04d}", ip=f"10.0.0.{n}")

    async def destroy(self, credentials: Credentials, instance: Instance) -> None:
        if self.destroy_error is not None:
            raise self.destroy_error
        self.destroyed.append(instance)

    async def ping(self, credentials: Credentials) -> None:
        if self.ping_error is not None:
            raise self.ping_error

    async def try_reserve(self, credentials: Credentials, pool_name: str) -> Instance | None:
        self.reserve_calls.append(pool_name)
        if self.reserve_error is not None:
            raise self.reserve_error
        return self.free.pop(0) if self.free else None

    async def count_free(self, credentials: Credentials, pool_name: str) -> int:
        self.count_calls.append(pool_name)
        if self.count_error is not None:
            raise self.count_error
        return len(self.free)


# =============================================================================
# Transport
# =============================================================================


class FakeFiles:
    def __init__(self, remote: FakeRemote) -> None:
        self._remote = remote

    def _check(self, path: str) -> None:
        if path in self._remote.fail_paths:
            raise OSError(f"permission denied: {path}")

    async def mkdir_all(self, path: str, mode: int) -> None:
        self._check(path)
        self._remote.ops.append(("mkdir", path, mode))

    async def write(self, path: str, data: bytes, mode: int) -> None:
        self._check(path)
        self._remote.ops.append(("write", path, mode))
        self._remote.written[path] = data


class FakeSession:
    def __init__(self, remote: FakeRemote) -> None:
        self._remote = remote

    async def run(self, command: str, stdout=None, stderr=None) -> None:
        self._remote.commands.append(command)
        if stdout is not None and self._remote.stdout:
            stdout.write(self._remote.stdout)
        if stderr is not None and self._remote.stderr:
            stderr.write(self._remote.stderr)
        self._remote.started.set()
        if self._remote.hang:
            await asyncio.Event().wait()
        if self._remote.run_error is not None:
            raise self._remote.run_error

    def signal(self, name: str) -> None:
        self._remote.signals.append(name)
        if self._remote.signal_error is not None:
            raise self._remote.signal_error


class FakeTransport:
    def __init__(self, remote: FakeRemote, host: str, user: str, private_key: str) -> None:
        self.remote = remote
        self.host = host
        self.user = user
        self.private_key = private_key
        self.connected_with: str | None = None
        self.closed = False

    async def connect(self) -> None:
        if self.remote.connect_error is not None:
            raise self.remote.connect_error
        self.connected_with = "retry"

    async def connect_once(self) -> None:
        if self.remote.connect_error is not None:
            raise self.remote.connect_error
        self.connected_with = "once"

    async def close(self) -> None:
        self.closed = True

    @asynccontextmanager
    async def sftp(self) -> AsyncIterator[FakeFiles]:
        if self.remote.sftp_error is not None:
            raise self.remote.sftp_error
        yield FakeFiles(self.remote)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[FakeSession]:
        if self.remote.session_error is not None:
            raise self.remote.session_error
        yield FakeSession(self.remote)


@dataclass
class FakeRemote:
    """Shared state of every FakeTransport the factory hands out."""

    connect_error: Exception | None = None
    sftp_error: Exception | None = None
    session_error: Exception | None = None
    run_error: Exception | None = None
    signal_error: Exception | None = None
    fail_paths: set[str] = field(default_factory=set)
    stdout: bytes = b""
    stderr: bytes = b""
    hang: bool = False

    transports: list[FakeTransport] = field(default_factory=list)
    ops: list[tuple[str, str, int]] = field(default_factory=list)
    written: dict[str, bytes] = field(default_factory=dict)
    commands: list[str] = field(default_factory=list)
    signals: list[str] = field(default_factory=list)
    started: asyncio.Event = field(default_factory=asyncio.Event)

    def factory(self, host: str, user: str, private_key: str) -> FakeTransport:
        transport = FakeTransport(self, host, user, private_key)
        self.transports.append(transport)
        return transport


# =============================================================================
# Log client
# =============================================================================


@dataclass
class FakeLogClient:
    open_error: Exception | None = None
    batch_error: Exception | None = None
    upload_error: Exception | None = None
    close_error: Exception | None = None

    opened: list[str] = field(default_factory=list)
    batches: list[list[LogRecord]] = field(default_factory=list)
    uploads: list[bytes] = field(default_factory=list)
    closed: list[str] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)
    batched: asyncio.Event = field(default_factory=asyncio.Event)

    async def open(self, key: str) -> None:
        self.calls.append("open")
        if self.open_error is not None:
            raise self.open_error
        self.opened.append(key)

    async def batch(self, key: str, records: Sequence[LogRecord]) -> None:
        self.calls.append("batch")
        self.batched.set()
        if self.batch_error is not None:
            raise self.batch_error
        self.batches.append(list(records))

    async def upload(self, key: str, data: bytes) -> None:
        self.calls.append("upload")
        if self.upload_error is not None:
            raise self.upload_error
        self.uploads.append(data)

    async def close(self, key: str) -> None:
        self.calls.append("close")
        if self.close_error is not None:
            raise self.close_error
        self.closed.append(key)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def log_client() -> FakeLogClient:
    return FakeLogClient()


@pytest.fixture
def options() -> EngineOptions:
    return EngineOptions(runner_name="runner-test", network_warmup=0)
