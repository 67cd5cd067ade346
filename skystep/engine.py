"""Pipeline engine.

Single entry point for a pipeline runtime: set up an instance, run
steps on it, destroy it. Specs may be passed as decoded dataclasses or
as raw mappings carrying a ``kind`` discriminant.

Example:
    >>> engine = Engine(EC2Provisioner(), EngineOptions(runner_name="runner-1"))
    >>> await engine.setup(resource)
    >>> async with await LogWriter.create(client, key) as writer:
    ...     state = await engine.run(resource, step, writer)
    >>> await engine.destroy(resource)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from loguru import logger

from skystep.core.exceptions import ConfigurationError
from skystep.executor import StepExecutor
from skystep.lifecycle import InstanceLifecycle
from skystep.options import EngineOptions
from skystep.pool import PoolCoordinator
from skystep.providers.base import Provisioner
from skystep.transport import OutputSink, SSHTransport, TransportFactory
from skystep.types import Credentials, ResourceSpec, RuntimeSpec, State, StepSpec, decode_spec

if TYPE_CHECKING:
    from loguru import Logger

type SpecLike = RuntimeSpec | Mapping[str, Any]


def _decode(value: SpecLike) -> RuntimeSpec:
    return decode_spec(dict(value)) if isinstance(value, Mapping) else value


def _as_resource(value: SpecLike) -> ResourceSpec:
    match _decode(value):
        case ResourceSpec() as spec:
            return spec
        case other:
            raise ConfigurationError(f"Expected a resource spec, got {other.kind!r}")


def _as_step(value: SpecLike) -> StepSpec:
    match _decode(value):
        case StepSpec() as step:
            return step
        case other:
            raise ConfigurationError(f"Expected a step spec, got {other.kind!r}")


class Engine:
    """Runs pipeline steps on ephemeral remote instances."""

    def __init__(
        self,
        provisioner: Provisioner,
        options: EngineOptions | None = None,
        *,
        transport_factory: TransportFactory = SSHTransport,
        log: Logger | None = None,
    ) -> None:
        self._options = options or EngineOptions()
        log = log or logger.bind(component="engine")
        self._lifecycle = InstanceLifecycle(
            provisioner,
            self._options,
            transport_factory=transport_factory,
            coordinator=PoolCoordinator(provisioner),
            log=log,
        )
        self._executor = StepExecutor(transport_factory=transport_factory, log=log)

    @property
    def options(self) -> EngineOptions:
        return self._options

    async def setup(self, spec: SpecLike) -> ResourceSpec:
        """Prepare an instance for ``spec`` and return the bound spec."""
        resource = _as_resource(spec)
        await self._lifecycle.setup(resource)
        return resource

    async def destroy(self, spec: SpecLike) -> None:
        await self._lifecycle.destroy(_as_resource(spec))

    async def run(self, spec: SpecLike, step: SpecLike, output: OutputSink) -> State:
        return await self._executor.run(_as_resource(spec), _as_step(step), output)

    async def ping(self, credentials: Credentials) -> None:
        await self._lifecycle.ping(credentials)

    async def wait_replenished(self) -> None:
        await self._lifecycle.wait_replenished()
