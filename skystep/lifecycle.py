"""Instance lifecycle: setup and destroy.

Setup reserves a pooled instance or provisions a new one, stages the
workspace over SFTP and creates the container network. Destroy
terminates the instance and, for pool-backed instances, tops the pool
back up in the background.

A setup that fails after the instance was created leaves a live,
partially configured instance unless ``rollback_on_failure`` is set.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
from dataclasses import replace
from typing import TYPE_CHECKING

from loguru import logger

from skystep import staging
from skystep.constants import (
    NETWORK_COMMAND,
    RUNNER_IDENTITY,
    STATUS_IN_PROGRESS,
    VOLUME_MODE,
    WINDOWS_NETWORK_COMMAND,
    WORKSPACE_MODE,
    RunnerTag,
)
from skystep.core.exceptions import (
    ConnectivityError,
    NetworkBootstrapError,
    ProvisioningError,
)
from skystep.options import EngineOptions
from skystep.pool import PoolCoordinator
from skystep.providers.base import ProvisionArgs, Provisioner
from skystep.transport import RemoteFiles, SSHTransport, TransportFactory
from skystep.types import Credentials, Instance, Pool, ResourceSpec

if TYPE_CHECKING:
    from loguru import Logger


class InstanceLifecycle:
    """Provisions, prepares and tears down remote instances."""

    def __init__(
        self,
        provisioner: Provisioner,
        options: EngineOptions | None = None,
        *,
        transport_factory: TransportFactory = SSHTransport,
        coordinator: PoolCoordinator | None = None,
        log: Logger | None = None,
    ) -> None:
        self._provisioner = provisioner
        self._options = options or EngineOptions()
        self._transport = transport_factory
        self._pool = coordinator or PoolCoordinator(provisioner)
        self._log = log or logger.bind(component="lifecycle")
        self._background: set[asyncio.Task[None]] = set()

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    async def setup(self, spec: ResourceSpec, *, replenish: bool = False) -> None:
        """Bind ``spec`` to a ready instance.

        Args:
            spec: Resource spec; its tags and instance id/ip are updated.
            replenish: Create a free pool instance: skip reservation and
                leave the in-progress marker off.

        Raises:
            ProvisioningError: The instance could not be created.
            ConnectivityError: SSH, SFTP or the command session failed.
            StagingError: A workspace directory or file could not be staged.
            NetworkBootstrapError: The container network command failed.
        """
        log = self._log.bind(image=spec.image, pool=spec.pool_name)

        if spec.use_pool and not replenish:
            instance = await self._reserve(spec, log)
            if instance is not None:
                spec.instance_id, spec.ip = instance.id, instance.ip
                log.debug("Using pool instance {id} ({ip})", id=instance.id, ip=instance.ip)
                return
            log.debug("Unable to use pool, creating an ad-hoc instance")

        self._tag(spec, in_progress=spec.use_pool and not replenish)

        log.debug("Creating instance")
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            instance = await self._provisioner.create(
                spec.credentials, ProvisionArgs.from_spec(spec)
            )
        except Exception as e:
            log.debug("Failed to create the instance: {error}", error=e)
            raise ProvisioningError(f"Failed to create instance from {spec.image}: {e}") from e

        spec.instance_id, spec.ip = instance.id, instance.ip
        log = log.bind(instance_id=instance.id, ip=instance.ip)
        log.info("Created the instance")

        try:
            await self._prepare(spec, log, started)
        except Exception:
            if self._options.rollback_on_failure:
                await self._rollback(spec, log)
            raise

        log.info("Server configuration complete")

    async def _reserve(self, spec: ResourceSpec, log: Logger) -> Instance | None:
        try:
            return await self._pool.try_reserve(spec.credentials, spec.pool_name)
        except Exception as e:
            log.error("Failed to use pool: {error}", error=e)
            return None

    def _tag(self, spec: ResourceSpec, *, in_progress: bool) -> None:
        spec.tags[RunnerTag.RUNNER] = RUNNER_IDENTITY
        spec.tags[RunnerTag.POOL] = spec.pool_name
        spec.tags[RunnerTag.CREATOR] = self._options.runner_name
        if in_progress:
            # keeps a concurrent reservation from taking this instance
            spec.tags[RunnerTag.STATUS] = STATUS_IN_PROGRESS

    async def _prepare(self, spec: ResourceSpec, log: Logger, started: float) -> None:
        transport = self._transport(spec.ip, spec.user, spec.private_key)
        try:
            await transport.connect()
        except Exception as e:
            log.debug("Failed to connect over ssh: {error}", error=e)
            raise ConnectivityError(spec.ip, str(e)) from e

        try:
            elapsed = asyncio.get_running_loop().time() - started
            log.debug("Instance responding after {elapsed:.1f}s", elapsed=elapsed)
            await self._stage(transport, spec, log)
            await self._create_network(transport, spec, log)
        finally:
            await transport.close()

    async def _stage(self, transport: SSHTransport, spec: ResourceSpec, log: Logger) -> None:
        async with contextlib.AsyncExitStack() as stack:
            try:
                files = await stack.enter_async_context(transport.sftp())
            except Exception as e:
                log.debug("Failed to open sftp: {error}", error=e)
                raise ConnectivityError(spec.ip, f"cannot open sftp: {e}") from e
            try:
                await _stage_workspace(files, spec)
            except Exception as e:
                log.error("Staging failed: {error}", error=e)
                raise

    async def _create_network(
        self, transport: SSHTransport, spec: ResourceSpec, log: Logger
    ) -> None:
        command = WINDOWS_NETWORK_COMMAND if spec.platform.is_windows else NETWORK_COMMAND
        async with contextlib.AsyncExitStack() as stack:
            try:
                session = await stack.enter_async_context(transport.session())
            except Exception as e:
                log.debug("Failed to open session: {error}", error=e)
                raise ConnectivityError(spec.ip, f"cannot open session: {e}") from e

            # TODO: poll `docker info` instead of a fixed delay
            await asyncio.sleep(self._options.network_warmup)

            try:
                await session.run(command)
            except Exception as e:
                log.error(
                    "Unable to create docker network ({command}): {error}",
                    command=command,
                    error=e,
                )
                raise NetworkBootstrapError(command, str(e)) from e

    async def _rollback(self, spec: ResourceSpec, log: Logger) -> None:
        try:
            await self._provisioner.destroy(spec.credentials, Instance(spec.instance_id, spec.ip))
            log.info("Destroyed partially configured instance")
        except Exception as e:
            log.error("Failed to destroy partially configured instance: {error}", error=e)

    # -------------------------------------------------------------------------
    # Destroy
    # -------------------------------------------------------------------------

    async def destroy(self, spec: ResourceSpec) -> None:
        """Destroy the instance bound to ``spec``.

        For pool-backed specs, schedules one background setup from the
        pool template when the pool has fewer free instances than its
        target size. Replenishment never affects the result.
        """
        log = self._log.bind(image=spec.image, instance_id=spec.instance_id)
        log.debug("Destroying instance")

        try:
            await self._provisioner.destroy(
                spec.credentials, Instance(id=spec.instance_id, ip=spec.ip)
            )
        except Exception as e:
            log.debug("Failed to destroy the instance: {error}", error=e)
            raise

        if spec.use_pool:
            await self._maybe_replenish(spec.credentials, spec.pool_name, log)

    async def _maybe_replenish(self, credentials: Credentials, pool_name: str, log: Logger) -> None:
        log = log.bind(pool=pool_name)
        try:
            free = await self._pool.count_free(credentials, pool_name)
        except Exception as e:
            log.error("Failed to count pool: {error}", error=e)
            free = 0

        pool = self._options.pools.get(pool_name)
        if pool is None:
            log.debug("No template for pool, not replenishing")
            return
        if free >= pool.size:
            return

        task = asyncio.create_task(self._replenish(pool, log))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _replenish(self, pool: Pool, log: Logger) -> None:
        spec = replace(copy.deepcopy(pool.template), pool_name=pool.name, use_pool=True)
        try:
            await self.setup(spec, replenish=True)
        except Exception as e:
            log.error("Failed to add back to the pool: {error}", error=e)
        else:
            log.debug("Added {id} to the pool", id=spec.instance_id)

    async def wait_replenished(self) -> None:
        """Wait for every scheduled pool replenishment to finish."""
        while self._background:
            await asyncio.gather(*self._background)

    # -------------------------------------------------------------------------
    # Ping
    # -------------------------------------------------------------------------

    async def ping(self, credentials: Credentials) -> None:
        await self._provisioner.ping(credentials)


async def _stage_workspace(files: RemoteFiles, spec: ResourceSpec) -> None:
    # every file and folder the pipeline creates lives under the workspace root
    await staging.mkdir(files, spec.root, WORKSPACE_MODE)

    for entry in spec.files:
        if entry.is_dir:
            await staging.mkdir(files, entry.path, entry.mode)

    for entry in spec.files:
        if not entry.is_dir:
            await staging.upload(files, entry.path, entry.data, entry.mode)

    for volume in spec.volumes:
        if volume.empty_dir_id:
            await staging.mkdir(files, volume.empty_dir_id, VOLUME_MODE)
