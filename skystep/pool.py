"""Pool coordination.

Pool membership lives in the provisioner's instance tags. Reserving a
free instance is a read-then-mark sequence against those tags, so all
pool queries and mutations for every pool go through one lock.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from skystep.providers.base import Provisioner
from skystep.types import Credentials, Instance

log = logger.bind(component="pool")


class PoolCoordinator:
    """Serializes pool reservation and counting behind one lock."""

    __slots__ = ("_provisioner", "_lock")

    def __init__(self, provisioner: Provisioner) -> None:
        self._provisioner = provisioner
        self._lock = asyncio.Lock()

    async def try_reserve(self, credentials: Credentials, pool_name: str) -> Instance | None:
        """Reserve a free instance of ``pool_name``.

        Returns None when the pool is empty, which callers treat as
        "provision an ad-hoc instance instead".
        """
        async with self._lock:
            instance = await self._provisioner.try_reserve(credentials, pool_name)
        if instance is not None:
            log.debug("Reserved {id} from pool {pool}", id=instance.id, pool=pool_name)
        return instance

    async def count_free(self, credentials: Credentials, pool_name: str) -> int:
        async with self._lock:
            return await self._provisioner.count_free(credentials, pool_name)
