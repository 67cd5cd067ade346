"""Provisioner protocol.

The provisioner owns machines: it creates and destroys them, and its
instance tags are the source of truth for pool membership. Pool calls
are serialized by the caller (see ``skystep.pool.PoolCoordinator``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from skystep.types import Credentials, Instance, ResourceSpec


@dataclass(frozen=True, slots=True)
class ProvisionArgs:
    """Everything the provisioner needs to create one instance."""

    image: str
    size: str
    region: str
    iam_profile_arn: str = ""
    name: str = ""
    user_data: str = field(default="", repr=False)
    tags: dict[str, str] = field(default_factory=dict)
    subnet: str = ""
    groups: tuple[str, ...] = ()
    private_ip: bool = False
    device: str = "/dev/sda1"
    volume_type: str = "gp2"
    volume_size: int = 32
    volume_iops: int = 0

    @classmethod
    def from_spec(cls, spec: ResourceSpec) -> ProvisionArgs:
        return cls(
            image=spec.image,
            size=spec.instance_type,
            region=spec.region,
            iam_profile_arn=spec.iam_profile_arn,
            name=spec.user,
            user_data=spec.user_data,
            tags=dict(spec.tags),
            subnet=spec.network.subnet_id,
            groups=spec.network.security_groups,
            private_ip=spec.network.private_ip,
            device=spec.device_name,
            volume_type=spec.disk.type,
            volume_size=spec.disk.size,
            volume_iops=spec.disk.iops,
        )


@runtime_checkable
class Provisioner(Protocol):
    """Creates, destroys and looks up machines."""

    async def create(self, credentials: Credentials, args: ProvisionArgs) -> Instance:
        """Create one instance and return it once it has an address."""
        ...

    async def destroy(self, credentials: Credentials, instance: Instance) -> None: ...

    async def ping(self, credentials: Credentials) -> None:
        """Raise if the provisioning API is unreachable or rejects the credentials."""
        ...

    async def try_reserve(self, credentials: Credentials, pool_name: str) -> Instance | None:
        """Mark one free instance of ``pool_name`` in progress and return it.

        Returns None when the pool has no free instance.
        """
        ...

    async def count_free(self, credentials: Credentials, pool_name: str) -> int:
        """Count instances of ``pool_name`` not marked in progress."""
        ...
