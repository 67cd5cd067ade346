"""Realized instances, pools and step outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field

from skystep.types.spec import ResourceSpec

__all__ = ["Instance", "Pool", "State"]


@dataclass(frozen=True, slots=True)
class Instance:
    """A realized machine, owned by the provisioner."""

    id: str
    ip: str


@dataclass(frozen=True, slots=True)
class Pool:
    """A named template plus the number of free instances to keep warm."""

    name: str
    template: ResourceSpec
    size: int = 0


@dataclass(frozen=True, slots=True)
class State:
    """Outcome of one step.

    ``error`` carries the underlying command error, if any, for callers
    that want it. It does not take part in equality.
    """

    exit_code: int = 0
    exited: bool = True
    oom_killed: bool = False
    error: BaseException | None = field(default=None, compare=False, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.exited and self.exit_code == 0
