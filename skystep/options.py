"""Engine options."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from skystep.constants import NETWORK_WARMUP_SECONDS
from skystep.types import Pool


@dataclass(frozen=True, slots=True)
class EngineOptions:
    """Runner-wide engine settings.

    Args:
        runner_name: Creator identity tagged onto every instance.
        pools: Pool templates and target sizes, keyed by pool name.
        network_warmup: Seconds to wait for the container runtime before
            creating the network.
        rollback_on_failure: Destroy a freshly created instance when a
            later setup stage fails. Off by default: the caller owns cleanup.
    """

    runner_name: str = "skystep"
    pools: Mapping[str, Pool] = field(default_factory=dict)
    network_warmup: float = NETWORK_WARMUP_SECONDS
    rollback_on_failure: bool = False
