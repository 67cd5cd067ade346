"""Type definitions for skystep."""

from skystep.types.instance import Instance, Pool, State
from skystep.types.spec import (
    Credentials,
    Disk,
    FileEntry,
    Network,
    Platform,
    ResourceSpec,
    RuntimeSpec,
    Secret,
    StepFile,
    StepSpec,
    Volume,
    decode_spec,
)

__all__ = [
    "Credentials",
    "Disk",
    "FileEntry",
    "Instance",
    "Network",
    "Platform",
    "Pool",
    "ResourceSpec",
    "RuntimeSpec",
    "Secret",
    "State",
    "StepFile",
    "StepSpec",
    "Volume",
    "decode_spec",
]
