"""Execution-context specifications.

A pipeline runtime hands the engine one of two kinds of value: a
ResourceSpec describing the machine, or a StepSpec describing one step.
Both carry a ``kind`` discriminant so payloads can be decoded once at
the boundary with ``decode_spec``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from skystep.core.exceptions import ConfigurationError

__all__ = [
    "Credentials",
    "Disk",
    "FileEntry",
    "Network",
    "Platform",
    "ResourceSpec",
    "RuntimeSpec",
    "Secret",
    "StepFile",
    "StepSpec",
    "Volume",
    "decode_spec",
]


# =============================================================================
# Resource Spec
# =============================================================================


@dataclass(frozen=True, slots=True)
class Credentials:
    """Account credentials used against the provisioning API."""

    access_key_id: str = ""
    secret_access_key: str = field(default="", repr=False)
    region: str = "us-east-1"


@dataclass(frozen=True, slots=True)
class Network:
    subnet_id: str = ""
    security_groups: tuple[str, ...] = ()
    private_ip: bool = False


@dataclass(frozen=True, slots=True)
class Disk:
    type: str = "gp2"
    size: int = 32
    iops: int = 0


@dataclass(frozen=True, slots=True)
class Platform:
    os: str = "linux"
    arch: str = "amd64"

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"


@dataclass(frozen=True, slots=True)
class FileEntry:
    """A file or directory staged onto the instance during setup."""

    path: str
    data: bytes = b""
    mode: int = 0o644
    is_dir: bool = False


@dataclass(frozen=True, slots=True)
class Volume:
    """An ephemeral volume. Only volumes with an empty-dir id need a directory."""

    empty_dir_id: str = ""


@dataclass(slots=True)
class ResourceSpec:
    """Desired and realized state of one remote machine.

    Mutable: setup merges bookkeeping tags into ``tags`` and binds the
    realized ``instance_id``/``ip`` once an instance is reserved or created.
    """

    credentials: Credentials = field(default_factory=Credentials)
    image: str = ""
    instance_type: str = "t3.nano"
    user: str = "root"
    private_key: str = field(default="", repr=False)
    iam_profile_arn: str = ""
    user_data: str = field(default="", repr=False)
    device_name: str = "/dev/sda1"
    network: Network = field(default_factory=Network)
    disk: Disk = field(default_factory=Disk)
    tags: dict[str, str] = field(default_factory=dict)
    pool_name: str = ""
    use_pool: bool = False
    platform: Platform = field(default_factory=Platform)
    instance_id: str = ""
    ip: str = ""
    root: str = "/tmp/skystep"
    files: list[FileEntry] = field(default_factory=list)
    volumes: list[Volume] = field(default_factory=list)
    kind: Literal["resource"] = "resource"

    @property
    def region(self) -> str:
        return self.credentials.region

    @property
    def bound(self) -> bool:
        return bool(self.instance_id)


# =============================================================================
# Step Spec
# =============================================================================


@dataclass(frozen=True, slots=True)
class Secret:
    """A named sensitive value, exported into the step environment."""

    name: str
    data: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class StepFile:
    path: str
    data: bytes = b""
    mode: int = 0o700


@dataclass(frozen=True, slots=True)
class StepSpec:
    """One executable pipeline step."""

    name: str = ""
    command: str = ""
    args: tuple[str, ...] = ()
    working_dir: str = ""
    envs: dict[str, str] = field(default_factory=dict)
    secrets: tuple[Secret, ...] = ()
    files: tuple[StepFile, ...] = ()
    kind: Literal["step"] = "step"

    @property
    def command_line(self) -> str:
        return self.command + " " + " ".join(self.args)


type RuntimeSpec = ResourceSpec | StepSpec


# =============================================================================
# Boundary Decoding
# =============================================================================


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode() if isinstance(value, str) else value


def _build[T](cls: type[T], raw: dict[str, Any], what: str) -> T:
    try:
        return cls(**raw)
    except TypeError as e:
        raise ConfigurationError(f"Invalid {what}: {e}") from e


def _decode_resource(raw: dict[str, Any]) -> ResourceSpec:
    raw = dict(raw)
    credentials = _build(Credentials, raw.pop("credentials", {}), "credentials")
    network_raw = dict(raw.pop("network", {}))
    network_raw["security_groups"] = tuple(network_raw.get("security_groups", ()))
    network = _build(Network, network_raw, "network")
    disk = _build(Disk, raw.pop("disk", {}), "disk")
    platform = _build(Platform, raw.pop("platform", {}), "platform")
    files = [
        _build(FileEntry, {**f, "data": _as_bytes(f.get("data", b""))}, "file")
        for f in raw.pop("files", [])
    ]
    volumes = [_build(Volume, v, "volume") for v in raw.pop("volumes", [])]
    tags = dict(raw.pop("tags", {}))
    return _build(
        ResourceSpec,
        {
            **raw,
            "credentials": credentials,
            "network": network,
            "disk": disk,
            "platform": platform,
            "files": files,
            "volumes": volumes,
            "tags": tags,
        },
        "resource spec",
    )


def _decode_step(raw: dict[str, Any]) -> StepSpec:
    raw = dict(raw)
    secrets = tuple(_build(Secret, s, "secret") for s in raw.pop("secrets", []))
    files = tuple(
        _build(StepFile, {**f, "data": _as_bytes(f.get("data", b""))}, "step file")
        for f in raw.pop("files", [])
    )
    args = tuple(raw.pop("args", ()))
    envs = dict(raw.pop("envs", {}))
    return _build(
        StepSpec,
        {**raw, "secrets": secrets, "files": files, "args": args, "envs": envs},
        "step spec",
    )


def decode_spec(raw: dict[str, Any]) -> RuntimeSpec:
    """Decode a raw mapping into a ResourceSpec or StepSpec by its ``kind``."""
    raw = dict(raw)
    match raw.pop("kind", None):
        case "resource":
            return _decode_resource(raw)
        case "step":
            return _decode_step(raw)
        case other:
            raise ConfigurationError(
                f"Unknown spec kind {other!r}. Valid: 'resource', 'step'"
            )
