"""TOML-based runner configuration.

Loads ~/.skystep/defaults.toml (global) and skystep.toml (project),
merges them, and resolves engine options, live-log settings, logging
and named pools.

Example skystep.toml::

    [runner]
    name = "runner-1"
    network_warmup = 80

    [livelog]
    endpoint = "https://logs.example.com"
    account_id = "acc"
    limit = 5242880
    interval = 1.0

    [pools.linux]
    size = 2
    image = "ami-0123"
    instance_type = "t3.large"
    credentials = { region = "us-east-2" }
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from skystep.constants import LIVELOG_DEFAULT_INTERVAL, LIVELOG_DEFAULT_LIMIT
from skystep.core.exceptions import ConfigurationError
from skystep.livelog import HttpLogClient
from skystep.logging import LogConfig
from skystep.options import EngineOptions
from skystep.types import Pool, ResourceSpec, decode_spec

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".skystep" / "defaults.toml"
PROJECT_CONFIG_NAME = "skystep.toml"


@dataclass(frozen=True, slots=True)
class LivelogSettings:
    endpoint: str = ""
    account_id: str = ""
    token: str = field(default="", repr=False)
    limit: int = LIVELOG_DEFAULT_LIMIT
    interval: float = LIVELOG_DEFAULT_INTERVAL

    def client(self) -> HttpLogClient:
        if not self.endpoint:
            raise ConfigurationError("[livelog] endpoint is not set")
        return HttpLogClient(self.endpoint, account_id=self.account_id, token=self.token)


@dataclass(frozen=True, slots=True)
class Settings:
    engine: EngineOptions = field(default_factory=EngineOptions)
    livelog: LivelogSettings = field(default_factory=LivelogSettings)
    logging: LogConfig = field(default_factory=LogConfig)


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    for section in ("runner", "livelog", "logging", "pools"):
        merged.setdefault(section, {})
    return merged


def _build[T](cls: type[T], raw: RawConfig, section: str) -> T:
    try:
        return cls(**raw)
    except TypeError as e:
        raise ConfigurationError(f"Invalid [{section}] section: {e}") from e


def _build_pool(name: str, raw: RawConfig) -> Pool:
    raw = dict(raw)
    size = raw.pop("size", 0)
    if not isinstance(size, int) or size < 0:
        raise ConfigurationError(f"Pool '{name}' size must be a non-negative integer")

    template = decode_spec({**raw, "kind": "resource", "pool_name": name, "use_pool": True})
    if not isinstance(template, ResourceSpec):
        raise ConfigurationError(f"Pool '{name}' template is not a resource spec")
    return Pool(name=name, template=template, size=size)


def resolve_pools(config: RawConfig) -> dict[str, Pool]:
    return {name: _build_pool(name, raw) for name, raw in config["pools"].items()}


def resolve_settings(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> Settings:
    config = load_config(project_dir=project_dir, global_path=global_path)

    runner = dict(config["runner"])
    engine = _build(
        EngineOptions,
        {
            **({"runner_name": runner.pop("name")} if "name" in runner else {}),
            **runner,
            "pools": resolve_pools(config),
        },
        "runner",
    )

    return Settings(
        engine=engine,
        livelog=_build(LivelogSettings, config["livelog"], "livelog"),
        logging=_build(LogConfig, config["logging"], "logging"),
    )
