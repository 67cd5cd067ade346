"""skystep - run pipeline steps on ephemeral remote instances.

Example:
    import skystep as sky

    engine = sky.Engine(sky.EC2Provisioner(), sky.EngineOptions(runner_name="runner-1"))
    await engine.setup(resource)
    async with await sky.LogWriter.create(client, "build/1/step/1") as writer:
        state = await engine.run(resource, step, writer)
    await engine.destroy(resource)
"""

from skystep.config import LivelogSettings, Settings, load_config, resolve_settings
from skystep.core.exceptions import (
    ConfigurationError,
    ConnectivityError,
    LogUploadError,
    NetworkBootstrapError,
    ProvisioningError,
    SkystepError,
    StagingError,
)
from skystep.engine import Engine
from skystep.executor import StepExecutor
from skystep.lifecycle import InstanceLifecycle
from skystep.livelog import HttpLogClient, LogClient, LogRecord, LogWriter
from skystep.logging import LogConfig, setup_logging, teardown_logging
from skystep.options import EngineOptions
from skystep.pool import PoolCoordinator
from skystep.providers import ProvisionArgs, Provisioner
from skystep.providers.aws import EC2Provisioner
from skystep.transport import SSHTransport
from skystep.types import (
    Credentials,
    Disk,
    FileEntry,
    Instance,
    Network,
    Platform,
    Pool,
    ResourceSpec,
    Secret,
    State,
    StepFile,
    StepSpec,
    Volume,
    decode_spec,
)

__all__ = [
    "ConfigurationError",
    "ConnectivityError",
    "Credentials",
    "Disk",
    "EC2Provisioner",
    "Engine",
    "EngineOptions",
    "FileEntry",
    "HttpLogClient",
    "Instance",
    "InstanceLifecycle",
    "LivelogSettings",
    "LogClient",
    "LogConfig",
    "LogRecord",
    "LogUploadError",
    "LogWriter",
    "Network",
    "NetworkBootstrapError",
    "Platform",
    "Pool",
    "PoolCoordinator",
    "ProvisionArgs",
    "Provisioner",
    "ProvisioningError",
    "ResourceSpec",
    "SSHTransport",
    "Secret",
    "Settings",
    "SkystepError",
    "StagingError",
    "State",
    "StepExecutor",
    "StepFile",
    "StepSpec",
    "Volume",
    "decode_spec",
    "load_config",
    "resolve_settings",
    "setup_logging",
    "teardown_logging",
]
