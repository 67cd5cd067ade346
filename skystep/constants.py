"""Centralized constants and enums for skystep.

Tag keys, shell commands and default timings live here so the
lifecycle, executor and provisioner agree on them.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# Instance Tags
# =============================================================================


class RunnerTag(StrEnum):
    """Tag keys written onto every instance skystep creates."""

    RUNNER = "runner"
    POOL = "pool"
    CREATOR = "creator"
    STATUS = "status"


RUNNER_IDENTITY: Final = "skystep-runner"
STATUS_IN_PROGRESS: Final = "build in progress"


# =============================================================================
# EC2 Instance States
# =============================================================================


class InstanceState(StrEnum):
    """EC2 instance state names."""

    RUNNING = "running"


# =============================================================================
# Container Network
# =============================================================================

NETWORK_NAME: Final = "myNetwork"
NETWORK_COMMAND: Final = f"docker network create {NETWORK_NAME}"
WINDOWS_NETWORK_COMMAND: Final = f"docker network create --driver nat {NETWORK_NAME}"

# Seconds to wait for the container runtime after boot
NETWORK_WARMUP_SECONDS: Final = 80.0


# =============================================================================
# Staging
# =============================================================================

WORKSPACE_MODE: Final = 0o777
VOLUME_MODE: Final = 0o777


# =============================================================================
# SSH
# =============================================================================

SSH_PORT: Final = 22
SSH_CONNECT_TIMEOUT: Final = 30.0
SSH_RETRY_MAX_ATTEMPTS: Final = 60
SSH_RETRY_BASE_DELAY: Final = 1.0
SSH_RETRY_MAX_DELAY: Final = 10.0


# =============================================================================
# Live Log
# =============================================================================

LIVELOG_DEFAULT_LIMIT: Final = 5 * 1024 * 1024  # 5MB
LIVELOG_DEFAULT_INTERVAL: Final = 1.0
LIVELOG_LEVEL: Final = "info"

# Exit code reported when the transport fails without an exit status
UNKNOWN_EXIT_CODE: Final = 255
