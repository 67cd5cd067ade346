"""Custom exception hierarchy for skystep.

All skystep-specific exceptions inherit from SkystepError, enabling
callers to catch every engine failure with a single except clause.
"""

from __future__ import annotations


class SkystepError(Exception):
    """Base exception for all skystep errors."""


class ConfigurationError(SkystepError):
    """Raised for invalid configuration or malformed spec payloads."""


class ProvisioningError(SkystepError):
    """Raised when the provisioner fails to create an instance.

    No instance exists when this is raised, so there is nothing to clean up.
    """


class ConnectivityError(SkystepError):
    """Raised when the SSH connection, SFTP channel or session cannot be opened."""

    def __init__(self, ip: str, reason: str) -> None:
        self.ip = ip
        self.reason = reason
        super().__init__(f"Cannot reach {ip}: {reason}")


class StagingError(SkystepError):
    """Raised when a directory or file cannot be staged on the instance."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot stage {path}: {reason}")


class NetworkBootstrapError(SkystepError):
    """Raised when the container network cannot be created on the instance."""

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"Network bootstrap '{command}' failed: {reason}")


class LogUploadError(SkystepError):
    """Raised by LogWriter.close() when the full-history upload fails."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Log upload for {key} failed: {reason}")
