"""Remote-shell transport used for staging and step execution."""

from collections.abc import Callable

from skystep.transport.ssh import (
    OutputSink,
    RemoteExitError,
    RemoteFiles,
    RemoteSession,
    SSHTransport,
)

type TransportFactory = Callable[[str, str, str], SSHTransport]
"""Builds a transport from (ip, user, private_key)."""

__all__ = [
    "OutputSink",
    "RemoteExitError",
    "RemoteFiles",
    "RemoteSession",
    "SSHTransport",
    "TransportFactory",
]
