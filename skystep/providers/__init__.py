"""Provisioning collaborators."""

from skystep.providers.base import ProvisionArgs, Provisioner

__all__ = ["ProvisionArgs", "Provisioner"]
