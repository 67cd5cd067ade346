"""AWS EC2 provisioner for skystep.

Example:
    from skystep.providers.aws import EC2Provisioner

    engine = Engine(provisioner=EC2Provisioner(), ...)
"""

from skystep.providers.aws.provisioner import EC2Provisioner

__all__ = ["EC2Provisioner"]
