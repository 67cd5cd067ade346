"""EC2 provisioner.

Creates and terminates instances with aioboto3 and uses instance tags
as the pool inventory: an instance belongs to a pool when it carries
the runner and pool tags, and is free while it has no status tag.
"""

from __future__ import annotations

from typing import Any

from botocore.exceptions import ClientError
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from skystep.constants import (
    RUNNER_IDENTITY,
    STATUS_IN_PROGRESS,
    InstanceState,
    RunnerTag,
)
from skystep.providers.aws.clients import EC2ClientFactory, ec2_client
from skystep.providers.base import ProvisionArgs
from skystep.types import Credentials, Instance

log = logger.bind(component="ec2")

INSTANCE_RUNNING_WAIT_DELAY = 5
INSTANCE_RUNNING_MAX_ATTEMPTS = 120


def _tag_list(tags: dict[str, str]) -> list[dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in sorted(tags.items())]


def _tags_of(raw: dict[str, Any]) -> dict[str, str]:
    return {t["Key"]: t["Value"] for t in raw.get("Tags", [])}


def _is_free(raw: dict[str, Any]) -> bool:
    return RunnerTag.STATUS not in _tags_of(raw)


def _address(raw: dict[str, Any], private_ip: bool) -> str:
    if private_ip:
        return raw.get("PrivateIpAddress", "")
    return raw.get("PublicIpAddress") or raw.get("PrivateIpAddress", "")


def _run_args(args: ProvisionArgs) -> dict[str, Any]:
    ebs: dict[str, Any] = {
        "VolumeSize": args.volume_size,
        "VolumeType": args.volume_type,
        "DeleteOnTermination": True,
    }
    if args.volume_iops:
        ebs["Iops"] = args.volume_iops

    interface: dict[str, Any] = {
        "DeviceIndex": 0,
        "AssociatePublicIpAddress": not args.private_ip,
        "DeleteOnTermination": True,
    }
    if args.subnet:
        interface["SubnetId"] = args.subnet
    if args.groups:
        interface["Groups"] = list(args.groups)

    run_args: dict[str, Any] = {
        "ImageId": args.image,
        "InstanceType": args.size,
        "MinCount": 1,
        "MaxCount": 1,
        "UserData": args.user_data,
        "NetworkInterfaces": [interface],
        "BlockDeviceMappings": [{"DeviceName": args.device, "Ebs": ebs}],
        "TagSpecifications": [
            {"ResourceType": "instance", "Tags": _tag_list(args.tags)},
        ],
    }
    if args.iam_profile_arn:
        run_args["IamInstanceProfile"] = {"Arn": args.iam_profile_arn}
    return run_args


class EC2Provisioner:
    """Provisioner backed by EC2."""

    def __init__(
        self,
        client_factory: EC2ClientFactory = ec2_client,
        *,
        wait_delay: int = INSTANCE_RUNNING_WAIT_DELAY,
        wait_max_attempts: int = INSTANCE_RUNNING_MAX_ATTEMPTS,
    ) -> None:
        self._ec2 = client_factory
        self._wait_delay = wait_delay
        self._wait_max_attempts = wait_max_attempts

    async def create(self, credentials: Credentials, args: ProvisionArgs) -> Instance:
        async with self._ec2(credentials) as ec2:
            response = await ec2.run_instances(**_run_args(args))
            instance_id = response["Instances"][0]["InstanceId"]
            log.debug("Launched {id}, waiting for running state", id=instance_id)

            try:
                waiter = ec2.get_waiter("instance_running")
                await waiter.wait(
                    InstanceIds=[instance_id],
                    WaiterConfig={
                        "Delay": self._wait_delay,
                        "MaxAttempts": self._wait_max_attempts,
                    },
                )
                raw = await self._describe(ec2, instance_id)
            except Exception:
                log.warning("Instance {id} never became ready, terminating", id=instance_id)
                await ec2.terminate_instances(InstanceIds=[instance_id])
                raise

        return Instance(id=instance_id, ip=_address(raw, args.private_ip))

    async def destroy(self, credentials: Credentials, instance: Instance) -> None:
        if not instance.id:
            raise ValueError("Cannot destroy an instance without an id")
        async with self._ec2(credentials) as ec2:
            await ec2.terminate_instances(InstanceIds=[instance.id])
        log.debug("Terminated {id}", id=instance.id)

    async def ping(self, credentials: Credentials) -> None:
        async with self._ec2(credentials) as ec2:
            await ec2.describe_regions(RegionNames=[credentials.region])

    async def try_reserve(self, credentials: Credentials, pool_name: str) -> Instance | None:
        async with self._ec2(credentials) as ec2:
            free = [i for i in await self._pool_instances(ec2, pool_name) if _is_free(i)]
            if not free:
                return None

            chosen = free[0]
            await ec2.create_tags(
                Resources=[chosen["InstanceId"]],
                Tags=[{"Key": RunnerTag.STATUS, "Value": STATUS_IN_PROGRESS}],
            )

        # a pool instance launched without a public address only has its private one
        return Instance(id=chosen["InstanceId"], ip=_address(chosen, private_ip=False))

    async def count_free(self, credentials: Credentials, pool_name: str) -> int:
        async with self._ec2(credentials) as ec2:
            return sum(1 for i in await self._pool_instances(ec2, pool_name) if _is_free(i))

    async def _pool_instances(self, ec2: Any, pool_name: str) -> list[dict[str, Any]]:
        paginator = ec2.get_paginator("describe_instances")
        found: list[dict[str, Any]] = []
        async for page in paginator.paginate(
            Filters=[
                {"Name": f"tag:{RunnerTag.RUNNER}", "Values": [RUNNER_IDENTITY]},
                {"Name": f"tag:{RunnerTag.POOL}", "Values": [pool_name]},
                {"Name": "instance-state-name", "Values": [InstanceState.RUNNING]},
            ]
        ):
            for reservation in page.get("Reservations", []):
                found.extend(reservation.get("Instances", []))
        return found

    @retry(
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(ClientError),
        reraise=True,
    )
    async def _describe(self, ec2: Any, instance_id: str) -> dict[str, Any]:
        response = await ec2.describe_instances(InstanceIds=[instance_id])
        return response["Reservations"][0]["Instances"][0]
