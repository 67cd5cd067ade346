"""EC2 client factory.

Each call opens an aioboto3 client bound to one set of credentials,
since a runner may serve several accounts.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

import aioboto3

from skystep.types import Credentials

type EC2ClientFactory = Callable[[Credentials], AbstractAsyncContextManager[Any]]
"""Factory that returns an async context manager for an EC2 client."""


@asynccontextmanager
async def ec2_client(credentials: Credentials) -> AsyncIterator[Any]:
    """Open an EC2 client for ``credentials``.

    Empty keys fall back to the default botocore credential chain.
    """
    session = aioboto3.Session(
        aws_access_key_id=credentials.access_key_id or None,
        aws_secret_access_key=credentials.secret_access_key or None,
        region_name=credentials.region,
    )
    async with session.client("ec2") as client:  # type: ignore[reportGeneralTypeIssues]
        yield client


__all__ = ["EC2ClientFactory", "ec2_client"]
