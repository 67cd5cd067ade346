"""SFTP staging helpers shared by setup and step execution."""

from __future__ import annotations

from skystep.core.exceptions import StagingError
from skystep.transport import RemoteFiles


async def mkdir(files: RemoteFiles, path: str, mode: int) -> None:
    try:
        await files.mkdir_all(path, mode)
    except Exception as e:
        raise StagingError(path, f"cannot create directory: {e}") from e


async def upload(files: RemoteFiles, path: str, data: bytes, mode: int) -> None:
    try:
        await files.write(path, data, mode)
    except Exception as e:
        raise StagingError(path, f"cannot write file: {e}") from e
