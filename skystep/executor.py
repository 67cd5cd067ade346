"""Remote step execution.

SSH offers no way to set the working directory or environment of a
remote command, so every step file gets a generated preamble (``cd``
plus one export per secret and variable) prepended before upload.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

from loguru import logger

from skystep import staging
from skystep.constants import UNKNOWN_EXIT_CODE
from skystep.core.exceptions import ConnectivityError
from skystep.transport import OutputSink, RemoteExitError, SSHTransport, TransportFactory
from skystep.types import Platform, ResourceSpec, Secret, State, StepSpec

if TYPE_CHECKING:
    from loguru import Logger


# =============================================================================
# Script Preamble
# =============================================================================


def _quote(value: str) -> str:
    # double-quoted, backslash-escaped literal
    return json.dumps(value, ensure_ascii=False)


def export_line(platform: Platform, key: str, value: str) -> str:
    """Render one environment export in the platform's shell syntax."""
    if platform.is_windows:
        return f"$Env:{key} = {_quote(value)}\n"
    return f"export {key}={_quote(value)}\n"


def render_preamble(
    platform: Platform,
    working_dir: str,
    secrets: Iterable[Secret],
    envs: Mapping[str, str],
) -> str:
    """Build the lines prepended to every step script.

    Secrets keep their declared order; environment variables are sorted
    by key so the script is deterministic.
    """
    lines = [f"cd {working_dir}\n"]
    lines.extend(export_line(platform, s.name, s.data) for s in secrets)
    lines.extend(export_line(platform, k, envs[k]) for k in sorted(envs))
    return "".join(lines)


def exit_state(error: BaseException | None) -> State:
    """Map a command outcome to a State."""
    code = 0
    if error is not None:
        code = UNKNOWN_EXIT_CODE
    if isinstance(error, RemoteExitError) and error.exit_status is not None:
        code = error.exit_status
    return State(exit_code=code, exited=True, oom_killed=False, error=error)


# =============================================================================
# Executor
# =============================================================================


class StepExecutor:
    """Runs one pipeline step on an already prepared instance."""

    def __init__(
        self,
        *,
        transport_factory: TransportFactory = SSHTransport,
        log: Logger | None = None,
    ) -> None:
        self._transport = transport_factory
        self._log = log or logger.bind(component="executor")

    async def run(self, spec: ResourceSpec, step: StepSpec, output: OutputSink) -> State:
        """Run ``step`` on the instance bound to ``spec``.

        A failing command is not an error here: its exit code is captured
        in the returned State, with the command error attached.

        Raises:
            ConnectivityError: SSH, SFTP or the command session failed.
            StagingError: A step file could not be uploaded.
            asyncio.CancelledError: The calling task was cancelled. A KILL
                signal is sent to the remote process first, best effort.
        """
        log = self._log.bind(instance_id=spec.instance_id, ip=spec.ip, step=step.name)

        # the instance already answered during setup, so no retry here
        transport = self._transport(spec.ip, spec.user, spec.private_key)
        try:
            await transport.connect_once()
        except Exception as e:
            log.debug("Failed to connect over ssh: {error}", error=e)
            raise ConnectivityError(spec.ip, str(e)) from e

        try:
            await self._upload_scripts(transport, spec, step, log)
            return await self._execute(transport, spec, step, output, log)
        finally:
            await transport.close()

    async def _upload_scripts(
        self, transport: SSHTransport, spec: ResourceSpec, step: StepSpec, log: Logger
    ) -> None:
        preamble = render_preamble(
            spec.platform, step.working_dir, step.secrets, step.envs
        ).encode()
        async with contextlib.AsyncExitStack() as stack:
            try:
                files = await stack.enter_async_context(transport.sftp())
            except Exception as e:
                log.debug("Failed to open sftp: {error}", error=e)
                raise ConnectivityError(spec.ip, f"cannot open sftp: {e}") from e

            for file in step.files:
                try:
                    await staging.upload(files, file.path, preamble + file.data, file.mode)
                except Exception as e:
                    log.error("Cannot write file {path}: {error}", path=file.path, error=e)
                    raise

    async def _execute(
        self,
        transport: SSHTransport,
        spec: ResourceSpec,
        step: StepSpec,
        output: OutputSink,
        log: Logger,
    ) -> State:
        async with contextlib.AsyncExitStack() as stack:
            try:
                session = await stack.enter_async_context(transport.session())
            except Exception as e:
                log.debug("Failed to open session: {error}", error=e)
                raise ConnectivityError(spec.ip, f"cannot open session: {e}") from e

            log.debug("ssh session started")
            command = asyncio.ensure_future(
                session.run(step.command_line, stdout=output, stderr=output)
            )
            try:
                error = await _outcome(command)
            except asyncio.CancelledError:
                # many sshd builds ignore signal requests; the remote process may survive
                try:
                    session.signal("KILL")
                except Exception as e:
                    log.debug("Kill remote process: {error}", error=e)
                command.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await command
                log.debug("ssh session killed")
                raise

        state = exit_state(error)
        log.debug("ssh session finished with exit code {code}", code=state.exit_code)
        return state


async def _outcome(command: asyncio.Future[None]) -> Exception | None:
    try:
        await asyncio.shield(command)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        return e
    return None
