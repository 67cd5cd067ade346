"""End-to-end engine flows with fake collaborators."""

from __future__ import annotations

import pytest

from skystep import Engine
from skystep.constants import NETWORK_COMMAND
from skystep.core.exceptions import ConfigurationError
from skystep.livelog import LogWriter
from skystep.transport import RemoteExitError
from skystep.types import Instance, ResourceSpec

pytestmark = [pytest.mark.unit]

RESOURCE = {
    "kind": "resource",
    "image": "ami-0123",
    "user": "ubuntu",
    "private_key": "KEY",
    "root": "/tmp/ws",
}

STEP = {
    "kind": "step",
    "name": "build",
    "command": "/bin/sh",
    "args": ["/tmp/ws/build.sh"],
    "working_dir": "/tmp/ws",
    "envs": {"CI": "true"},
    "files": [{"path": "/tmp/ws/build.sh", "data": "make\n"}],
}


@pytest.fixture
def engine(provisioner, remote, options) -> Engine:
    return Engine(provisioner, options, transport_factory=remote.factory)


class TestEngine:
    @pytest.mark.asyncio
    async def test_setup_run_destroy(self, engine, provisioner, remote, log_client):
        remote.stdout = b"building\ndone\n"

        spec = await engine.setup(RESOURCE)
        writer = await LogWriter.create(log_client, "k", echo=False, interval=60)
        state = await engine.run(spec, STEP, writer)
        await writer.close()
        await engine.destroy(spec)

        assert isinstance(spec, ResourceSpec)
        assert spec.bound
        assert state.succeeded
        assert remote.commands == [NETWORK_COMMAND, "/bin/sh /tmp/ws/build.sh"]
        assert [r.message for r in writer.history] == ["building\n", "done\n"]
        assert provisioner.destroyed == [Instance(id=spec.instance_id, ip=spec.ip)]

    @pytest.mark.asyncio
    async def test_failing_step_reports_exit_code(self, engine, provisioner, remote, log_client):
        spec = await engine.setup(RESOURCE)
        remote.run_error = RemoteExitError("/bin/sh /tmp/ws/build.sh", 2)

        writer = await LogWriter.create(log_client, "k", echo=False)
        state = await engine.run(spec, STEP, writer)
        await writer.close()

        assert state.exit_code == 2
        assert not state.succeeded

    @pytest.mark.asyncio
    async def test_decoded_specs_are_accepted(self, engine):
        spec = ResourceSpec(image="ami-0123", root="/tmp/ws")

        result = await engine.setup(spec)

        assert result is spec
        assert spec.bound

    @pytest.mark.asyncio
    async def test_step_passed_as_resource_raises(self, engine):
        with pytest.raises(ConfigurationError, match="Expected a resource spec"):
            await engine.setup(STEP)

    @pytest.mark.asyncio
    async def test_resource_passed_as_step_raises(self, engine, log_client):
        writer = await LogWriter.create(log_client, "k", echo=False)
        with pytest.raises(ConfigurationError, match="Expected a step spec"):
            await engine.run(RESOURCE, RESOURCE, writer)
        await writer.close()

    @pytest.mark.asyncio
    async def test_unknown_kind_raises(self, engine):
        with pytest.raises(ConfigurationError):
            await engine.setup({"kind": "volume"})

    @pytest.mark.asyncio
    async def test_ping(self, engine, provisioner):
        provisioner.ping_error = RuntimeError("AuthFailure")

        with pytest.raises(RuntimeError, match="AuthFailure"):
            await engine.ping(ResourceSpec().credentials)
