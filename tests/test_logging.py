from __future__ import annotations

from pathlib import Path

import pytest

from skystep.logging import LogConfig, setup_logging, teardown_logging
from skystep.pool import PoolCoordinator
from skystep.types import Credentials, Instance

pytestmark = [pytest.mark.unit]


class TestLogging:
    @pytest.mark.asyncio
    async def test_file_handler_captures_context(self, tmp_path: Path, provisioner):
        log_file = tmp_path / "logs" / "skystep.log"
        provisioner.free = [Instance(id="i-42", ip="10.0.0.42")]

        handlers = setup_logging(LogConfig(file=str(log_file), console=False))
        try:
            await PoolCoordinator(provisioner).try_reserve(Credentials(), "linux")
        finally:
            teardown_logging(handlers)

        content = log_file.read_text()
        assert "Reserved i-42 from pool linux" in content
        assert "component=pool" in content

    def test_no_handlers_without_outputs(self):
        handlers = setup_logging(LogConfig(console=False))
        teardown_logging(handlers)
        assert handlers == []

    def test_console_handler(self):
        handlers = setup_logging(LogConfig(level="DEBUG"))
        teardown_logging(handlers)
        assert len(handlers) == 1
