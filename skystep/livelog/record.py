"""Log records and line splitting."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

_LINE = re.compile(r"[^\n]*\n|[^\n]+")


@dataclass(frozen=True, slots=True)
class LogRecord:
    """One output line, numbered per writer."""

    number: int
    message: str
    timestamp: datetime
    level: str = "info"

    def to_dict(self) -> dict[str, Any]:
        return {
            "pos": self.number,
            "out": self.message,
            "time": self.timestamp.isoformat(),
            "level": self.level,
        }

    def to_json_line(self) -> bytes:
        return (json.dumps(self.to_dict(), ensure_ascii=False) + "\n").encode()


def split_lines(text: str) -> list[str]:
    """Split ``text`` into lines, each keeping its trailing line feed.

    Remote output is buffered, so one chunk may carry several lines.
    A trailing fragment without a line feed becomes its own line.
    """
    return _LINE.findall(text)


def encode_history(records: list[LogRecord]) -> bytes:
    """Serialize records as one JSON document per line."""
    return b"".join(r.to_json_line() for r in records)
