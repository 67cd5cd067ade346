"""Live log streaming to a central log service."""

from skystep.livelog.client import HttpLogClient, LogClient
from skystep.livelog.record import LogRecord, encode_history, split_lines
from skystep.livelog.writer import LogWriter

__all__ = [
    "HttpLogClient",
    "LogClient",
    "LogRecord",
    "LogWriter",
    "encode_history",
    "split_lines",
]
