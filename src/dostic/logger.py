from __future__ import annotations

import logging
import logging.handlers
import os
from datetime import datetime, timezone

SYSLOG_SOCKET = "/dev/log"
SYSLOG_TAG = "dostic"


class KeyValueFormatter(logging.Formatter):
    """Formats records as ``key=value`` pairs for log aggregators."""

    def __init__(self, include_timestamp: bool = True) -> None:
        super().__init__()
        self._include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage().replace('"', '\\"')
        parts = []
        if self._include_timestamp:
            timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
            parts.append(f"ts={timestamp.isoformat(timespec='seconds')}")
        parts.extend([f"level={record.levelname}", f"logger={record.name}", f'msg="{message}"'])
        if record.exc_info:
            parts.append(f"exc={self.formatException(record.exc_info)!r}")
        return " ".join(parts)


def configure_logging(level: str = "INFO", syslog: bool = False) -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler()
    console.setFormatter(KeyValueFormatter())
    root.addHandler(console)

    if syslog and os.path.exists(SYSLOG_SOCKET):
        # journald/syslog add their own timestamp.
        handler = logging.handlers.SysLogHandler(address=SYSLOG_SOCKET)
        handler.ident = f"{SYSLOG_TAG}: "
        handler.setFormatter(KeyValueFormatter(include_timestamp=False))
        root.addHandler(handler)
