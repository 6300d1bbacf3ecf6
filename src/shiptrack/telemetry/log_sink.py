"""JSON Lines log sink for broadcast snapshots.

Writes one line per successful broadcast cycle, holding exactly the
``ships`` and ``timestamp`` that subscribers received.

Output format::

    {"ships":[{"timestamp":"...","ship_id":"SHIP1",...}],"timestamp":"18/10/2026, 09:00:01 UTC"}
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

from shiptrack.errors import SinkError

if TYPE_CHECKING:
    from shiptrack.models.messages import ShipsLogRecord

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "ships_log.jsonl"

DEFAULT_MAX_BYTES = 20 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 3


def default_log_path(log_dir: Path | str = "logs") -> Path:
    """Return ``<log_dir>/ships_log.jsonl``."""
    return Path(log_dir) / LOG_FILE_NAME


class _RecordFileHandler(RotatingFileHandler):
    """Rotating handler that raises write failures instead of printing them."""

    def handleError(self, record: logging.LogRecord) -> None:  # noqa: N802
        exc = sys.exc_info()[1]
        if isinstance(exc, SinkError):
            raise exc
        raise SinkError(f"Failed to write log record to {self.baseFilename}: {exc}")


class ShipLogSink:
    """Append-only JSONL sink with size-based rollover.

    Records go through a :class:`~logging.handlers.RotatingFileHandler`
    with a bare ``%(message)s`` format, so the file holds nothing but the
    JSON lines.  Rollover follows that handler: ``<name>.1`` …
    ``<name>.<backup_count>``, and it never happens when either
    *max_bytes* or *backup_count* is ``0``.

    Every OS-level failure is raised as :class:`SinkError`.

    Parameters:
        path: Destination file path.  Parent directories are created.
        max_bytes: Rotation threshold in bytes.
        backup_count: Number of rotated files to keep.
    """

    def __init__(
        self,
        path: Path,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES,
        backup_count: int = DEFAULT_BACKUP_COUNT,
    ) -> None:
        self._path = path
        self._max_bytes = max_bytes
        self._backup_count = backup_count
        self._handler: _RecordFileHandler | None = None
        self._record_count = 0

    @property
    def log_path(self) -> Path:
        return self._path

    @property
    def record_count(self) -> int:
        """Total records written."""
        return self._record_count

    def write(self, record: ShipsLogRecord) -> None:
        """Append *record* as one JSON line and flush it."""
        if self._handler is None:
            self._handler = self._open()
        self._handler.handle(logging.makeLogRecord({"msg": record.to_json()}))
        self._record_count += 1

    def close(self) -> None:
        """Flush and close the log file."""
        if self._handler is not None:
            self._handler.close()
            self._handler = None

    def _open(self) -> _RecordFileHandler:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SinkError(f"Failed to write log record to {self._path}: {exc}") from exc
        handler = _RecordFileHandler(
            self._path,
            maxBytes=self._max_bytes,
            backupCount=self._backup_count,
            encoding="utf-8",
            delay=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.debug("Writing ship log to %s", self._path)
        return handler
