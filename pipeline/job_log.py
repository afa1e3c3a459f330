"""Per-job structured log: JSONL file, live ``log`` events and stdlib logging."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from extraction import LogLevel, LogRecord

from .events import log_event
from .stream import EventStream

logger = logging.getLogger(__name__)

STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class RowLogger:
    """Log sink used by the invoker when no job is attached (e.g. single retries)."""

    async def log(self, level: LogLevel, message: str, details: dict[str, Any] | None = None) -> None:
        logger.log(STDLIB_LEVELS[LogLevel(level)], "%s %s", message, details or "")


class JobLogger(RowLogger):
    """Append-only log for one job.

    Every record is written as one JSON line to ``log_path``, mirrored to the
    stream as a ``log`` event and forwarded to the ``logging`` module.
    """

    def __init__(self, job_id: str, log_path: Path, stream: EventStream | None = None):
        self.job_id = job_id
        self.log_path = log_path
        self.stream = stream
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    async def log(self, level: LogLevel, message: str, details: dict[str, Any] | None = None) -> None:
        record = LogRecord(
            timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            level=level,
            message=message,
            details=details,
        )
        await asyncio.to_thread(self._append, record)
        logger.log(STDLIB_LEVELS[LogLevel(level)], "[%s] %s", self.job_id, message)
        if self.stream is not None:
            await self.stream.emit(log_event(record))

    async def info(self, message: str, details: dict[str, Any] | None = None) -> None:
        await self.log(LogLevel.INFO, message, details)

    async def warn(self, message: str, details: dict[str, Any] | None = None) -> None:
        await self.log(LogLevel.WARN, message, details)

    async def error(self, message: str, details: dict[str, Any] | None = None) -> None:
        await self.log(LogLevel.ERROR, message, details)

    def _append(self, record: LogRecord) -> None:
        line = json.dumps(record.model_dump(mode="json", exclude_none=True), ensure_ascii=False)
        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    def read_records(self) -> list[LogRecord]:
        """All records written so far, oldest first."""
        if not self.log_path.exists():
            return []
        with self.log_path.open(encoding="utf-8") as f:
            return [LogRecord.model_validate_json(line) for line in f if line.strip()]
