"""Stream event types

These types define the wire format of the job stream (Server-Sent Events):
- Every frame is "data: {json}\\n\\n" carrying one self-contained event
- Events are tagged by ``type`` and use camelCase keys
- Absent optional fields are omitted (exclude_none)
"""

import json
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from extraction import ErrorKind, LogLevel, LogRecord, RowResult

from .errors import format_error


class StreamEventType(str, Enum):
    """Event types sent over the job stream."""

    START = "start"
    TOTAL = "total"
    RESUME = "resume"
    PROGRESS = "progress"
    RESULT = "result"
    SAVED = "saved"
    HEARTBEAT = "heartbeat"
    LOG = "log"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_EVENT_TYPES = {StreamEventType.COMPLETE.value, StreamEventType.ERROR.value}


class StreamEvent(BaseModel):
    """Base class: camelCase aliases, enums as plain strings."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    type: str

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES


class StartEvent(StreamEvent):
    type: Literal["start"] = "start"
    job_id: str


class TotalEvent(StreamEvent):
    type: Literal["total"] = "total"
    count: int


class ResumeEvent(StreamEvent):
    type: Literal["resume"] = "resume"
    count: int
    message: str


class ProgressEvent(StreamEvent):
    type: Literal["progress"] = "progress"
    processed: int
    total: int
    percentage: int
    elapsed: int
    elapsed_formatted: str


class ResultEvent(StreamEvent):
    """One per processed row. ``error`` carries "KIND: message"."""

    type: Literal["result"] = "result"
    index: int
    original_text: str
    diseases: list[str] = Field(default_factory=list)
    error: str | None = None
    error_type: ErrorKind | None = None
    retryable: bool | None = None
    processing_time: int
    processing_time_formatted: str


class SavedEvent(StreamEvent):
    type: Literal["saved"] = "saved"
    count: int
    batch_file: str | None = None


class HeartbeatEvent(StreamEvent):
    type: Literal["heartbeat"] = "heartbeat"
    timestamp: int
    processed: int


class LogEvent(StreamEvent):
    type: Literal["log"] = "log"
    timestamp: str
    level: LogLevel
    message: str
    details: dict[str, Any] | None = None


class CompleteEvent(StreamEvent):
    type: Literal["complete"] = "complete"
    processed: int
    total: int
    elapsed: int
    elapsed_formatted: str
    success_count: int
    failure_count: int
    total_diseases: int
    saved_files: list[str] | None = None
    log_file: str | None = None


class ErrorEvent(StreamEvent):
    type: Literal["error"] = "error"
    message: str
    error_type: ErrorKind | None = None
    processed_count: int = 0


# ============================================================================
# Builders
# ============================================================================


def result_event(result: RowResult) -> ResultEvent:
    error = None
    if result.error is not None:
        error = format_error(result.error, result.error_message or "")
    return ResultEvent(
        index=result.index,
        original_text=result.original_text,
        diseases=result.diseases,
        error=error,
        error_type=result.error,
        retryable=result.retryable if result.error is not None else None,
        processing_time=result.processing_time_ms,
        processing_time_formatted=format_duration(result.processing_time_ms),
    )


def log_event(record: LogRecord) -> LogEvent:
    return LogEvent(
        timestamp=record.timestamp,
        level=record.level,
        message=record.message,
        details=record.details,
    )


def encode_event(event: StreamEvent) -> str:
    """Encode an event as one SSE frame: ``data: {json}\\n\\n``."""
    payload = event.model_dump(mode="json", by_alias=True, exclude_none=True)
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def format_duration(ms: int | float) -> str:
    """Render a duration for the client, e.g. "3分12秒", "2小时5分钟"."""
    seconds = int(ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}天{hours % 24}小时"
    if hours > 0:
        return f"{hours}小时{minutes % 60}分钟"
    if minutes > 0:
        return f"{minutes}分{seconds % 60}秒"
    return f"{seconds}秒"
