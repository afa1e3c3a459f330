"""Domain types for disease extraction

These types are the single source of truth for jobs, rows and per-row
results, used by the pipeline, checkpoint files and the stream wire format.

Key feature: ConfigDict(use_enum_values=True) keeps enums serialized as
plain strings (e.g., "LLM_TIMEOUT"), matching what the browser client reads.
"""

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import ErrorKind, JobStatus, LogLevel


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Job(BaseModel):
    """One extraction job.

    Lifecycle: pending -> running -> {completed | interrupted | errored}.
    """

    model_config = ConfigDict(use_enum_values=True)

    job_id: str
    total_rows: int = 0
    resume_offset: int = Field(default=0, ge=0)
    started_at: int = Field(default_factory=now_ms)
    status: JobStatus = JobStatus.PENDING


class RowTask(BaseModel):
    """A single row to send to the LLM."""

    index: int = Field(ge=0)  # 0-based position in the full row list
    text: str
    attempt: int = 0

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("row text must be non-empty after trimming")
        return value


class RowResult(BaseModel):
    """Outcome of processing one row. Exactly one exists per processed index."""

    model_config = ConfigDict(use_enum_values=True, frozen=True)

    index: int
    original_text: str
    diseases: list[str] = Field(default_factory=list)
    error: ErrorKind | None = None
    error_message: str | None = None
    retryable: bool = False
    processing_time_ms: int = 0
    attempts: int = 1
    raw_response: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @classmethod
    def from_legacy_event(cls, entry: dict[str, Any]) -> "RowResult":
        """Rebuild a result from a stored ``result`` wire event.

        Older checkpoint files kept the full list of streamed result events:
        1-based ``index``, camelCase keys and ``error`` formatted as
        ``"KIND: message"``.
        """
        error_kind = entry.get("errorType")
        error_text = entry.get("error")
        message = None
        if error_text:
            kind_part, sep, rest = str(error_text).partition(": ")
            if sep and kind_part in ErrorKind.__members__:
                error_kind = error_kind or kind_part
                message = rest
            else:
                message = str(error_text)
            if error_kind not in ErrorKind.__members__:
                error_kind = ErrorKind.UNKNOWN.value
        else:
            error_kind = None

        return cls(
            index=max(int(entry.get("index", 1)) - 1, 0),
            original_text=str(entry.get("originalText", "")),
            diseases=[str(d) for d in entry.get("diseases") or []],
            error=error_kind,
            error_message=message,
            retryable=error_kind is not None,
            processing_time_ms=int(entry.get("processingTime") or 0),
        )


class LogRecord(BaseModel):
    """One structured entry in a job's append-only log."""

    model_config = ConfigDict(use_enum_values=True)

    timestamp: str
    level: LogLevel
    message: str
    details: dict[str, Any] | None = None
