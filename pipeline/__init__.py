"""Streaming batch pipeline for disease extraction

This package provides:
- RetryableInvoker: one row -> one RowResult (retry, deadline, classification)
- BatchScheduler: bounded-concurrency groups with checkpoint/heartbeat triggers
- CheckpointStore and BatchExporter for resumable jobs
- EventStream and the stream event types (SSE wire format)
- JobController: the job lifecycle, driven by a JobContext
"""

from .checkpoint import (
    BatchRefsCheckpoint,
    Checkpoint,
    CheckpointStore,
    FullResultsCheckpoint,
    JobAggregates,
)
from .context import JobContext, JobPaths, log_filename
from .controller import JOB_ID_PATTERN, JobController, JobOptions, JobRegistry, JobRequest
from .deadline import DeadlineExceeded, run_with_deadline
from .errors import (
    CLASSIFICATION_RULES,
    JobAlreadyRunningError,
    classify_error,
    classify_message,
    format_error,
)
from .events import (
    CompleteEvent,
    ErrorEvent,
    HeartbeatEvent,
    LogEvent,
    ProgressEvent,
    ResultEvent,
    ResumeEvent,
    SavedEvent,
    StartEvent,
    StreamEvent,
    StreamEventType,
    TotalEvent,
    encode_event,
    format_duration,
    result_event,
)
from .exports import EXPORT_HEADERS, BatchExporter
from .invoker import RetryableInvoker, RetryPolicy
from .job_log import JobLogger, RowLogger
from .scheduler import BatchScheduler, CheckpointDue, Heartbeat, RowCompleted, SchedulerEvent
from .stream import EventStream

__all__ = [
    # Errors
    "CLASSIFICATION_RULES",
    "DeadlineExceeded",
    "JobAlreadyRunningError",
    "classify_error",
    "classify_message",
    "format_error",
    "run_with_deadline",
    # Invoker / scheduler
    "RetryPolicy",
    "RetryableInvoker",
    "BatchScheduler",
    "CheckpointDue",
    "Heartbeat",
    "RowCompleted",
    "SchedulerEvent",
    # Persistence
    "BatchExporter",
    "BatchRefsCheckpoint",
    "Checkpoint",
    "CheckpointStore",
    "EXPORT_HEADERS",
    "FullResultsCheckpoint",
    "JobAggregates",
    # Stream
    "CompleteEvent",
    "ErrorEvent",
    "EventStream",
    "HeartbeatEvent",
    "JobLogger",
    "LogEvent",
    "ProgressEvent",
    "ResultEvent",
    "ResumeEvent",
    "RowLogger",
    "SavedEvent",
    "StartEvent",
    "StreamEvent",
    "StreamEventType",
    "TotalEvent",
    "encode_event",
    "format_duration",
    "result_event",
    # Jobs
    "JOB_ID_PATTERN",
    "JobContext",
    "JobController",
    "JobOptions",
    "JobPaths",
    "JobRegistry",
    "JobRequest",
    "log_filename",
]
