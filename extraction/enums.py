"""Enums for the disease-extraction domain

Shared by the pipeline, the HTTP server and the stream wire format.
Values are the strings the browser client expects.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Classified reason a row (or a whole job) failed."""

    LLM_TIMEOUT = "LLM_TIMEOUT"
    NETWORK = "NETWORK"
    RESPONSE_PARSE = "RESPONSE_PARSE"
    LLM_CALL = "LLM_CALL"
    UNKNOWN = "UNKNOWN"
    INPUT = "INPUT"  # Job-level only: bad table, missing column, no rows


class LogLevel(str, Enum):
    """Severity of a per-job log record."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class JobStatus(str, Enum):
    """Lifecycle state of an extraction job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    ERRORED = "errored"
