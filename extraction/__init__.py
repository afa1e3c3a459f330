"""Disease-extraction domain package

This package provides:
- Domain types (Job, RowTask, RowResult, LogRecord)
- Enums (ErrorKind, LogLevel, JobStatus)
- DiseaseParser for turning LLM replies into disease lists
- Prompt building and column extraction helpers
"""

from .columns import InputError, clean_rows, extract_column
from .enums import ErrorKind, JobStatus, LogLevel
from .parser import DiseaseParser, parse_diseases
from .prompts import (
    DEFAULT_SYSTEM_PROMPT,
    PROMPT_TEMPLATES,
    build_messages,
    build_user_prompt,
    resolve_system_prompt,
)
from .types import Job, LogRecord, RowResult, RowTask, now_ms

__all__ = [
    # Enums
    "ErrorKind",
    "JobStatus",
    "LogLevel",
    # Types
    "Job",
    "LogRecord",
    "RowResult",
    "RowTask",
    "now_ms",
    # Parsing
    "DiseaseParser",
    "parse_diseases",
    # Prompts
    "DEFAULT_SYSTEM_PROMPT",
    "PROMPT_TEMPLATES",
    "build_messages",
    "build_user_prompt",
    "resolve_system_prompt",
    # Input
    "InputError",
    "clean_rows",
    "extract_column",
]
