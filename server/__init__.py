"""Server-side components for the disease extractor

This package contains the FastAPI server, its settings and the REST API payloads.
Job events are produced by the pipeline package and streamed as SSE.
"""

from .app import app
from .payloads import (
    AnalyzeRequest,
    CheckpointSummary,
    RetryRequest,
    RetryResponse,
    ValidateKeyRequest,
    ValidateKeyResponse,
)
from .settings import Settings, get_settings

__all__ = [
    "app",
    "AnalyzeRequest",
    "CheckpointSummary",
    "RetryRequest",
    "RetryResponse",
    "Settings",
    "ValidateKeyRequest",
    "ValidateKeyResponse",
    "get_settings",
]
