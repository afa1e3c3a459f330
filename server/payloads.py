"""REST API request/response payload types

These types define the contract for the REST API endpoints:
- /api/analyze/stream: Streaming batch job (body extends pipeline.JobRequest)
- /api/retry: Re-run extraction for a single row
- /api/validate-key: Check an API key against a provider
- /api/jobs/{job_id}/checkpoint: Resume information for a job

All payloads use camelCase on the wire, matching the browser client.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pipeline import JobRequest


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnalyzeRequest(JobRequest):
    """Request body for /api/analyze/stream.

    Adds the LLM selection and an optional concurrency override to the job.
    """

    model_id: str | None = None  # "provider/model", defaults to the configured model
    api_key: str | None = None  # Falls back to the configured key
    concurrency: int | None = Field(default=None, ge=1, le=100)


class RetryRequest(CamelModel):
    """Request body for /api/retry."""

    text: str = ""
    system_prompt: str | None = None
    prompt_template: str | None = None
    user_prompt: str | None = None
    model_id: str | None = None
    api_key: str | None = None


class RetryResponse(CamelModel):
    success: bool = True
    diseases: list[str]
    raw_response: str | None = None


class ValidateKeyRequest(CamelModel):
    api_key: str = ""
    model_id: str | None = None


class ValidateKeyResponse(CamelModel):
    success: bool
    message: str
    provider: str | None = None  # Display name, only on success
    model: str | None = None


class CheckpointSummary(CamelModel):
    """Response for /api/jobs/{job_id}/checkpoint."""

    job_id: str
    processed_count: int
    success_count: int
    failure_count: int
    total_diseases: int
    saved_files: list[str] = []
    running: bool = False
