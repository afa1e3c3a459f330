"""FastAPI server for streaming disease extraction

Includes:
- SSE streaming endpoint for resumable batch jobs
- Job control: cancel, checkpoint summary, batch export and log downloads
- Single-row retry and API key validation
"""

import logging
from collections.abc import AsyncGenerator, Callable

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, StreamingResponse

from extraction import RowTask, now_ms, resolve_system_prompt
from llm_service import (
    PROVIDER_CATALOG,
    LLMService,
    create_service,
    is_known_provider,
    provider_name,
)
from pipeline import (
    JOB_ID_PATTERN,
    BatchExporter,
    BatchRefsCheckpoint,
    CheckpointStore,
    EventStream,
    JobAlreadyRunningError,
    JobContext,
    JobController,
    JobPaths,
    JobRegistry,
    RetryableInvoker,
    format_error,
)

from .payloads import (
    AnalyzeRequest,
    CheckpointSummary,
    RetryRequest,
    RetryResponse,
    ValidateKeyRequest,
    ValidateKeyResponse,
)
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# (status, message, needles): first rule whose needle appears in the error wins
KEY_FAILURE_RULES = (
    (401, "API Key 无效或无权限，请检查 API Key 是否正确", ("401", "Unauthorized", "API key", "invalid")),
    (429, "API Key 的配额已用完或超出限制，请检查账户状态", ("quota", "limit", "429")),
    (504, "API 请求超时，请检查网络连接", ("timeout", "ETIMEDOUT")),
    (503, "网络连接失败，请检查网络", ("network", "ECONNREFUSED", "ENOTFOUND")),
)

LLMFactory = Callable[[str, str], LLMService]


def get_llm_factory(settings: Settings = Depends(get_settings)) -> LLMFactory:
    """Build LLM services from a "provider/model" id and key. Overridden in tests."""

    def factory(model_id: str, api_key: str) -> LLMService:
        return create_service(model_id, api_key, temperature=settings.llm_temperature)

    return factory


def key_failure(error_text: str) -> tuple[int, str]:
    for status, message, needles in KEY_FAILURE_RULES:
        if any(needle in error_text for needle in needles):
            return status, message
    return 500, f"验证失败: {error_text}"


def _require_job_id(job_id: str) -> None:
    if not JOB_ID_PATTERN.match(job_id):
        raise HTTPException(status_code=400, detail=f"Invalid job id: {job_id}")


# --- FastAPI App ---

app = FastAPI(
    title="Disease Extractor",
    description="Streaming, resumable disease-name extraction over spreadsheet rows",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Running jobs by id; one process serves each job id at most once at a time
jobs = JobRegistry()


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "runningJobs": len(jobs)}


@app.get("/api/models")
async def list_models() -> dict:
    """Known providers and models for the settings page."""
    return {"providers": PROVIDER_CATALOG, "default": get_settings().default_model_id}


# ============================================================================
# Streaming job
# ============================================================================


@app.post("/api/analyze/stream")
async def analyze_stream(
    request: AnalyzeRequest,
    settings: Settings = Depends(get_settings),
    llm_factory: LLMFactory = Depends(get_llm_factory),
):
    """Run a batch job and stream its events (SSE).

    The job runs as its own task. If the client disconnects, the job is
    cancelled cooperatively: the in-flight group finishes and a checkpoint
    is written, so the job can be resumed with the same jobId.
    """
    job_id = request.job_id or str(now_ms())
    model_id = request.model_id or settings.default_model_id

    try:
        service = llm_factory(model_id, request.api_key or settings.llm_api_key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    stream = EventStream(settings.stream_queue_size)
    context = JobContext.create(job_id, settings.data_dir, stream)
    controller = JobController(request, service, context, settings.job_options(request.concurrency))

    # Run in background task so we can stream events; the registry holds it
    # until the job ends, even after the client goes away
    try:
        task = jobs.start(controller)
    except JobAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info("Starting job %s (%s, resumeFrom=%d)", job_id, model_id, request.resume_from)

    async def event_generator() -> AsyncGenerator[str, None]:
        try:
            async for frame in stream.frames(task):
                yield frame
        finally:
            if not stream.closed:
                logger.info("Client disconnected from job %s, stopping after current group", job_id)
                stream.detach()
                controller.cancel()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ============================================================================
# Job control
# ============================================================================


@app.post("/api/jobs/{job_id}/cancel")
async def cancel_job(job_id: str) -> dict:
    """Stop a running job after its in-flight group; the checkpoint is kept."""
    _require_job_id(job_id)
    controller = jobs.get(job_id)
    if controller is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} is not running")
    controller.cancel()
    return {"success": True, "jobId": job_id, "message": "已请求停止任务"}


@app.get("/api/jobs/{job_id}/checkpoint", response_model=CheckpointSummary)
async def get_checkpoint(job_id: str, settings: Settings = Depends(get_settings)) -> CheckpointSummary:
    """Resume information for a job, if a checkpoint exists."""
    _require_job_id(job_id)
    store = CheckpointStore(JobPaths(settings.data_dir).checkpoint_dir)
    checkpoint = store.load(job_id)
    if checkpoint is None:
        raise HTTPException(status_code=404, detail=f"No checkpoint for job {job_id}")

    saved_files = checkpoint.saved_files if isinstance(checkpoint, BatchRefsCheckpoint) else []
    return CheckpointSummary(
        job_id=job_id,
        processed_count=checkpoint.processed_count,
        success_count=checkpoint.success_count,
        failure_count=checkpoint.failure_count,
        total_diseases=checkpoint.total_diseases,
        saved_files=saved_files,
        running=job_id in jobs,
    )


@app.get("/api/jobs/{job_id}/exports/{filename}")
async def download_export(job_id: str, filename: str, settings: Settings = Depends(get_settings)) -> FileResponse:
    """Download one batch CSV of a job."""
    _require_job_id(job_id)
    exporter = BatchExporter(JobPaths(settings.data_dir).export_dir, job_id)
    try:
        path = exporter.path_for(filename)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not filename.endswith(f"-{job_id}.csv") or not path.exists():
        raise HTTPException(status_code=404, detail=f"Export '{filename}' not found")
    return FileResponse(path, media_type="text/csv", filename=filename)


@app.get("/api/jobs/{job_id}/log")
async def download_log(job_id: str, settings: Settings = Depends(get_settings)) -> FileResponse:
    """Download the JSON-lines log of a job."""
    _require_job_id(job_id)
    path = JobPaths(settings.data_dir).log_file(job_id)
    if not path.exists():
        raise HTTPException(status_code=404, detail=f"No log for job {job_id}")
    return FileResponse(path, media_type="text/plain; charset=utf-8", filename=path.name)


# ============================================================================
# Single-row retry and key validation
# ============================================================================


@app.post("/api/retry", response_model=RetryResponse)
async def retry_row(
    request: RetryRequest,
    settings: Settings = Depends(get_settings),
    llm_factory: LLMFactory = Depends(get_llm_factory),
):
    """Re-run extraction for one row with a small retry budget (no streaming, no checkpoint)."""
    if not request.text.strip():
        return JSONResponse(status_code=400, content={"error": "缺少文本内容"})

    try:
        service = llm_factory(request.model_id or settings.default_model_id, request.api_key or settings.llm_api_key)
        system_prompt = resolve_system_prompt(request.system_prompt, request.prompt_template)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": "请求参数无效", "details": str(e)})

    invoker = RetryableInvoker(
        service,
        policy=settings.retry_policy(settings.retry_single_max_retries),
        system_prompt=system_prompt,
        user_prompt=request.user_prompt,
    )
    result = await invoker.run(RowTask(index=0, text=request.text))

    if not result.succeeded:
        logger.warning("Retry failed after %d attempts: %s", result.attempts, result.error_message)
        return JSONResponse(
            status_code=500,
            content={
                "error": f"重试失败（已尝试 {result.attempts} 次）",
                "details": format_error(result.error, result.error_message or ""),
            },
        )

    return RetryResponse(diseases=result.diseases, raw_response=result.raw_response)


@app.post("/api/validate-key", response_model=ValidateKeyResponse)
async def validate_key(
    request: ValidateKeyRequest,
    settings: Settings = Depends(get_settings),
    llm_factory: LLMFactory = Depends(get_llm_factory),
):
    """Check that an API key can make a minimal call to the selected provider."""
    if not request.api_key:
        return _key_response(400, "API Key 不能为空")
    if len(request.api_key) < 20:
        return _key_response(400, "API Key 长度太短，请检查是否正确复制")

    model_id = request.model_id or settings.default_model_id
    provider = model_id.split("/")[0].lower()
    if not is_known_provider(provider):
        return _key_response(400, f"不支持的模型提供商: {provider}")

    try:
        service = llm_factory(model_id, request.api_key)
    except ValueError as e:
        return _key_response(400, f"模型配置无效: {e!s}")

    if not await service.validate():
        reason = service.last_error
        status, message = key_failure(str(reason)) if reason is not None else (401, KEY_FAILURE_RULES[0][1])
        return _key_response(status, message)

    return ValidateKeyResponse(
        success=True,
        message="API Key 验证成功",
        provider=provider_name(provider),
        model=model_id,
    )


def _key_response(status: int, message: str) -> JSONResponse:
    body = ValidateKeyResponse(success=False, message=message)
    return JSONResponse(status_code=status, content=body.model_dump(by_alias=True, exclude_none=True))
