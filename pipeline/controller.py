"""Job controller: owns one job's lifecycle from request to terminal event.

start -> total -> [resume] -> (result | saved | progress | heartbeat)* -> complete | error
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from extraction import (
    DiseaseParser,
    ErrorKind,
    InputError,
    Job,
    PROMPT_TEMPLATES,
    JobStatus,
    clean_rows,
    extract_column,
    resolve_system_prompt,
)
from llm_service import LLMOptions, LLMService

from .checkpoint import BatchRefsCheckpoint, FullResultsCheckpoint, JobAggregates
from .context import JobContext, log_filename
from .errors import JobAlreadyRunningError, classify_error, error_message, format_error
from .events import (
    CompleteEvent,
    ErrorEvent,
    HeartbeatEvent,
    ProgressEvent,
    ResumeEvent,
    SavedEvent,
    StartEvent,
    TotalEvent,
    format_duration,
    result_event,
)
from .invoker import RetryableInvoker, RetryPolicy
from .scheduler import BatchScheduler, CheckpointDue, Heartbeat, RowCompleted

logger = logging.getLogger(__name__)

JOB_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


# ============================================================================
# Request / Options
# ============================================================================


class JobRequest(BaseModel):
    """Inbound job: either ``rows`` or ``table`` + ``column``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    rows: list[str] | None = None
    table: list[list[Any]] | None = None
    column: str | None = None
    system_prompt: str | None = None
    prompt_template: str | None = None
    user_prompt: str | None = None
    job_id: str | None = None
    resume_from: int = Field(default=0, ge=0)

    @field_validator("job_id")
    @classmethod
    def _job_id_is_filename_safe(cls, value: str | None) -> str | None:
        # The id names checkpoint, export and log files
        if value is not None and not JOB_ID_PATTERN.match(value):
            raise ValueError("jobId may only contain letters, digits, '_', '-' and '.' (max 128)")
        return value

    @field_validator("prompt_template")
    @classmethod
    def _known_template(cls, value: str | None) -> str | None:
        if value is not None and value not in PROMPT_TEMPLATES:
            raise ValueError(f"Unknown prompt template: {value}")
        return value

    def resolve_rows(self) -> list[str]:
        """Row texts for the job.

        Raises:
            InputError: If no usable rows can be produced
        """
        if self.rows is not None:
            rows = clean_rows(self.rows)
            if not rows:
                raise InputError("没有有效数据")
            return rows
        if self.table is not None:
            if not self.column:
                raise InputError("缺少列名")
            return extract_column(self.table, self.column)
        raise InputError("缺少数据或列名")


@dataclass
class JobOptions:
    """Tuning for one job run."""

    concurrency: int = 20
    save_interval: int = 100
    heartbeat_batch_interval: int = 5
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    llm_options: LLMOptions | None = None


# ============================================================================
# Controller
# ============================================================================


class JobController:
    """Run one job and report it over the context's stream.

    ``run`` never raises for job failures: they end in an ``error`` event.
    Only task cancellation propagates.
    """

    def __init__(
        self,
        request: JobRequest,
        service: LLMService,
        context: JobContext,
        options: JobOptions | None = None,
        parser: DiseaseParser | None = None,
    ):
        self.request = request
        self.service = service
        self.context = context
        self.options = options or JobOptions()
        self.parser = parser or DiseaseParser()
        self.job = Job(job_id=context.job_id)
        self.aggregates = JobAggregates()
        self.saved_files: list[str] = []
        self._scheduler: BatchScheduler | None = None
        self._cancel_requested = False

    @property
    def job_id(self) -> str:
        return self.context.job_id

    def cancel(self) -> None:
        """Stop after the in-flight group; the checkpoint is kept for resume."""
        self._cancel_requested = True
        if self._scheduler is not None:
            self._scheduler.cancel()

    async def run(self) -> Job:
        stream = self.context.stream
        job_log = self.context.logger
        self.job.status = JobStatus.RUNNING
        started = time.monotonic()

        try:
            await stream.emit(StartEvent(job_id=self.job_id))
            await job_log.info("开始分析任务", {"jobId": self.job_id, "resumeFrom": self.request.resume_from})

            rows = self.request.resolve_rows()
            self.job.total_rows = len(rows)
            await job_log.info("数据提取完成", {"totalRows": len(rows)})
            await stream.emit(TotalEvent(count=len(rows)))

            resume_offset = await self._prepare_resume(len(rows))
            self.job.resume_offset = resume_offset

            invoker = RetryableInvoker(
                self.service,
                parser=self.parser,
                policy=self.options.retry_policy,
                system_prompt=resolve_system_prompt(self.request.system_prompt, self.request.prompt_template),
                user_prompt=self.request.user_prompt,
                options=self.options.llm_options,
                row_logger=job_log,
            )
            self._scheduler = BatchScheduler(
                invoker,
                concurrency=self.options.concurrency,
                save_interval=self.options.save_interval,
                heartbeat_batch_interval=self.options.heartbeat_batch_interval,
                aggregates=self.aggregates,
            )
            if self._cancel_requested:
                self._scheduler.cancel()

            async for event in self._scheduler.run(rows, resume_offset):
                if isinstance(event, RowCompleted):
                    await stream.emit(result_event(event.result))
                elif isinstance(event, CheckpointDue):
                    await self._write_checkpoint(event, len(rows), started)
                elif isinstance(event, Heartbeat):
                    await stream.emit(HeartbeatEvent(timestamp=event.timestamp_ms, processed=event.processed))
                self.aggregates = self._scheduler.aggregates

            self.aggregates = self._scheduler.aggregates
            processed = self.aggregates.processed_count

            if processed < len(rows):
                await self._finish_interrupted(processed)
            else:
                await self._finish_completed(len(rows), started)

        except InputError as e:
            self.job.status = JobStatus.ERRORED
            await job_log.error("输入数据无效", {"error": str(e)})
            await stream.emit(ErrorEvent(
                message=str(e),
                error_type=ErrorKind.INPUT,
                processed_count=self.aggregates.processed_count,
            ))
        except asyncio.CancelledError:
            self.job.status = JobStatus.INTERRUPTED
            logger.warning("Job %s task cancelled at row %d", self.job_id, self.aggregates.processed_count)
            raise
        except Exception as e:
            self.job.status = JobStatus.ERRORED
            kind = classify_error(e)
            logger.exception("Job %s failed", self.job_id)
            await job_log.error("处理过程中发生错误", {"errorType": kind.value, "error": error_message(e)})
            await stream.emit(ErrorEvent(
                message=format_error(kind, error_message(e)),
                error_type=kind,
                processed_count=self.aggregates.processed_count,
            ))

        return self.job

    # ------------------------------------------------------------------------
    # Lifecycle steps
    # ------------------------------------------------------------------------

    async def _prepare_resume(self, total: int) -> int:
        """Decide the resume offset and seed counters. Returns the offset."""
        store = self.context.checkpoints
        job_log = self.context.logger

        if self.request.resume_from == 0:
            if store.exists(self.job_id):
                store.delete(self.job_id)
                await job_log.info("清除旧的断点文件", {"jobId": self.job_id})
            return 0

        checkpoint = store.load(self.job_id)
        if checkpoint is None:
            await job_log.warn(
                "未找到可用的断点文件，从头开始处理",
                {"resumeFrom": self.request.resume_from},
            )
            return 0

        if checkpoint.processed_count > total:
            await job_log.warn(
                "断点进度超出数据行数，从头开始处理",
                {"processedCount": checkpoint.processed_count, "totalRows": total},
            )
            store.delete(self.job_id)
            return 0

        if checkpoint.processed_count != self.request.resume_from:
            await job_log.warn(
                "断点进度与请求的续传位置不一致，以断点文件为准",
                {"resumeFrom": self.request.resume_from, "processedCount": checkpoint.processed_count},
            )

        self.aggregates = JobAggregates(
            processed_count=checkpoint.processed_count,
            success_count=checkpoint.success_count,
            failure_count=checkpoint.failure_count,
            total_diseases=checkpoint.total_diseases,
        )

        if isinstance(checkpoint, FullResultsCheckpoint):
            # Older checkpoints keep results inline; move them into a batch file
            if checkpoint.results:
                self.saved_files = [await asyncio.to_thread(self.context.exporter.export, checkpoint.results, 1)]
            await asyncio.to_thread(
                store.save,
                self.job_id,
                BatchRefsCheckpoint(saved_files=list(self.saved_files), **self.aggregates.model_dump()),
            )
            await job_log.info("已迁移旧格式断点文件", {"savedFiles": self.saved_files})
        else:
            self.saved_files = list(checkpoint.saved_files)

        processed = checkpoint.processed_count
        await job_log.info("从断点恢复", {"processedCount": processed, "savedFiles": len(self.saved_files)})
        await self.context.stream.emit(ResumeEvent(
            count=processed,
            message=f"从第 {processed + 1} 条继续处理",
        ))
        return processed

    async def _write_checkpoint(self, event: CheckpointDue, total: int, started: float) -> None:
        batch_number = len(self.saved_files) + 1
        # File writes and fsync run off the event loop
        filename = await asyncio.to_thread(self.context.exporter.export, event.results, batch_number)
        self.saved_files.append(filename)

        aggregates = event.aggregates
        await asyncio.to_thread(
            self.context.checkpoints.save,
            self.job_id,
            BatchRefsCheckpoint(saved_files=list(self.saved_files), **aggregates.model_dump()),
        )
        self.job.resume_offset = aggregates.processed_count

        await self.context.logger.info(
            f"保存第 {batch_number} 批数据",
            {"batchSize": len(event.results), "totalProcessed": aggregates.processed_count, "file": filename},
        )
        await self.context.stream.emit(SavedEvent(count=aggregates.processed_count, batch_file=filename))

        if not event.final:
            elapsed = _elapsed_ms(started)
            await self.context.stream.emit(ProgressEvent(
                processed=aggregates.processed_count,
                total=total,
                percentage=round(aggregates.processed_count * 100 / total),
                elapsed=elapsed,
                elapsed_formatted=format_duration(elapsed),
            ))

    async def _finish_completed(self, total: int, started: float) -> None:
        aggregates = self.aggregates
        elapsed = _elapsed_ms(started)
        processed = aggregates.processed_count
        success_rate = f"{aggregates.success_count * 100 / processed:.2f}%" if processed else "0.00%"

        await self.context.logger.info("分析完成", {
            "totalProcessed": processed,
            "totalExpected": total,
            "successCount": aggregates.success_count,
            "failureCount": aggregates.failure_count,
            "successRate": success_rate,
            "totalDiseases": aggregates.total_diseases,
            "totalDuration": elapsed,
            "savedBatches": len(self.saved_files),
        })
        self.context.checkpoints.delete(self.job_id)
        self.job.status = JobStatus.COMPLETED
        await self.context.stream.emit(CompleteEvent(
            processed=processed,
            total=total,
            elapsed=elapsed,
            elapsed_formatted=format_duration(elapsed),
            success_count=aggregates.success_count,
            failure_count=aggregates.failure_count,
            total_diseases=aggregates.total_diseases,
            saved_files=list(self.saved_files),
            log_file=log_filename(self.job_id),
        ))

    async def _finish_interrupted(self, processed: int) -> None:
        self.job.status = JobStatus.INTERRUPTED
        await self.context.logger.warn("任务已中断，断点已保存", {"processedCount": processed})
        await self.context.stream.emit(ErrorEvent(
            message=f"任务已中断，可从第 {processed + 1} 条继续",
            processed_count=processed,
        ))


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


# ============================================================================
# Registry
# ============================================================================


class JobRegistry:
    """Running jobs by id. At most one controller per job id.

    Jobs started through ``start`` keep their task here until it finishes,
    so a job outlives the request that launched it.
    """

    def __init__(self):
        self._jobs: dict[str, JobController] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def register(self, controller: JobController) -> None:
        """Track a running job.

        Raises:
            JobAlreadyRunningError: If a job with the same id is running
        """
        if controller.job_id in self._jobs:
            raise JobAlreadyRunningError(f"Job {controller.job_id} is already running")
        self._jobs[controller.job_id] = controller

    def start(self, controller: JobController) -> asyncio.Task:
        """Register a job and run it as a task; unregistered when the task ends.

        Raises:
            JobAlreadyRunningError: If a job with the same id is running
        """
        self.register(controller)
        task = asyncio.create_task(controller.run())
        self._tasks[controller.job_id] = task
        task.add_done_callback(lambda _: self.unregister(controller))
        return task

    def unregister(self, controller: JobController) -> None:
        if self._jobs.get(controller.job_id) is controller:
            del self._jobs[controller.job_id]
            self._tasks.pop(controller.job_id, None)

    def get(self, job_id: str) -> JobController | None:
        return self._jobs.get(job_id)

    def task(self, job_id: str) -> asyncio.Task | None:
        return self._tasks.get(job_id)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)
