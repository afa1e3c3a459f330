"""Per-row LLM invocation with retry, per-attempt deadline and classification."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from extraction import DiseaseParser, ErrorKind, LogLevel, RowResult, RowTask, build_messages
from llm_service import LLMOptions, LLMService

from .deadline import run_with_deadline
from .errors import classify_error, error_message
from .job_log import RowLogger


@dataclass
class RetryPolicy:
    """Retry budget for one row.

    Attributes:
        max_retries: Extra attempts after the first (0 = try once)
        retry_delay_ms: Fixed pause between attempts
        per_attempt_timeout_ms: Deadline for each LLM call
    """

    max_retries: int = 5
    retry_delay_ms: int = 1000
    per_attempt_timeout_ms: int = 15000

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")


class RetryableInvoker:
    """Turn one RowTask into exactly one RowResult.

    Never raises for row-level problems: failures come back as a RowResult
    with ``error`` set. Only cancellation propagates.
    """

    def __init__(
        self,
        service: LLMService,
        parser: DiseaseParser | None = None,
        policy: RetryPolicy | None = None,
        system_prompt: str | None = None,
        user_prompt: str | None = None,
        options: LLMOptions | None = None,
        row_logger: RowLogger | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.service = service
        self.parser = parser or DiseaseParser()
        self.policy = policy or RetryPolicy()
        self.system_prompt = system_prompt
        self.user_prompt = user_prompt
        self.options = options
        self.row_logger = row_logger or RowLogger()
        self._sleep = sleep

    async def run(self, task: RowTask) -> RowResult:
        started = time.monotonic()
        try:
            return await self._run(task, started)
        except Exception as e:
            # Not an LLM failure: retrying would not help
            await self.row_logger.log(
                LogLevel.ERROR,
                f"第 {task.index + 1} 行处理异常",
                {"index": task.index, "error": error_message(e)},
            )
            return RowResult(
                index=task.index,
                original_text=task.text,
                error=ErrorKind.UNKNOWN,
                error_message=error_message(e),
                retryable=False,
                processing_time_ms=_elapsed_ms(started),
                attempts=task.attempt + 1,
            )

    async def _run(self, task: RowTask, started: float) -> RowResult:
        messages = build_messages(task.text, self.system_prompt, self.user_prompt)
        timeout = self.policy.per_attempt_timeout_ms / 1000
        last_error: Exception | None = None
        content: str | None = None
        attempt = task.attempt

        while True:
            try:
                reply = await run_with_deadline(
                    lambda: self.service.invoke(messages, self.options),
                    timeout,
                    label="LLM call",
                )
                content = reply.content
                last_error = None
                break
            except Exception as e:
                last_error = e
                kind = classify_error(e)
                await self.row_logger.log(
                    LogLevel.WARN,
                    f"第 {task.index + 1} 行第 {attempt + 1} 次尝试失败",
                    {"index": task.index, "attempt": attempt + 1, "errorType": kind.value, "error": error_message(e)},
                )
                if attempt >= self.policy.max_retries:
                    break
                attempt += 1
                await self._sleep(self.policy.retry_delay_ms / 1000)

        attempts = attempt + 1

        if last_error is not None:
            kind = classify_error(last_error)
            await self.row_logger.log(
                LogLevel.ERROR,
                f"第 {task.index + 1} 行处理失败，已重试 {self.policy.max_retries} 次",
                {"index": task.index, "attempts": attempts, "errorType": kind.value, "error": error_message(last_error)},
            )
            return RowResult(
                index=task.index,
                original_text=task.text,
                error=kind,
                error_message=error_message(last_error),
                retryable=True,
                processing_time_ms=_elapsed_ms(started),
                attempts=attempts,
            )

        diseases = self.parser.parse(content or "")
        processing_time_ms = _elapsed_ms(started)
        await self.row_logger.log(
            LogLevel.DEBUG,
            f"第 {task.index + 1} 行处理成功",
            {"index": task.index, "diseases": len(diseases), "processingTime": processing_time_ms},
        )
        return RowResult(
            index=task.index,
            original_text=task.text,
            diseases=diseases,
            processing_time_ms=processing_time_ms,
            attempts=attempts,
            raw_response=content,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
