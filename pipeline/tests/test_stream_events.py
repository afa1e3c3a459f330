"""Stream wire format, EventStream and JobLogger tests."""

import asyncio
import json

import pytest

from extraction import ErrorKind, LogLevel, RowResult
from pipeline import (
    CompleteEvent,
    ErrorEvent,
    EventStream,
    JobLogger,
    ProgressEvent,
    ResultEvent,
    StartEvent,
    TotalEvent,
    encode_event,
    format_duration,
    result_event,
)


def _decode(frame: str) -> dict:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame.removeprefix("data: ").rstrip())


class TestEncodeEvent:
    """SSE framing, camelCase keys, omitted optionals."""

    def test_sse_format(self):
        frame = encode_event(StartEvent(job_id="1700000000000"))
        assert _decode(frame) == {"type": "start", "jobId": "1700000000000"}

    def test_camel_case_keys(self):
        data = _decode(encode_event(ProgressEvent(
            processed=100, total=250, percentage=40, elapsed=65000, elapsed_formatted="1分5秒",
        )))
        assert data["elapsedFormatted"] == "1分5秒"
        assert "elapsed_formatted" not in data

    def test_excludes_none(self):
        data = _decode(encode_event(ErrorEvent(message="bad")))
        assert "errorType" not in data
        assert data["processedCount"] == 0

    def test_non_ascii_kept_readable(self):
        frame = encode_event(TotalEvent(count=3))
        assert _decode(frame) == {"type": "total", "count": 3}
        assert "高血压" in encode_event(result_event(RowResult(index=0, original_text="高血压")))

    def test_terminal_flags(self):
        assert ErrorEvent(message="x").is_terminal
        assert CompleteEvent(
            processed=1, total=1, elapsed=0, elapsed_formatted="0秒",
            success_count=1, failure_count=0, total_diseases=0,
        ).is_terminal
        assert not StartEvent(job_id="j").is_terminal


class TestResultEvent:
    def test_success(self):
        data = _decode(encode_event(result_event(
            RowResult(index=3, original_text="高血压", diseases=["高血压"], processing_time_ms=1500)
        )))
        assert data == {
            "type": "result",
            "index": 3,
            "originalText": "高血压",
            "diseases": ["高血压"],
            "processingTime": 1500,
            "processingTimeFormatted": "1秒",
        }

    def test_failure(self):
        event = result_event(RowResult(
            index=0, original_text="x", error=ErrorKind.LLM_TIMEOUT,
            error_message="LLM call timeout after 15s", retryable=True,
        ))
        assert isinstance(event, ResultEvent)
        data = _decode(encode_event(event))
        assert data["error"] == "LLM_TIMEOUT: LLM call timeout after 15s"
        assert data["errorType"] == "LLM_TIMEOUT"
        assert data["retryable"] is True
        assert data["diseases"] == []


class TestFormatDuration:
    @pytest.mark.parametrize(
        "ms, text",
        [
            (0, "0秒"),
            (12_400, "12秒"),
            (192_000, "3分12秒"),
            (7_500_000, "2小时5分钟"),
            (97_200_000, "1天3小时"),
        ],
    )
    def test_units(self, ms, text):
        assert format_duration(ms) == text


class TestEventStream:
    """Exactly one terminal event; backpressure; detach."""

    async def test_frames_until_terminal(self):
        stream = EventStream()

        async def producer():
            await stream.emit(StartEvent(job_id="j"))
            await stream.emit(TotalEvent(count=0))
            await stream.emit(ErrorEvent(message="done"))

        task = asyncio.create_task(producer())
        frames = [_decode(f) async for f in stream.frames(task)]
        await task

        assert [f["type"] for f in frames] == ["start", "total", "error"]

    async def test_emits_after_terminal_are_dropped(self):
        stream = EventStream()
        assert await stream.emit(ErrorEvent(message="first"))
        assert not await stream.emit(ErrorEvent(message="second"))
        assert not await stream.emit(TotalEvent(count=1))
        assert stream.closed

    async def test_synthesizes_error_when_producer_dies(self):
        stream = EventStream()

        async def producer():
            await stream.emit(StartEvent(job_id="j"))
            raise RuntimeError("kaboom")

        task = asyncio.create_task(producer())
        frames = [_decode(f) async for f in stream.frames(task)]

        assert [f["type"] for f in frames] == ["start", "error"]
        assert "kaboom" in frames[-1]["message"]
        assert frames[-1]["errorType"] == "UNKNOWN"

    async def test_backpressure_and_detach(self):
        stream = EventStream(max_queue_size=2)
        sent = []

        async def producer():
            for i in range(5):
                await stream.emit(TotalEvent(count=i))
                sent.append(i)

        task = asyncio.create_task(producer())
        await asyncio.sleep(0.01)
        # Queue holds two events; the third emit is waiting for the client
        assert sent == [0, 1]

        stream.detach()
        await asyncio.wait_for(task, timeout=1.0)
        assert sent == [0, 1, 2, 3, 4]
        assert stream.detached

    async def test_counts_results(self):
        stream = EventStream()
        await stream.emit(result_event(RowResult(index=0, original_text="a")))
        await stream.emit(result_event(RowResult(index=1, original_text="b")))
        assert stream.results_emitted == 2


class TestJobLogger:
    """JSONL file plus mirrored log events."""

    async def test_writes_and_mirrors(self, tmp_path):
        stream = EventStream()
        job_logger = JobLogger("job-1", tmp_path / "logs" / "analysis-job-1.log", stream)

        await job_logger.info("开始分析任务", {"totalRows": 3})
        await job_logger.warn("重试")

        lines = (tmp_path / "logs" / "analysis-job-1.log").read_text(encoding="utf-8").splitlines()
        first = json.loads(lines[0])
        assert first["level"] == "INFO"
        assert first["message"] == "开始分析任务"
        assert first["details"] == {"totalRows": 3}
        assert first["timestamp"].endswith("Z")
        assert "details" not in json.loads(lines[1])

        records = job_logger.read_records()
        assert [r.level for r in records] == [LogLevel.INFO.value, LogLevel.WARN.value]

        task = asyncio.create_task(stream.emit(ErrorEvent(message="end")))
        frames = [_decode(f) async for f in stream.frames(task)]
        assert [f["type"] for f in frames] == ["log", "log", "error"]
        assert frames[0]["level"] == "INFO"

    async def test_without_stream(self, tmp_path):
        job_logger = JobLogger("job-2", tmp_path / "analysis-job-2.log")
        await job_logger.error("失败", {"error": "x"})
        assert job_logger.read_records()[0].message == "失败"
