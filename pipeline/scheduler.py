"""Bounded-concurrency batch scheduler.

Rows are processed in consecutive groups of ``concurrency``. Each group runs
concurrently and is awaited as a whole (barrier) before the next one starts,
which bounds peak concurrency and makes checkpoint timing simple.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass

from extraction import RowResult, RowTask, now_ms

from .checkpoint import JobAggregates
from .invoker import RetryableInvoker

logger = logging.getLogger(__name__)


# ============================================================================
# Scheduler Events
# ============================================================================


@dataclass(frozen=True)
class RowCompleted:
    """One row finished. Forwarded in index order."""

    result: RowResult


@dataclass(frozen=True)
class CheckpointDue:
    """Results buffered since the previous checkpoint, with a snapshot of the counters.

    ``final`` marks the flush at the end of a run (natural or cancelled).
    """

    aggregates: JobAggregates
    results: list[RowResult]
    final: bool = False


@dataclass(frozen=True)
class Heartbeat:
    timestamp_ms: int
    processed: int


SchedulerEvent = RowCompleted | CheckpointDue | Heartbeat


# ============================================================================
# Scheduler
# ============================================================================


class BatchScheduler:
    """Drive a RetryableInvoker over rows in groups. One instance per run.

    Cancellation:
    - ``cancel()`` is cooperative: no new group starts, the in-flight group
      finishes and its results are still forwarded and flushed
    - cancelling the task iterating ``run`` abandons the in-flight group;
      nothing from it is forwarded and the last checkpoint stays valid
    """

    def __init__(
        self,
        invoker: RetryableInvoker,
        concurrency: int = 20,
        save_interval: int = 100,
        heartbeat_batch_interval: int = 5,
        aggregates: JobAggregates | None = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if save_interval < 1:
            raise ValueError("save_interval must be >= 1")
        if heartbeat_batch_interval < 1:
            raise ValueError("heartbeat_batch_interval must be >= 1")

        self.invoker = invoker
        self.concurrency = concurrency
        self.save_interval = save_interval
        self.heartbeat_batch_interval = heartbeat_batch_interval
        self._initial_aggregates = aggregates
        self.aggregates = JobAggregates()
        self._cancel_requested = asyncio.Event()
        self._started = False

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested.is_set()

    def cancel(self) -> None:
        self._cancel_requested.set()

    def _next_checkpoint_at(self) -> int:
        return (self.aggregates.processed_count // self.save_interval + 1) * self.save_interval

    async def run(self, rows: Sequence[str], resume_offset: int = 0) -> AsyncIterator[SchedulerEvent]:
        """Process ``rows[resume_offset:]`` and yield scheduler events.

        Raises:
            RuntimeError: If called a second time on the same instance
            ValueError: If resume_offset is outside the row range
        """
        if self._started:
            raise RuntimeError("BatchScheduler is not restartable; create a new instance")
        self._started = True

        if resume_offset < 0 or resume_offset > len(rows):
            raise ValueError(f"resume_offset {resume_offset} outside 0..{len(rows)}")

        if self._initial_aggregates is not None:
            self.aggregates = self._initial_aggregates.model_copy()
        else:
            self.aggregates = JobAggregates(processed_count=resume_offset)

        buffer: list[RowResult] = []
        groups_done = 0
        next_checkpoint = self._next_checkpoint_at()

        for group_start in range(resume_offset, len(rows), self.concurrency):
            if self.cancel_requested:
                logger.info("Scheduler cancelled before row %d", group_start)
                break

            group = [
                RowTask(index=index, text=rows[index])
                for index in range(group_start, min(group_start + self.concurrency, len(rows)))
            ]
            # gather returns results in argument order, i.e. index order
            results = await asyncio.gather(*(self.invoker.run(task) for task in group))

            for result in results:
                self.aggregates.add(result)
                buffer.append(result)
                yield RowCompleted(result)

            groups_done += 1

            if self.aggregates.processed_count >= next_checkpoint:
                yield CheckpointDue(self.aggregates.model_copy(), buffer)
                buffer = []
                next_checkpoint = self._next_checkpoint_at()

            if groups_done % self.heartbeat_batch_interval == 0:
                yield Heartbeat(timestamp_ms=now_ms(), processed=self.aggregates.processed_count)

        if buffer:
            yield CheckpointDue(self.aggregates.model_copy(), buffer, final=True)
