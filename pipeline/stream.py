"""Ordered, single-terminal event channel between a job and its HTTP response.

The job task emits events; the response generator drains them as SSE frames.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator

from extraction import ErrorKind

from .events import ErrorEvent, StreamEvent, StreamEventType, encode_event

logger = logging.getLogger(__name__)


class EventStream:
    """Bounded queue of stream events with exactly one terminal event.

    - ``emit`` waits when the queue is full, so a slow client slows the job
    - after a terminal event (complete/error) further emits are dropped
    - after ``detach`` (client gone) emits are dropped and never block
    """

    def __init__(self, max_queue_size: int = 256):
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue(maxsize=max_queue_size)
        self._terminal_sent = False
        self._detached = False
        self.results_emitted = 0

    @property
    def closed(self) -> bool:
        return self._terminal_sent

    @property
    def detached(self) -> bool:
        return self._detached

    async def emit(self, event: StreamEvent) -> bool:
        """Queue an event. Returns False if it was dropped."""
        if self._terminal_sent:
            logger.debug("Dropping %s event after terminal event", event.type)
            return False
        if event.is_terminal:
            self._terminal_sent = True
        if event.type == StreamEventType.RESULT.value:
            self.results_emitted += 1
        if self._detached:
            return False
        await self._queue.put(event)
        return True

    def detach(self) -> None:
        """Stop delivering events; unblocks any producer waiting on a full queue."""
        self._detached = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def frames(self, producer: asyncio.Task) -> AsyncGenerator[str, None]:
        """Yield SSE frames until the terminal event, or until ``producer`` ends.

        If the producer ends without sending a terminal event, an ``error``
        frame is synthesized so the client always sees exactly one.
        """
        # Stream events while the job runs
        while not producer.done():
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.1)
            except asyncio.TimeoutError:
                continue
            yield encode_event(event)
            if event.is_terminal:
                return

        # Drain remaining events
        while not self._queue.empty():
            event = self._queue.get_nowait()
            yield encode_event(event)
            if event.is_terminal:
                return

        if producer.cancelled():
            message = "任务已取消"
        elif producer.exception() is not None:
            message = f"任务异常终止: {producer.exception()!s}"
        else:
            message = "任务意外结束"
        logger.error("Job stream ended without terminal event: %s", message)
        self._terminal_sent = True
        yield encode_event(ErrorEvent(
            message=message,
            error_type=ErrorKind.UNKNOWN,
            processed_count=self.results_emitted,
        ))
