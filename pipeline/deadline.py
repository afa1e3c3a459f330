"""Race an awaitable against a deadline.

The single timeout primitive of the pipeline. On deadline the operation is
cancelled (best effort) and abandoned: the caller never waits for it and its
late outcome is consumed and discarded.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")


class DeadlineExceeded(TimeoutError):
    """The operation did not finish before its deadline."""


def _discard_outcome(task: asyncio.Task) -> None:
    # Retrieve the late result/exception so it is never reported or counted
    if not task.cancelled():
        task.exception()


async def run_with_deadline(
    operation: Callable[[], Awaitable[T]],
    timeout: float,
    label: str = "LLM call",
) -> T:
    """Run ``operation()`` and return its value, or raise DeadlineExceeded.

    Args:
        operation: Zero-argument callable returning an awaitable
        timeout: Deadline in seconds
        label: Name used in the timeout message

    Raises:
        DeadlineExceeded: If the deadline fires first (message contains "timeout")
        Exception: Whatever the operation raises, unchanged
    """
    task = asyncio.ensure_future(operation())
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        task.add_done_callback(_discard_outcome)
        raise

    if task in done:
        return task.result()

    task.cancel()
    task.add_done_callback(_discard_outcome)
    raise DeadlineExceeded(f"{label} timeout after {timeout:g}s")
