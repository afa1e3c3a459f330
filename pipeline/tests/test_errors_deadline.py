"""Error classification and deadline tests

Classification order is part of the wire contract: clients group failures
by errorType, so a message matching several rules must land in the first.
"""

import asyncio

import pytest

from extraction import ErrorKind
from pipeline import DeadlineExceeded, classify_error, classify_message, format_error, run_with_deadline


class TestClassification:
    """Case-sensitive substring rules, first match wins."""

    @pytest.mark.parametrize(
        "message, kind",
        [
            ("LLM API timeout after 15s", ErrorKind.LLM_TIMEOUT),
            ("Timeout while reading", ErrorKind.LLM_TIMEOUT),
            ("LLM API network error: connection reset", ErrorKind.NETWORK),
            ("connect ECONNREFUSED 127.0.0.1:443", ErrorKind.NETWORK),
            ("connect ETIMEDOUT", ErrorKind.NETWORK),
            ("LLM response not valid JSON: Expecting value", ErrorKind.RESPONSE_PARSE),
            ("could not parse reply", ErrorKind.RESPONSE_PARSE),
            ("LLM API HTTP 500: upstream error", ErrorKind.LLM_CALL),
            ("model overloaded", ErrorKind.LLM_CALL),
            ("something odd happened", ErrorKind.UNKNOWN),
        ],
    )
    def test_messages(self, message, kind):
        assert classify_message(message) == kind

    def test_timeout_beats_network(self):
        assert classify_message("network timeout") == ErrorKind.LLM_TIMEOUT

    def test_network_beats_parse(self):
        assert classify_message("ECONNRESET during JSON parse") == ErrorKind.NETWORK

    def test_parse_beats_generic(self):
        assert classify_message("LLM API returned bad JSON") == ErrorKind.RESPONSE_PARSE

    def test_case_sensitive(self):
        assert classify_message("TIMEOUT") == ErrorKind.UNKNOWN
        assert classify_message("bad json") == ErrorKind.UNKNOWN
        assert classify_message("api failure") == ErrorKind.UNKNOWN

    def test_empty_message_uses_type_name(self):
        assert classify_error(TimeoutError()) == ErrorKind.LLM_TIMEOUT
        assert classify_error(RuntimeError()) == ErrorKind.UNKNOWN

    def test_format_error(self):
        assert format_error(ErrorKind.NETWORK, "down") == "NETWORK: down"


class TestDeadline:
    """run_with_deadline returns, propagates, or times out and abandons."""

    async def test_returns_value(self):
        async def op():
            return 42

        assert await run_with_deadline(op, timeout=1.0) == 42

    async def test_propagates_exception(self):
        async def op():
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            await run_with_deadline(op, timeout=1.0)

    async def test_timeout_cancels_operation(self):
        state = {"cancelled": False, "finished": False}

        async def op():
            try:
                await asyncio.sleep(10)
                state["finished"] = True
            except asyncio.CancelledError:
                state["cancelled"] = True
                raise

        with pytest.raises(DeadlineExceeded) as excinfo:
            await run_with_deadline(op, timeout=0.01, label="LLM call")

        assert "timeout" in str(excinfo.value)
        assert classify_error(excinfo.value) == ErrorKind.LLM_TIMEOUT
        await asyncio.sleep(0.01)
        assert state["cancelled"]
        assert not state["finished"]

    async def test_late_result_is_discarded(self):
        results = []

        async def op():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                # Ignore the cancel and finish late anyway
                await asyncio.sleep(0.02)
            results.append("late")
            return "late"

        with pytest.raises(DeadlineExceeded):
            await run_with_deadline(op, timeout=0.01)

        await asyncio.sleep(0.05)
        # The operation finished, but nothing reached the caller
        assert results == ["late"]

    async def test_caller_cancellation_cancels_operation(self):
        state = {"cancelled": False}

        async def op():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                state["cancelled"] = True
                raise

        task = asyncio.create_task(run_with_deadline(op, timeout=5.0))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0.01)
        assert state["cancelled"]

    async def test_deadline_exceeded_is_timeout_error(self):
        assert issubclass(DeadlineExceeded, TimeoutError)
