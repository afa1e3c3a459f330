"""Shared test fixtures: a scripted in-process LLM service."""

import asyncio
import inspect
from collections.abc import Callable

import pytest

from llm_service import VALIDATION_MESSAGES, LLMError, LLMOptions, LLMResponse

TEXT_MARKER = "文本："
EXTRA_MARKER = "\n\n额外要求："


def row_text(messages: list[dict[str, str]]) -> str:
    """Recover the row text from the user message built for it."""
    user = next(m["content"] for m in messages if m["role"] == "user")
    text = user.split(TEXT_MARKER, 1)[-1]
    return text.split(EXTRA_MARKER, 1)[0]


class ScriptedLLMService:
    """LLMService whose replies come from ``responder(text)``.

    The responder may return a string, an awaitable of one, or raise.
    Records the row text of every call and the peak number of calls in flight.
    """

    def __init__(self, responder: Callable | None = None, delay: float = 0.0):
        self.responder = responder or (lambda text: f"[{text}]")
        self.delay = delay
        self.calls: list[str] = []
        self.messages: list[list[dict[str, str]]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.validate_calls = 0
        self.last_error: LLMError | None = None

    async def invoke(self, messages: list[dict[str, str]], options: LLMOptions | None = None) -> LLMResponse:
        text = row_text(messages)
        self.calls.append(text)
        self.messages.append(messages)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            reply = self.responder(text)
            if inspect.isawaitable(reply):
                reply = await reply
        finally:
            self.in_flight -= 1
        return LLMResponse(content=reply, model="scripted")

    async def validate(self) -> bool:
        self.validate_calls += 1
        self.last_error = None
        try:
            await self.invoke(VALIDATION_MESSAGES)
        except LLMError as e:
            self.last_error = e
            return False
        return True


@pytest.fixture
def scripted_llm() -> type[ScriptedLLMService]:
    return ScriptedLLMService
