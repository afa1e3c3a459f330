"""Async LLM service used by the extraction pipeline.

Provides the LLMService protocol (invoke + validate) and HTTPLLMService,
an httpx implementation for OpenAI-compatible and Gemini APIs.
"""

import json
import logging
from typing import Any, Protocol

import httpx
from pydantic import BaseModel

from .config import LLMConfig
from .providers import config_from_model_id, uses_gemini_api

logger = logging.getLogger(__name__)


# ============================================================================
# Service Protocol
# ============================================================================


class LLMOptions(BaseModel):
    """Per-call overrides; None falls back to the service configuration."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMResponse(BaseModel):
    """Text reply of one LLM call."""

    content: str
    model: str
    usage: TokenUsage | None = None


class LLMService(Protocol):
    """Capability the pipeline needs from an LLM provider.

    Implementations must:
    - return the reply text for a list of chat messages, or raise
    - report whether the configured credentials work without raising,
      keeping the failure in ``last_error``
    """

    last_error: Exception | None

    async def invoke(
        self,
        messages: list[dict[str, str]],
        options: LLMOptions | None = None,
    ) -> LLMResponse: ...

    async def validate(self) -> bool: ...


class LLMError(Exception):
    """Raised when an LLM call fails.

    Messages keep the words the pipeline classifies on
    ("timeout", "network", "JSON"/"parse", "API").
    """


# Minimal exchange used to check credentials
VALIDATION_MESSAGES = [
    {"role": "system", "content": "你是一个测试助手"},
    {"role": "user", "content": '回复"OK"'},
]


# ============================================================================
# HTTP Implementation
# ============================================================================


class HTTPLLMService:
    """LLMService over httpx.

    A transport can be injected for tests (httpx.MockTransport).
    """

    def __init__(self, config: LLMConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self._transport = transport
        self.last_error: LLMError | None = None

    @classmethod
    def from_model_id(
        cls,
        model_id: str,
        api_key: str,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs,
    ) -> "HTTPLLMService":
        return cls(config_from_model_id(model_id, api_key, **kwargs), transport=transport)

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(
            connect=5.0,
            read=self.config.timeout,
            write=5.0,
            pool=5.0,
        )
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def invoke(
        self,
        messages: list[dict[str, str]],
        options: LLMOptions | None = None,
    ) -> LLMResponse:
        options = options or LLMOptions()
        if uses_gemini_api(self.config.provider):
            request = self._gemini_request(messages, options)
        else:
            request = self._openai_request(messages, options)

        endpoint, payload, headers, params, parse = request

        try:
            async with self._client() as client:
                response = await client.post(endpoint, json=payload, headers=headers, params=params)
                response.raise_for_status()
                return parse(response.json(), payload)

        except LLMError:
            raise
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM API timeout after {self.config.timeout}s: {e!s}") from e
        except httpx.HTTPStatusError as e:
            error_detail = e.response.text if e.response is not None else "No response"
            raise LLMError(f"LLM API HTTP {e.response.status_code}: {error_detail}") from e
        except httpx.RequestError as e:
            raise LLMError(f"LLM API network error: {e!s}") from e
        except json.JSONDecodeError as e:
            raise LLMError(f"LLM response not valid JSON: {e!s}") from e
        except Exception as e:
            raise LLMError(f"LLM API call failed: {e!s}") from e

    async def validate(self) -> bool:
        """Send a tiny prompt; any failure means the credentials are not usable.

        The failure is kept in ``last_error`` so callers can tell an invalid
        key from a quota, timeout or network problem.
        """
        self.last_error = None
        try:
            await self.invoke(VALIDATION_MESSAGES, LLMOptions(max_tokens=16))
        except LLMError as e:
            logger.warning("API key validation failed for %s: %s", self.config.model_id, e)
            self.last_error = e
            return False
        return True

    # ------------------------------------------------------------------------
    # Request builders
    # ------------------------------------------------------------------------

    def _openai_request(self, messages: list[dict[str, str]], options: LLMOptions):
        payload: dict[str, Any] = {
            "model": options.model or self.config.model,
            "messages": messages,
            "temperature": _pick(options.temperature, self.config.temperature),
            "stream": False,
        }
        top_p = _pick(options.top_p, self.config.top_p)
        if top_p is not None:
            payload["top_p"] = top_p
        max_tokens = _pick(options.max_tokens, self.config.max_tokens)
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        endpoint = f"{self.config.base_url.rstrip('/')}/chat/completions"
        return endpoint, payload, headers, None, _parse_openai_response

    def _gemini_request(self, messages: list[dict[str, str]], options: LLMOptions):
        model = options.model or self.config.model
        system_prompt = next((m["content"] for m in messages if m["role"] == "system"), None)

        generation_config: dict[str, Any] = {
            "temperature": _pick(options.temperature, self.config.temperature),
        }
        top_p = _pick(options.top_p, self.config.top_p)
        if top_p is not None:
            generation_config["topP"] = top_p
        max_tokens = _pick(options.max_tokens, self.config.max_tokens)
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens

        payload: dict[str, Any] = {
            "contents": [
                {
                    "role": "model" if m["role"] == "assistant" else "user",
                    "parts": [{"text": m["content"]}],
                }
                for m in messages
                if m["role"] != "system"
            ],
            "generationConfig": generation_config,
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        headers = {"Content-Type": "application/json"}
        endpoint = f"{self.config.base_url.rstrip('/')}/models/{model}:generateContent"
        return endpoint, payload, headers, {"key": self.config.api_key}, _gemini_parser(model)


def _pick(override, default):
    return default if override is None else override


def _parse_openai_response(result: dict[str, Any], payload: dict[str, Any]) -> LLMResponse:
    try:
        content = result["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise LLMError(f"LLM response parse error: missing choices content ({e!s})") from e

    usage = result.get("usage")
    return LLMResponse(
        content=content or "",
        model=result.get("model") or payload["model"],
        usage=TokenUsage(
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
        ) if usage else None,
    )


def _gemini_parser(model: str):
    def parse(result: dict[str, Any], payload: dict[str, Any]) -> LLMResponse:
        try:
            content = result["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(f"LLM response parse error: missing candidate text ({e!s})") from e

        usage = result.get("usageMetadata")
        return LLMResponse(
            content=content or "",
            model=model,
            usage=TokenUsage(
                prompt_tokens=usage.get("promptTokenCount", 0),
                completion_tokens=usage.get("candidatesTokenCount", 0),
                total_tokens=usage.get("totalTokenCount", 0),
            ) if usage else None,
        )

    return parse


def create_service(
    model_id: str,
    api_key: str,
    transport: httpx.AsyncBaseTransport | None = None,
    **kwargs,
) -> HTTPLLMService:
    """Create an LLM service from a "provider/model" id.

    Raises:
        ValueError: If the model id is malformed or the provider is unknown
    """
    return HTTPLLMService.from_model_id(model_id, api_key, transport=transport, **kwargs)
