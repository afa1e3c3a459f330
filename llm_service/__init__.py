"""LLM service package for disease extraction

This package provides:
- LLMConfig dataclass and provider presets ("provider/model" ids)
- LLMService protocol used by the pipeline
- HTTPLLMService: httpx client for OpenAI-compatible and Gemini APIs

Usage:
    from llm_service import create_service

    service = create_service("deepseek/deepseek-chat", api_key="sk-...")
    reply = await service.invoke(messages)
"""

from .config import LLMConfig
from .providers import (
    PROVIDER_CATALOG,
    PROVIDER_MODELS,
    PROVIDER_URLS,
    config_from_model_id,
    create_config,
    is_known_provider,
    parse_model_id,
    provider_name,
    uses_gemini_api,
)
from .service import (
    VALIDATION_MESSAGES,
    HTTPLLMService,
    LLMError,
    LLMOptions,
    LLMResponse,
    LLMService,
    TokenUsage,
    create_service,
)

__all__ = [
    # Config
    "LLMConfig",
    "PROVIDER_CATALOG",
    "PROVIDER_MODELS",
    "PROVIDER_URLS",
    "config_from_model_id",
    "create_config",
    "is_known_provider",
    "parse_model_id",
    "provider_name",
    "uses_gemini_api",
    # Service
    "VALIDATION_MESSAGES",
    "HTTPLLMService",
    "LLMError",
    "LLMOptions",
    "LLMResponse",
    "LLMService",
    "TokenUsage",
    "create_service",
]
