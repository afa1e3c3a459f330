"""LLM configuration for per-row disease extraction

Supports OpenAI-compatible chat APIs (DeepSeek, Qwen, OpenAI, custom endpoints)
and the Gemini generateContent API.
"""

from dataclasses import dataclass, field


@dataclass
class LLMConfig:
    """Configuration for one LLM provider connection.

    Attributes:
        api_key: API authentication key
        base_url: API base URL (e.g., "https://api.deepseek.com")
        model: Model identifier (e.g., "deepseek-chat", "gemini-1.5-pro")
        temperature: Sampling temperature (low values keep extraction stable)
        max_tokens: Maximum tokens to generate (provider default if None)
        top_p: Nucleus sampling cutoff (provider default if None)
        timeout: HTTP read timeout in seconds; per-row deadlines are enforced
            separately by the pipeline
        provider: Provider id used for request format dispatch and logging
        extra: Provider-specific settings
    """

    api_key: str
    base_url: str = "https://api.deepseek.com"
    model: str = "deepseek-chat"
    temperature: float = 0.3
    max_tokens: int | None = None
    top_p: float | None = None
    timeout: float = 60.0
    provider: str = "deepseek"
    extra: dict[str, str] | None = field(default=None)

    @property
    def model_id(self) -> str:
        """Combined "provider/model" identifier used by the client."""
        return f"{self.provider}/{self.model}"
