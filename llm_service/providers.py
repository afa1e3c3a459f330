"""Provider presets for the LLM service

Each provider is addressed by a "provider/model" id (e.g., "qwen/qwen-plus"):
- DeepSeek, Qwen (DashScope compatible mode), OpenAI: OpenAI-compatible
  /chat/completions with Bearer auth
- Gemini: generateContent with the key in the query string, system prompt
  in systemInstruction
- other: any OpenAI-compatible endpoint, base URL supplied by the caller
"""

from .config import LLMConfig


# Provider base URLs
PROVIDER_URLS = {
    "deepseek": "https://api.deepseek.com",
    "qwen": "https://dashscope.aliyuncs.com/compatible-mode/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta",
    "openai": "https://api.openai.com/v1",
    "other": "",  # User must provide base URL
}

# Default models per provider
PROVIDER_MODELS = {
    "deepseek": "deepseek-chat",
    "qwen": "qwen-turbo",
    "gemini": "gemini-1.5-pro",
    "openai": "gpt-3.5-turbo",
    "other": "",  # User must provide model name
}

# Display names and known models, served to the settings page
PROVIDER_CATALOG = {
    "deepseek": {
        "name": "DeepSeek",
        "models": ["deepseek-chat", "deepseek-reasoner"],
    },
    "qwen": {
        "name": "通义千问",
        "models": ["qwen-turbo", "qwen-plus", "qwen-max"],
    },
    "gemini": {
        "name": "Gemini",
        "models": ["gemini-1.5-pro", "gemini-1.5-flash"],
    },
    "openai": {
        "name": "OpenAI",
        "models": ["gpt-4o", "gpt-4-turbo", "gpt-3.5-turbo"],
    },
    "other": {
        "name": "OpenAI-compatible",
        "models": [],
    },
}

# Providers that use the Gemini generateContent request format
GEMINI_STYLE_PROVIDERS = {"gemini"}


def parse_model_id(model_id: str) -> tuple[str, str]:
    """Split a "provider/model" id.

    Raises:
        ValueError: If the id is not exactly two non-empty parts
    """
    parts = model_id.split("/")
    if len(parts) != 2 or not parts[0]:
        raise ValueError(f"Invalid model ID format: {model_id}")
    return parts[0].lower(), parts[1]


def is_known_provider(provider: str) -> bool:
    return provider.lower() in PROVIDER_URLS


def provider_name(provider: str) -> str:
    """Display name for a provider id, falling back to the id itself."""
    entry = PROVIDER_CATALOG.get(provider.lower())
    return entry["name"] if entry else provider


def create_config(
    provider: str,
    api_key: str,
    model: str | None = None,
    base_url: str | None = None,
    **kwargs,
) -> LLMConfig:
    """Create LLM configuration for a named provider.

    Args:
        provider: Provider id ("deepseek", "qwen", "gemini", "openai", "other")
        api_key: API authentication key
        model: Optional model override (uses provider default if None or empty)
        base_url: Optional base URL override (required for "other")
        **kwargs: Additional config options (temperature, timeout, max_tokens, top_p)

    Returns:
        LLMConfig for the specified provider

    Raises:
        ValueError: If provider is unknown, or "other" lacks base_url/model

    Example:
        config = create_config("qwen", api_key="sk-...", model="qwen-plus")
    """
    provider = provider.lower()

    if provider not in PROVIDER_URLS:
        raise ValueError(
            f"Unknown provider: {provider}. "
            f"Supported: {', '.join(PROVIDER_URLS.keys())}"
        )

    model = model or PROVIDER_MODELS[provider]
    base_url = base_url or PROVIDER_URLS[provider]

    if not base_url or not model:
        raise ValueError(f"Provider '{provider}' requires an explicit base_url and model")

    return LLMConfig(
        api_key=api_key,
        base_url=base_url,
        model=model,
        provider=provider,
        **kwargs,
    )


def config_from_model_id(model_id: str, api_key: str, **kwargs) -> LLMConfig:
    """Create configuration from a "provider/model" id."""
    provider, model = parse_model_id(model_id)
    return create_config(provider, api_key=api_key, model=model, **kwargs)


def uses_gemini_api(provider: str) -> bool:
    """Check if provider uses the Gemini API format.

    Gemini differs from OpenAI in:
    - Endpoint is /models/{model}:generateContent with ?key= auth
    - Uses 'contents' array with 'parts' instead of 'messages'
    - Uses 'systemInstruction' for the system prompt
    - Sampling settings live in 'generationConfig'
    """
    return provider.lower() in GEMINI_STYLE_PROVIDERS
