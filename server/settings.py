"""Server configuration via environment variables (prefix ``DISEASE_``)."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

from pipeline import JobOptions, RetryPolicy


class Settings(BaseSettings):
    # Storage: checkpoints/, exports/ and logs/ are created under data_dir
    data_dir: Path = Path("data")

    # LLM defaults (requests may override model and key)
    default_model_id: str = "deepseek/deepseek-chat"
    llm_api_key: str = ""
    llm_temperature: float = 0.3

    # Per-row retry policy
    max_retries: int = 5
    retry_delay_ms: int = 1000
    per_attempt_timeout_ms: int = 15000

    # Scheduling
    concurrency: int = 20
    save_interval: int = 100
    heartbeat_batch_interval: int = 5

    # Single-row retry endpoint
    retry_single_max_retries: int = 2

    # HTTP
    stream_queue_size: int = 256
    cors_origins: list[str] = ["*"]
    port: int = 8000

    model_config = {"env_prefix": "DISEASE_", "env_file": ".env", "env_file_encoding": "utf-8"}

    def retry_policy(self, max_retries: int | None = None) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries if max_retries is None else max_retries,
            retry_delay_ms=self.retry_delay_ms,
            per_attempt_timeout_ms=self.per_attempt_timeout_ms,
        )

    def job_options(self, concurrency: int | None = None) -> JobOptions:
        return JobOptions(
            concurrency=concurrency or self.concurrency,
            save_interval=self.save_interval,
            heartbeat_batch_interval=self.heartbeat_batch_interval,
            retry_policy=self.retry_policy(),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
