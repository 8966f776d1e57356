from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CALLFLOW_", env_file=".env", extra="ignore")

    app_name: str = "callflow"
    env: str = "dev"

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    redis_key_namespace: str = "callflow"
    redis_socket_timeout: float = Field(default=2.0, gt=0)
    redis_connect_timeout: float = Field(default=2.0, gt=0)
    redis_max_retries: int = Field(default=3, ge=0)
    redis_backoff_base: float = Field(default=0.05, gt=0)
    redis_backoff_cap: float = Field(default=0.5, gt=0)

    # Combination cache
    combination_cache_ttl: int = Field(default=3600, gt=0)  # 1 hour
    combination_cache_max_entries: int = Field(default=10000, gt=0)
    combination_max_questions: int = Field(default=20, gt=0)

    # Trigger cache (compiled definitions are long-lived, evaluations are not)
    trigger_cache_ttl: int = Field(default=900, gt=0)  # 15 minutes
    trigger_cache_max_entries: int = Field(default=10000, gt=0)
    trigger_eval_ttl: int = Field(default=300, gt=0)  # 5 minutes
    trigger_eval_max_entries: int = Field(default=10000, gt=0)

    # Eviction / concurrency
    eviction_fraction: float = Field(default=0.2, gt=0, le=1)
    single_flight: bool = True

    # Observability
    enable_metrics: bool = Field(default=True, validation_alias="ENABLE_METRICS")
    log_level: str = "INFO"
    log_json: bool = True


settings = Settings()
