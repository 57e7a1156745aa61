"""Configuration utilities for the freezer orchestrator service."""

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.workflow import RetryPolicy


class OrchestratorSettings(BaseSettings):
    """Settings definition; read once by the application factory and injected downstream."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "freezer-orchestrator"
    cors_origins: List[str] = ["http://localhost:3000"]

    # Remote classification model
    ml_endpoint: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("MLENDPOINT", "ML_ENDPOINT", "ml_endpoint")
    )
    ml_request_timeout_seconds: float = 100.0

    # Durable state and downstream queue
    redis_url: str = "redis://localhost:6379/0"
    result_queue_name: str = "classification-results"

    # Call-Model retry policy
    call_model_first_retry_delay_seconds: float = 15.0
    call_model_max_attempts: int = 5
    call_model_backoff_coefficient: float = 2.0
    call_model_max_retry_interval_seconds: float = 300.0

    resume_on_startup: bool = True
    state_store_retry_seconds: float = 5.0

    def call_model_retry_policy(self) -> RetryPolicy:
        """Build the retry policy applied to the Call-Model step."""

        return RetryPolicy(
            first_retry_delay_seconds=self.call_model_first_retry_delay_seconds,
            max_attempts=self.call_model_max_attempts,
            backoff_coefficient=self.call_model_backoff_coefficient,
            max_retry_interval_seconds=self.call_model_max_retry_interval_seconds,
        )


@lru_cache
def get_settings() -> OrchestratorSettings:
    """Return cached OrchestratorSettings to avoid repeated environment parsing."""

    return OrchestratorSettings()
