"""Runtime settings for the workflow co-pilot pipeline.

AgentSettings covers everything the orchestrator, cache and validator need at
construction time. Backend credentials live in ReasoningSettings
(workflow_copilot/reasoning.py) so the pipeline can run without them.

Environment variables:
  COPILOT_CACHE_MAX_SIZE       — maximum cached requests (default: 100)
  COPILOT_CACHE_TTL_SECONDS    — lifetime of a cached ParsedIntent (default: 300)
  COPILOT_STAGE_TIMEOUT        — seconds before a pipeline stage is cancelled (default: 30)
  COPILOT_PARALLEL_EXECUTION   — run independent plan steps concurrently (default: false)
  COPILOT_BACKEND_FALLBACK     — use heuristics when the backend call fails (default: true)
  COPILOT_LOG_LEVEL            — root log level for CLI / server (default: WARNING)
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentSettings(BaseSettings):
    """Pipeline settings, read from the environment (or a .env file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    cache_max_size: int = Field(default=100, validation_alias="COPILOT_CACHE_MAX_SIZE")
    cache_ttl_seconds: float = Field(default=300.0, validation_alias="COPILOT_CACHE_TTL_SECONDS")
    stage_timeout_seconds: float = Field(default=30.0, validation_alias="COPILOT_STAGE_TIMEOUT")
    parallel_execution: bool = Field(default=False, validation_alias="COPILOT_PARALLEL_EXECUTION")
    fallback_on_backend_error: bool = Field(
        default=True, validation_alias="COPILOT_BACKEND_FALLBACK"
    )
    log_level: str = Field(default="WARNING", validation_alias="COPILOT_LOG_LEVEL")

    @field_validator("cache_max_size")
    @classmethod
    def at_least_one_entry(cls, v: int) -> int:
        return max(1, v)

    @field_validator("cache_ttl_seconds", "stage_timeout_seconds")
    @classmethod
    def positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be a positive number of seconds")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_level(cls, v: object) -> str:
        return str(v).upper()

    @classmethod
    def from_env(cls) -> AgentSettings:
        return cls()
