from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from syn.errors import ConfigError
from syn.utils.retry import RetryConfig

DEFAULT_BASE_URL = "https://api.synthetic.new/openai/v1"
DEFAULT_MODEL = "hf:deepseek-ai/DeepSeek-V3.2"


class EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    api_key: str | None = Field(default=None, validation_alias=AliasChoices("SYN_API_KEY", "SYNTHETIC_API_KEY"))
    base_url: str = Field(default=DEFAULT_BASE_URL, alias="SYN_BASE_URL")
    model: str = Field(default=DEFAULT_MODEL, alias="SYN_MODEL")
    timeout_seconds: float = Field(default=60.0, alias="SYN_TIMEOUT_SECONDS")

    retry_max_attempts: int = Field(default=3, alias="SYN_RETRY_MAX_ATTEMPTS")
    retry_initial_backoff_seconds: float = Field(default=1.0, alias="SYN_RETRY_INITIAL_BACKOFF")
    retry_max_backoff_seconds: float = Field(default=30.0, alias="SYN_RETRY_MAX_BACKOFF")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    def require_api_key(self) -> str:
        key = (self.api_key or "").strip()
        if not key:
            raise ConfigError("API key is not configured. Set SYN_API_KEY (or SYNTHETIC_API_KEY) in the environment or .env")
        return key

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            attempts=self.retry_max_attempts,
            min_seconds=self.retry_initial_backoff_seconds,
            max_seconds=self.retry_max_backoff_seconds,
        )


class ChatDefaults(BaseModel):
    temperature: float = 0.6
    max_tokens: int = 8192
    top_p: float = 0.9


ReportFormat = Literal["md", "json"]
LeaderboardMode = Literal["generated", "manual"]


class EvalSettings(BaseModel):
    dataset: str = "testdata/eval/walter_lewin"
    out: str = ""
    format: ReportFormat = "md"
    models: str = ""
    limit: int = Field(default=0, ge=0)
    recall_threshold: float = 0.90
    history: str = "analysis-results/eval-history.jsonl"
    leaderboard_out: str = "analysis-results/eval-leaderboard.md"
    leaderboard_top: int = Field(default=10, ge=0)
    leaderboard_mode: LeaderboardMode = "generated"
    no_history: bool = False
    responses_dir: str = "analysis-results/eval-responses"
    timeout_seconds: float = Field(default=120.0, gt=0)
    # Streaming sampling for eval is pinned so runs stay comparable.
    top_p: float = 1.0

    @field_validator("recall_threshold")
    @classmethod
    def _threshold_in_unit_range(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("recall threshold must be within [0, 1]")
        return v
