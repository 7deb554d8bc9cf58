"""Process-wide settings, read from the environment or a ``.env`` file."""

from pydantic import field_validator
from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
)


class Settings(BaseSettings):
    """
    Defaults for the CLI and the HTTP API.

    The agent loop never reads these directly; they are turned into an immutable per-run
    configuration by ``AgentConfig.from_settings``.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Service
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical
    WORKDIR: str = "."  # Root directory of the filesystem tools

    # Model providers
    MODEL_PROVIDER: str = "openai"  # Options: openai, anthropic, tgi
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None
    OPENAI_MODEL: str = "gpt-4o"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"
    TGI_ENDPOINT: str = "http://tgi:8080"
    MODEL_MAX_RETRIES: int = 3

    # Agent loop
    MAX_STEPS: int = 10
    STEP_TIMEOUT: float | None = None  # Seconds, per model call and per tool call
    COMPLETION_POLICY: str = "explicit"  # Options: explicit, implicit
    MAX_TOOL_THREADS: int = 10

    @field_validator("LOG_LEVEL", "MODEL_PROVIDER", "COMPLETION_POLICY")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.strip().lower()


settings = Settings()
