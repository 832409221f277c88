"""Runtime settings for conductor, read from the environment or a `.env` file."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All tunables; field names double as environment variable names."""

    # Server
    API_PORT: int = 3000
    DEBUG: bool = False
    DATA_DIR: str = "./data"
    LOG_LEVEL: str = "info"  # debug | info | warning | error | critical

    # Reasoning engine
    ENGINE: str = "anthropic"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-sonnet-4-6"
    MAX_TOKENS: int = 4096
    MAX_ROUNDS: int = 10  # Engine queries allowed per turn before the turn is aborted

    # Analysis provider (runs in its own process, reads the same settings)
    ANALYSIS_MODEL: str = "claude-haiku-4-5-20251001"
    ANALYSIS_MAX_TOKENS: int = 1024

    # Tool providers
    PROVIDER_STARTUP_TIMEOUT: float = 30.0
    PROVIDER_CALL_TIMEOUT: float | None = 120.0
    PROVIDER_SHUTDOWN_GRACE: float = 5.0

    class Config:
        """Settings source options."""

        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
