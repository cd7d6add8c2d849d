import logging
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.logging import RichHandler


class EngineSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SIGNULL_", env_file=".env", extra="ignore")

    data_dir: str = "rooms"                  # Where the CLI keeps room documents
    pending_timeout_seconds: float = 10.0    # Lifetime of an unconfirmed optimistic command
    command_memory: int = 256                # Applied command ids remembered per room
    direct_guesses: int = 3                  # Default budget for new rooms
    log_level: str = "WARNING"

    openai_api_key: str | None = None
    anthropic_api_key: str | None = None


@lru_cache()
def get_settings() -> EngineSettings:
    return EngineSettings()


def configure_logging(level: str | None = None):
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
