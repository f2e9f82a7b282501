"""Host configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Tracker"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Storage ---
    database_url: str | None = None  # unset = in-memory stores
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5

    # --- Sync ---
    sync_config_path: str | None = None  # overrides the bundled sync_config.yaml
    scheduler_poll_seconds: float = 60.0  # in-process scheduler loop, when enabled by the host

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
