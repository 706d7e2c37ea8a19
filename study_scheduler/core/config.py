"""Application configuration managed via environment variables."""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Study Scheduler Backend"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://scheduler@localhost:5432/study_scheduler"
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "study-scheduler"
    user_id_header: str = "X-User-Id"
    suggestion_horizon_days: int = 14
    default_session_minutes: int = 60
    schedulable_block_types: List[str] = ["study", "free"]


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
