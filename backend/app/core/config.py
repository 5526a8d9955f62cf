"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Aura Planner Backend"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://aura@localhost:5432/aura"
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "aura-planner"
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expires_seconds: int = 360000
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 20.0
    chat_history_turns: int = 6
    scheduler_enabled: bool = False
    scheduler_timezone: str = "UTC"
    jobs_run_on_startup: bool = False
    notifications_enabled: bool = False
    notifications_provider: str = "noop"
    expo_push_url: str = "https://exp.host/--/api/v2/push/send"
    push_timeout_seconds: float = 10.0
    reminder_ledger_enabled: bool = False


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
