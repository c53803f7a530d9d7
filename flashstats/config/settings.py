from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Flashcard Study Statistics"
    database_url: str = "sqlite:///./flashstats.db"

    log_level: str = "INFO"
    log_json: bool = False

    sync_max_sessions: int = 50
    sync_max_session_age_days: int = 30
    idempotency_ttl_seconds: int = 7 * 24 * 60 * 60
    idempotency_max_entries: int = 100_000

    accuracy_period_days: int = 7
    accuracy_trend_threshold: float = 0.05
    top_decks_limit: int = 5
    mastery_easy_streak: int = 3

    model_config = SettingsConfigDict(env_file=".env", env_prefix="FLASHSTATS_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
