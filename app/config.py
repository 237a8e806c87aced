# app/config.py
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str
    env: Literal["dev", "stage", "prod"]
    debug: bool = False
    log_level: str = "INFO"
    access_log: bool = True
    sql_echo: bool = True
    auto_init_db: bool = True

    # Tenant used when no tenancy layer supplies one
    default_org_id: str = "default"

    # External collaborators
    youtube_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    sportsgrid_api_token: Optional[str] = None
    cron_secret: Optional[str] = None
    scraper_user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    http_timeout_seconds: float = 30.0
    gemini_timeout_seconds: float = 120.0

    # Worker pools
    query_run_concurrency: int = 2
    source_fetch_concurrency: int = 3
    importance_score_concurrency: int = 5
    clip_pair_concurrency: int = 3
    job_max_attempts: int = 3
    job_backoff_seconds: float = 5.0

    # Scheduler
    scheduler_enabled: bool = False
    scheduler_tick_seconds: int = 60

    # Pipeline tuning
    max_candidates: int = 100
    clip_pair_importance_threshold: int = 40
    query_run_cooldown_minutes: int = 15
    source_run_cooldown_minutes: int = 1
    # In-flight fetch runs older than this that the queue no longer holds are failed
    stale_fetch_run_minutes: int = 30

    @property
    def is_dev(self) -> bool:
        return self.env == "dev" or self.debug is True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
