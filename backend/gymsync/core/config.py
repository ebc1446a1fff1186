from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    APP_NAME: str = "Gymvy Local Sync"
    VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./gymsync.db"

    # Remote system of record
    BACKEND_API_URL: str = "http://localhost:3000/api"
    SUPABASE_ANON_KEY: Optional[str] = None
    REMOTE_TIMEOUT: int = 15

    # Reachability probe
    CONNECTIVITY_CHECK_URL: str = "https://www.google.com/generate_204"
    CONNECTIVITY_TIMEOUT: float = 5.0
    REACHABILITY_TTL_SECONDS: float = 10.0

    # Sync retry policy for callers blocked on a remote id
    SYNC_RETRY_ATTEMPTS: int = 3
    SYNC_RETRY_INITIAL_DELAY: float = 1.0
    SYNC_RETRY_BACKOFF: float = 2.0
    SYNC_RETRY_MAX_DELAY: float = 4.0
    SYNC_MAX_CONCURRENCY: int = 4

    # Local quotas
    MAX_SAVED_WORKOUTS: int = 10
    MAX_EXERCISES_PER_WORKOUT: int = 20

    # Calendar markers older than this are pruned; must outlast any streak shown
    CALENDAR_RETENTION_DAYS: int = 365

    class Config:
        env_file = ".env"


settings = Settings()
