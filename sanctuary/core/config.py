from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "Sanctuary Analytics"
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = "development"  # "development", "staging", "production"

    # Local SQLite by default, PostgreSQL in production
    DATABASE_URL: str = "sqlite:///./sanctuary.db"

    SECRET_KEY: str = ""  # Must be set via environment variable
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 1 day

    # Frontend URL allowed by CORS in addition to CORS_ORIGINS
    FRONTEND_URL: str = "http://localhost:5173"
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Presence tracking
    ACTIVE_USER_WINDOW_MINUTES: int = 30
    # Close sessions idle for this many hours; 0 keeps them open until an explicit end-session
    SESSION_ABANDON_HOURS: int = 0

    # Background jobs (sweeps also run inside the write path regardless)
    RUN_SCHEDULER: bool = False
    ACTIVE_USER_SWEEP_INTERVAL_MINUTES: int = 5
    ABANDONED_SESSION_SWEEP_INTERVAL_MINUTES: int = 60

    # IP geolocation; empty URL means offline (every lookup resolves to "Unknown")
    # The URL is formatted with {ip}, e.g. "https://ipapi.co/{ip}/json/"
    GEOIP_LOOKUP_URL: str = ""
    GEOIP_TIMEOUT_SECONDS: float = 1.5
    GEOIP_CACHE_SIZE: int = 4096
    GEOIP_CACHE_TTL_SECONDS: int = 60 * 60 * 24

    # Error tracking
    SENTRY_DSN: str = ""

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


settings = Settings()
