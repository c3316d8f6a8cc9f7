# flcseek/config.py
from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings
from pydantic import Field
import logging

# Load local .env for development
load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")


class Settings(BaseSettings):
    # ─── Database ───────────────────────────────────────────────────────────────
    DATABASE_URL: str = "sqlite:///./flcseek.db"

    # ─── Auth ───────────────────────────────────────────────────────────────────
    JWT_SECRET: str = "development-secret-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_DAYS: int = 7

    # ─── Discipleship rules ─────────────────────────────────────────────────────
    # Sunday services a convert must attend before the attendance stage completes.
    ATTENDANCE_GOAL: int = Field(default=26, ge=1)
    ATTENDANCE_STAGE_NUMBER: int = Field(default=18, ge=1)

    # ─── Rate limiting / caching ────────────────────────────────────────────────
    LOGIN_RATE_LIMIT_MAX: int = 5
    LOGIN_RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    RATE_LIMIT_BACKEND: str = Field(default="memory", pattern="^(memory|database)$")
    RESPONSE_CACHE_TTL_SECONDS: int = Field(default=15, ge=10, le=30)

    # ─── Imports ────────────────────────────────────────────────────────────────
    BULK_IMPORT_MAX_ROWS: int = 500

    # ─── Startup ────────────────────────────────────────────────────────────────
    AUTO_CREATE_TABLES: bool = True

    # ─── Optional Extras ────────────────────────────────────────────────────────
    API_BASE_URL: str = "http://127.0.0.1:8000"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


# single settings instance for the whole app
settings = Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
