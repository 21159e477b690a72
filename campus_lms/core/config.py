from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Campus LMS"
    DATABASE_URL: str = f"sqlite:///{BASE_DIR}/campus_lms.db"
    LOG_LEVEL: str = "INFO"

    # Optional user created on startup so a fresh database has someone able to call the API
    BOOTSTRAP_ADMIN_EMAIL: str | None = None

    # Assignment lifecycle
    ASSIGNMENT_INITIAL_STATUS: Literal["draft", "published"] = "draft"
    HISTORY_CAPACITY: int = Field(default=20, ge=1, le=50)

    # Submission lifecycle
    PLAGIARISM_FLAG_THRESHOLD: float = 30.0  # similarity above this percentage is flagged
    SUBMISSION_NUMBER_MAX_RETRIES: int = Field(default=3, ge=0)
    STATISTICS_COUNT_UNGRADED_AS_ZERO: bool = True

    # File storage
    FILE_STORAGE_BACKEND: Literal["local", "http"] = "local"
    FILE_STORAGE_ROOT: str = str(BASE_DIR / "uploads")
    FILE_STORAGE_PUBLIC_URL: str = "/files"
    FILE_STORAGE_URL: str | None = None
    FILE_STORAGE_TIMEOUT_SECONDS: float = 10.0


settings = Settings()
