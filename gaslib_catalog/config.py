import os
from enum import Enum
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field


class ClientMode(str, Enum):
    PRODUCTION = "production"
    FIXTURE = "fixture"


class Settings(BaseModel):
    """
    Process-wide configuration, read once at start-up from the environment (and `.env`).
    """
    model_config = ConfigDict(frozen=True)

    github_token: Optional[str] = None
    database_url: Optional[str] = None
    github_client_mode: ClientMode = ClientMode.PRODUCTION
    request_delay: float = Field(default=1.0, ge=0, description="Minimum seconds between GitHub requests")
    max_retries: int = Field(default=3, ge=1)
    backoff_base: float = Field(default=1.0, ge=0)
    backoff_max: float = Field(default=30.0, ge=0)
    batch_concurrency: int = Field(default=3, ge=1)
    batch_delay: float = Field(default=1.0, ge=0, description="Seconds between batch chunks")
    max_commit_age_days: int = Field(default=730, ge=0, description="0 disables the stale filter")
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        # Load environment variables from .env file
        load_dotenv()

        values = {
            "github_token": os.getenv("GITHUB_TOKEN") or None,
            "database_url": os.getenv("DATABASE_URL") or None,
            "github_client_mode": os.getenv("GITHUB_CLIENT_MODE"),
            "request_delay": os.getenv("REQUEST_DELAY"),
            "max_retries": os.getenv("MAX_RETRIES"),
            "backoff_base": os.getenv("BACKOFF_BASE"),
            "backoff_max": os.getenv("BACKOFF_MAX"),
            "batch_concurrency": os.getenv("BATCH_CONCURRENCY"),
            "batch_delay": os.getenv("BATCH_DELAY"),
            "max_commit_age_days": os.getenv("MAX_COMMIT_AGE_DAYS"),
            "log_level": os.getenv("LOG_LEVEL"),
        }
        # Unset variables fall back to the field defaults
        return cls(**{key: value for key, value in values.items() if value is not None})
