"""Configuration module for avisos."""

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from avisos import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the default database
_USER_ENV = Path.home() / ".avisos" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

MILLIS_PER_DAY = 24 * 60 * 60 * 1000

DEFAULT_USERS = ("Pedro", "Isa", "Lourdes", "Alexia", "Albert", "Joan")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_users() -> List[str]:
    raw = os.getenv("AVISOS_AVAILABLE_USERS")
    if not raw:
        return list(DEFAULT_USERS)
    return [user.strip() for user in raw.split(",") if user.strip()]


class AvisosConfig(BaseModel):
    """Configuration for the note store, recycle bin and expiry sweep."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("AVISOS_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("AVISOS_DATABASE_PATH", "data/db/avisos.db")
        )
    )
    # When True, uses in-memory SQLite (tests and throwaway sessions)
    in_memory_db: bool = Field(
        default_factory=lambda: _env_flag("AVISOS_IN_MEMORY_DB", "false")
    )
    # Recycle bin: soft-deleted notes older than this are purged by the sweep
    retention_days: int = Field(
        default_factory=lambda: int(os.getenv("AVISOS_RETENTION_DAYS", "15"))
    )
    # Expiry sweep scheduling
    sweep_interval_hours: float = Field(
        default_factory=lambda: float(os.getenv("AVISOS_SWEEP_INTERVAL_HOURS", "24"))
    )
    sweep_retry_seconds: float = Field(
        default_factory=lambda: float(os.getenv("AVISOS_SWEEP_RETRY_SECONDS", "300"))
    )
    # Identities allowed to author and modify notes
    available_users: List[str] = Field(default_factory=_env_users)
    # Logging
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("AVISOS_LOG_DIR")) if os.getenv("AVISOS_LOG_DIR") else None
        )
    )
    app_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_lifecycle_config(self) -> "AvisosConfig":
        """Reject retention and scheduling values the sweep cannot honour."""
        if self.retention_days < 1:
            raise ValueError("retention_days must be >= 1")
        if self.sweep_interval_hours <= 0:
            raise ValueError("sweep_interval_hours must be > 0")
        if self.sweep_retry_seconds <= 0:
            raise ValueError("sweep_retry_seconds must be > 0")
        if self.sweep_interval_hours > 24:
            logger.warning(
                "Sweep interval of %.1fh exceeds one day; expired notes may "
                "linger in the recycle bin past the %d-day retention window.",
                self.sweep_interval_hours,
                self.retention_days,
            )
        return self

    @property
    def retention_millis(self) -> int:
        """Retention window expressed in epoch milliseconds."""
        return self.retention_days * MILLIS_PER_DAY

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        if self.in_memory_db:
            return "sqlite:///:memory:"
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = AvisosConfig()
