"""
Configuration settings for the teach session orchestrator.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default home for saved transcripts and the audit database
TEACH_HOME = Path.home() / ".teach"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Validation Gate
    # ========================================
    mastery_streak: int = Field(
        default=2,
        ge=2,
        description="Consecutive correct verdicts required to advance (last one must apply transfer)",
    )
    remediation_streak: int = Field(
        default=2,
        ge=2,
        description="Consecutive incorrect verdicts at one tier that trigger remediation",
    )
    max_remediation_cycles: int = Field(
        default=3,
        ge=0,
        description="Remediation cycles allowed per concept before it is marked stalled",
    )

    # ========================================
    # Session Persistence
    # ========================================
    session_dir: Path = Field(
        default=TEACH_HOME / "sessions",
        description="Directory for saved session transcripts",
    )
    session_expiry_hours: int = Field(
        default=24,
        description="Saved sessions older than this are considered stale",
    )
    database_url: str = Field(
        default=f"sqlite:///{TEACH_HOME / 'transcripts.db'}",
        description="SQLAlchemy URL for the transcript audit log",
    )

    # ========================================
    # Tutor Oracle
    # ========================================
    oracle_url: str | None = Field(
        default=None,
        description="Base URL of a remote tutor oracle (None uses the scripted oracle)",
    )
    oracle_timeout_ms: int = Field(
        default=30000,
        description="Wall-clock budget for a single oracle call",
    )
    oracle_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts for transient oracle transport failures",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    def get_gate_config(self) -> dict[str, int]:
        """Get validation gate thresholds as a dictionary."""
        return {
            "mastery_streak": self.mastery_streak,
            "remediation_streak": self.remediation_streak,
            "max_remediation_cycles": self.max_remediation_cycles,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
