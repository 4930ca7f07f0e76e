"""
Configuration settings for the prep-autopilot session engine.

Uses Pydantic Settings for environment variable management with .env file support.
Engine components never read these directly; each builds its own immutable
config dataclass through ``from_settings`` so tests can override per instance.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Notion API
    # ========================================
    notion_api_key: str = Field(
        default="",
        description="Notion integration API key",
    )
    notion_version: str = Field(
        default="2022-06-28",
        description="Notion API version",
    )
    notion_timeout_ms: int = Field(
        default=15000,
        description="Timeout for directory/schema/query calls; discovery fails as a whole on timeout",
    )
    notion_page_size: int = Field(
        default=100,
        description="Page size for paginated search and query calls (Notion max is 100)",
    )

    # ========================================
    # Session Composition
    # ========================================
    session_default_minutes: int = Field(
        default=45,
        description="Duration used when a requested duration is not in the allowed set",
    )
    session_allowed_minutes: str = Field(
        default="30,45,90",
        description="Comma-separated list of allowed session durations",
    )
    session_default_focus: Literal["balanced", "dsa-heavy", "interview-heavy"] = Field(
        default="balanced",
        description="Focus mode used by the CLI when none is given",
    )

    # ========================================
    # Attempt Aggregation
    # ========================================
    attempts_recent_window: int = Field(
        default=10,
        description="Most recent attempts per item used for readiness metrics",
    )
    review_window: int = Field(
        default=10,
        description="Global recency rank at or below which a solved item is reviewable",
    )
    overdue_rank: int = Field(
        default=15,
        description="Global recency rank at or beyond which an attempted item is overdue",
    )
    activity_window_days: int = Field(
        default=7,
        description="Days before the newest attempt in the dataset counted as recent practice",
    )

    # ========================================
    # Coverage Debt
    # ========================================
    weekly_floor_fundamentals_minutes: int = Field(default=60, description="Weekly floor for fundamentals domains")
    weekly_floor_coding_minutes: int = Field(default=120, description="Weekly floor for coding domains")
    weekly_floor_interview_minutes: int = Field(default=30, description="Weekly floor for interview domains")
    weekly_floor_spice_minutes: int = Field(default=10, description="Weekly floor for spice domains")
    weekly_floor_default_minutes: int = Field(default=30, description="Weekly floor for unknown domain types")
    external_attempt_weight: float = Field(
        default=0.4,
        description="Weight of self-reported external practice relative to tracked practice",
    )

    # ========================================
    # Difficulty / Readiness Heuristics
    # ========================================
    difficulty_backoff_per_failure: float = Field(
        default=0.5,
        description="Difficulty reduction per consecutive recent failure",
    )
    difficulty_max_backoff: float = Field(
        default=1.5,
        description="Cap on the failure backoff",
    )
    readiness_easy_below: float = Field(
        default=0.3,
        description="Readiness below this targets Easy (2)",
    )
    readiness_medium_below: float = Field(
        default=0.7,
        description="Readiness below this targets Medium (3); otherwise Hard (4)",
    )

    # ========================================
    # Collection Discovery
    # ========================================
    discovery_auto_accept: float = Field(default=0.7, description="Confidence eligible for auto-accept")
    discovery_warn: float = Field(default=0.4, description="Confidence requiring human selection")
    discovery_title_cap: float = Field(default=0.5, description="Cap on title-keyword confidence")
    discovery_marker_boost: float = Field(default=0.3, description="Boost when marker-prefixed properties exist")
    discovery_typical_boost: float = Field(default=0.2, description="Max boost for domain-typical properties")
    discovery_combined_cap: float = Field(default=0.9, description="Cap on title + schema confidence")
    discovery_schema_weight: float = Field(default=0.7, description="Schema weight when the title is ambiguous")
    discovery_floor: float = Field(default=0.6, description="Confidence floor when all schema signals align")
    discovery_marker_prefix: str = Field(default="CPRD:", description="Prefix of engine-managed marker properties")

    # ========================================
    # Orchestration
    # ========================================
    fetch_workers: int = Field(
        default=4,
        description="Worker threads used to fetch collections in parallel",
    )
    allow_slot_fallback: bool = Field(
        default=False,
        description="Fill an empty Core/Breadth slot from other domains instead of leaving it empty",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def get_allowed_durations(self) -> tuple[int, ...]:
        """Parse the allowed session durations."""
        return tuple(
            int(part.strip()) for part in self.session_allowed_minutes.split(",") if part.strip()
        )

    def get_weekly_floors(self) -> dict[str, int]:
        """Weekly floor minutes keyed by domain type value."""
        return {
            "fundamentals": self.weekly_floor_fundamentals_minutes,
            "coding": self.weekly_floor_coding_minutes,
            "interview": self.weekly_floor_interview_minutes,
            "spice": self.weekly_floor_spice_minutes,
        }

    def has_notion_configured(self) -> bool:
        """Check if Notion credentials are available."""
        return bool(self.notion_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
