"""
Core Models.

Strict internal types produced by the parse step at the Notion boundary.
Scoring code only ever sees these; raw property maps never cross into it.

Design:
- Item / Attempt / Collection are frozen (read-only to the engine)
- SessionUnit is created fresh per orchestration call
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

DEFAULT_DIFFICULTY = 3


class AttemptResult(str, Enum):
    """Outcome recorded for a single attempt."""

    SOLVED = "Solved"
    PARTIAL = "Partial"
    STUCK = "Stuck"
    SKIPPED = "Skipped"

    @property
    def is_success(self) -> bool:
        return self in (AttemptResult.SOLVED, AttemptResult.PARTIAL)

    @property
    def is_failure(self) -> bool:
        return self in (AttemptResult.STUCK, AttemptResult.SKIPPED)


class Confidence(str, Enum):
    """Self-reported confidence after an attempt."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @property
    def score(self) -> float:
        return {
            Confidence.LOW: 0.0,
            Confidence.MEDIUM: 0.5,
            Confidence.HIGH: 1.0,
        }[self]


class SlotType(str, Enum):
    """The three slots of a daily session."""

    REVIEW = "review"
    CORE = "core"
    BREADTH = "breadth"


@dataclass(frozen=True)
class Item:
    """A practice unit owned by its source collection."""

    id: str
    domain: str = ""
    difficulty: int | None = None
    pattern: str | None = None
    source_collection_id: str = ""
    name: str = ""
    completed: bool = False

    @property
    def difficulty_or_default(self) -> int:
        return self.difficulty if self.difficulty is not None else DEFAULT_DIFFICULTY


@dataclass(frozen=True)
class Attempt:
    """Immutable attempt record. Append-only upstream."""

    item_id: str
    result: AttemptResult
    time_spent_minutes: float
    created_at: datetime
    confidence: Confidence | None = None
    mistake_tags: tuple[str, ...] = ()
    domain: str | None = None  # Sheet hint, used when the item is unknown
    external: bool = False  # Self-reported practice outside the tracker


@dataclass(frozen=True)
class PropertySchema:
    """One property of a collection schema."""

    name: str
    type: str
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class Collection:
    """An external group of items (one Notion database)."""

    id: str
    title: str
    schema_fingerprint: str
    properties: tuple[PropertySchema, ...] = ()
    domain: str | None = None
    url: str | None = None

    def get_property(self, name: str) -> PropertySchema | None:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def has_property(self, name: str) -> bool:
        return self.get_property(name) is not None

    @property
    def property_names(self) -> list[str]:
        return [prop.name for prop in self.properties]


@dataclass
class SessionUnit:
    """One slot of a session. ``item`` is None when the slot has no candidate."""

    type: SlotType
    item: Item | None
    rationale: str
    unit_type: str
    time_minutes: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.item is None

    def to_dict(self) -> dict:
        """Convert to dictionary for display/serialization."""
        return {
            "type": self.type.value,
            "unit_type": self.unit_type,
            "time_minutes": self.time_minutes,
            "rationale": self.rationale,
            "item": None if self.item is None else {
                "id": self.item.id,
                "name": self.item.name,
                "domain": self.item.domain,
                "difficulty": self.item.difficulty,
                "pattern": self.item.pattern,
                "source_collection_id": self.item.source_collection_id,
            },
        }


@dataclass
class SessionPlan:
    """The three selected units of one orchestration call."""

    review_unit: SessionUnit
    core_unit: SessionUnit
    breadth_unit: SessionUnit
    domain_debts: dict[str, float] = field(default_factory=dict)

    @property
    def units(self) -> list[SessionUnit]:
        return [self.review_unit, self.core_unit, self.breadth_unit]


@dataclass(frozen=True)
class Readiness:
    """
    Performance metrics from an item's recent attempts.

    Defaults describe an item with no history.
    """

    success_rate: float = 0.5
    avg_confidence: float = 0.5
    avg_time_to_solve: float = 30.0
    mistake_recurrence: float = 0.0


@dataclass(frozen=True)
class ItemAttemptSummary:
    """Replayed attempt history for one item."""

    item_id: str
    has_attempts: bool = False
    attempt_count: int = 0
    last_result: AttemptResult | None = None
    last_attempt_at: datetime | None = None
    last_attempt_index: int | None = None  # Global recency rank, 0 = newest attempt overall
    failure_streak: int = 0
    recently_failed: bool = False
    is_overdue: bool = False
    needs_refinement: bool = False
    avg_confidence: float = 0.5
