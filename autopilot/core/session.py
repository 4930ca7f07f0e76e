"""
Session Composer.

Splits a session's total minutes across the Review, Core and Breadth slots.

Each focus mode gives every slot a [min, max] range. The total picks a point
between the all-min and all-max allocations, everything is rescaled so the
slots sum to the total, and Breadth takes the rounding remainder. The three
slot times always add up to exactly the requested total.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from autopilot.core.models import SessionUnit, SlotType

if TYPE_CHECKING:
    from config import Settings


class FocusMode(str, Enum):
    BALANCED = "balanced"
    DSA_HEAVY = "dsa-heavy"
    INTERVIEW_HEAVY = "interview-heavy"

    @classmethod
    def parse(cls, value: FocusMode | str | None) -> FocusMode:
        """Lenient parse: unknown or missing values are balanced."""
        if isinstance(value, cls):
            return value
        for mode in cls:
            if mode.value == value:
                return mode
        if value is not None:
            logger.warning(f"Unknown focus mode '{value}', using {cls.BALANCED.value}")
        return cls.BALANCED


SESSION_DURATIONS: tuple[int, ...] = (30, 45, 90)
DEFAULT_DURATION = 45


@dataclass(frozen=True)
class SlotRange:
    min: int
    max: int

    def interpolate(self, scale: float) -> float:
        return self.min + scale * (self.max - self.min)


@dataclass(frozen=True)
class SlotAllocation:
    review: SlotRange
    core: SlotRange
    breadth: SlotRange

    @property
    def total_min(self) -> int:
        return self.review.min + self.core.min + self.breadth.min

    @property
    def total_max(self) -> int:
        return self.review.max + self.core.max + self.breadth.max


TIME_ALLOCATIONS: dict[FocusMode, SlotAllocation] = {
    FocusMode.BALANCED: SlotAllocation(
        review=SlotRange(5, 8), core=SlotRange(20, 32), breadth=SlotRange(5, 12)
    ),
    FocusMode.DSA_HEAVY: SlotAllocation(
        review=SlotRange(5, 8), core=SlotRange(25, 35), breadth=SlotRange(5, 10)
    ),
    FocusMode.INTERVIEW_HEAVY: SlotAllocation(
        review=SlotRange(5, 8), core=SlotRange(18, 28), breadth=SlotRange(8, 15)
    ),
}


@dataclass
class ComposedSession:
    """A session with a minute budget on every unit."""

    total_minutes: int
    focus_mode: FocusMode
    review_unit: SessionUnit
    core_unit: SessionUnit
    breadth_unit: SessionUnit
    domain_debts: dict[str, float] = field(default_factory=dict)

    @property
    def units(self) -> list[SessionUnit]:
        return [self.review_unit, self.core_unit, self.breadth_unit]

    def to_dict(self) -> dict:
        return {
            "total_minutes": self.total_minutes,
            "focus_mode": self.focus_mode.value,
            "units": [unit.to_dict() for unit in self.units],
            "domain_debts": dict(self.domain_debts),
        }


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


class SessionComposer:
    """
    Allocates minutes to slots and attaches them to session units.

    Args:
        allowed_durations: Accepted totals; anything else falls back to the default
        default_duration: Fallback total
        allocations: Slot ranges per focus mode
    """

    def __init__(
        self,
        allowed_durations: tuple[int, ...] = SESSION_DURATIONS,
        default_duration: int = DEFAULT_DURATION,
        allocations: dict[FocusMode, SlotAllocation] | None = None,
    ):
        self.allowed_durations = tuple(allowed_durations)
        self.default_duration = default_duration
        self.allocations = allocations or TIME_ALLOCATIONS

    @classmethod
    def from_settings(cls, settings: Settings) -> SessionComposer:
        return cls(
            allowed_durations=settings.get_allowed_durations(),
            default_duration=settings.session_default_minutes,
        )

    def normalize_total(self, total_minutes: int | None) -> int:
        if total_minutes in self.allowed_durations:
            return total_minutes
        logger.warning(
            f"Session length {total_minutes} not in {list(self.allowed_durations)}, "
            f"using {self.default_duration}"
        )
        return self.default_duration

    def allocate(self, total_minutes: int | None, focus_mode: FocusMode | str | None) -> dict[SlotType, int]:
        """
        Minutes per slot for a total and focus mode.

        Returns:
            Dict with review, core and breadth minutes summing to the
            (normalized) total
        """
        total = self.normalize_total(total_minutes)
        ranges = self.allocations[FocusMode.parse(focus_mode)]

        span = ranges.total_max - ranges.total_min
        scale = (total - ranges.total_min) / span if span else 0.0
        scale = max(0.0, min(1.0, scale))

        review_base = ranges.review.interpolate(scale)
        core_base = ranges.core.interpolate(scale)
        breadth_base = ranges.breadth.interpolate(scale)
        factor = total / (review_base + core_base + breadth_base)

        review = _round_half_up(review_base * factor)
        core = _round_half_up(core_base * factor)
        breadth = total - review - core

        if breadth < ranges.breadth.min:
            shortfall = ranges.breadth.min - breadth
            from_core = min(shortfall, max(0, core - ranges.core.min))
            core -= from_core
            shortfall -= from_core
            from_review = min(shortfall, max(0, review - ranges.review.min))
            review -= from_review
            breadth = ranges.breadth.min - (shortfall - from_review)
        elif breadth > ranges.breadth.max:
            core += breadth - ranges.breadth.max
            breadth = ranges.breadth.max

        if breadth < 0:
            core += breadth
            breadth = 0

        return {SlotType.REVIEW: review, SlotType.CORE: core, SlotType.BREADTH: breadth}

    def compose(
        self,
        total_minutes: int | None,
        focus_mode: FocusMode | str | None,
        review_unit: SessionUnit,
        core_unit: SessionUnit,
        breadth_unit: SessionUnit,
        domain_debts: dict[str, float] | None = None,
    ) -> ComposedSession:
        """Attach a minute budget to each unit. Units are copied, not mutated."""
        total = self.normalize_total(total_minutes)
        mode = FocusMode.parse(focus_mode)
        minutes = self.allocate(total, mode)

        session = ComposedSession(
            total_minutes=total,
            focus_mode=mode,
            review_unit=replace(review_unit, time_minutes=minutes[SlotType.REVIEW]),
            core_unit=replace(core_unit, time_minutes=minutes[SlotType.CORE]),
            breadth_unit=replace(breadth_unit, time_minutes=minutes[SlotType.BREADTH]),
            domain_debts=dict(domain_debts or {}),
        )
        logger.info(
            f"Composed {total}min {mode.value} session: "
            f"review={minutes[SlotType.REVIEW]} core={minutes[SlotType.CORE]} "
            f"breadth={minutes[SlotType.BREADTH]}"
        )
        return session
