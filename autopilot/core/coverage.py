"""
Coverage Debt Model.

Converts a domain's recent practice time and backlog into a single 0-1
urgency score:

    floor_debt   = max(0, floor - (internal + w * external)) / max(floor, 1)
    backlog_debt = remaining / (remaining + completed + 5)
    debt         = 0.6 * floor_debt + 0.4 * backlog_debt

External practice is self-reported and unverifiable, so it counts at
w = 0.4 of tracked practice.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from autopilot.core.domains import DomainType

if TYPE_CHECKING:
    from config import Settings


DEFAULT_WEEKLY_FLOORS: dict[str, int] = {
    DomainType.FUNDAMENTALS.value: 60,
    DomainType.CODING.value: 120,
    DomainType.INTERVIEW.value: 30,
    DomainType.SPICE.value: 10,
}


@dataclass(frozen=True)
class CoverageConfig:
    """Weights and floors for the debt formula."""

    weekly_floors: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_WEEKLY_FLOORS))
    default_floor: int = 30
    external_weight: float = 0.4
    floor_weight: float = 0.6
    backlog_weight: float = 0.4
    backlog_smoothing: int = 5

    @classmethod
    def from_settings(cls, settings: Settings) -> CoverageConfig:
        return cls(
            weekly_floors=settings.get_weekly_floors(),
            default_floor=settings.weekly_floor_default_minutes,
            external_weight=settings.external_attempt_weight,
        )


@dataclass(frozen=True)
class CoverageInputs:
    weekly_floor_minutes: float = 0
    minutes_last_7d: float = 0
    external_minutes_last_7d: float = 0
    remaining_units: int = 0
    completed_units: int = 0


def floor_debt(inputs: CoverageInputs, config: CoverageConfig | None = None) -> float:
    config = config or CoverageConfig()
    practiced = inputs.minutes_last_7d + inputs.external_minutes_last_7d * config.external_weight
    shortfall = max(0.0, inputs.weekly_floor_minutes - practiced)
    return shortfall / max(inputs.weekly_floor_minutes, 1)


def backlog_debt(inputs: CoverageInputs, config: CoverageConfig | None = None) -> float:
    config = config or CoverageConfig()
    remaining = max(0, inputs.remaining_units)
    completed = max(0, inputs.completed_units)
    return remaining / (remaining + completed + config.backlog_smoothing)


def calculate_coverage_debt(inputs: CoverageInputs, config: CoverageConfig | None = None) -> float:
    """
    Calculate coverage debt for a domain.

    Args:
        inputs: Floor, recent minutes and backlog counts for one domain
        config: Weights (defaults match the documented formula)

    Returns:
        Debt in [0, 1]; higher means more under-practiced
    """
    config = config or CoverageConfig()
    debt = (
        config.floor_weight * floor_debt(inputs, config)
        + config.backlog_weight * backlog_debt(inputs, config)
    )
    return max(0.0, min(1.0, debt))


def get_default_weekly_floor(
    domain_type: DomainType | str | None,
    config: CoverageConfig | None = None,
) -> int:
    """Weekly floor minutes for a domain type; unknown types get the default floor."""
    config = config or CoverageConfig()
    key = domain_type.value if isinstance(domain_type, DomainType) else domain_type
    return config.weekly_floors.get(key, config.default_floor)
