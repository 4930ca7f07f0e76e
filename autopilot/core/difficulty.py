"""
Difficulty/Readiness Prioritizer.

Orders candidate items for a slot. The policy branches on DomainMode first,
then DomainType:

- learning + fundamentals: effective difficulty descending, where recent
  failures back the difficulty off
- learning + coding: closest to the target difficulty implied by readiness
- learning + interview: overdue, then needs-refinement, then difficulty
- revision: overdue, then recently failed, then weakest (coding) or hardest
- polish: needs-refinement, then least confident
- anything else: difficulty descending

Ties keep the input order (sorted() is stable), so callers hand in a
deterministic sequence and get a total order back.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

from autopilot.core.domains import DomainMode, DomainType
from autopilot.core.models import Item, Readiness

if TYPE_CHECKING:
    from autopilot.study.attempts import AttemptsSnapshot
    from config import Settings


class DifficultyLevel(IntEnum):
    EASY = 2
    MEDIUM = 3
    HARD = 4


MIN_DIFFICULTY = 1


@dataclass(frozen=True)
class PrioritizerConfig:
    """Heuristic constants. Kept configurable rather than hard-coded."""

    backoff_per_failure: float = 0.5
    max_backoff: float = 1.5
    easy_below: float = 0.3
    medium_below: float = 0.7
    interview_difficulty_weight: float = 0.1
    time_reference_minutes: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> PrioritizerConfig:
        return cls(
            backoff_per_failure=settings.difficulty_backoff_per_failure,
            max_backoff=settings.difficulty_max_backoff,
            easy_below=settings.readiness_easy_below,
            medium_below=settings.readiness_medium_below,
        )


def calculate_effective_difficulty(
    base_difficulty: int,
    failure_streak: int,
    config: PrioritizerConfig | None = None,
) -> float:
    """max(1, base - min(max_backoff, backoff_per_failure * streak))"""
    config = config or PrioritizerConfig()
    backoff = min(config.max_backoff, config.backoff_per_failure * max(0, failure_streak))
    return max(MIN_DIFFICULTY, base_difficulty - backoff)


def calculate_readiness(readiness: Readiness, config: PrioritizerConfig | None = None) -> float:
    """
    Collapse readiness metrics into a single 0-1 score.

        0.4 * success + 0.3 * confidence + 0.2 * speed + 0.1 * (1 - recurrence)
    """
    config = config or PrioritizerConfig()
    speed = max(0.0, 1 - readiness.avg_time_to_solve / config.time_reference_minutes)
    return (
        0.4 * readiness.success_rate
        + 0.3 * readiness.avg_confidence
        + 0.2 * speed
        + 0.1 * max(0.0, 1 - readiness.mistake_recurrence)
    )


def target_difficulty_for_readiness(score: float, config: PrioritizerConfig | None = None) -> DifficultyLevel:
    config = config or PrioritizerConfig()
    if score < config.easy_below:
        return DifficultyLevel.EASY
    if score < config.medium_below:
        return DifficultyLevel.MEDIUM
    return DifficultyLevel.HARD


class DifficultyPrioritizer:
    """Sorts items by readiness and difficulty for one domain type and mode."""

    def __init__(self, config: PrioritizerConfig | None = None):
        self.config = config or PrioritizerConfig()

    def prioritize(
        self,
        items: Sequence[Item],
        domain_type: DomainType,
        readiness: Readiness | None,
        domain_mode: DomainMode,
        attempts_data: AttemptsSnapshot,
    ) -> list[Item]:
        """
        Return items in priority order, best first.

        Args:
            items: Candidates (already filtered for completion)
            domain_type: Type of the slot's domain
            readiness: Fallback readiness for items with no history of their own
            domain_mode: learning / revision / polish
            attempts_data: Aggregated attempts snapshot

        Returns:
            New list; the input is not modified
        """
        if domain_mode == DomainMode.LEARNING:
            if domain_type == DomainType.FUNDAMENTALS:
                key = self._learning_fundamentals_key(attempts_data)
            elif domain_type == DomainType.CODING:
                key = self._learning_coding_key(readiness, attempts_data)
            elif domain_type == DomainType.INTERVIEW:
                key = self._learning_interview_key(attempts_data)
            else:
                key = self._difficulty_key
        elif domain_mode == DomainMode.REVISION:
            key = self._revision_key(domain_type, readiness, attempts_data)
        elif domain_mode == DomainMode.POLISH:
            key = self._polish_key(attempts_data)
        else:
            key = self._difficulty_key

        return sorted(items, key=key)

    def item_readiness(
        self,
        item: Item,
        fallback: Readiness | None,
        attempts_data: AttemptsSnapshot,
    ) -> Readiness:
        """Own history first, then the item's pattern, then the caller's fallback."""
        summary = attempts_data.summary_for(item.id)
        if summary.has_attempts:
            return attempts_data.readiness_for(item.id)
        by_pattern = attempts_data.get_pattern_readiness(item.pattern)
        if by_pattern is not None:
            return by_pattern
        return fallback or Readiness()

    # =========================================================================
    # SORT KEYS (ascending; negate for descending)
    # =========================================================================

    def _difficulty_key(self, item: Item) -> float:
        return -item.difficulty_or_default

    def _learning_fundamentals_key(self, attempts_data: AttemptsSnapshot):
        def key(item: Item) -> float:
            streak = attempts_data.summary_for(item.id).failure_streak
            effective = calculate_effective_difficulty(item.difficulty_or_default, streak, self.config)
            return -effective

        return key

    def _learning_coding_key(self, readiness: Readiness | None, attempts_data: AttemptsSnapshot):
        def key(item: Item) -> float:
            score = calculate_readiness(self.item_readiness(item, readiness, attempts_data), self.config)
            target = target_difficulty_for_readiness(score, self.config)
            return abs(item.difficulty_or_default - target)

        return key

    def _learning_interview_key(self, attempts_data: AttemptsSnapshot):
        weight = self.config.interview_difficulty_weight

        def key(item: Item) -> tuple:
            summary = attempts_data.summary_for(item.id)
            return (
                not summary.is_overdue,
                not summary.needs_refinement,
                -item.difficulty_or_default * weight,
            )

        return key

    def _revision_key(
        self,
        domain_type: DomainType,
        readiness: Readiness | None,
        attempts_data: AttemptsSnapshot,
    ):
        def key(item: Item) -> tuple:
            summary = attempts_data.summary_for(item.id)
            if domain_type == DomainType.CODING:
                secondary = calculate_readiness(
                    self.item_readiness(item, readiness, attempts_data), self.config
                )
            else:
                secondary = -item.difficulty_or_default
            return (
                not summary.is_overdue,
                not summary.recently_failed,
                secondary,
            )

        return key

    def _polish_key(self, attempts_data: AttemptsSnapshot):
        def key(item: Item) -> tuple:
            summary = attempts_data.summary_for(item.id)
            return (not summary.needs_refinement, summary.avg_confidence)

        return key
