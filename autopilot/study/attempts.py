"""
Attempt Aggregator.

Replays attempt history into the metrics the prioritizer and orchestrator
consume:

- Readiness per item (success rate, confidence, solve time, mistake recurrence)
  over the 10 most recent attempts
- Failure streak: consecutive Stuck/Skipped from the newest attempt, reset by
  the first Solved/Partial encountered
- Global recency rank of each item's newest attempt (overdue / review window)
- Per-domain practice minutes in the 7 days before the newest attempt in the
  whole dataset. The dataset, not the wall clock, defines "now" so results are
  reproducible against fixed history.
"""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from loguru import logger

from autopilot.core.models import (
    Attempt,
    AttemptResult,
    Item,
    ItemAttemptSummary,
    Readiness,
)

if TYPE_CHECKING:
    from config import Settings


@dataclass(frozen=True)
class AggregatorConfig:
    """Windows and thresholds for attempt replay."""

    recent_window: int = 10
    review_window: int = 10
    overdue_rank: int = 15
    activity_window_days: int = 7
    refinement_confidence: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings) -> AggregatorConfig:
        return cls(
            recent_window=settings.attempts_recent_window,
            review_window=settings.review_window,
            overdue_rank=settings.overdue_rank,
            activity_window_days=settings.activity_window_days,
        )


@dataclass(frozen=True)
class DomainActivity:
    minutes_last_7d: float = 0.0
    external_minutes_last_7d: float = 0.0
    attempt_count: int = 0


@dataclass
class AttemptsSnapshot:
    """Everything the orchestrator needs from attempt history, computed once per call."""

    item_data: dict[str, ItemAttemptSummary] = field(default_factory=dict)
    domain_data: dict[str, DomainActivity] = field(default_factory=dict)
    item_readiness: dict[str, Readiness] = field(default_factory=dict)
    completed_item_ids: frozenset[str] = frozenset()
    review_window: int = 10
    pattern_readiness: dict[str, Readiness] = field(default_factory=dict)

    def summary_for(self, item_id: str) -> ItemAttemptSummary:
        return self.item_data.get(item_id) or ItemAttemptSummary(item_id=item_id)

    def readiness_for(self, item_id: str) -> Readiness:
        return self.item_readiness.get(item_id) or Readiness()

    def activity_for(self, domain: str) -> DomainActivity:
        return self.domain_data.get(domain) or DomainActivity()

    def get_pattern_readiness(self, pattern: str | None) -> Readiness | None:
        """Average readiness over items sharing a pattern (case-insensitive)."""
        if not pattern:
            return None
        return self.pattern_readiness.get(pattern.lower())


def attempt_sort_key(attempt: Attempt) -> tuple:
    """Most-recent-first with a total deterministic tie-break."""
    return (
        -attempt.created_at.timestamp(),
        attempt.item_id,
        attempt.result.value,
        attempt.time_spent_minutes,
        attempt.confidence.value if attempt.confidence else "",
        attempt.mistake_tags,
    )


class AttemptAggregator:
    """
    Builds an AttemptsSnapshot from raw attempts.

    Pure and deterministic: the same attempts in any input order produce the
    same snapshot.
    """

    def __init__(self, config: AggregatorConfig | None = None):
        self.config = config or AggregatorConfig()

    # =========================================================================
    # PER-ITEM METRICS
    # =========================================================================

    @staticmethod
    def order_attempts(attempts: Iterable[Attempt]) -> list[Attempt]:
        return sorted(attempts, key=attempt_sort_key)

    def readiness(self, item_attempts: Sequence[Attempt]) -> Readiness:
        """
        Readiness over the most recent attempts of one item.

        Args:
            item_attempts: Attempts for a single item, any order

        Returns:
            Readiness; defaults when there are no attempts
        """
        if not item_attempts:
            return Readiness()

        recent = self.order_attempts(item_attempts)[: self.config.recent_window]
        total = len(recent)
        solved = sum(1 for a in recent if a.result == AttemptResult.SOLVED)
        # Unreported confidence counts as Low
        confidences = [a.confidence.score if a.confidence else 0.0 for a in recent]
        with_mistakes = sum(1 for a in recent if a.mistake_tags)

        return Readiness(
            success_rate=solved / total,
            avg_confidence=sum(confidences) / total,
            avg_time_to_solve=sum(a.time_spent_minutes for a in recent) / total,
            mistake_recurrence=with_mistakes / total,
        )

    def failure_streak(self, item_attempts: Sequence[Attempt]) -> int:
        """Consecutive recent failures; the first Solved/Partial ends the walk at 0."""
        streak = 0
        for attempt in self.order_attempts(item_attempts):
            if attempt.result.is_success:
                return 0
            streak += 1
        return streak

    # =========================================================================
    # SNAPSHOT
    # =========================================================================

    def aggregate(self, items: Sequence[Item], attempts: Sequence[Attempt]) -> AttemptsSnapshot:
        """
        Replay all attempts against the given items.

        Args:
            items: Items in scope (used for domain lookup and pattern grouping)
            attempts: Full attempt history

        Returns:
            AttemptsSnapshot for one orchestration call
        """
        ordered = self.order_attempts(attempts)
        by_item: dict[str, list[Attempt]] = defaultdict(list)
        newest_rank: dict[str, int] = {}
        for rank, attempt in enumerate(ordered):
            by_item[attempt.item_id].append(attempt)
            newest_rank.setdefault(attempt.item_id, rank)

        item_ids = sorted({item.id for item in items} | set(by_item))
        item_readiness: dict[str, Readiness] = {}
        item_data: dict[str, ItemAttemptSummary] = {}

        for item_id in item_ids:
            history = by_item.get(item_id, [])
            readiness = self.readiness(history)
            item_readiness[item_id] = readiness
            item_data[item_id] = self._summarize(item_id, history, newest_rank.get(item_id), readiness)

        completed = frozenset(
            item_id
            for item_id, history in by_item.items()
            if any(a.result == AttemptResult.SOLVED for a in history)
        )

        snapshot = AttemptsSnapshot(
            item_data=item_data,
            domain_data=self._domain_activity(items, ordered),
            item_readiness=item_readiness,
            completed_item_ids=completed,
            review_window=self.config.review_window,
            pattern_readiness=self._pattern_readiness(items, item_readiness),
        )
        logger.debug(
            f"Aggregated {len(ordered)} attempts over {len(item_ids)} items "
            f"({len(completed)} completed, {len(snapshot.domain_data)} active domains)"
        )
        return snapshot

    def provider(self, attempts: Sequence[Attempt]) -> Callable[[Sequence[Item]], AttemptsSnapshot]:
        """Bind an attempt history into an attempts provider for the orchestrator."""
        frozen = tuple(attempts)

        def _provide(items: Sequence[Item]) -> AttemptsSnapshot:
            return self.aggregate(items, frozen)

        return _provide

    def _summarize(
        self,
        item_id: str,
        history: list[Attempt],
        rank: int | None,
        readiness: Readiness,
    ) -> ItemAttemptSummary:
        if not history:
            return ItemAttemptSummary(item_id=item_id)

        last = history[0]
        recently_failed = last.result.is_failure
        return ItemAttemptSummary(
            item_id=item_id,
            has_attempts=True,
            attempt_count=len(history),
            last_result=last.result,
            last_attempt_at=last.created_at,
            last_attempt_index=rank,
            failure_streak=self.failure_streak(history),
            recently_failed=recently_failed,
            is_overdue=rank is not None and rank >= self.config.overdue_rank,
            needs_refinement=(
                recently_failed or readiness.avg_confidence < self.config.refinement_confidence
            ),
            avg_confidence=readiness.avg_confidence,
        )

    def _domain_activity(self, items: Sequence[Item], ordered: list[Attempt]) -> dict[str, DomainActivity]:
        if not ordered:
            return {}

        reference: datetime = ordered[0].created_at
        cutoff = reference - timedelta(days=self.config.activity_window_days)
        item_domains = {item.id: item.domain for item in items if item.domain}

        internal: dict[str, float] = defaultdict(float)
        external: dict[str, float] = defaultdict(float)
        counts: dict[str, int] = defaultdict(int)

        for attempt in ordered:
            if attempt.created_at < cutoff:
                break
            domain = item_domains.get(attempt.item_id) or attempt.domain
            if not domain:
                continue
            counts[domain] += 1
            if attempt.external:
                external[domain] += attempt.time_spent_minutes
            else:
                internal[domain] += attempt.time_spent_minutes

        return {
            domain: DomainActivity(
                minutes_last_7d=internal[domain],
                external_minutes_last_7d=external[domain],
                attempt_count=counts[domain],
            )
            for domain in sorted(counts)
        }

    @staticmethod
    def _pattern_readiness(items: Sequence[Item], item_readiness: dict[str, Readiness]) -> dict[str, Readiness]:
        groups: dict[str, list[Readiness]] = defaultdict(list)
        seen: set[str] = set()
        for item in sorted(items, key=lambda i: i.id):
            if not item.pattern or item.id in seen:
                continue
            seen.add(item.id)
            groups[item.pattern.lower()].append(item_readiness.get(item.id) or Readiness())

        result: dict[str, Readiness] = {}
        for pattern, scores in groups.items():
            n = len(scores)
            result[pattern] = Readiness(
                success_rate=sum(r.success_rate for r in scores) / n,
                avg_confidence=sum(r.avg_confidence for r in scores) / n,
                avg_time_to_solve=sum(r.avg_time_to_solve for r in scores) / n,
                mistake_recurrence=sum(r.mistake_recurrence for r in scores) / n,
            )
        return result
