"""
Session Orchestrator.

Picks the Review, Core and Breadth items for one session:

1. Fetch every mapped collection (in parallel) and merge per domain in a
   fixed order: domains lexicographically, each collection's items by id,
   collections by (item count desc, collection id asc). Fetch completion
   order never reaches the output.
2. Score coverage debt per domain from the attempts snapshot.
3. Review: recently solved/partial items, highest-debt domain first.
4. Core: uncompleted items of the focus mode's domain type, prioritized.
5. Breadth: highest-debt uncompleted item outside the Core domain.

Nothing persists between calls. An empty slot is returned as a unit with no
item and a rationale; fetch failures propagate to the caller.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Union

from loguru import logger

from autopilot.core.coverage import (
    CoverageConfig,
    CoverageInputs,
    calculate_coverage_debt,
    get_default_weekly_floor,
)
from autopilot.core.difficulty import DifficultyPrioritizer, PrioritizerConfig
from autopilot.core.domains import (
    DomainMode,
    DomainRegistry,
    DomainType,
    get_default_domain_mode,
    get_default_registry,
)
from autopilot.core.errors import UnconfirmedMappingError
from autopilot.core.models import Item, SessionPlan, SessionUnit, SlotType
from autopilot.core.session import ComposedSession, FocusMode, SessionComposer
from autopilot.core.units import resolve_unit_type
from autopilot.study.attempts import AttemptsSnapshot
from autopilot.sync.discovery import ConfirmedMapping, DiscoveryProposal

if TYPE_CHECKING:
    from config import Settings


ItemFetcher = Callable[[str], Sequence[Item]]
AttemptsProvider = Callable[[Sequence[Item]], AttemptsSnapshot]

FOCUS_DOMAIN_TYPE: dict[FocusMode, DomainType] = {
    FocusMode.BALANCED: DomainType.FUNDAMENTALS,
    FocusMode.DSA_HEAVY: DomainType.CODING,
    FocusMode.INTERVIEW_HEAVY: DomainType.INTERVIEW,
}


@dataclass(frozen=True)
class OrchestratorConfig:
    fetch_workers: int = 4
    allow_slot_fallback: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> OrchestratorConfig:
        return cls(
            fetch_workers=settings.fetch_workers,
            allow_slot_fallback=settings.allow_slot_fallback,
        )


@dataclass
class OrchestrationRequest:
    """
    One session request.

    ``domains`` is either a caller-owned ``{domain: [collection_id, ...]}``
    mapping or a ConfirmedMapping from discovery. When ``current_fingerprints``
    is given, a ConfirmedMapping is checked against it before any fetch.
    A domain mapped to a single collection may give the id as a bare string.
    """

    domains: Union[Mapping[str, Union[str, Sequence[str]]], ConfirmedMapping]
    total_minutes: int = 45
    focus_mode: FocusMode | str = FocusMode.BALANCED
    current_fingerprints: Mapping[str, str] | None = None


@dataclass
class _DomainPool:
    name: str
    type: DomainType
    items: list[Item]


class SessionOrchestrator:
    """
    Builds session plans from mapped collections and attempt history.

    Args:
        item_fetcher: collection id -> full item list
        attempts_provider: merged items -> AttemptsSnapshot
        config: Fetch parallelism and fallback switch
        registry: Domain name -> type table
        coverage_config: Floors and weights for coverage debt
        prioritizer: Core slot ordering
        composer: Minute allocation for build_session
        domain_mode: Mode applied to every domain (defaults to learning)
    """

    def __init__(
        self,
        item_fetcher: ItemFetcher,
        attempts_provider: AttemptsProvider,
        config: OrchestratorConfig | None = None,
        registry: DomainRegistry | None = None,
        coverage_config: CoverageConfig | None = None,
        prioritizer: DifficultyPrioritizer | None = None,
        composer: SessionComposer | None = None,
        domain_mode: DomainMode | None = None,
    ):
        self.item_fetcher = item_fetcher
        self.attempts_provider = attempts_provider
        self.config = config or OrchestratorConfig()
        self.registry = registry or get_default_registry()
        self.coverage_config = coverage_config or CoverageConfig()
        self.prioritizer = prioritizer or DifficultyPrioritizer()
        self.composer = composer or SessionComposer()
        self.domain_mode = domain_mode or get_default_domain_mode()

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def orchestrate(self, request: OrchestrationRequest) -> SessionPlan:
        """
        Select the three session units.

        Raises:
            UnconfirmedMappingError: The request carries a discovery proposal
            SchemaDriftError: A confirmed mapping no longer matches live schemas
        """
        domains = self._resolve_domains(request)
        pools = self._merge(domains, self._fetch_all(domains))
        all_items = [item for pool in pools for item in pool.items]

        snapshot = self.attempts_provider(all_items)
        completed = set(snapshot.completed_item_ids) | {i.id for i in all_items if i.completed}
        debts = self._domain_debts(pools, snapshot, completed)

        focus = FocusMode.parse(request.focus_mode)
        review = self._select_review(all_items, snapshot, debts)
        core = self._select_core(pools, focus, snapshot, debts, completed)
        breadth = self._select_breadth(all_items, core.item, debts, completed)

        logger.info(
            f"Selected review={self._describe(review)} core={self._describe(core)} "
            f"breadth={self._describe(breadth)}"
        )
        return SessionPlan(review_unit=review, core_unit=core, breadth_unit=breadth, domain_debts=debts)

    def build_session(self, request: OrchestrationRequest) -> ComposedSession:
        """orchestrate() plus minute allocation."""
        plan = self.orchestrate(request)
        return self.composer.compose(
            request.total_minutes,
            request.focus_mode,
            plan.review_unit,
            plan.core_unit,
            plan.breadth_unit,
            domain_debts=plan.domain_debts,
        )

    # =========================================================================
    # FETCH & MERGE
    # =========================================================================

    def _resolve_domains(self, request: OrchestrationRequest) -> dict[str, list[str]]:
        mapping = request.domains
        if isinstance(mapping, DiscoveryProposal):
            raise UnconfirmedMappingError(
                "Discovery proposals must be confirmed before they can be used for a session"
            )
        if isinstance(mapping, ConfirmedMapping):
            if request.current_fingerprints is not None:
                mapping.verify(request.current_fingerprints)
            mapping = mapping.domains

        # Registered spelling, so "dsa" and "DSA" share one pool and its unit types
        resolved: dict[str, list[str]] = {}
        for domain, collection_ids in mapping.items():
            if isinstance(collection_ids, str):
                collection_ids = [collection_ids]
            unique = resolved.setdefault(self.registry.canonical_name(domain) or domain, [])
            for cid in collection_ids:
                if cid not in unique:
                    unique.append(cid)
        return resolved

    def _fetch_all(self, domains: dict[str, list[str]]) -> dict[str, list[Item]]:
        collection_ids = sorted({cid for ids in domains.values() for cid in ids})
        if not collection_ids:
            return {}

        fetched: dict[str, list[Item]] = {}
        workers = max(1, min(self.config.fetch_workers, len(collection_ids)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(self.item_fetcher, cid): cid for cid in collection_ids}
            for future in as_completed(futures):
                cid = futures[future]
                fetched[cid] = list(future.result())
                logger.debug(f"Fetched {len(fetched[cid])} items from {cid}")

        logger.info(f"Fetched {sum(len(v) for v in fetched.values())} items from {len(fetched)} collections")
        return fetched

    def _merge(self, domains: dict[str, list[str]], fetched: dict[str, list[Item]]) -> list[_DomainPool]:
        pools: list[_DomainPool] = []
        for domain in sorted(domains):
            collections = sorted(
                domains[domain],
                key=lambda cid: (-len(fetched.get(cid, [])), cid),
            )
            seen: set[str] = set()
            merged: list[Item] = []
            for cid in collections:
                for item in sorted(fetched.get(cid, []), key=lambda i: i.id):
                    if item.id in seen:
                        continue
                    seen.add(item.id)
                    merged.append(replace(item, domain=domain, source_collection_id=cid))
            pools.append(_DomainPool(name=domain, type=self.registry.classify(domain), items=merged))
        return pools

    # =========================================================================
    # SCORING
    # =========================================================================

    def _domain_debts(
        self,
        pools: list[_DomainPool],
        snapshot: AttemptsSnapshot,
        completed: set[str],
    ) -> dict[str, float]:
        debts: dict[str, float] = {}
        for pool in pools:
            activity = snapshot.activity_for(pool.name)
            done = sum(1 for item in pool.items if item.id in completed)
            inputs = CoverageInputs(
                weekly_floor_minutes=get_default_weekly_floor(pool.type, self.coverage_config),
                minutes_last_7d=activity.minutes_last_7d,
                external_minutes_last_7d=activity.external_minutes_last_7d,
                remaining_units=len(pool.items) - done,
                completed_units=done,
            )
            debts[pool.name] = calculate_coverage_debt(inputs, self.coverage_config)
            logger.debug(f"Coverage debt {pool.name}: {debts[pool.name]:.3f}")
        return debts

    # =========================================================================
    # SLOTS
    # =========================================================================

    def _select_review(
        self,
        items: list[Item],
        snapshot: AttemptsSnapshot,
        debts: dict[str, float],
    ) -> SessionUnit:
        def key(item: Item) -> tuple:
            summary = snapshot.summary_for(item.id)
            return (-debts.get(item.domain, 0.0), summary.last_attempt_index, item.id, item.name)

        reviewed = [
            item for item in items
            if snapshot.summary_for(item.id).has_attempts
            and snapshot.summary_for(item.id).last_result.is_success
        ]
        in_window = [
            item for item in reviewed
            if snapshot.summary_for(item.id).last_attempt_index <= snapshot.review_window
        ]

        if in_window:
            item = min(in_window, key=key)
            return self._unit(SlotType.REVIEW, item, f"Recently solved in {item.domain}; recall it before it fades")
        if reviewed:
            item = min(reviewed, key=key)
            return self._unit(SlotType.REVIEW, item, f"Oldest solved work in {item.domain} is due for a refresh")
        return self._unit(SlotType.REVIEW, None, "No solved or partial attempts yet, nothing to review")

    def _select_core(
        self,
        pools: list[_DomainPool],
        focus: FocusMode,
        snapshot: AttemptsSnapshot,
        debts: dict[str, float],
        completed: set[str],
    ) -> SessionUnit:
        target_type = FOCUS_DOMAIN_TYPE[focus]
        candidates = [
            item
            for pool in pools if pool.type == target_type
            for item in pool.items if item.id not in completed
        ]

        if candidates:
            ranked = self.prioritizer.prioritize(candidates, target_type, None, self.domain_mode, snapshot)
            item = ranked[0]
            return self._unit(
                SlotType.CORE,
                item,
                f"{focus.value} focus: top {target_type.value} item in {self.domain_mode.value} mode",
            )

        if self.config.allow_slot_fallback:
            remaining = [
                item for pool in pools for item in pool.items if item.id not in completed
            ]
            if remaining:
                item = min(remaining, key=lambda i: (-debts.get(i.domain, 0.0), i.domain, i.id, i.name))
                return self._unit(
                    SlotType.CORE,
                    item,
                    f"No open {target_type.value} items; using highest-debt domain {item.domain}",
                )

        return self._unit(SlotType.CORE, None, f"No open {target_type.value} items in the mapped collections")

    def _select_breadth(
        self,
        items: list[Item],
        core_item: Item | None,
        debts: dict[str, float],
        completed: set[str],
    ) -> SessionUnit:
        def key(item: Item) -> tuple:
            return (-debts.get(item.domain, 0.0), item.domain, item.id, item.name)

        core_domain = core_item.domain if core_item else None
        core_id = core_item.id if core_item else None
        open_items = [i for i in items if i.id not in completed and i.id != core_id]

        candidates = [i for i in open_items if i.domain != core_domain]
        if candidates:
            item = min(candidates, key=key)
            return self._unit(
                SlotType.BREADTH,
                item,
                f"{item.domain} has the highest coverage debt ({debts.get(item.domain, 0.0):.2f})",
            )

        if self.config.allow_slot_fallback and open_items:
            item = min(open_items, key=key)
            return self._unit(SlotType.BREADTH, item, f"No other domain has open items; staying in {item.domain}")

        return self._unit(SlotType.BREADTH, None, "No open items outside the core domain")

    @staticmethod
    def _unit(slot: SlotType, item: Item | None, rationale: str) -> SessionUnit:
        unit_type = resolve_unit_type(item.domain if item else None, slot)
        return SessionUnit(type=slot, item=item, rationale=rationale, unit_type=unit_type.value)

    @staticmethod
    def _describe(unit: SessionUnit) -> str:
        return unit.item.id if unit.item else "-"

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        item_fetcher: ItemFetcher,
        attempts_provider: AttemptsProvider,
    ) -> SessionOrchestrator:
        return cls(
            item_fetcher=item_fetcher,
            attempts_provider=attempts_provider,
            config=OrchestratorConfig.from_settings(settings),
            coverage_config=CoverageConfig.from_settings(settings),
            prioritizer=DifficultyPrioritizer(PrioritizerConfig.from_settings(settings)),
            composer=SessionComposer.from_settings(settings),
        )
