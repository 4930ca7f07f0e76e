"""
Collection Discovery & Mapping.

Inspects every reachable Notion database and proposes a domain mapping.
Nothing is applied automatically: a DiscoveryProposal has to be confirmed
into a ConfirmedMapping before the orchestrator will use it.

Confidence per collection:
- Title: share of a domain's keywords found in the title, capped at 0.5
- Schema: +0.3 for marker ("CPRD:") properties, +0.2 * share of the
  domain's typical properties present
- Ambiguous titles ("notes", "prep", ...) weight schema 70/30 over title;
  otherwise the two are summed and capped at 0.9
- Markers + typical properties + a practice-sheet shape floor it at 0.6

Tiers: >= 0.7 auto-accept (when alone in its domain), [0.4, 0.7) needs
confirmation, < 0.4 blocked.
"""

from __future__ import annotations

import re
import uuid
from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Protocol

from loguru import logger

from autopilot.core.domains import DomainRegistry, get_default_registry
from autopilot.core.errors import (
    AttemptsStoreError,
    MappingConfirmationError,
    NoEligibleCollectionsError,
    SchemaDriftError,
)
from autopilot.core.models import Collection
from autopilot.sync.notion_client import NotionClient
from autopilot.sync.parsers import TIME_SPENT_PROPERTIES
from config import Settings, get_settings


UNKNOWN_DOMAIN = "Unknown"

DOMAIN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "DSA": ("dsa", "data structure", "data structures", "algorithm", "algorithms",
            "leetcode", "neetcode", "blind 75", "coding"),
    "OOP": ("oop", "object oriented", "object-oriented", "class", "inheritance",
            "polymorphism", "encapsulation"),
    "OS": ("os", "operating system", "process", "thread", "memory", "scheduling"),
    "DBMS": ("dbms", "database management", "database", "sql", "query",
             "normalization", "transaction"),
    "CN": ("cn", "computer network", "networks", "network", "tcp", "http",
           "protocol", "osi"),
    "Behavioral": ("behavioral", "behavioural", "story", "star", "situational"),
    "HR": ("hr", "human resource", "human resources"),
    "OA": ("oa", "online assessment", "assessment", "coding test"),
    "Phone Screen": ("phone screen", "phone interview", "screening"),
    "Aptitude": ("aptitude", "quant", "quantitative", "math", "logic"),
    "Puzzles": ("puzzle", "puzzles", "brain teaser", "riddle"),
    "LLD": ("lld", "low level design", "low-level design", "object design", "class design"),
    "HLD": ("hld", "high level design", "high-level design", "system design", "architecture"),
}

DOMAIN_TYPICAL_PROPERTIES: dict[str, tuple[str, ...]] = {
    "DSA": ("Difficulty", "Pattern", "Topic", "LeetCode Link", "Leetcode Link",
            "LeetCode URL", "Problem Link", "Company", "Tags", "CPRD: Difficulty"),
    "OOP": ("Principles", "Concepts", "Examples", "Design Pattern", "UML", "CPRD: Concepts"),
    "OS": ("Processes", "Threads", "Memory", "Scheduling", "Synchronization", "CPRD: Concepts"),
    "DBMS": ("SQL", "Queries", "Normalization", "Indexes", "Transactions", "CPRD: Concepts"),
    "CN": ("Protocols", "Layers", "TCP", "HTTP", "OSI", "CPRD: Concepts"),
    "Behavioral": ("STAR", "Situation", "Action", "Result", "Story", "CPRD: Story"),
    "HR": ("Question", "Answer", "STAR", "CPRD: Story"),
    "OA": ("Company", "Difficulty", "Platform", "Assessment", "CPRD: Difficulty"),
    "Phone Screen": ("Question", "Answer", "Prompt", "CPRD: Q&A"),
    "Aptitude": ("Type", "Difficulty", "Category", "CPRD: Difficulty"),
    "Puzzles": ("Type", "Difficulty", "Solution", "CPRD: Difficulty"),
    "LLD": ("Design", "Classes", "Class", "Relationships", "UML", "CPRD: Design"),
    "HLD": ("Components", "Scalability", "Architecture", "Tradeoffs", "CPRD: Design"),
}

AMBIGUOUS_TITLE_TOKENS: tuple[str, ...] = ("interview", "prep", "notes", "tracker", "sheet", "study")

# Practice-sheet shape
NAME_PROPERTIES = ("Name", "Title", "Problem", "Question", "Prompt")
STATUS_PROPERTIES = ("Completed", "Status", "Done", "Solved", "Progress", "Result")
LINK_PROPERTIES = ("Link", "URL", "LeetCode Link", "Leetcode Link", "LeetCode URL",
                   "Problem Link", "Reference", "Resource")
DIFFICULTY_SHAPE_PROPERTIES = ("Difficulty", "Level", "CPRD: Difficulty")


def normalize_label(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", (value or "").lower())


class ConfidenceTier(str, Enum):
    HIGH = "high"
    WARN = "warn"
    BLOCK = "block"


@dataclass(frozen=True)
class DiscoveryConfig:
    """Thresholds and lookup tables for classification."""

    auto_accept: float = 0.7
    warn: float = 0.4
    title_cap: float = 0.5
    marker_boost: float = 0.3
    typical_boost: float = 0.2
    combined_cap: float = 0.9
    schema_weight: float = 0.7
    floor: float = 0.6
    marker_prefix: str = "CPRD:"
    schema_candidate_min_matches: int = 2
    schema_candidate_min_ratio: float = 0.2
    weak_title_below: float = 0.25
    keywords: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: dict(DOMAIN_KEYWORDS))
    typical_properties: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DOMAIN_TYPICAL_PROPERTIES)
    )
    ambiguous_tokens: tuple[str, ...] = AMBIGUOUS_TITLE_TOKENS

    @classmethod
    def from_settings(cls, settings: Settings) -> DiscoveryConfig:
        return cls(
            auto_accept=settings.discovery_auto_accept,
            warn=settings.discovery_warn,
            title_cap=settings.discovery_title_cap,
            marker_boost=settings.discovery_marker_boost,
            typical_boost=settings.discovery_typical_boost,
            combined_cap=settings.discovery_combined_cap,
            schema_weight=settings.discovery_schema_weight,
            floor=settings.discovery_floor,
            marker_prefix=settings.discovery_marker_prefix,
        )

    def tier(self, confidence: float) -> ConfidenceTier:
        if confidence >= self.auto_accept:
            return ConfidenceTier.HIGH
        if confidence >= self.warn:
            return ConfidenceTier.WARN
        return ConfidenceTier.BLOCK


# =============================================================================
# CLASSIFICATION
# =============================================================================


@dataclass(frozen=True)
class Classification:
    domain: str
    confidence: float
    title_confidence: float = 0.0
    schema_confidence: float = 0.0
    has_markers: bool = False
    has_typical_properties: bool = False
    is_learning_sheet: bool = False
    ambiguous_title: bool = False


class CollectionClassifier:
    """Scores one collection against every known domain."""

    def __init__(self, config: DiscoveryConfig | None = None):
        self.config = config or DiscoveryConfig()

    @staticmethod
    def _keyword_in(keyword: str, text: str) -> bool:
        # Short keywords ("os", "cn", "hr") only count as whole words
        if len(keyword) <= 3:
            return re.search(rf"\b{re.escape(keyword)}\b", text) is not None
        return keyword in text

    def title_match(self, title: str) -> tuple[str | None, float]:
        """Best domain by keyword share of the title, and its (capped) confidence."""
        lower = title.lower()
        search = f"{lower} {re.sub(r'[^a-z0-9]+', ' ', lower).strip()}"

        best_domain: str | None = None
        best = 0.0
        for domain, keywords in self.config.keywords.items():
            matches = sum(1 for kw in keywords if self._keyword_in(kw, search))
            if matches and matches / len(keywords) > best:
                best = matches / len(keywords)
                best_domain = domain
        return best_domain, min(best, self.config.title_cap)

    def typical_match(self, domain: str, normalized_props: set[str]) -> tuple[int, float]:
        typical = {normalize_label(p) for p in self.config.typical_properties.get(domain, ())}
        if not typical:
            return 0, 0.0
        count = len(typical & normalized_props)
        return count, count / len(typical)

    def schema_candidate(self, normalized_props: set[str]) -> str | None:
        scored = []
        for domain in self.config.typical_properties:
            count, ratio = self.typical_match(domain, normalized_props)
            scored.append((-ratio, -count, domain, count, ratio))
        if not scored:
            return None
        _, _, domain, count, ratio = min(scored)
        if count >= self.config.schema_candidate_min_matches and ratio >= self.config.schema_candidate_min_ratio:
            return domain
        return None

    @staticmethod
    def is_learning_sheet(normalized_props: set[str]) -> bool:
        def has_any(names: tuple[str, ...]) -> bool:
            return any(normalize_label(n) in normalized_props for n in names)

        return has_any(NAME_PROPERTIES) and (
            has_any(STATUS_PROPERTIES) or has_any(LINK_PROPERTIES) or has_any(DIFFICULTY_SHAPE_PROPERTIES)
        )

    def classify(self, collection: Collection) -> Classification:
        cfg = self.config
        normalized = {normalize_label(name) for name in collection.property_names}
        title_lower = collection.title.lower()

        domain, title_confidence = self.title_match(collection.title)
        from_schema = self.schema_candidate(normalized)
        ambiguous = any(token in title_lower for token in cfg.ambiguous_tokens)
        title_weak = title_confidence < cfg.weak_title_below

        if domain is None and from_schema:
            domain = from_schema
        elif domain and from_schema and domain != from_schema and (ambiguous or title_weak):
            domain = from_schema

        schema_confidence = 0.0
        prefix = cfg.marker_prefix.lower()
        has_markers = any(name.lower().startswith(prefix) for name in collection.property_names)
        if has_markers:
            schema_confidence += cfg.marker_boost

        has_typical = False
        if domain:
            count, ratio = self.typical_match(domain, normalized)
            if count > 0:
                has_typical = True
                schema_confidence += cfg.typical_boost * ratio

        learning_sheet = self.is_learning_sheet(normalized)

        if ambiguous and schema_confidence > 0:
            confidence = min(
                cfg.combined_cap,
                title_confidence * (1 - cfg.schema_weight) + schema_confidence * cfg.schema_weight,
            )
        else:
            confidence = min(cfg.combined_cap, title_confidence + schema_confidence)

        if has_markers and has_typical and learning_sheet:
            confidence = max(cfg.floor, confidence)

        return Classification(
            domain=domain or UNKNOWN_DOMAIN,
            confidence=confidence,
            title_confidence=title_confidence,
            schema_confidence=schema_confidence,
            has_markers=has_markers,
            has_typical_properties=has_typical,
            is_learning_sheet=learning_sheet,
            ambiguous_title=ambiguous,
        )


# =============================================================================
# PROPOSAL
# =============================================================================


@dataclass(frozen=True)
class CollectionCandidate:
    collection: Collection
    classification: Classification
    reason: str | None = None

    @property
    def id(self) -> str:
        return self.collection.id

    @property
    def domain(self) -> str:
        return self.classification.domain

    @property
    def confidence(self) -> float:
        return self.classification.confidence


@dataclass(frozen=True)
class FingerprintChange:
    collection_id: str
    previous: str
    current: str | None  # None: the collection is no longer reachable
    title: str = ""


@dataclass
class DiscoveryProposal:
    """
    A mapping recommendation. Never used directly by the orchestrator.

    Ambiguity (several high-confidence collections for a domain, schema
    drift) is reported here as data rather than raised.
    """

    auto_accepted: dict[str, CollectionCandidate]
    requires_confirmation: dict[str, list[CollectionCandidate]]
    blocked: list[CollectionCandidate]
    attempts_collection: Collection
    fingerprints: dict[str, str]
    fingerprint_changes: list[FingerprintChange] = field(default_factory=list)
    proposal_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    consumed: bool = False

    @property
    def fingerprint_changed(self) -> bool:
        return bool(self.fingerprint_changes)

    def candidate(self, collection_id: str) -> CollectionCandidate | None:
        for cand in self.auto_accepted.values():
            if cand.id == collection_id:
                return cand
        for cands in self.requires_confirmation.values():
            for cand in cands:
                if cand.id == collection_id:
                    return cand
        return None


@dataclass(frozen=True)
class ConfirmedMapping:
    """Human-confirmed domain -> collections mapping, pinned to the schemas it was confirmed against."""

    domains: dict[str, tuple[str, ...]]
    attempts_collection_id: str
    fingerprints: dict[str, str]

    @property
    def collection_ids(self) -> list[str]:
        return sorted({cid for ids in self.domains.values() for cid in ids})

    def verify(self, current_fingerprints: Mapping[str, str]) -> None:
        """
        Raise if any pinned collection changed shape or disappeared.

        Raises:
            SchemaDriftError: Lists the collections that need re-confirmation
        """
        changed = [
            cid for cid, fingerprint in sorted(self.fingerprints.items())
            if current_fingerprints.get(cid) != fingerprint
        ]
        if changed:
            raise SchemaDriftError(changed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "domains": {d: list(ids) for d, ids in sorted(self.domains.items())},
            "attempts_collection_id": self.attempts_collection_id,
            "fingerprints": dict(sorted(self.fingerprints.items())),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ConfirmedMapping:
        return cls(
            domains={d: tuple(ids) for d, ids in data["domains"].items()},
            attempts_collection_id=data["attempts_collection_id"],
            fingerprints=dict(data["fingerprints"]),
        )


class CollectionLister(Protocol):
    def list_collections(self) -> list[Collection]: ...


# =============================================================================
# DISCOVERY
# =============================================================================


class CollectionDiscovery:
    """
    Builds DiscoveryProposals and turns confirmed selections into mappings.

    Fails fast: an unreachable directory, a malformed schema, a missing or
    ambiguous attempts store, or zero usable collections abort the whole
    call with no partial proposal.
    """

    def __init__(
        self,
        lister: CollectionLister,
        config: DiscoveryConfig | None = None,
        registry: DomainRegistry | None = None,
    ):
        self.lister = lister
        self.config = config or DiscoveryConfig()
        self.registry = registry or get_default_registry()
        self.classifier = CollectionClassifier(self.config)

    def discover(self, previous_fingerprints: Mapping[str, str] | None = None) -> DiscoveryProposal:
        """
        Classify every reachable collection into a proposal.

        Args:
            previous_fingerprints: Fingerprints from the last confirmed mapping

        Returns:
            DiscoveryProposal awaiting confirmation

        Raises:
            AttemptsStoreError: Zero, several, or only invalid attempts stores
            NoEligibleCollectionsError: Nothing could be proposed
            MalformedCollectionError / DiscoveryTimeoutError: From the lister
        """
        collections = sorted(self.lister.list_collections(), key=lambda c: c.id)
        logger.info(f"Discovering mapping over {len(collections)} collections")

        attempts = self.find_attempts_store(collections)

        by_domain: dict[str, list[CollectionCandidate]] = defaultdict(list)
        blocked: list[CollectionCandidate] = []

        for collection in collections:
            if collection.id == attempts.id:
                continue
            result = self.classifier.classify(collection)
            domain = self.registry.canonical_name(result.domain) or result.domain
            if domain != result.domain:
                result = replace(result, domain=domain)
            logger.debug(
                f"{collection.title!r}: domain={result.domain} confidence={result.confidence:.2f} "
                f"(title={result.title_confidence:.2f}, schema={result.schema_confidence:.2f})"
            )

            if not result.is_learning_sheet:
                blocked.append(CollectionCandidate(collection, result, "not a practice-item collection"))
            elif result.domain == UNKNOWN_DOMAIN:
                blocked.append(CollectionCandidate(collection, result, "could not determine a domain"))
            elif self.config.tier(result.confidence) == ConfidenceTier.BLOCK:
                blocked.append(
                    CollectionCandidate(
                        collection,
                        result,
                        f"confidence {result.confidence:.2f} below {self.config.warn:.2f}",
                    )
                )
            else:
                classified = replace(collection, domain=result.domain)
                by_domain[result.domain].append(CollectionCandidate(classified, result))

        auto_accepted, requires_confirmation = self._partition(by_domain)
        if not auto_accepted and not requires_confirmation:
            raise NoEligibleCollectionsError(
                f"None of the {len(collections)} reachable collections could be mapped to a domain"
            )

        fingerprints = {c.id: c.schema_fingerprint for c in collections}
        proposal = DiscoveryProposal(
            auto_accepted=auto_accepted,
            requires_confirmation=requires_confirmation,
            blocked=blocked,
            attempts_collection=attempts,
            fingerprints=fingerprints,
            fingerprint_changes=self.detect_drift(collections, previous_fingerprints or {}),
        )
        logger.info(
            f"Proposal: {len(auto_accepted)} auto-accepted, "
            f"{sum(len(v) for v in requires_confirmation.values())} need confirmation, "
            f"{len(blocked)} blocked, {len(proposal.fingerprint_changes)} schema changes"
        )
        return proposal

    def _partition(
        self,
        by_domain: dict[str, list[CollectionCandidate]],
    ) -> tuple[dict[str, CollectionCandidate], dict[str, list[CollectionCandidate]]]:
        auto_accepted: dict[str, CollectionCandidate] = {}
        requires_confirmation: dict[str, list[CollectionCandidate]] = {}

        for domain in sorted(by_domain):
            candidates = sorted(by_domain[domain], key=lambda c: (-c.confidence, c.id))
            high = [c for c in candidates if self.config.tier(c.confidence) == ConfidenceTier.HIGH]
            warn = [c for c in candidates if self.config.tier(c.confidence) == ConfidenceTier.WARN]

            if len(high) == 1:
                auto_accepted[domain] = high[0]
                pending = [
                    CollectionCandidate(c.collection, c.classification, f"Optional additional {domain} collection")
                    for c in warn
                ]
            elif len(high) > 1:
                pending = [
                    CollectionCandidate(
                        c.collection, c.classification, f"Multiple high-confidence collections for {domain}"
                    )
                    for c in candidates
                ]
            else:
                pending = [
                    CollectionCandidate(
                        c.collection, c.classification, f"Confidence {c.confidence:.2f} needs confirmation"
                    )
                    for c in warn
                ]

            if pending:
                requires_confirmation[domain] = pending

        return auto_accepted, requires_confirmation

    # =========================================================================
    # ATTEMPTS STORE
    # =========================================================================

    @staticmethod
    def validate_attempts_schema(collection: Collection) -> list[str]:
        """Problems with a would-be attempts store; empty when valid."""
        problems = []
        item = collection.get_property("Item")
        if item is None or item.type != "relation":
            problems.append("Item must be a relation property")

        result = collection.get_property("Result")
        if result is None or result.type != "select":
            problems.append("Result must be a select property")
        elif "Solved" not in result.options:
            problems.append('Result select must include "Solved"')

        time_props = [collection.get_property(name) for name in TIME_SPENT_PROPERTIES]
        if not any(p is not None and p.type == "number" for p in time_props):
            problems.append('a number property "Time Spent (min)" or "Time Spent" is required')
        return problems

    def find_attempts_store(self, collections: Sequence[Collection]) -> Collection:
        """
        Exactly one collection must be a valid attempts store.

        Raises:
            AttemptsStoreError: None found, several found, or all candidates invalid
        """
        candidates = [c for c in collections if c.has_property("Item") and c.has_property("Result")]
        if not candidates:
            raise AttemptsStoreError(
                "No attempts collection found: expected a database with an Item relation, "
                "a Result select and a Time Spent number property"
            )

        valid: list[Collection] = []
        problems: list[str] = []
        for collection in candidates:
            issues = self.validate_attempts_schema(collection)
            if issues:
                problems.append(f"'{collection.title}' ({collection.id}): {'; '.join(issues)}")
            else:
                valid.append(collection)

        if not valid:
            raise AttemptsStoreError("Invalid attempts collection: " + " | ".join(problems))
        if len(valid) > 1:
            names = ", ".join(f"'{c.title}' ({c.id})" for c in valid)
            raise AttemptsStoreError(f"Multiple attempts collections found: {names}")

        logger.info(f"Attempts store: '{valid[0].title}' ({valid[0].id})")
        return valid[0]

    # =========================================================================
    # DRIFT & CONFIRMATION
    # =========================================================================

    @staticmethod
    def detect_drift(
        collections: Sequence[Collection],
        previous_fingerprints: Mapping[str, str],
    ) -> list[FingerprintChange]:
        current = {c.id: c for c in collections}
        changes = []
        for cid in sorted(previous_fingerprints):
            previous = previous_fingerprints[cid]
            collection = current.get(cid)
            if collection is None:
                changes.append(FingerprintChange(cid, previous, None))
            elif collection.schema_fingerprint != previous:
                changes.append(
                    FingerprintChange(cid, previous, collection.schema_fingerprint, collection.title)
                )
        if changes:
            logger.warning(f"Schema changed for {[c.collection_id for c in changes]}")
        return changes

    @staticmethod
    def confirm(
        proposal: DiscoveryProposal,
        selections: Mapping[str, Sequence[str]] | None = None,
        acknowledge_schema_changes: bool = False,
    ) -> ConfirmedMapping:
        """
        Turn a proposal plus human selections into a ConfirmedMapping.

        Args:
            proposal: Output of discover(); usable once
            selections: domain -> chosen collection ids from requires_confirmation.
                Every domain with only pending candidates must be listed; an
                empty list leaves that domain unmapped.
            acknowledge_schema_changes: Required when the proposal reports drift

        Raises:
            MappingConfirmationError: The selections cannot be applied
        """
        selections = selections or {}
        if proposal.consumed:
            raise MappingConfirmationError(f"Proposal {proposal.proposal_id} was already confirmed")
        if proposal.fingerprint_changed and not acknowledge_schema_changes:
            changed = [c.collection_id for c in proposal.fingerprint_changes]
            raise MappingConfirmationError(
                f"Schema changed for {changed}; acknowledge the changes to confirm"
            )

        blocked_ids = {c.id for c in proposal.blocked}
        for domain, chosen in selections.items():
            offered = {c.id for c in proposal.requires_confirmation.get(domain, [])}
            for cid in chosen:
                if cid in blocked_ids:
                    raise MappingConfirmationError(f"Collection {cid} is blocked and cannot be selected")
                if cid not in offered:
                    raise MappingConfirmationError(f"Collection {cid} was not offered for {domain}")

        unresolved = [
            d for d in sorted(proposal.requires_confirmation)
            if d not in proposal.auto_accepted and d not in selections
        ]
        if unresolved:
            raise MappingConfirmationError(f"Domains need a selection: {', '.join(unresolved)}")

        domains: dict[str, tuple[str, ...]] = {}
        for domain in sorted(set(proposal.auto_accepted) | set(selections)):
            ids = set(selections.get(domain, ()))
            if domain in proposal.auto_accepted:
                ids.add(proposal.auto_accepted[domain].id)
            if ids:
                domains[domain] = tuple(sorted(ids))

        pinned = {cid for ids in domains.values() for cid in ids} | {proposal.attempts_collection.id}
        proposal.consumed = True
        mapping = ConfirmedMapping(
            domains=domains,
            attempts_collection_id=proposal.attempts_collection.id,
            fingerprints={cid: proposal.fingerprints[cid] for cid in sorted(pinned)},
        )
        logger.info(f"Confirmed mapping for {len(domains)} domains")
        return mapping


def confirm(
    proposal: DiscoveryProposal,
    selections: Mapping[str, Sequence[str]] | None = None,
    acknowledge_schema_changes: bool = False,
) -> ConfirmedMapping:
    return CollectionDiscovery.confirm(proposal, selections, acknowledge_schema_changes)


def prepare_mapping(
    credentials: str | CollectionLister | None,
    previous_fingerprints: Mapping[str, str] | None = None,
    settings: Settings | None = None,
) -> DiscoveryProposal:
    """
    Discover collections and return a proposal for human confirmation.

    Args:
        credentials: Notion API key, or anything with list_collections()
        previous_fingerprints: Fingerprints from the last confirmed mapping
        settings: Overrides the cached settings
    """
    settings = settings or get_settings()
    if credentials is None or isinstance(credentials, str):
        lister: CollectionLister = NotionClient(api_key=credentials, settings=settings)
    else:
        lister = credentials
    return CollectionDiscovery(lister, DiscoveryConfig.from_settings(settings)).discover(previous_fingerprints)
