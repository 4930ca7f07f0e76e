"""
Domain Classification.

Maps a domain name to a coarse DomainType that parameterizes every
downstream policy (weekly floors, prioritization branch, core slot focus).
The registry is static and total: unknown names classify as fundamentals.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class DomainType(str, Enum):
    """Coarse domain category."""

    FUNDAMENTALS = "fundamentals"
    CODING = "coding"
    INTERVIEW = "interview"
    SPICE = "spice"


class DomainMode(str, Enum):
    """Learning phase of a domain. Alters the prioritization policy."""

    LEARNING = "learning"
    REVISION = "revision"
    POLISH = "polish"


@dataclass(frozen=True)
class Domain:
    name: str
    type: DomainType


DEFAULT_DOMAINS: tuple[Domain, ...] = (
    Domain("DSA", DomainType.CODING),
    Domain("OOP", DomainType.FUNDAMENTALS),
    Domain("OS", DomainType.FUNDAMENTALS),
    Domain("DBMS", DomainType.FUNDAMENTALS),
    Domain("CN", DomainType.FUNDAMENTALS),
    Domain("Behavioral", DomainType.INTERVIEW),
    Domain("HR", DomainType.INTERVIEW),
    Domain("OA", DomainType.CODING),
    Domain("Phone Screen", DomainType.INTERVIEW),
    Domain("Aptitude", DomainType.SPICE),
    Domain("Puzzles", DomainType.SPICE),
    Domain("LLD", DomainType.FUNDAMENTALS),
    Domain("HLD", DomainType.FUNDAMENTALS),
)


class DomainRegistry:
    """
    Immutable name -> type table.

    Loaded once and injected into components; pass a custom domain list in
    tests to override the defaults.
    """

    def __init__(self, domains: Iterable[Domain] = DEFAULT_DOMAINS):
        self._domains = tuple(domains)
        self._by_key = {d.name.lower(): d for d in self._domains}

    def classify(self, domain_name: str | None) -> DomainType:
        """Case-insensitive exact match; unmatched names are fundamentals."""
        if not domain_name:
            return DomainType.FUNDAMENTALS
        domain = self._by_key.get(domain_name.lower())
        return domain.type if domain else DomainType.FUNDAMENTALS

    def canonical_name(self, domain_name: str) -> str | None:
        """Registered spelling of a domain name, or None if unknown."""
        domain = self._by_key.get(domain_name.lower())
        return domain.name if domain else None


_default_registry = DomainRegistry()


def get_default_registry() -> DomainRegistry:
    return _default_registry


def classify_domain(domain_name: str | None, registry: DomainRegistry | None = None) -> DomainType:
    """Classify a domain by name against the given (or default) registry."""
    return (registry or _default_registry).classify(domain_name)


def get_default_domain_mode() -> DomainMode:
    # Every domain starts in LEARNING; inference from progress is not implemented yet.
    return DomainMode.LEARNING
