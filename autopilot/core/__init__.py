"""
Core Module - Shared domain models and scoring.

Pure functions and small classes with no I/O. Everything the orchestrator
scores with lives here.

Components:
- models: Item, Attempt, Collection, SessionUnit and friends
- domains: DomainType / DomainMode registry
- coverage: coverage-debt formula
- difficulty: readiness and difficulty prioritizer
- session: slot time allocation
- units: work unit type per domain
- errors: exception taxonomy
"""

from autopilot.core.coverage import CoverageConfig, CoverageInputs, calculate_coverage_debt
from autopilot.core.difficulty import DifficultyPrioritizer, PrioritizerConfig
from autopilot.core.domains import DomainMode, DomainRegistry, DomainType, classify_domain
from autopilot.core.models import Attempt, AttemptResult, Collection, Confidence, Item, SessionUnit, SlotType
from autopilot.core.session import FocusMode, SessionComposer

__all__ = [
    "Attempt",
    "AttemptResult",
    "Collection",
    "Confidence",
    "CoverageConfig",
    "CoverageInputs",
    "DifficultyPrioritizer",
    "DomainMode",
    "DomainRegistry",
    "DomainType",
    "FocusMode",
    "Item",
    "PrioritizerConfig",
    "SessionComposer",
    "SessionUnit",
    "SlotType",
    "calculate_coverage_debt",
    "classify_domain",
]
