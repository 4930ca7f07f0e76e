"""
Work Unit Types.

Each domain supports a fixed list of unit types; a session slot uses the
first configured one for its item's domain.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from autopilot.core.models import SlotType


class UnitType(str, Enum):
    SOLVE_PROBLEM = "SolveProblem"
    CONCEPT_BITE = "ConceptBite"
    RECALL_CHECK = "RecallCheck"
    EXPLAIN_OUT_LOUD = "ExplainOutLoud"
    STORY_DRAFT = "StoryDraft"
    MOCK_QA = "MockQA"


@dataclass(frozen=True)
class UnitConfig:
    name: str
    domains: tuple[str, ...]
    output_type: str
    requires_output: bool = True


_FUNDAMENTALS = ("OOP", "OS", "DBMS", "CN", "LLD", "HLD")

# Order matters: the first matching unit type wins.
UNIT_CONFIG: dict[UnitType, UnitConfig] = {
    UnitType.SOLVE_PROBLEM: UnitConfig("Solve Problem", ("DSA", "OA"), "solution"),
    UnitType.CONCEPT_BITE: UnitConfig("Concept Bite", _FUNDAMENTALS, "summary"),
    UnitType.RECALL_CHECK: UnitConfig("Recall Check", _FUNDAMENTALS, "answers"),
    UnitType.EXPLAIN_OUT_LOUD: UnitConfig("Explain Out Loud", _FUNDAMENTALS, "explanation"),
    UnitType.STORY_DRAFT: UnitConfig("Story Draft", ("Behavioral", "HR"), "star_bullets"),
    UnitType.MOCK_QA: UnitConfig("Mock Q&A", ("Phone Screen",), "answer_evaluation"),
}

SLOT_FALLBACK_UNIT: dict[SlotType, UnitType] = {
    SlotType.REVIEW: UnitType.RECALL_CHECK,
    SlotType.CORE: UnitType.CONCEPT_BITE,
    SlotType.BREADTH: UnitType.CONCEPT_BITE,
}


def get_unit_types_for_domain(domain_name: str) -> list[UnitType]:
    key = domain_name.lower()
    return [unit for unit, cfg in UNIT_CONFIG.items() if key in (d.lower() for d in cfg.domains)]


def resolve_unit_type(domain_name: str | None, slot: SlotType) -> UnitType:
    """First configured unit type for the domain, else the slot's generic fallback."""
    if domain_name:
        candidates = get_unit_types_for_domain(domain_name)
        if candidates:
            return candidates[0]
    return SLOT_FALLBACK_UNIT[slot]
