"""
Notion payload parsing.

Raw database and page payloads are validated with pydantic and turned into
the strict core models. Nothing downstream of this module sees a raw
property map.

Property conventions read from item sheets:
- Title: Name / Title / Problem (or whatever the title-typed property is)
- Completed: Completed / Done checkbox, or Status of Done / Completed / Solved
- Difficulty: "CPRD: Difficulty" or "Difficulty"; 1-5, or Easy/Medium/Hard
- Pattern: select, first multi-select value, or text

And from the attempts store:
- Item (relation), Result (select; "Failed" reads as Stuck)
- Time Spent (min) / Time Spent, Confidence, Mistake Tags
- Sheet (domain hint), Source ("External" marks outside practice)
"""

from __future__ import annotations

import hashlib
import re
from datetime import datetime
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from autopilot.core.errors import MalformedCollectionError
from autopilot.core.models import (
    Attempt,
    AttemptResult,
    Collection,
    Confidence,
    Item,
    PropertySchema,
)

DEFAULT_MARKER_PREFIX = "CPRD:"

TITLE_PROPERTIES = ("Name", "Title", "Problem")
COMPLETED_PROPERTIES = ("Completed", "Done")
COMPLETED_STATUSES = frozenset({"done", "completed", "solved"})
DIFFICULTY_PROPERTIES = ("CPRD: Difficulty", "Difficulty")
DIFFICULTY_WORDS = {"easy": 2, "medium": 3, "hard": 4}
TIME_SPENT_PROPERTIES = ("Time Spent (min)", "Time Spent")
RESULT_ALIASES = {"failed": AttemptResult.STUCK}


# =============================================================================
# RAW PAYLOAD MODELS
# =============================================================================


class RawRichText(BaseModel):
    model_config = ConfigDict(extra="ignore")

    plain_text: str = ""


class RawPropertySchema(BaseModel):
    """One property definition from a database's schema."""

    model_config = ConfigDict(extra="ignore")

    name: str
    type: str
    options: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _collect_options(cls, data: Any) -> Any:
        # Options live under the type key: {"type": "select", "select": {"options": [...]}}
        if isinstance(data, dict) and "options" not in data:
            config = data.get(data.get("type") or "")
            if isinstance(config, dict) and isinstance(config.get("options"), list):
                data = {
                    **data,
                    "options": [o.get("name", "") for o in config["options"] if isinstance(o, dict)],
                }
        return data


class RawDatabase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: list[RawRichText] = Field(default_factory=list)
    url: str | None = None
    properties: dict[str, RawPropertySchema] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _name_properties(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("properties"), dict):
            props = {}
            for key, value in data["properties"].items():
                if isinstance(value, dict) and "name" not in value:
                    value = {**value, "name": key}
                props[key] = value
            data = {**data, "properties": props}
        return data

    @property
    def plain_title(self) -> str:
        return "".join(part.plain_text for part in self.title).strip()


class RawPage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    created_time: datetime
    properties: dict[str, dict[str, Any]] = Field(default_factory=dict)


# =============================================================================
# SCHEMA
# =============================================================================


def schema_fingerprint(
    properties: list[PropertySchema] | tuple[PropertySchema, ...],
    marker_prefix: str = DEFAULT_MARKER_PREFIX,
) -> str:
    """
    Stable hash of a schema's shape.

    Covers property names, types and whether each is a marker property;
    independent of property order.
    """
    prefix = marker_prefix.lower()
    triples = sorted(
        (prop.name, prop.type, prop.name.lower().startswith(prefix)) for prop in properties
    )
    canonical = "|".join(f"{name}\x1f{ptype}\x1f{int(marker)}" for name, ptype, marker in triples)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def parse_collection(raw: dict[str, Any], marker_prefix: str = DEFAULT_MARKER_PREFIX) -> Collection:
    """
    Validate a raw database payload into a Collection.

    Raises:
        MalformedCollectionError: The payload is missing required fields
    """
    try:
        db = RawDatabase.model_validate(raw)
    except ValidationError as e:
        ident = raw.get("id", "<unknown>") if isinstance(raw, dict) else "<unknown>"
        raise MalformedCollectionError(f"Malformed collection metadata for {ident}: {e}") from e

    properties = tuple(
        PropertySchema(name=prop.name, type=prop.type, options=tuple(prop.options))
        for prop in sorted(db.properties.values(), key=lambda p: p.name)
    )
    return Collection(
        id=db.id,
        title=db.plain_title,
        schema_fingerprint=schema_fingerprint(properties, marker_prefix),
        properties=properties,
        url=db.url,
    )


# =============================================================================
# PROPERTY VALUES
# =============================================================================


def _plain_text(prop: dict[str, Any] | None) -> str:
    if not prop:
        return ""
    parts = prop.get(prop.get("type") or "") or []
    if not isinstance(parts, list):
        return ""
    return "".join(p.get("plain_text", "") for p in parts if isinstance(p, dict)).strip()


def _select_name(prop: dict[str, Any] | None) -> str | None:
    if not prop:
        return None
    value = prop.get(prop.get("type") or "")
    if isinstance(value, dict):
        return value.get("name")
    return None


def _multi_select(prop: dict[str, Any] | None) -> list[str]:
    if not prop or prop.get("type") != "multi_select":
        return []
    return [o.get("name", "") for o in prop.get("multi_select") or [] if o.get("name")]


def _number(prop: dict[str, Any] | None) -> float | None:
    if not prop or prop.get("type") != "number":
        return None
    return prop.get("number")


def _checkbox(prop: dict[str, Any] | None) -> bool:
    return bool(prop and prop.get("type") == "checkbox" and prop.get("checkbox"))


def _relation_ids(prop: dict[str, Any] | None) -> list[str]:
    if not prop or prop.get("type") != "relation":
        return []
    return [r["id"] for r in prop.get("relation") or [] if r.get("id")]


def _first(properties: dict[str, dict[str, Any]], names: tuple[str, ...]) -> dict[str, Any] | None:
    for name in names:
        if name in properties:
            return properties[name]
    return None


def parse_difficulty(value: Any) -> int | None:
    """1-5 as-is; Easy/Medium/Hard as 2/3/4; anything else is unknown."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = int(value)
        return number if 1 <= number <= 5 else None
    text = str(value).strip().lower()
    match = re.fullmatch(r"\d+", text)
    if match:
        number = int(text)
        return number if 1 <= number <= 5 else None
    return DIFFICULTY_WORDS.get(text)


def _difficulty(properties: dict[str, dict[str, Any]]) -> int | None:
    for name in DIFFICULTY_PROPERTIES:
        prop = properties.get(name)
        if not prop:
            continue
        if prop.get("type") == "number":
            parsed = parse_difficulty(_number(prop))
        elif prop.get("type") in ("select", "status"):
            parsed = parse_difficulty(_select_name(prop))
        else:
            parsed = parse_difficulty(_plain_text(prop))
        if parsed is not None:
            return parsed
    return None


def _pattern(prop: dict[str, Any] | None) -> str | None:
    if not prop:
        return None
    ptype = prop.get("type")
    if ptype == "select":
        return _select_name(prop)
    if ptype == "multi_select":
        values = _multi_select(prop)
        return values[0] if values else None
    return _plain_text(prop) or None


# =============================================================================
# PAGES
# =============================================================================


def _validate_page(raw: dict[str, Any]) -> RawPage:
    try:
        return RawPage.model_validate(raw)
    except ValidationError as e:
        ident = raw.get("id", "<unknown>") if isinstance(raw, dict) else "<unknown>"
        raise MalformedCollectionError(f"Malformed page {ident}: {e}") from e


def parse_item(raw: dict[str, Any], collection_id: str = "", domain: str = "") -> Item:
    """Parse one item-sheet page into an Item."""
    page = _validate_page(raw)
    props = page.properties

    title_prop = _first(props, TITLE_PROPERTIES)
    if title_prop is None:
        title_prop = next((p for p in props.values() if p.get("type") == "title"), None)

    completed = any(_checkbox(props.get(name)) for name in COMPLETED_PROPERTIES)
    status = _select_name(props.get("Status"))
    if status and status.strip().lower() in COMPLETED_STATUSES:
        completed = True

    return Item(
        id=page.id,
        domain=domain,
        difficulty=_difficulty(props),
        pattern=_pattern(props.get("Pattern")),
        source_collection_id=collection_id,
        name=_plain_text(title_prop),
        completed=completed,
    )


def parse_result(value: str | None) -> AttemptResult | None:
    if not value:
        return None
    key = value.strip().lower()
    if key in RESULT_ALIASES:
        return RESULT_ALIASES[key]
    for result in AttemptResult:
        if result.value.lower() == key:
            return result
    return None


def parse_attempt(raw: dict[str, Any]) -> Attempt | None:
    """
    Parse one attempts-store page.

    Returns None for rows with no linked item or no recognizable result;
    those rows carry nothing the engine can score.
    """
    page = _validate_page(raw)
    props = page.properties

    item_ids = _relation_ids(props.get("Item"))
    result = parse_result(_select_name(props.get("Result")))
    if not item_ids or result is None:
        logger.debug(f"Skipping attempt {page.id}: missing item relation or result")
        return None

    confidence_name = _select_name(props.get("Confidence"))
    confidence = next((c for c in Confidence if c.value == confidence_name), None)
    source = _select_name(props.get("Source"))

    return Attempt(
        item_id=item_ids[0],
        result=result,
        time_spent_minutes=_number(_first(props, TIME_SPENT_PROPERTIES)) or 0.0,
        created_at=page.created_time,
        confidence=confidence,
        mistake_tags=tuple(_multi_select(props.get("Mistake Tags"))),
        domain=_select_name(props.get("Sheet")),
        external=(source or "").strip().lower() == "external",
    )
