"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests:
factories for core models, raw Notion payload builders, and an in-memory
stand-in for the Notion SDK client.
"""
import pytest
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from autopilot.core.models import Attempt, AttemptResult, Confidence, Item  # noqa: E402

BASE_TIME = datetime(2024, 6, 1, 12, 0, 0)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


# =============================================================================
# CORE MODEL FACTORIES
# =============================================================================


@pytest.fixture
def base_time():
    return BASE_TIME


@pytest.fixture
def make_item():
    """Build an Item with sensible defaults."""
    def _make(item_id: str, domain: str = "DSA", difficulty=None, pattern=None, **kwargs) -> Item:
        return Item(
            id=item_id,
            domain=domain,
            difficulty=difficulty,
            pattern=pattern,
            name=kwargs.pop("name", f"Item {item_id}"),
            **kwargs,
        )
    return _make


@pytest.fixture
def make_attempt():
    """
    Build an Attempt; ``minutes_ago`` places it before BASE_TIME.

    Result and confidence accept plain strings.
    """
    def _make(
        item_id: str,
        result="Solved",
        minutes_ago: int = 0,
        time_spent: float = 20,
        confidence="Medium",
        mistake_tags=(),
        **kwargs,
    ) -> Attempt:
        return Attempt(
            item_id=item_id,
            result=AttemptResult(result),
            time_spent_minutes=time_spent,
            created_at=BASE_TIME - timedelta(minutes=minutes_ago),
            confidence=Confidence(confidence) if confidence else None,
            mistake_tags=tuple(mistake_tags),
            **kwargs,
        )
    return _make


# =============================================================================
# RAW NOTION PAYLOADS
# =============================================================================


def _schema_property(name: str, spec) -> dict:
    """'select:Solved,Partial' -> a Notion property schema payload."""
    ptype, _, options = spec.partition(":")
    prop = {"id": name.lower()[:4], "name": name, "type": ptype, ptype: {}}
    if options:
        prop[ptype] = {"options": [{"name": o} for o in options.split(",")]}
    return prop


@pytest.fixture
def raw_database():
    """Build a raw Notion database payload from {name: "type[:opt1,opt2]"}."""
    def _make(db_id: str, title: str, properties: dict[str, str]) -> dict:
        return {
            "object": "database",
            "id": db_id,
            "title": [{"type": "text", "plain_text": title}],
            "url": f"https://www.notion.so/{db_id}",
            "properties": {name: _schema_property(name, spec) for name, spec in properties.items()},
        }
    return _make


@pytest.fixture
def attempts_schema():
    """A valid attempts-store schema."""
    return {
        "Name": "title",
        "Item": "relation",
        "Result": "select:Solved,Partial,Stuck,Skipped",
        "Time Spent (min)": "number",
        "Confidence": "select:Low,Medium,High",
        "Mistake Tags": "multi_select",
    }


@pytest.fixture
def raw_page():
    """Build a raw Notion page payload from already-shaped property values."""
    def _make(page_id: str, properties: dict, created_time: str = "2024-06-01T12:00:00.000Z") -> dict:
        return {"object": "page", "id": page_id, "created_time": created_time, "properties": properties}
    return _make


class FakeDatabases:
    def __init__(self, pages: dict[str, list[dict]], page_size: int):
        self._pages = pages
        self._page_size = page_size
        self.calls: list[str] = []

    def query(self, database_id: str, start_cursor=None, page_size=100, **kwargs):
        self.calls.append(database_id)
        pages = self._pages.get(database_id, [])
        start = int(start_cursor or 0)
        end = start + min(page_size, self._page_size)
        return {
            "results": pages[start:end],
            "has_more": end < len(pages),
            "next_cursor": str(end) if end < len(pages) else None,
        }


class FakeNotionSDK:
    """In-memory stand-in for notion_client.Client, paginating in small batches."""

    def __init__(self, databases: list[dict] | None = None, pages: dict[str, list[dict]] | None = None,
                 page_size: int = 2):
        self._databases = databases or []
        self._page_size = page_size
        self.databases = FakeDatabases(pages or {}, page_size)

    def search(self, filter=None, start_cursor=None, page_size=100, **kwargs):
        start = int(start_cursor or 0)
        end = start + min(page_size, self._page_size)
        return {
            "results": self._databases[start:end],
            "has_more": end < len(self._databases),
            "next_cursor": str(end) if end < len(self._databases) else None,
        }


@pytest.fixture
def fake_notion():
    """Factory for FakeNotionSDK instances."""
    return FakeNotionSDK
