"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work end to end
against an in-memory Notion workspace.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import json
import subprocess
import sys
from pathlib import Path

import pytest
from loguru import logger
from rich.console import Console
from typer.testing import CliRunner

import autopilot.cli.main as cli_main
from autopilot.sync.notion_client import NotionClient
from config import Settings

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent

DSA_PROPS = {
    "Name": "title",
    "CPRD: Difficulty": "select:Easy,Medium,Hard",
    "Pattern": "select",
    "LeetCode Link": "url",
}
CN_PROPS = {
    "Name": "title",
    "Status": "status",
    "Protocols": "multi_select",
    "Layers": "select",
    "CPRD: Concepts": "rich_text",
}
OS_PROPS = {"Name": "title", "Status": "status", "Scheduling": "rich_text"}


def run_cli_command(command: str, timeout: int = 30) -> tuple[int, str, str]:
    """
    Run a CLI command in a subprocess and return exit code, stdout, stderr.

    Args:
        command: The command to run (after 'python -m autopilot.cli.main')
        timeout: Maximum time to wait
    """
    result = subprocess.run(
        f"{sys.executable} -m autopilot.cli.main {command}",
        shell=True,
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=timeout,
    )
    return result.returncode, result.stdout, result.stderr


def item_page(page_id, name, difficulty=None):
    props = {"Name": {"type": "title", "title": [{"plain_text": name}]}}
    if difficulty:
        props["CPRD: Difficulty"] = {"type": "select", "select": {"name": difficulty}}
    return {"object": "page", "id": page_id, "created_time": "2024-06-01T08:00:00.000Z", "properties": props}


def attempt_page(page_id, item_id, result, minutes):
    return {
        "object": "page",
        "id": page_id,
        "created_time": "2024-06-01T12:00:00.000Z",
        "properties": {
            "Item": {"type": "relation", "relation": [{"id": item_id}]},
            "Result": {"type": "select", "select": {"name": result}},
            "Time Spent (min)": {"type": "number", "number": minutes},
            "Confidence": {"type": "select", "select": {"name": "Medium"}},
        },
    }


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def settings():
    return Settings(_env_file=None, notion_api_key="", log_level="ERROR")


@pytest.fixture
def workspace(raw_database, attempts_schema):
    databases = [
        raw_database("dsa-db", "LeetCode DSA: Algorithms & Data Structures", DSA_PROPS),
        raw_database("cn-db", "Computer Networks: TCP, HTTP & OSI", CN_PROPS),
        raw_database("os-db", "Operating System Processes & Memory", OS_PROPS),
        raw_database("att", "Attempts", attempts_schema),
    ]
    pages = {
        "dsa-db": [item_page("two-sum", "Two Sum", "Easy"), item_page("lru-cache", "LRU Cache", "Hard")],
        "cn-db": [item_page("tcp-handshake", "TCP three-way handshake")],
        "os-db": [item_page("paging", "Paging and page faults")],
        "att": [attempt_page("a1", "two-sum", "Solved", 20)],
    }
    return databases, pages


@pytest.fixture
def runner(monkeypatch, settings, fake_notion, workspace):
    databases, pages = workspace

    def notion_client(settings=None, **kwargs):
        return NotionClient(settings=settings, client=fake_notion(databases=databases, pages=pages))

    monkeypatch.setattr(cli_main, "get_settings", lambda: settings)
    monkeypatch.setattr(cli_main, "NotionClient", notion_client)
    monkeypatch.setattr(cli_main, "console", Console(width=200))
    return CliRunner()


@pytest.fixture
def mapping_file(runner, tmp_path):
    path = tmp_path / "mapping.json"
    result = runner.invoke(cli_main.app, ["discover", "--confirm", "--output", str(path)], input="1\n")
    assert result.exit_code == 0, result.output
    return path


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        """Main help should display without errors."""
        code, stdout, stderr = run_cli_command("--help")

        assert code == 0, f"Help failed: {stderr}"
        assert "autopilot" in stdout.lower()
        assert "discover" in stdout
        assert "session" in stdout

    def test_session_help(self):
        result = CliRunner().invoke(cli_main.app, ["session", "--help"])

        assert result.exit_code == 0
        assert "--minutes" in result.output


class TestCLIDiscover:
    """Test discover command."""

    def test_discover_prints_proposal(self, runner):
        result = runner.invoke(cli_main.app, ["discover"])

        assert result.exit_code == 0, result.output
        assert "Computer Networks" in result.output
        assert "auto-accepted" in result.output
        assert "Attempts store" in result.output
        assert "--confirm" in result.output

    def test_discover_confirm_saves_mapping(self, mapping_file):
        saved = json.loads(mapping_file.read_text(encoding="utf-8"))

        assert saved["domains"] == {"CN": ["cn-db"], "DSA": ["dsa-db"], "OS": ["os-db"]}
        assert saved["attempts_collection_id"] == "att"
        assert set(saved["fingerprints"]) == {"att", "cn-db", "dsa-db", "os-db"}

    def test_discover_reports_configuration_errors(self, monkeypatch, runner, fake_notion, settings):
        monkeypatch.setattr(
            cli_main,
            "NotionClient",
            lambda settings=None, **kwargs: NotionClient(settings=settings, client=fake_notion()),
        )

        result = runner.invoke(cli_main.app, ["discover"])

        assert result.exit_code == 1
        assert "Discovery failed" in result.output


class TestCLISession:
    """Test session command."""

    def test_session_json(self, runner, mapping_file):
        result = runner.invoke(cli_main.app, ["session", "--mapping", str(mapping_file), "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["total_minutes"] == 45
        assert sum(u["time_minutes"] for u in data["units"]) == 45
        assert [u["type"] for u in data["units"]] == ["review", "core", "breadth"]
        assert data["units"][0]["item"]["id"] == "two-sum"

    def test_session_dsa_heavy(self, runner, mapping_file):
        result = runner.invoke(
            cli_main.app,
            ["session", "-m", str(mapping_file), "--minutes", "90", "--focus", "dsa-heavy", "--json"],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert sum(u["time_minutes"] for u in data["units"]) == 90
        # two-sum is solved, so the only open DSA item is core
        assert data["units"][1]["item"]["id"] == "lru-cache"

    def test_session_table(self, runner, mapping_file):
        result = runner.invoke(cli_main.app, ["session", "--mapping", str(mapping_file)])

        assert result.exit_code == 0, result.output
        assert "Total: 45 min" in result.output

    def test_missing_mapping_file(self, runner, tmp_path):
        result = runner.invoke(cli_main.app, ["session", "--mapping", str(tmp_path / "nope.json")])

        assert result.exit_code == 1
        assert "Mapping file not found" in result.output

    def test_schema_drift_stops_session(self, runner, mapping_file):
        saved = json.loads(mapping_file.read_text(encoding="utf-8"))
        saved["fingerprints"]["cn-db"] = "0000000000000000"
        mapping_file.write_text(json.dumps(saved), encoding="utf-8")

        result = runner.invoke(cli_main.app, ["session", "--mapping", str(mapping_file)])

        assert result.exit_code == 1
        assert "Schema changed" in result.output

        skipped = runner.invoke(cli_main.app, ["session", "--mapping", str(mapping_file), "--no-verify"])
        assert skipped.exit_code == 0, skipped.output
