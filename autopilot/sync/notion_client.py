"""
Notion Client - Typed wrapper around the official Notion SDK.

IMPORTANT: Uses official Notion Python SDK (notion_client). Read-only:
database search, schema listing and paginated page queries. The engine never
writes to a workspace.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger
from notion_client import Client
from notion_client.errors import RequestTimeoutError

from autopilot.core.errors import ConfigurationError, DiscoveryTimeoutError
from autopilot.core.models import Attempt, Collection, Item
from autopilot.sync.parsers import parse_attempt, parse_collection, parse_item
from config import Settings, get_settings


class NotionClient:
    """
    Typed wrapper around the official Notion SDK.

    Handles:
    - Pagination (every fetch returns the full, unpaginated result)
    - Request timeout from settings; a timeout is a DiscoveryTimeoutError
    - Parsing pages into Items/Attempts and schemas into Collections
    """

    def __init__(
        self,
        api_key: str | None = None,
        settings: Settings | None = None,
        client: Any | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self.api_key = api_key or self._settings.notion_api_key
        self._client: Any | None = client

        if self._client is None and self.api_key:
            self._client = Client(
                auth=self.api_key,
                notion_version=self._settings.notion_version,
                timeout_ms=self._settings.notion_timeout_ms,
            )
            logger.info("Notion client initialized")
        elif self._client is None:
            logger.warning("Notion credentials missing. Set NOTION_API_KEY to enable discovery.")

    @property
    def ready(self) -> bool:
        """Check if client is ready to make API calls."""
        return self._client is not None

    def _require_client(self) -> Any:
        if self._client is None:
            raise ConfigurationError("Notion client not configured; set NOTION_API_KEY")
        return self._client

    # =========================================================================
    # CORE FETCHING
    # =========================================================================

    def _paginate(self, call, what: str, **kwargs) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        start_cursor: str | None = None

        while True:
            params = dict(kwargs, page_size=self._settings.notion_page_size)
            if start_cursor:
                params["start_cursor"] = start_cursor
            try:
                response = call(**params)
            except (RequestTimeoutError, httpx.TimeoutException) as e:
                raise DiscoveryTimeoutError(
                    f"Notion request for {what} timed out after {self._settings.notion_timeout_ms}ms"
                ) from e

            batch = response.get("results", [])
            results.extend(batch)
            logger.debug(f"Fetched batch of {len(batch)} {what}")

            if not response.get("has_more"):
                break
            start_cursor = response.get("next_cursor")

        return results

    def search_databases(self) -> list[dict[str, Any]]:
        """Every database the integration can see, as raw payloads."""
        client = self._require_client()
        databases = self._paginate(
            client.search,
            "databases",
            filter={"property": "object", "value": "database"},
        )
        logger.info(f"Found {len(databases)} Notion databases")
        return databases

    def fetch_from_database(self, database_id: str, entity_type: str = "pages") -> list[dict[str, Any]]:
        """
        Fetch all pages from a Notion database.

        Args:
            database_id: The Notion database ID to query
            entity_type: Entity type for logging (e.g., "items", "attempts")

        Returns:
            List of raw Notion page dictionaries
        """
        client = self._require_client()
        logger.info(f"Querying Notion database {database_id} for {entity_type}")

        query = getattr(getattr(client, "databases", None), "query", None)
        if callable(query):
            pages = self._paginate(query, entity_type, database_id=database_id)
        else:
            # SDK releases without databases.query still expose the raw endpoint
            def _raw_query(**body):
                return client.request(path=f"databases/{database_id}/query", method="POST", body=body)

            pages = self._paginate(_raw_query, entity_type)

        logger.info(f"Fetched {len(pages)} {entity_type} from Notion")
        return pages

    # =========================================================================
    # TYPED FETCH METHODS
    # =========================================================================

    def list_collections(self) -> list[Collection]:
        """All reachable databases, validated into Collections."""
        prefix = self._settings.discovery_marker_prefix
        return [parse_collection(raw, prefix) for raw in self.search_databases()]

    def fetch_items(self, collection_id: str) -> list[Item]:
        pages = self.fetch_from_database(collection_id, "items")
        return [parse_item(page, collection_id=collection_id) for page in pages]

    def fetch_attempts(self, collection_id: str) -> list[Attempt]:
        pages = self.fetch_from_database(collection_id, "attempts")
        attempts = [a for a in (parse_attempt(page) for page in pages) if a is not None]
        if len(attempts) < len(pages):
            logger.warning(f"Skipped {len(pages) - len(attempts)} attempt rows without item or result")
        return attempts

    def current_fingerprints(self) -> dict[str, str]:
        """Live schema fingerprint per collection id."""
        return {c.id: c.schema_fingerprint for c in self.list_collections()}
