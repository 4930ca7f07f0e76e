"""
Notion Sync Boundary.

Read-only access to the user's Notion workspace.

Components:
- notion_client: Notion SDK wrapper (search, schema, paginated queries)
- parsers: validated parse step from raw payloads to core models
- discovery: domain mapping proposals, attempts-store validation, confirmation
"""
