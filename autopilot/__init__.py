"""
Prep Autopilot - deterministic daily session engine for interview preparation.

Subpackages:
- core: domain classification, coverage debt, prioritization, session composition
- study: attempt aggregation and session orchestration
- sync: Notion discovery, parsing and mapping confirmation
- cli: Typer command line entry point
"""

__version__ = "1.0.0"
