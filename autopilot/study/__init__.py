"""
Study Module.

Provides the per-call services that turn mapped collections and attempt
history into a session:
- Attempt aggregation (readiness, streaks, recency, weekly minutes)
- Session orchestration (Review / Core / Breadth selection)
"""

from autopilot.study.attempts import AggregatorConfig, AttemptAggregator, AttemptsSnapshot
from autopilot.study.orchestrator import OrchestrationRequest, OrchestratorConfig, SessionOrchestrator

__all__ = [
    "AggregatorConfig",
    "AttemptAggregator",
    "AttemptsSnapshot",
    "OrchestrationRequest",
    "OrchestratorConfig",
    "SessionOrchestrator",
]
