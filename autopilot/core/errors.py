"""
Error taxonomy for the session engine.

Philosophy:
- Configuration problems fail fast and are not retryable until the data is fixed
- Empty slots are data, never exceptions
- Ambiguity is surfaced in proposals; only consuming it unconfirmed raises
"""


class AutopilotError(Exception):
    """Base class for all engine errors."""
    pass


class ConfigurationError(AutopilotError):
    """External data or credentials make the requested operation impossible."""
    pass


class AttemptsStoreError(ConfigurationError):
    """No attempts collection, more than one, or one with an invalid schema."""
    pass


class NoEligibleCollectionsError(ConfigurationError):
    """Discovery found no collection that could feed any domain."""
    pass


class MalformedCollectionError(ConfigurationError):
    """Raw collection metadata failed validation."""
    pass


class DiscoveryTimeoutError(AutopilotError):
    """A directory or schema call exceeded the configured timeout."""
    pass


class MappingConfirmationError(AutopilotError):
    """A confirmation step was invalid for the proposal it referenced."""
    pass


class UnconfirmedMappingError(AutopilotError):
    """Orchestration was asked to use a mapping no human has confirmed."""
    pass


class SchemaDriftError(UnconfirmedMappingError):
    """A confirmed mapping references collections whose schema changed since confirmation."""

    def __init__(self, changed_ids: list[str]):
        self.changed_ids = changed_ids
        super().__init__(
            f"Schema changed for mapped collections {changed_ids}; "
            f"re-run discovery and confirm the mapping again."
        )
