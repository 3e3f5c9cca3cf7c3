"""
Flux error taxonomy.

None of these reach the caller that mutated the entity. The dispatcher
raises them internally, logs them at its boundary, and moves on. The one
exception is ConfigurationGap, which registry validation raises at startup.
"""

from typing import Any, Dict, Optional


class FluxError(Exception):
    """Base exception for all flux errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationGap(FluxError):
    """An entity has no resolvable policy."""
    pass


class UnknownEntity(ConfigurationGap):
    """Raised by the registry for an entity that was never registered."""

    def __init__(self, entity_name: str):
        super().__init__(
            f"No flux policy registered for entity '{entity_name}'",
            {"entity": entity_name},
        )
        self.entity_name = entity_name


class AudienceResolutionFailure(FluxError):
    """The audience resolver raised. The event is treated as having no audience."""
    pass


class PayloadBuildFailure(FluxError):
    """The payload builder raised for one group. Only that group is skipped."""
    pass


class DeliveryFailure(FluxError):
    """Publishing to one group failed or timed out."""
    pass
