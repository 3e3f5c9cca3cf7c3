"""Flux Kernel data models."""

from flux_kernel.models.changes import ChangeSet, FieldChange, Snapshot, changeset_to_plain
from flux_kernel.models.config import FluxConfig
from flux_kernel.models.event import DeliveryMessage, DispatchStats, MutationEvent
from flux_kernel.models.policy import (
    BULK_METHODS,
    AudienceResolver,
    AudienceResult,
    DeliveryContext,
    EntityPolicy,
    MutationMethod,
    PayloadBuilder,
    PolicyOverride,
)

__all__ = [
    "BULK_METHODS",
    "AudienceResolver",
    "AudienceResult",
    "ChangeSet",
    "DeliveryContext",
    "DeliveryMessage",
    "DispatchStats",
    "EntityPolicy",
    "FieldChange",
    "FluxConfig",
    "MutationEvent",
    "MutationMethod",
    "PayloadBuilder",
    "PolicyOverride",
    "Snapshot",
    "changeset_to_plain",
]
