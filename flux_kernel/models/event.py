"""Mutation Event and Delivery Message - what flows in and what goes out."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from flux_kernel.models.policy import BULK_METHODS, DeliveryContext, MutationMethod


class MutationEvent(BaseModel):
    """
    A single lifecycle event raised by the storage layer.

    Created by the hook adapter, consumed once by the dispatcher.
    """

    entity: str
    method: MutationMethod
    entry: Any = None                       # Single record
    entries: Optional[List[Any]] = None     # Bulk records, in storage order
    legacy: Dict[str, Any] = {}             # Merged into the outgoing message (id, modified)

    @model_validator(mode="after")
    def _shape_matches_method(self) -> "MutationEvent":
        if self.method in BULK_METHODS and self.entry is not None:
            raise ValueError(f"{self.method.value} carries entries, not a single entry")
        if self.method not in BULK_METHODS and self.entries is not None:
            raise ValueError(f"{self.method.value} carries a single entry, not entries")
        return self

    def context(self) -> DeliveryContext:
        return DeliveryContext(
            entity=self.entity,
            method=self.method,
            entry=self.entry,
            entries=self.entries,
            legacy=self.legacy,
        )


class DeliveryMessage(BaseModel):
    """
    Body published to a group under the method name.

    Legacy keys (``id``, ``modified``) ride along as extra fields.
    """

    model_config = ConfigDict(extra="allow")

    entry: Any
    entity: str

    @classmethod
    def compose(cls, entity: str, entry: Any, legacy: Optional[Dict[str, Any]] = None) -> "DeliveryMessage":
        extras = {
            k: v for k, v in (legacy or {}).items() if k not in ("entry", "entity")
        }
        return cls(entry=entry, entity=entity, **extras)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json")


class DispatchStats(BaseModel):
    """Running counters kept by a dispatcher. Not a delivery history."""

    events: int = 0                         # deliver() calls that reached a policy
    delivered: int = 0                      # Successful publishes
    skipped: int = 0                        # Groups whose payload builder returned nothing
    failed: int = 0                         # Resolver, builder or publish failures
    dropped: int = 0                        # Events with no policy or no audience
