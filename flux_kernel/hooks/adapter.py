"""
Mutation Hook Adapter - storage lifecycle events in, dispatcher calls out.

Behavioral Contract:
- create, update and delete fire once per record, after the change is durable
- update carries the field-level change set and the record id
- delete carries the record id
- updateMany / deleteMany fire once with the whole ordered set
- A record with its ``no_flux`` flag set never reaches the dispatcher
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from flux_kernel.diff.engine import diff
from flux_kernel.dispatcher.dispatcher import FluxDispatcher
from flux_kernel.models.changes import Snapshot, changeset_to_plain
from flux_kernel.models.policy import MutationMethod
from flux_kernel.tracking.tracker import ChangeTracker

logger = logging.getLogger(__name__)

SUPPRESS_ATTR = "no_flux"


def is_suppressed(record: Any) -> bool:
    """True if the record asked not to be announced."""
    if record is None:
        return False
    if isinstance(record, dict):
        return bool(record.get(SUPPRESS_ATTR, False))
    return bool(getattr(record, SUPPRESS_ATTR, False))


def record_id(record: Any) -> Any:
    if isinstance(record, dict):
        return record.get("id")
    return getattr(record, "id", None)


class MutationHookAdapter:
    """Called by the storage layer at its post-mutation lifecycle points."""

    def __init__(self, dispatcher: FluxDispatcher, tracker: Optional[ChangeTracker] = None):
        self.dispatcher = dispatcher
        self.tracker = tracker or ChangeTracker()

    def on_create(self, entity_name: str, record: Any) -> None:
        if is_suppressed(record):
            return
        self.dispatcher.deliver(entity_name, MutationMethod.CREATE, record)

    def on_update(
        self,
        entity_name: str,
        record: Any,
        before: Optional[Snapshot] = None,
        after: Optional[Snapshot] = None,
    ) -> None:
        if is_suppressed(record):
            return
        before = before or self.tracker.before(record)
        after = after or self.tracker.after(record)
        legacy: Dict[str, Any] = {"id": record_id(record)}
        if before is not None and after is not None:
            legacy["modified"] = changeset_to_plain(diff(before, after))
        self.dispatcher.deliver(entity_name, MutationMethod.UPDATE, record, legacy)

    def on_delete(self, entity_name: str, record: Any) -> None:
        if is_suppressed(record):
            return
        self.dispatcher.deliver(
            entity_name, MutationMethod.DELETE, record, {"id": record_id(record)}
        )

    def on_update_many(self, entity_name: str, records: Sequence[Any]) -> None:
        self._deliver_many(entity_name, MutationMethod.UPDATE_MANY, records)

    def on_delete_many(self, entity_name: str, records: Sequence[Any]) -> None:
        self._deliver_many(entity_name, MutationMethod.DELETE_MANY, records)

    def on_save(self, entity_name: str, record: Any) -> MutationMethod:
        """
        Post-save hook: captures the after snapshot and announces the save.

        A record that was never loaded has no before snapshot, so the save
        is a create. Otherwise it is an update diffed against the load.
        """
        is_new = self.tracker.before(record) is None
        self.tracker.capture_after(record)
        if is_new:
            self.on_create(entity_name, record)
            method = MutationMethod.CREATE
        else:
            self.on_update(entity_name, record)
            method = MutationMethod.UPDATE
        self.tracker.reset(record)
        return method

    def _deliver_many(self, entity_name: str, method: MutationMethod, records: Sequence[Any]) -> None:
        kept: List[Any] = [r for r in records if not is_suppressed(r)]
        if not kept:
            if records:
                logger.debug("All %d %s record(s) suppressed", len(records), entity_name)
            return
        self.dispatcher.deliver(entity_name, method, kept)
