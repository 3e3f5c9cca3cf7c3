"""
Change Tracker - before/after snapshots tied to a record's lifecycle.

The storage layer calls in at two points:
  capture_before(record)  right after the record is loaded
  capture_after(record)   right after a mutating save completes

Snapshots live on the record itself, never on the tracker or dispatcher,
so they go away with the record.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from flux_kernel.diff.engine import diff
from flux_kernel.models.changes import ChangeSet, Snapshot
from flux_kernel.plain import plain_copy

logger = logging.getLogger(__name__)

BEFORE_ATTR = "_flux_before"
AFTER_ATTR = "_flux_after"


def take_snapshot(record: Any) -> Snapshot:
    data = plain_copy(record)
    if not isinstance(data, dict):
        data = {"value": data}
    return Snapshot(data=data, taken_at=datetime.utcnow())


class ChangeTracker:
    """Stateless; all state is attached to the records it is handed."""

    def capture_before(self, record: Any) -> Optional[Snapshot]:
        return self._attach(record, BEFORE_ATTR)

    def capture_after(self, record: Any) -> Optional[Snapshot]:
        return self._attach(record, AFTER_ATTR)

    def before(self, record: Any) -> Optional[Snapshot]:
        return getattr(record, BEFORE_ATTR, None)

    def after(self, record: Any) -> Optional[Snapshot]:
        return getattr(record, AFTER_ATTR, None)

    def changes(self, record: Any) -> Optional[ChangeSet]:
        """Field-level diff, or None unless both snapshots exist."""
        before, after = self.before(record), self.after(record)
        if before is None or after is None:
            return None
        return diff(before, after)

    def reset(self, record: Any) -> None:
        """After notifying, the persisted state becomes the new baseline."""
        after = self.after(record)
        if after is None:
            return
        self._set(record, BEFORE_ATTR, after)
        self._set(record, AFTER_ATTR, None)

    def _attach(self, record: Any, attr: str) -> Optional[Snapshot]:
        if record is None:
            return None
        snapshot = take_snapshot(record)
        if not self._set(record, attr, snapshot):
            return None
        return snapshot

    def _set(self, record: Any, attr: str, value: Optional[Snapshot]) -> bool:
        try:
            setattr(record, attr, value)
        except (AttributeError, TypeError):
            # dicts, slotted objects: nowhere to keep a snapshot
            logger.debug("Cannot attach %s to %s", attr, type(record).__name__)
            return False
        return True
