"""
In-memory Entity Store - reference storage layer that raises flux hooks.

Fires the hook adapter at the points an ORM would:
  load()         post-init    -> before snapshot
  save()         post-save    -> create or update (with diff)
  delete()       post-remove  -> delete
  update_many()  post-update  -> updateMany (one call, all records)
  delete_many()  post-delete  -> deleteMany (one call, all records)

Production would sit on a real database; the hooks stay the same.
"""

import copy
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from flux_kernel.hooks.adapter import MutationHookAdapter
from flux_kernel.store.entry import Entry


class InMemoryEntityStore:
    """Tables of plain dicts keyed by entity name, then record id."""

    def __init__(self, hooks: MutationHookAdapter):
        self.hooks = hooks
        self.tracker = hooks.tracker
        self._tables: Dict[str, Dict[str, dict]] = {}

    def _table(self, entity_name: str) -> Dict[str, dict]:
        return self._tables.setdefault(entity_name, {})

    def _hydrate(self, data: dict) -> Entry:
        entry = Entry(**copy.deepcopy(data))
        self.tracker.capture_before(entry)
        return entry

    def create(self, entity_name: str, no_flux: bool = False, **fields: Any) -> Entry:
        """Insert a new record and announce it."""
        record_id = fields.pop("id", None) or f"{entity_name}_{uuid4().hex[:12]}"
        entry = Entry(id=record_id, no_flux=no_flux, **fields)
        return self.save(entity_name, entry)

    def load(self, entity_name: str, record_id: str) -> Optional[Entry]:
        """Fetch a detached copy, snapshotted as loaded."""
        data = self._table(entity_name).get(record_id)
        if data is None:
            return None
        return self._hydrate(data)

    def all(self, entity_name: str) -> List[Entry]:
        return [self._hydrate(d) for d in self._table(entity_name).values()]

    def save(self, entity_name: str, entry: Entry) -> Entry:
        """
        Persist the entry, then fire the post-save hook.

        An entry whose id changed since it was loaded replaces its old row.
        ``no_flux`` applies to this save only and is cleared afterwards.
        """
        table = self._table(entity_name)
        loaded = self.tracker.before(entry)
        if loaded is not None and loaded.data.get("id") not in (None, entry.id):
            table.pop(loaded.data["id"], None)
        table[entry.id] = entry.model_dump(mode="json")
        try:
            self.hooks.on_save(entity_name, entry)
        finally:
            entry.no_flux = False
        return entry

    def delete(self, entity_name: str, entry: Entry) -> bool:
        """Remove the entry, then fire the post-remove hook."""
        if self._table(entity_name).pop(entry.id, None) is None:
            return False
        try:
            self.hooks.on_delete(entity_name, entry)
        finally:
            entry.no_flux = False
        return True

    def update_many(
        self, entity_name: str, record_ids: Iterable[str], updates: Dict[str, Any], no_flux: bool = False
    ) -> List[Entry]:
        """Apply the same field updates to every listed record."""
        table = self._table(entity_name)
        updated = []
        for record_id in record_ids:
            data = table.get(record_id)
            if data is None:
                continue
            data.update(copy.deepcopy(updates))
            entry = Entry(**copy.deepcopy(data))
            entry.no_flux = no_flux
            updated.append(entry)
        if updated:
            self.hooks.on_update_many(entity_name, updated)
        return updated

    def delete_many(self, entity_name: str, record_ids: Iterable[str], no_flux: bool = False) -> List[Entry]:
        table = self._table(entity_name)
        removed = []
        for record_id in record_ids:
            data = table.pop(record_id, None)
            if data is None:
                continue
            entry = Entry(**data)
            entry.no_flux = no_flux
            removed.append(entry)
        if removed:
            self.hooks.on_delete_many(entity_name, removed)
        return removed

    def count(self, entity_name: str) -> int:
        return len(self._table(entity_name))
