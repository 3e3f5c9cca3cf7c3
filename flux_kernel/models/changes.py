"""Snapshots and change sets - the before/after view of a record."""

from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict


class Snapshot(BaseModel):
    """Plain-data copy of a record's fields at a point in time."""

    model_config = ConfigDict(frozen=True)

    data: Dict[str, Any]
    taken_at: datetime


class FieldChange(BaseModel):
    """One leaf that differs between two snapshots. Missing sides are None."""

    model_config = ConfigDict(frozen=True)

    before: Any = None
    after: Any = None


# Field path ("address.city", "tags.0") -> change
ChangeSet = Dict[str, FieldChange]


def changeset_to_plain(changes: ChangeSet) -> Dict[str, dict]:
    """Transport-safe form of a change set, as embedded under ``modified``."""
    return {path: change.model_dump(mode="json") for path, change in changes.items()}
