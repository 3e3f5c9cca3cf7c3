"""Conversion of records into plain, transport-safe data."""

import copy
from typing import Any

from pydantic import BaseModel


def has_plain_form(value: Any) -> bool:
    """True if the value knows how to turn itself into plain data."""
    if isinstance(value, (list, tuple)):
        return False
    if isinstance(value, BaseModel):
        return True
    return callable(getattr(value, "to_dict", None))


def to_plain(value: Any) -> Any:
    """
    Apply a value's own plain-data conversion, if it has one.

    Sequences pass through untouched, as do values without a conversion.
    """
    if not has_plain_form(value):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value.to_dict()


def plain_copy(value: Any) -> Any:
    """Deep, detached plain copy. Used for snapshots, never for delivery."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if callable(getattr(value, "to_dict", None)):
        return copy.deepcopy(value.to_dict())
    if isinstance(value, dict):
        return {k: plain_copy(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [plain_copy(v) for v in value]
    if hasattr(value, "__dict__") and not isinstance(value, type):
        # Plain objects: public attributes only, so snapshots never nest
        return {
            k: plain_copy(v) for k, v in vars(value).items() if not k.startswith("_")
        }
    return copy.deepcopy(value)
