"""
Diff Engine - structural comparison of two snapshots.

Behavioral Contract:
- Returns only the leaves that differ, keyed by dotted path
- Added and removed fields count as changes (the missing side is None)
- Recurses into mappings and sequences; list indices become path segments
- Pure: same two snapshots, same change set
"""

from typing import Any, Dict, Iterator, Mapping, Tuple, Union

from flux_kernel.models.changes import ChangeSet, FieldChange, Snapshot

_MISSING = object()

SnapshotLike = Union[Snapshot, Mapping[str, Any], None]


def _data(snapshot: SnapshotLike) -> Mapping[str, Any]:
    if snapshot is None:
        return {}
    if isinstance(snapshot, Snapshot):
        return snapshot.data
    return snapshot


def _children(value: Any) -> Dict[str, Any]:
    if isinstance(value, Mapping):
        return {str(k): v for k, v in value.items()}
    return {str(i): v for i, v in enumerate(value)}


def _join(prefix: str, key: str) -> str:
    return f"{prefix}.{key}" if prefix else key


def _walk(before: Any, after: Any, path: str) -> Iterator[Tuple[str, Any, Any]]:
    # Two branches of the same kind are compared child by child; anything
    # else (leaf vs leaf, leaf vs branch, dict vs list) is a leaf change.
    same_kind = (
        isinstance(before, Mapping) and isinstance(after, Mapping)
    ) or (
        isinstance(before, (list, tuple)) and isinstance(after, (list, tuple))
    )
    if same_kind:
        left, right = _children(before), _children(after)
        for key in list(left) + [k for k in right if k not in left]:
            yield from _walk(left.get(key, _MISSING), right.get(key, _MISSING), _join(path, key))
        return

    if before is _MISSING and after is _MISSING:
        return
    if type(before) is type(after) and before == after:
        # 1 == True in Python, but not in the JSON the snapshot stands for
        return
    yield path, before, after


def diff(before: SnapshotLike, after: SnapshotLike) -> ChangeSet:
    """Compute the change set between two snapshots."""
    changes: ChangeSet = {}
    for path, old, new in _walk(dict(_data(before)), dict(_data(after)), ""):
        changes[path] = FieldChange(
            before=None if old is _MISSING else old,
            after=None if new is _MISSING else new,
        )
    return changes

