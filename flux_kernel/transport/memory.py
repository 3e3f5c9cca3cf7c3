"""
In-memory transport for the prototype and for tests.

Keeps group membership and a log of every publication. Groups can be
marked as failing to exercise delivery isolation.
"""

from typing import Any, Dict, List, NamedTuple, Optional, Set

from flux_kernel.errors import DeliveryFailure


class Publication(NamedTuple):
    group: str
    event_name: str
    message: Dict[str, Any]


class InMemoryTransport:
    """Records publications instead of pushing them anywhere."""

    def __init__(self, global_group: str = "$global"):
        self.global_group = global_group
        self.published: List[Publication] = []
        self._groups: Dict[str, Set[str]] = {}
        self._failing: Set[str] = set()

    def join(self, subscriber_id: str, *groups: str) -> None:
        for group in (self.global_group,) + groups:
            self._groups.setdefault(group, set()).add(subscriber_id)

    def leave(self, subscriber_id: str) -> None:
        for members in self._groups.values():
            members.discard(subscriber_id)

    def members(self, group: str) -> List[str]:
        return sorted(self._groups.get(group, ()))

    def fail_group(self, group: str) -> None:
        self._failing.add(group)

    async def publish(self, group: str, event_name: str, message: Dict[str, Any]) -> None:
        if group in self._failing:
            raise DeliveryFailure(f"Group {group} is unreachable", {"group": group})
        self.published.append(Publication(group, event_name, message))

    def to_group(self, group: str) -> List[Publication]:
        return [p for p in self.published if p.group == group]

    def last(self) -> Optional[Publication]:
        return self.published[-1] if self.published else None
