"""
WebSocket Fabric - group-addressable push over FastAPI WebSockets.

Every connected socket is a member of the global group plus whatever groups
it joined with. Publishing to a group sends one JSON frame to each member:

    {"event": "<method>", "data": {"entry": ..., "entity": ..., ...}}

A socket that fails to receive is dropped; the rest of the group still
gets the frame.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Set
from uuid import uuid4

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WebSocketFabric:
    """Tracks sockets by subscriber id and group."""

    def __init__(self, global_group: str = "$global"):
        self.global_group = global_group
        self._sockets: Dict[str, WebSocket] = {}
        self._groups: Dict[str, Set[str]] = {}

    def join(self, websocket: WebSocket, groups: Iterable[str] = ()) -> str:
        """Register an accepted socket. Returns its subscriber id."""
        subscriber_id = f"sub_{uuid4().hex[:12]}"
        self._sockets[subscriber_id] = websocket
        for group in [self.global_group, *groups]:
            self._groups.setdefault(group, set()).add(subscriber_id)
        logger.debug("Subscriber %s joined %s", subscriber_id, sorted(self.groups_of(subscriber_id)))
        return subscriber_id

    def leave(self, subscriber_id: str) -> None:
        self._sockets.pop(subscriber_id, None)
        for group in list(self._groups):
            members = self._groups[group]
            members.discard(subscriber_id)
            if not members:
                del self._groups[group]

    def members(self, group: str) -> List[str]:
        return sorted(self._groups.get(group, ()))

    def groups_of(self, subscriber_id: str) -> List[str]:
        return sorted(g for g, members in self._groups.items() if subscriber_id in members)

    @property
    def connection_count(self) -> int:
        return len(self._sockets)

    async def publish(self, group: str, event_name: str, message: Dict[str, Any]) -> None:
        subscriber_ids = self.members(group)
        if not subscriber_ids:
            return

        frame = {"event": event_name, "data": message}
        results = await asyncio.gather(
            *(self._send(sid, frame) for sid in subscriber_ids),
            return_exceptions=True,
        )
        for subscriber_id, result in zip(subscriber_ids, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Dropping subscriber %s after failed send to %s: %s",
                    subscriber_id, group, result,
                )
                self.leave(subscriber_id)

    async def _send(self, subscriber_id: str, frame: Dict[str, Any]) -> None:
        websocket = self._sockets.get(subscriber_id)
        if websocket is None:
            return
        await websocket.send_json(frame)
