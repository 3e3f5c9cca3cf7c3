"""Transport Sink - the group-addressable publish primitive flux delivers to."""

from typing import Any, Dict, List, Protocol


class TransportSink(Protocol):
    """Protocol for transports - pluggable backend."""

    async def publish(self, group: str, event_name: str, message: Dict[str, Any]) -> None:
        """Best-effort push to every subscriber of ``group``. May raise."""
        ...

    def members(self, group: str) -> List[str]:
        """Subscriber ids currently in ``group``. Diagnostics only."""
        ...
