"""
Built-in audience resolvers and payload builders.

Any callable taking a DeliveryContext can stand in for these; the classes
below just cover the common shapes and give the registry readable defaults.
"""

from typing import Any, Dict, List

from flux_kernel.models.policy import (
    AudienceResult,
    DeliveryContext,
    MutationMethod,
)


class FixedAudience:
    """Always notify the same group(s)."""

    def __init__(self, *groups: str):
        self.groups: List[str] = list(groups)

    def __call__(self, ctx: DeliveryContext) -> AudienceResult:
        return list(self.groups)

    def __repr__(self) -> str:
        return f"FixedAudience({', '.join(self.groups)})"


class Broadcast:
    """Notify every subscriber (the global group)."""

    def __call__(self, ctx: DeliveryContext) -> AudienceResult:
        return True

    def __repr__(self) -> str:
        return "Broadcast()"


class NoAudience:
    """Notify nobody."""

    def __call__(self, ctx: DeliveryContext) -> AudienceResult:
        return False

    def __repr__(self) -> str:
        return "NoAudience()"


class EchoPayload:
    """Send the affected record(s) as they are."""

    def __call__(self, ctx: DeliveryContext) -> Any:
        if ctx.entries is not None:
            return ctx.entries
        return ctx.entry

    def __repr__(self) -> str:
        return "EchoPayload()"


class NoPayload:
    """Send nothing. Used for bulk methods unless the entity opts in."""

    def __call__(self, ctx: DeliveryContext) -> Any:
        return False

    def __repr__(self) -> str:
        return "NoPayload()"


def default_access(default_group: str = "admin") -> Dict[MutationMethod, Any]:
    resolver = FixedAudience(default_group)
    return {method: resolver for method in MutationMethod}


def default_payload() -> Dict[MutationMethod, Any]:
    # Bulk payloads are ambiguous, so they stay silent until an entity says
    # what to send. The audience still resolves to the default group.
    echo, silent = EchoPayload(), NoPayload()
    return {
        MutationMethod.CREATE: echo,
        MutationMethod.UPDATE: echo,
        MutationMethod.DELETE: echo,
        MutationMethod.UPDATE_MANY: silent,
        MutationMethod.DELETE_MANY: silent,
    }
