"""Entity Policy - per-entity audience resolvers and payload builders."""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, model_validator


class MutationMethod(str, Enum):
    """Lifecycle events that can fan out. The value is the outgoing event name."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    UPDATE_MANY = "updateMany"
    DELETE_MANY = "deleteMany"


BULK_METHODS = (MutationMethod.UPDATE_MANY, MutationMethod.DELETE_MANY)

# True = broadcast, False/None/empty = nobody, str = one group, sequence = many
AudienceResult = Union[bool, str, Sequence[str], None]


class DeliveryContext(BaseModel):
    """What audience resolvers and payload builders get to look at."""

    model_config = ConfigDict(frozen=True)

    entity: str
    method: MutationMethod
    entry: Any = None                       # Single record (create/update/delete)
    entries: Optional[List[Any]] = None     # Ordered records (updateMany/deleteMany)
    group: Optional[str] = None             # Only set for payload builders
    legacy: Dict[str, Any] = {}

    @property
    def records(self) -> List[Any]:
        if self.entries is not None:
            return list(self.entries)
        if self.entry is None:
            return []
        return [self.entry]

    def for_group(self, group: str) -> "DeliveryContext":
        return self.model_copy(update={"group": group})


AudienceResolver = Callable[[DeliveryContext], AudienceResult]
PayloadBuilder = Callable[[DeliveryContext], Any]


def _coerce_method_keys(value: Any) -> Any:
    if not isinstance(value, dict):
        return value
    coerced = {}
    for key, fn in value.items():
        try:
            method = MutationMethod(key)
        except ValueError:
            raise ValueError(f"Unknown mutation method: {key!r}")
        if not callable(fn):
            raise ValueError(f"Policy for {method.value!r} is not callable")
        coerced[method] = fn
    return coerced


class PolicyOverride(BaseModel):
    """
    Partial policy supplied at registration time.

    Only the methods present here replace the defaults; everything else
    falls through to the system-wide policy.
    """

    model_config = ConfigDict(frozen=True)

    access: Dict[MutationMethod, Callable[..., Any]] = {}
    payload: Dict[MutationMethod, Callable[..., Any]] = {}

    @model_validator(mode="before")
    @classmethod
    def _validate_methods(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for key in ("access", "payload"):
                if data.get(key) is None:
                    data.pop(key, None)
                else:
                    data[key] = _coerce_method_keys(data[key])
        return data


class EntityPolicy(BaseModel):
    """Fully resolved policy. Immutable once built by the registry."""

    model_config = ConfigDict(frozen=True)

    entity_name: str
    access: Dict[MutationMethod, Callable[..., Any]]
    payload: Dict[MutationMethod, Callable[..., Any]]

    @model_validator(mode="after")
    def _require_every_method(self) -> "EntityPolicy":
        for label, table in (("access", self.access), ("payload", self.payload)):
            missing = [m.value for m in MutationMethod if m not in table]
            if missing:
                raise ValueError(
                    f"Policy for {self.entity_name!r} has no {label} entry for: "
                    f"{', '.join(missing)}"
                )
        return self

    def resolve_audience(self, ctx: DeliveryContext) -> AudienceResult:
        return self.access[ctx.method](ctx)

    def build_payload(self, ctx: DeliveryContext) -> Any:
        return self.payload[ctx.method](ctx)

    def describe(self) -> dict:
        """Serializable summary (callables shown by name)."""
        return {
            "entity": self.entity_name,
            "access": {m.value: _callable_name(fn) for m, fn in self.access.items()},
            "payload": {m.value: _callable_name(fn) for m, fn in self.payload.items()},
        }


def _callable_name(fn: Callable[..., Any]) -> str:
    name = getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None)
    if name is None:
        return repr(fn)
    return name
