"""
Policy Registry - who hears about a mutation, and what they are told.

Behavioral Contract:
- Holds one fully resolved EntityPolicy per registered entity
- Entity overrides are merged onto the system defaults per method; the
  override wins, other methods keep the default
- Registering one entity never touches another entity's policy
- Read-only during delivery: writes build a fresh mapping and swap it in
  under a lock, so resolve() never needs one
"""

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from flux_kernel.errors import ConfigurationGap, UnknownEntity
from flux_kernel.models.policy import EntityPolicy, PolicyOverride
from flux_kernel.policy.defaults import default_access, default_payload

logger = logging.getLogger(__name__)

MethodTable = Mapping[Any, Callable[..., Any]]


class PolicyRegistry:
    """
    Registry of entity policies. Passed to the dispatcher at construction;
    there is no module-level instance.
    """

    def __init__(self, default_group: str = "admin"):
        self._lock = threading.Lock()
        self._defaults = PolicyOverride(
            access=default_access(default_group),
            payload=default_payload(),
        )
        self._overrides: Dict[str, PolicyOverride] = {}
        self._policies: Dict[str, EntityPolicy] = {}

    # --- Administration (startup) ---

    def register_defaults(self, override: PolicyOverride) -> None:
        """Replace system-wide defaults per method and re-merge every entity."""
        with self._lock:
            self._defaults = PolicyOverride(
                access={**self._defaults.access, **override.access},
                payload={**self._defaults.payload, **override.payload},
            )
            self._policies = {
                name: self._merge(name, ov) for name, ov in self._overrides.items()
            }

    def register_override(self, entity_name: str, override: Optional[PolicyOverride] = None) -> EntityPolicy:
        """Register an entity, merging its partial policy onto the defaults."""
        override = override or PolicyOverride()
        with self._lock:
            policy = self._merge(entity_name, override)
            overrides = dict(self._overrides)
            overrides[entity_name] = override
            policies = dict(self._policies)
            policies[entity_name] = policy
            self._overrides, self._policies = overrides, policies
        logger.debug(
            "Registered flux policy for %s (overrides: access=%s payload=%s)",
            entity_name,
            sorted(m.value for m in override.access),
            sorted(m.value for m in override.payload),
        )
        return policy

    def register(
        self,
        entity_name: str,
        access: Optional[MethodTable] = None,
        payload: Optional[MethodTable] = None,
    ) -> EntityPolicy:
        """Shorthand for register_override with plain method -> callable tables."""
        return self.register_override(
            entity_name, PolicyOverride(access=access, payload=payload)
        )

    def unregister(self, entity_name: str) -> bool:
        with self._lock:
            if entity_name not in self._policies:
                return False
            overrides = dict(self._overrides)
            overrides.pop(entity_name, None)
            policies = dict(self._policies)
            del policies[entity_name]
            self._overrides, self._policies = overrides, policies
        return True

    def validate(self, required_entities: Iterable[str]) -> None:
        """Fail fast if any entity we expect events for has no policy."""
        missing = [name for name in required_entities if name not in self._policies]
        if missing:
            raise ConfigurationGap(
                f"No flux policy registered for: {', '.join(missing)}",
                {"missing": missing},
            )

    # --- Lookup (delivery) ---

    def resolve(self, entity_name: str) -> EntityPolicy:
        policy = self._policies.get(entity_name)
        if policy is None:
            raise UnknownEntity(entity_name)
        return policy

    def is_registered(self, entity_name: str) -> bool:
        return entity_name in self._policies

    def entities(self) -> List[str]:
        return sorted(self._policies)

    def describe(self) -> List[dict]:
        policies = self._policies
        return [policies[name].describe() for name in sorted(policies)]

    def _merge(self, entity_name: str, override: PolicyOverride) -> EntityPolicy:
        return EntityPolicy(
            entity_name=entity_name,
            access={**self._defaults.access, **override.access},
            payload={**self._defaults.payload, **override.payload},
        )
