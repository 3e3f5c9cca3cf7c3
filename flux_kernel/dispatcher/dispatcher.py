"""
Flux Dispatcher - the decision-and-delivery core.

Given an entity name, a mutation method and the affected record(s), works
out who should hear about it and what each group gets, then hands every
group's publish off to its own task.

Behavioral Contract:
- Never raises to the caller; a mutation must not fail because its
  notification did
- Unknown entity, falsy audience or a raising audience resolver: no-op
- Payload builder failure or falsy payload: that group only is skipped
- Publish failure or timeout: logged, other groups unaffected
- Holds no per-event state; safe to call concurrently (stats counters
  are updated under a lock)
"""

import asyncio
import logging
import threading
from collections.abc import Sequence
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import ValidationError

from flux_kernel.errors import (
    AudienceResolutionFailure,
    ConfigurationGap,
    DeliveryFailure,
    PayloadBuildFailure,
)
from flux_kernel.models.config import FluxConfig
from flux_kernel.models.event import DeliveryMessage, DispatchStats, MutationEvent
from flux_kernel.models.policy import (
    BULK_METHODS,
    AudienceResult,
    DeliveryContext,
    EntityPolicy,
    MutationMethod,
)
from flux_kernel.plain import to_plain
from flux_kernel.policy.registry import PolicyRegistry
from flux_kernel.transport.sink import TransportSink

logger = logging.getLogger(__name__)


def normalize_groups(result: AudienceResult, global_group: str = "$global") -> List[str]:
    """
    Turn whatever an audience resolver returned into an ordered group list.

    True is the global group, a scalar is one group, a sequence is taken
    as-is (empty entries dropped). Anything falsy means nobody.
    """
    if not result:
        return []
    if isinstance(result, bool):
        return [global_group]
    if isinstance(result, str):
        return [result]
    if isinstance(result, (list, tuple, set, frozenset)):
        return [str(g) for g in result if g]
    return [str(result)]


class FluxDispatcher:
    """
    Fans a mutation out to the groups its entity policy names.

    Publishing never happens on the caller's stack when there is an event
    loop to hand it to: inside a running loop each group gets a task; from
    another thread the work is scheduled onto the loop passed to
    bind_loop(). With no loop at all the publish runs inline, bounded by
    the publish timeout.
    """

    def __init__(
        self,
        registry: PolicyRegistry,
        sink: TransportSink,
        config: Optional[FluxConfig] = None,
    ):
        self.registry = registry
        self.sink = sink
        self.config = config or FluxConfig()
        self.stats = DispatchStats()
        self._stats_lock = threading.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # --- Loop binding ---

    def bind_loop(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Publish on this loop when called from threads without one."""
        self._loop = loop or asyncio.get_running_loop()

    def unbind_loop(self) -> None:
        self._loop = None

    @property
    def pending(self) -> int:
        """Publishes handed off but not finished yet."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every outstanding publish on the current loop."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Delivery ---

    def deliver_event(self, event: MutationEvent) -> None:
        records = event.entries if event.method in BULK_METHODS else event.entry
        self.deliver(event.entity, event.method, records, event.legacy)

    def deliver(
        self,
        entity_name: str,
        method: Union[MutationMethod, str, None],
        records: Any = None,
        legacy: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Notify every group the entity's policy resolves for this mutation.

        ``records`` is the single record for create/update/delete and the
        ordered sequence of records for updateMany/deleteMany. ``legacy``
        is merged into each outgoing message (id, modified).
        """
        if not method or (records is None and not legacy):
            return

        ctx = self._build_context(entity_name, method, records, legacy)
        if ctx is None:
            return

        try:
            policy = self.registry.resolve(entity_name)
        except ConfigurationGap as exc:
            self._count("dropped")
            logger.debug("%s; dropping %s event", exc.message, ctx.method.value)
            return

        self._count("events")
        try:
            groups = self._resolve_groups(policy, ctx)
        except AudienceResolutionFailure as exc:
            self._count("failed")
            logger.warning(
                "%s", exc.message, exc_info=self.config.debug, extra=exc.details,
            )
            return

        if not groups:
            self._count("dropped")
            return

        if self.config.debug:
            self._log_global_membership()

        for group in groups:
            try:
                message = self._build_message(policy, ctx, group)
            except PayloadBuildFailure as exc:
                self._count("failed")
                logger.warning(
                    "%s", exc.message, exc_info=self.config.debug, extra=exc.details,
                )
                continue
            if message is None:
                self._count("skipped")
                continue
            self._hand_off(group, ctx.method.value, message)

    def _build_context(
        self,
        entity_name: str,
        method: Union[MutationMethod, str],
        records: Any,
        legacy: Optional[Dict[str, Any]],
    ) -> Optional[DeliveryContext]:
        try:
            method = MutationMethod(method)
            if method in BULK_METHODS:
                if records is not None and (
                    isinstance(records, (str, bytes)) or not isinstance(records, Sequence)
                ):
                    raise TypeError(
                        f"{method.value} needs a sequence of records, got {type(records).__name__}"
                    )
                entries = None if records is None else list(records)
                return DeliveryContext(
                    entity=entity_name, method=method, entries=entries, legacy=legacy or {},
                )
            return DeliveryContext(
                entity=entity_name, method=method, entry=records, legacy=legacy or {},
            )
        except (ValueError, TypeError, ValidationError) as exc:
            logger.debug("Ignoring malformed %s event for %s: %s", method, entity_name, exc)
            return None

    def _resolve_groups(self, policy: EntityPolicy, ctx: DeliveryContext) -> List[str]:
        try:
            result = policy.resolve_audience(ctx)
        except Exception as exc:
            raise AudienceResolutionFailure(
                f"Audience resolver for {ctx.entity}.{ctx.method.value} failed: {exc}",
                {"entity": ctx.entity, "method": ctx.method.value},
            ) from exc
        return normalize_groups(result, self.config.global_group)

    def _build_message(
        self, policy: EntityPolicy, ctx: DeliveryContext, group: str
    ) -> Optional[Dict[str, Any]]:
        try:
            body = policy.build_payload(ctx.for_group(group))
            if not body:
                return None
            message = DeliveryMessage.compose(ctx.entity, to_plain(body), ctx.legacy)
            return message.to_wire()
        except Exception as exc:
            raise PayloadBuildFailure(
                f"Payload builder for {ctx.entity}.{ctx.method.value} > {group} failed: {exc}",
                {"entity": ctx.entity, "method": ctx.method.value, "group": group},
            ) from exc

    # --- Hand-off ---

    def _hand_off(self, group: str, event_name: str, message: Dict[str, Any]) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None:
            self._spawn(group, event_name, message)
        elif self._loop is not None and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._spawn, group, event_name, message)
        else:
            try:
                asyncio.run(self._publish(group, event_name, message))
            except DeliveryFailure as exc:
                self._record_failure(exc)

    def _spawn(self, group: str, event_name: str, message: Dict[str, Any]) -> None:
        task = asyncio.get_running_loop().create_task(
            self._publish(group, event_name, message),
            name=f"flux:{event_name}>{group}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_publish_done)

    def _on_publish_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._record_failure(exc)

    async def _publish(self, group: str, event_name: str, message: Dict[str, Any]) -> None:
        details = {"group": group, "method": event_name, "entity": message.get("entity")}
        try:
            await asyncio.wait_for(
                self.sink.publish(group, event_name, message),
                timeout=self.config.publish_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise DeliveryFailure(
                f"Publishing {event_name} to {group} timed out after "
                f"{self.config.publish_timeout_seconds}s",
                details,
            ) from exc
        except Exception as exc:
            raise DeliveryFailure(
                f"Publishing {event_name} to {group} failed: {exc}", details,
            ) from exc

        self._count("delivered")
        if self.config.debug:
            logger.debug("deliver %s > %s", event_name, group, extra={"payload": message})

    def _record_failure(self, exc: BaseException) -> None:
        self._count("failed")
        if isinstance(exc, DeliveryFailure):
            logger.warning(
                "%s", exc.message,
                exc_info=exc if self.config.debug else None,
                extra=exc.details,
            )
        else:
            logger.error("Unexpected error in flux publish task", exc_info=exc)

    def _count(self, counter: str) -> None:
        with self._stats_lock:
            setattr(self.stats, counter, getattr(self.stats, counter) + 1)

    def _log_global_membership(self) -> None:
        group = self.config.global_group
        try:
            members = self.sink.members(group)
        except Exception as exc:
            logger.debug("Error getting subscribers in %s: %s", group, exc)
            return
        logger.debug("%d subscriber(s) in %s", len(members), group)
