"""Optimistic status changes with confirm-or-rollback semantics."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace
from datetime import date
from typing import Any

from .const import (
    PAYLOAD_GERMINATION_DATE,
    PAYLOAD_MATURATION_DATE,
    STATUS_READY,
    STATUS_READY_ALT,
)
from .exceptions import TransitionError, TransitionInProgressError
from .models import EntityKind, EntityRef, EntityStatus, SyncMap, normalise_status, parse_date
from .utils.listeners import ListenerRegistry

_LOGGER = logging.getLogger(__name__)

MutateStatus = Callable[
    [EntityKind, str, str, Mapping[str, Any] | None],
    Awaitable[EntityStatus | Mapping[str, Any] | None],
]
CachedStatus = Callable[[EntityRef], str | None]

_MISSING = object()


class StatusTransitionCoordinator:
    """Apply one status change at a time per entity.

    The local status map is patched before the request is sent. A successful
    request replaces the patch with the server's answer and triggers a
    reconciliation pass; a failed one restores the previous entry and raises
    :class:`TransitionError`. A second transition for an entity that is still
    pending is rejected with :class:`TransitionInProgressError`.
    """

    def __init__(
        self,
        mutate: MutateStatus,
        *,
        statuses: SyncMap | None = None,
        cached_status: CachedStatus | None = None,
        reconcile: Callable[[], Awaitable[Any]] | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._mutate = mutate
        self.statuses: SyncMap = statuses if statuses is not None else {}
        self._cached_status = cached_status
        self._reconcile = reconcile
        self._today = today
        # Entry each pending entity had before its optimistic patch.
        self._pending: dict[EntityRef, Any] = {}
        self._success_listeners = ListenerRegistry()
        self._change_listeners = ListenerRegistry()

    def async_add_success_listener(self, callback: Callable[[EntityStatus], Any]) -> Callable[[], None]:
        """Call ``callback`` with the confirmed status after every successful transition."""

        return self._success_listeners.add(callback)

    def async_add_listener(self, callback: Callable[[EntityRef], Any]) -> Callable[[], None]:
        """Call ``callback`` whenever the local entry of an entity changes."""

        return self._change_listeners.add(callback)

    def pending(self, ref: EntityRef) -> bool:
        return ref in self._pending

    @property
    def pending_refs(self) -> tuple[EntityRef, ...]:
        return tuple(self._pending)

    def visible_status(self, ref: EntityRef) -> str | None:
        entry = self.statuses.get(ref)
        if entry is not None:
            return entry.status
        return self._cached_status(ref) if self._cached_status else None

    def adopt(self, sync_map: SyncMap) -> SyncMap:
        """Install a freshly reconciled map, keeping patches for pending entities."""

        merged: SyncMap = dict(sync_map)
        for ref in self._pending:
            # Rolling back now returns to the freshly confirmed entry.
            self._pending[ref] = sync_map.get(ref, _MISSING)
            patched = self.statuses.get(ref)
            if patched is not None:
                merged[ref] = patched
        self.statuses = merged
        return merged

    async def transition(
        self,
        ref: EntityRef,
        new_status: str,
        extra_payload: Mapping[str, Any] | None = None,
    ) -> EntityStatus:
        status = normalise_status(new_status)
        if status is None:
            raise ValueError("new_status must not be empty")
        if ref in self._pending:
            raise TransitionInProgressError(
                f"A status change for {ref} is already in progress",
                entity_ref=ref,
                previous_status=self.visible_status(ref),
                attempted_status=status,
                reason="pending",
            )

        previous_status = self.visible_status(ref)
        payload = self.build_payload(ref, status, extra_payload)
        self._pending[ref] = self.statuses.get(ref, _MISSING)
        self._patch(ref, status, payload)

        try:
            response = await self._mutate(ref.kind, ref.entity_id, status, payload)
        except asyncio.CancelledError:
            self._rollback(ref)
            raise
        except Exception as err:
            self._rollback(ref)
            _LOGGER.warning("Changing %s to %s failed; restored %s: %s", ref, status, previous_status, err)
            raise TransitionError(
                f"Could not change {ref} to {status}: {err}",
                entity_ref=ref,
                previous_status=previous_status,
                attempted_status=status,
                reason="mutation_failed",
            ) from err

        confirmed = self._confirmed(ref, status, response)
        self._pending.pop(ref, None)
        self.statuses[ref] = confirmed
        self._change_listeners.notify(ref)
        self._success_listeners.notify(confirmed)

        if self._reconcile is not None:
            try:
                await self._reconcile()
            except Exception as err:
                # The mutation itself succeeded; the next refresh converges.
                _LOGGER.warning("Reconciliation after changing %s failed: %s", ref, err)
        return confirmed

    def build_payload(
        self, ref: EntityRef, status: str, extra_payload: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Return the extra request fields for ``status``.

        Marking a pollination ready records today's date as its maturation
        date unless the caller supplies one.
        """

        payload = dict(extra_payload or {})
        if ref.kind is EntityKind.POLLINATION and status in (STATUS_READY, STATUS_READY_ALT):
            payload.setdefault(PAYLOAD_MATURATION_DATE, self._today().isoformat())
        return payload

    def _patch(self, ref: EntityRef, status: str, payload: Mapping[str, Any]) -> None:
        current = self.statuses.get(ref)
        when = parse_date(payload.get(PAYLOAD_MATURATION_DATE) or payload.get(PAYLOAD_GERMINATION_DATE))
        if current is None:
            patched = EntityStatus(entity_id=ref.entity_id, status=status, kind=ref.kind, provisional=True)
        else:
            patched = current.as_provisional(status)
        if when is not None:
            patched = replace(patched, last_known_date=when)
        self.statuses[ref] = patched
        self._change_listeners.notify(ref)

    def _rollback(self, ref: EntityRef) -> None:
        previous = self._pending.pop(ref, _MISSING)
        if previous is _MISSING:
            self.statuses.pop(ref, None)
        else:
            self.statuses[ref] = previous
        self._change_listeners.notify(ref)

    def _confirmed(
        self, ref: EntityRef, status: str, response: EntityStatus | Mapping[str, Any] | None
    ) -> EntityStatus:
        if isinstance(response, EntityStatus):
            return replace(response, entity_id=ref.entity_id, kind=ref.kind, provisional=False)
        if isinstance(response, Mapping) and response:
            parsed = EntityStatus.from_payload(ref.kind, response, entity_id=ref.entity_id)
            return replace(parsed, entity_id=ref.entity_id, status=parsed.status or status)
        patched = self.statuses.get(ref)
        return replace(
            patched or EntityStatus(entity_id=ref.entity_id, status=status, kind=ref.kind),
            provisional=False,
        )
