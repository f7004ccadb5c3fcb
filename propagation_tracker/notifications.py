"""Notification feed backed by reconciled entity statuses."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import date
from typing import Any

from .api import LabApi
from .generation import GenerationGuard
from .models import EntityRef, EntityStatus, NotificationFilters, SummaryRecord, SyncMap
from .reconciler import (
    ReconcileReport,
    RecordReconciler,
    effective_status,
    is_confirmed_finalized,
    is_degraded,
    partition,
)
from .transitions import StatusTransitionCoordinator
from .utils.listeners import ListenerRegistry

_LOGGER = logging.getLogger(__name__)

RECORDS_KEY = "records"
RECONCILE_KEY = "reconcile"


class NotificationFeed:
    """Local view of the user's notifications and the entities they mention.

    :meth:`refresh` loads the records and reconciles them. Status changes go
    through :attr:`coordinator`, which re-runs the reconciliation on success.
    Only the most recently started load and reconciliation pass are applied;
    a slower, older pass finishing last is dropped.
    Read, favorite and archive flags are patched locally first and restored
    if the server refuses the change.
    """

    def __init__(self, api: LabApi, *, today: Callable[[], date] = date.today) -> None:
        self._api = api
        self.filters = NotificationFilters()
        self.records: list[SummaryRecord] = []
        self.reconciler = RecordReconciler(api.fetch_entity)
        self.last_report: ReconcileReport | None = None
        self._guard = GenerationGuard()
        self.coordinator = StatusTransitionCoordinator(
            api.mutate_entity_status,
            cached_status=self._cached_status,
            reconcile=self.reconcile,
            today=today,
        )
        self._listeners = ListenerRegistry()
        self.coordinator.async_add_listener(lambda _ref: self._notify())

    def async_add_listener(self, callback: Callable[[NotificationFeed], Any]) -> Callable[[], None]:
        return self._listeners.add(callback)

    # ------------------------------------------------------------------
    @property
    def sync_map(self) -> SyncMap:
        return self.coordinator.statuses

    @property
    def degraded(self) -> tuple[str, ...]:
        """Ids of records whose entity could not be looked up in the last pass."""

        return tuple(record.id for record in self.records if is_degraded(record, self.sync_map))

    @property
    def unread_count(self) -> int:
        return sum(1 for record in self.records if not record.read)

    def find(self, record_id: str) -> SummaryRecord | None:
        record_id = str(record_id)
        return next((record for record in self.records if record.id == record_id), None)

    def status_of(self, record: SummaryRecord) -> str | None:
        return effective_status(record, self.sync_map)

    def pending(self) -> list[SummaryRecord]:
        return partition(self.records, self.sync_map)[0]

    def finalized(self) -> list[SummaryRecord]:
        return partition(self.records, self.sync_map)[1]

    def dismissible(self) -> list[SummaryRecord]:
        """Records whose entity is confirmed finished by the server."""

        return [record for record in self.records if is_confirmed_finalized(record, self.sync_map)]

    # ------------------------------------------------------------------
    async def refresh(self, filters: NotificationFilters | None = None) -> SyncMap:
        if filters is not None:
            self.filters = filters
        generation = self._guard.issue(RECORDS_KEY)
        records = await self._api.list_notifications(self.filters)
        if not self._guard.is_current(RECORDS_KEY, generation):
            _LOGGER.debug("Discarding superseded notification load (generation %s)", generation)
            return self.sync_map
        self.records = records
        _LOGGER.debug("Loaded %d notifications", len(records))
        return await self.reconcile()

    async def reconcile(self) -> SyncMap:
        generation = self._guard.issue(RECONCILE_KEY)
        sync_map = await self.reconciler.reconcile(self.records)
        if not self._guard.is_current(RECONCILE_KEY, generation):
            _LOGGER.debug("Discarding superseded reconciliation (generation %s)", generation)
            return self.sync_map
        self.last_report = self.reconciler.last_report
        merged = self.coordinator.adopt(sync_map)
        self._notify()
        return merged

    async def transition(
        self,
        target: SummaryRecord | EntityRef,
        new_status: str,
        extra_payload: dict[str, Any] | None = None,
    ) -> EntityStatus:
        ref = target.entity_ref if isinstance(target, SummaryRecord) else target
        if ref is None:
            raise ValueError(f"notification {target.id} does not reference an entity")
        return await self.coordinator.transition(ref, new_status, extra_payload)

    # ------------------------------------------------------------------
    async def mark_read(self, record_id: str) -> None:
        record = self._require(record_id)
        if record.read:
            return
        await self._optimistic(
            lambda: setattr(record, "read", True),
            lambda: setattr(record, "read", False),
            lambda: self._api.mark_notification_read(record.id),
        )

    async def mark_all_read(self) -> int:
        unread = [record for record in self.records if not record.read]
        if not unread:
            return 0

        def _apply() -> None:
            for record in unread:
                record.read = True

        def _undo() -> None:
            for record in unread:
                record.read = False

        count = await self._optimistic(_apply, _undo, self._api.mark_all_notifications_read)
        return count or len(unread)

    async def toggle_favorite(self, record_id: str) -> bool:
        record = self._require(record_id)
        previous = record.favorite
        favorite = await self._optimistic(
            lambda: setattr(record, "favorite", not previous),
            lambda: setattr(record, "favorite", previous),
            lambda: self._api.toggle_notification_favorite(record.id),
        )
        record.favorite = bool(favorite)
        return record.favorite

    async def archive(self, record_id: str) -> None:
        record = self._require(record_id)
        index = self.records.index(record)

        def _apply() -> None:
            self.records.remove(record)

        def _undo() -> None:
            if record not in self.records:
                self.records.insert(min(index, len(self.records)), record)

        await self._optimistic(_apply, _undo, lambda: self._api.archive_notification(record.id))
        record.archived = True

    def close(self) -> None:
        """Drop records and reconciled state when the view goes away."""

        self._guard.reset()
        self.records = []
        self.coordinator.statuses = {}
        self.reconciler.last_report = None
        self.last_report = None
        self._listeners.clear()

    # ------------------------------------------------------------------
    def _require(self, record_id: str) -> SummaryRecord:
        record = self.find(record_id)
        if record is None:
            raise KeyError(f"unknown notification {record_id}")
        return record

    async def _optimistic(
        self,
        apply: Callable[[], None],
        undo: Callable[[], None],
        call: Callable[[], Awaitable[Any]],
    ) -> Any:
        apply()
        self._notify()
        try:
            result = await call()
        except BaseException:
            undo()
            self._notify()
            raise
        return result

    def _cached_status(self, ref: EntityRef) -> str | None:
        for record in self.records:
            if record.entity_ref == ref:
                return record.cached_status
        return None

    def _notify(self) -> None:
        self._listeners.notify(self)
