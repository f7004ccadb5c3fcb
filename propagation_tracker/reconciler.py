"""Reconcile notification records with the authoritative state of their entities."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from .exceptions import ReconcileError
from .models import (
    EntityKind,
    EntityRef,
    EntityStatus,
    SummaryRecord,
    SyncMap,
    normalise_status,
    status_is_finalized,
)
from .utils.logging import warn_once

_LOGGER = logging.getLogger(__name__)

FetchEntity = Callable[[EntityKind, str], Awaitable[EntityStatus | Mapping[str, Any]]]


@dataclass(slots=True)
class ReconcileReport:
    """Outcome of one reconciliation pass."""

    sync_map: SyncMap = field(default_factory=dict)
    degraded: tuple[str, ...] = ()
    failures: dict[EntityRef, str] = field(default_factory=dict)
    completed_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return not self.failures


class RecordReconciler:
    """Fetch the current status of every entity a batch of records refers to.

    Fetches run concurrently and each one is isolated: a failing entity is
    reported in :attr:`last_report` and left out of the map so consumers fall
    back to the record's cached status.
    """

    def __init__(self, fetch_entity: FetchEntity, *, logger: logging.Logger | None = None) -> None:
        self._fetch_entity = fetch_entity
        self.logger = logger or _LOGGER
        self.last_report: ReconcileReport | None = None

    async def reconcile(self, records: Iterable[SummaryRecord]) -> SyncMap:
        try:
            batch = list(records)
        except TypeError as err:
            raise ReconcileError("summary records are not iterable", reason="unreadable_batch") from err

        refs: dict[EntityRef, None] = {}
        for record in batch:
            ref = getattr(record, "entity_ref", None)
            if isinstance(ref, EntityRef):
                refs.setdefault(ref, None)

        outcomes = await asyncio.gather(*(self._fetch_one(ref) for ref in refs))

        sync_map: SyncMap = {}
        failures: dict[EntityRef, str] = {}
        for ref, status, error in outcomes:
            if status is not None:
                sync_map[ref] = status
            else:
                failures[ref] = error or "unknown error"

        degraded = tuple(record.id for record in batch if getattr(record, "entity_ref", None) in failures)
        if failures:
            warn_once(
                self.logger,
                "reconcile_partial",
                f"{len(failures)} of {len(refs)} entity lookups failed; using cached status",
            )
        self.last_report = ReconcileReport(
            sync_map=dict(sync_map),
            degraded=degraded,
            failures=failures,
            completed_at=datetime.now(tz=UTC),
        )
        self.logger.debug("Reconciled %d records against %d entities", len(batch), len(sync_map))
        return sync_map

    async def _fetch_one(self, ref: EntityRef) -> tuple[EntityRef, EntityStatus | None, str | None]:
        try:
            payload = await self._fetch_entity(ref.kind, ref.entity_id)
        except asyncio.CancelledError:
            raise
        except Exception as err:
            self.logger.debug("Lookup of %s failed: %s", ref, err)
            return ref, None, str(err) or type(err).__name__
        return ref, _coerce_status(ref, payload), None


def _coerce_status(ref: EntityRef, payload: EntityStatus | Mapping[str, Any]) -> EntityStatus:
    if isinstance(payload, EntityStatus):
        return replace(payload, entity_id=ref.entity_id, kind=ref.kind, provisional=False)
    return replace(EntityStatus.from_payload(ref.kind, payload, entity_id=ref.entity_id), entity_id=ref.entity_id)


def effective_status(record: SummaryRecord, sync_map: Mapping[EntityRef, EntityStatus]) -> str | None:
    """Return the best known status: the reconciled one, else the cached one."""

    if record.entity_ref is not None:
        entry = sync_map.get(record.entity_ref)
        if entry is not None:
            return entry.status
    return normalise_status(record.cached_status)


def is_finalized(record: SummaryRecord, sync_map: Mapping[EntityRef, EntityStatus]) -> bool:
    return status_is_finalized(effective_status(record, sync_map))


def is_pending(record: SummaryRecord, sync_map: Mapping[EntityRef, EntityStatus]) -> bool:
    return not is_finalized(record, sync_map)


def is_degraded(record: SummaryRecord, sync_map: Mapping[EntityRef, EntityStatus]) -> bool:
    """Records that reference an entity the last pass could not resolve."""

    return record.entity_ref is not None and record.entity_ref not in sync_map


def is_confirmed_finalized(record: SummaryRecord, sync_map: Mapping[EntityRef, EntityStatus]) -> bool:
    """Whether the record may be acted on as finished (for example auto-dismissed).

    Only a reconciled, non-provisional status counts; a cached fallback or an
    optimistic patch does not.
    """

    if record.entity_ref is None:
        return False
    entry = sync_map.get(record.entity_ref)
    return entry is not None and not entry.provisional and entry.finalized


def partition(
    records: Iterable[SummaryRecord], sync_map: Mapping[EntityRef, EntityStatus]
) -> tuple[list[SummaryRecord], list[SummaryRecord]]:
    """Split records into ``(pending, finalized)`` keeping their order."""

    pending: list[SummaryRecord] = []
    finalized: list[SummaryRecord] = []
    for record in records:
        (finalized if is_finalized(record, sync_map) else pending).append(record)
    return pending, finalized
