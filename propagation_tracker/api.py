"""aiohttp adapter for the laboratory REST API."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Mapping
from typing import Any, Protocol

from aiohttp import ClientError, ClientSession

from .config import TrackerConfig
from .const import (
    MESSAGE_CODE_DUPLICATE_ALLOWED,
    MESSAGE_CODE_NEW,
    MESSAGE_CODE_TAKEN,
    PAYLOAD_STATUS,
    RETRYABLE_STATUSES,
)
from .exceptions import LabApiError
from .models import (
    EntityKind,
    EntityStatus,
    NotificationFilters,
    PredictionInput,
    PredictionResult,
    SummaryRecord,
    normalise_status,
)
from .utils.logging import warn_once

_LOGGER = logging.getLogger(__name__)

_PREDICTION_PATHS = {
    EntityKind.GERMINATION: "germinaciones/calcular-prediccion-mejorada/",
    EntityKind.POLLINATION: "predicciones/polinizacion/inicial/",
}


class LabApi(Protocol):
    """Remote calls the sync core depends on."""

    async def check_code(self, kind: EntityKind, value: str) -> Mapping[str, Any]: ...

    async def predict(self, kind: EntityKind, inputs: PredictionInput) -> PredictionResult: ...

    async def fetch_entity(self, kind: EntityKind, entity_id: str) -> EntityStatus: ...

    async def mutate_entity_status(
        self,
        kind: EntityKind,
        entity_id: str,
        new_status: str,
        extra_payload: Mapping[str, Any] | None = None,
    ) -> EntityStatus: ...

    async def list_notifications(self, filters: NotificationFilters | None = None) -> list[SummaryRecord]: ...

    async def mark_notification_read(self, notification_id: str) -> None: ...

    async def mark_all_notifications_read(self) -> int: ...

    async def toggle_notification_favorite(self, notification_id: str) -> bool: ...

    async def archive_notification(self, notification_id: str) -> None: ...


class LabApiClient:
    """Thin JSON client with retries for transient failures.

    Statuses in :data:`RETRYABLE_STATUSES`, timeouts and connection errors are
    retried with jittered exponential backoff; any other error status raises
    :class:`LabApiError` straight away.
    """

    def __init__(
        self,
        config: TrackerConfig,
        *,
        session: ClientSession | None = None,
        initial_delay: float = 1.0,
    ) -> None:
        self.config = config
        self._base_url = config.base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._initial_delay = initial_delay
        self.last_status: int | None = None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def _get_session(self) -> ClientSession:
        if self._session is None:
            self._session = ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> LabApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Mapping[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (``None`` when empty)."""

        session = self._get_session()
        url = f"{self._base_url}/{path.lstrip('/')}"
        attempts = self.config.max_retries + 1
        delay = self._initial_delay
        for attempt in range(attempts):
            status: int | None = None
            try:
                async with asyncio.timeout(self.config.request_timeout):
                    async with session.request(
                        method, url, headers=self._headers(), params=params, json=json
                    ) as resp:
                        status = resp.status
                        self.last_status = status
                        if status in RETRYABLE_STATUSES:
                            raise ClientError(f"Retryable status: {status}")
                        body = await self._read_json(resp)
                        if status >= 400:
                            raise LabApiError(_error_message(body, status), status=status, reason="http")
                        return body
            except LabApiError:
                raise
            except (TimeoutError, ClientError) as err:
                warn_once(_LOGGER, "lab_api_network", f"{method} {path}: {err or type(err).__name__}")
                if attempt == attempts - 1:
                    raise LabApiError(
                        f"{method} {path} failed after {attempts} attempts: {err or type(err).__name__}",
                        status=status,
                        reason="network",
                    ) from err
                await asyncio.sleep(delay + 0.25 * random.random())
                delay = min(delay * 2, 30)

        raise LabApiError(f"{method} {path} failed", reason="network")

    @staticmethod
    async def _read_json(resp: Any) -> Any:
        if resp.status == 204:
            return None
        try:
            return await resp.json(content_type=None)
        except (ValueError, ClientError):
            return None

    # ------------------------------------------------------------------
    async def check_code(self, kind: EntityKind, value: str) -> dict[str, Any]:
        """Report whether ``value`` can be used as the code of a new record.

        Germinations may share codes, so a hit is still available; a
        pollination code that already exists is not.
        """

        code = (value or "").strip()
        if not code:
            return {"available": False, "message": "code must not be empty"}
        try:
            data = await self.request("GET", f"{kind.resource}/buscar-por-codigo/", params={"codigo": code})
        except LabApiError as err:
            if err.not_found:
                return {"available": True, "message": MESSAGE_CODE_NEW}
            raise
        if not data:
            return {"available": True, "message": MESSAGE_CODE_NEW}
        if kind is EntityKind.GERMINATION:
            return {"available": True, "message": MESSAGE_CODE_DUPLICATE_ALLOWED}
        return {"available": False, "message": MESSAGE_CODE_TAKEN}

    async def predict(self, kind: EntityKind, inputs: PredictionInput) -> PredictionResult:
        data = await self.request("POST", _PREDICTION_PATHS[kind], json=inputs.to_payload(kind))
        if not isinstance(data, Mapping):
            raise LabApiError("prediction response is not an object", reason="malformed")
        return PredictionResult.from_payload(data)

    async def fetch_entity(self, kind: EntityKind, entity_id: str) -> EntityStatus:
        data = await self.request("GET", f"{kind.resource}/{entity_id}/")
        if not isinstance(data, Mapping):
            raise LabApiError(f"{kind.resource}/{entity_id} response is not an object", reason="malformed")
        return EntityStatus.from_payload(kind, data, entity_id=entity_id)

    async def mutate_entity_status(
        self,
        kind: EntityKind,
        entity_id: str,
        new_status: str,
        extra_payload: Mapping[str, Any] | None = None,
    ) -> EntityStatus:
        status = normalise_status(new_status)
        body: dict[str, Any] = {PAYLOAD_STATUS: status, **dict(extra_payload or {})}
        if kind is EntityKind.GERMINATION:
            data = await self.request("POST", f"germinaciones/{entity_id}/cambiar-estado/", json=body)
        else:
            data = await self.request("PATCH", f"polinizaciones/{entity_id}/", json=body)
        if isinstance(data, Mapping) and data:
            result = EntityStatus.from_payload(kind, data, entity_id=entity_id)
            if result.status is None:
                result.status = status
            result.entity_id = str(entity_id)
            return result
        return EntityStatus(entity_id=str(entity_id), status=status, kind=kind)

    async def list_notifications(self, filters: NotificationFilters | None = None) -> list[SummaryRecord]:
        params = (filters or NotificationFilters()).to_params()
        data = await self.request("GET", "notifications/", params=params or None)
        if isinstance(data, Mapping):
            items = data.get("notificaciones")
            if items is None:
                items = data.get("results")
        else:
            items = data
        if not isinstance(items, list):
            return []
        records: list[SummaryRecord] = []
        for item in items:
            if not isinstance(item, Mapping):
                continue
            try:
                records.append(SummaryRecord.from_payload(item))
            except (KeyError, TypeError, ValueError) as err:
                _LOGGER.debug("Skipping malformed notification %r: %s", item, err)
        return records

    async def mark_notification_read(self, notification_id: str) -> None:
        await self.request("POST", f"notifications/{notification_id}/marcar-leida/")

    async def mark_all_notifications_read(self) -> int:
        data = await self.request("POST", "notifications/marcar-todas-leidas/")
        if isinstance(data, Mapping):
            try:
                return int(data.get("count") or 0)
            except (TypeError, ValueError):
                return 0
        return 0

    async def toggle_notification_favorite(self, notification_id: str) -> bool:
        data = await self.request("POST", f"notifications/{notification_id}/toggle-favorita/")
        if not isinstance(data, Mapping) or "favorita" not in data:
            raise LabApiError("toggle-favorita response missing 'favorita'", reason="malformed")
        return bool(data["favorita"])

    async def archive_notification(self, notification_id: str) -> None:
        await self.request("POST", f"notifications/{notification_id}/archivar/")

    async def notification_stats(self) -> dict[str, Any]:
        data = await self.request("GET", "notifications/estadisticas/")
        return dict(data) if isinstance(data, Mapping) else {}


def _error_message(body: Any, status: int) -> str:
    if isinstance(body, Mapping):
        for key in ("error", "detail", "message"):
            value = body.get(key)
            if value:
                return str(value)
    return f"HTTP {status}"
