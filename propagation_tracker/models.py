"""Records shared by the validation, prediction and reconciliation pipelines."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

from .const import (
    FINALIZED_STATUSES,
    GERMINATION_STATUSES,
    MESSAGE_CHECKING,
    MESSAGE_VALIDATION_FAILED,
    POLLINATION_STATUSES,
    STATUS_READY,
)


class EntityKind(str, Enum):
    """Kinds of laboratory entity a notification can point at."""

    GERMINATION = "A"
    POLLINATION = "B"

    @property
    def resource(self) -> str:
        return "germinaciones" if self is EntityKind.GERMINATION else "polinizaciones"

    @property
    def statuses(self) -> tuple[str, ...]:
        """Known statuses in lifecycle order. Anything else counts as pending."""

        return GERMINATION_STATUSES if self is EntityKind.GERMINATION else POLLINATION_STATUSES


def normalise_status(value: Any) -> str | None:
    """Return ``value`` as an upper-case status code or ``None`` when blank."""

    if value is None:
        return None
    text = str(value).strip().upper()
    return text or None


def status_is_finalized(status: str | None) -> bool:
    return normalise_status(status) in FINALIZED_STATUSES


def parse_date(value: Any) -> date | None:
    """Parse an ISO date or datetime string, returning ``None`` when unusable."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(slots=True, frozen=True)
class EntityRef:
    """Weak reference to a germination or pollination held by the remote API."""

    kind: EntityKind
    entity_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", EntityKind(self.kind))
        object.__setattr__(self, "entity_id", str(self.entity_id).strip())

    def __str__(self) -> str:
        return f"{self.kind.resource}/{self.entity_id}"


@dataclass(slots=True)
class FieldRequest:
    """One validation or prediction attempt for a field key."""

    field_key: str
    raw_value: Any
    generation: int


@dataclass(slots=True)
class ValidationResult:
    """Outcome of a field check as shown next to the input.

    ``available`` is ``None`` while a check is pending or when the last one
    failed for transient reasons.
    """

    field_key: str
    available: bool | None
    message: str = ""
    validating: bool = False

    @classmethod
    def empty(cls, field_key: str) -> ValidationResult:
        return cls(field_key=field_key, available=None, message="")

    @classmethod
    def checking(cls, field_key: str) -> ValidationResult:
        return cls(field_key=field_key, available=None, message=MESSAGE_CHECKING, validating=True)

    @classmethod
    def failed(cls, field_key: str) -> ValidationResult:
        return cls(field_key=field_key, available=None, message=MESSAGE_VALIDATION_FAILED)

    @classmethod
    def from_payload(cls, field_key: str, payload: Mapping[str, Any]) -> ValidationResult:
        available = payload.get("available", payload.get("disponible"))
        message = payload.get("message", payload.get("mensaje")) or ""
        return cls(
            field_key=field_key,
            available=None if available is None else bool(available),
            message=str(message),
        )

    @property
    def indeterminate(self) -> bool:
        return self.available is None


@dataclass(slots=True, frozen=True)
class PredictionInput:
    """Immutable tuple of the fields a prediction depends on.

    ``extras`` carries additional named components (for example the
    pollination location); every component, extras included, must be filled
    in before a prediction is requested.
    """

    species: str = ""
    genus: str = ""
    start_date: str = ""
    climate: str = ""
    extras: tuple[tuple[str, str], ...] = ()

    def components(self) -> tuple[str, ...]:
        return (self.species, self.genus, self.start_date, self.climate, *(value for _, value in self.extras))

    def is_complete(self) -> bool:
        return all(str(value or "").strip() for value in self.components())

    def to_payload(self, kind: EntityKind) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "especie": self.species.strip(),
            "genero": self.genus.strip(),
            "clima": self.climate.strip(),
        }
        if kind is EntityKind.GERMINATION:
            payload["fecha_siembra"] = self.start_date.strip()
        else:
            payload["fecha_polinizacion"] = self.start_date.strip()
        for name, value in self.extras:
            payload[name] = str(value).strip()
        return payload


@dataclass(slots=True)
class PredictionResult:
    """Estimate returned by the prediction endpoint, carried but not interpreted."""

    payload: dict[str, Any] = field(default_factory=dict)
    estimated_days: int | None = None
    confidence: float | None = None
    estimated_date: date | None = None
    method: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> PredictionResult:
        body = payload.get("prediccion")
        data: Mapping[str, Any] = body if isinstance(body, Mapping) else payload
        days_raw = data.get("dias_estimados", data.get("estimated_days"))
        confidence_raw = data.get("confianza", data.get("confidence"))
        try:
            days = int(days_raw) if days_raw is not None else None
        except (TypeError, ValueError):
            days = None
        try:
            confidence = float(confidence_raw) if confidence_raw is not None else None
        except (TypeError, ValueError):
            confidence = None
        method = data.get("modelo_usado") or data.get("metodo") or data.get("method")
        return cls(
            payload=dict(payload),
            estimated_days=days,
            confidence=confidence,
            estimated_date=parse_date(data.get("fecha_estimada", data.get("estimated_date"))),
            method=str(method) if method else None,
        )


@dataclass(slots=True)
class EntityStatus:
    """Authoritative status of one entity as reported by the lab API."""

    entity_id: str
    status: str | None
    last_known_date: date | None = None
    kind: EntityKind | None = None
    provisional: bool = False

    @property
    def ref(self) -> EntityRef | None:
        if self.kind is None:
            return None
        return EntityRef(self.kind, self.entity_id)

    @property
    def finalized(self) -> bool:
        return status_is_finalized(self.status)

    def as_provisional(self, status: str) -> EntityStatus:
        return replace(self, status=normalise_status(status), provisional=True)

    @classmethod
    def from_payload(cls, kind: EntityKind, payload: Mapping[str, Any], *, entity_id: Any = None) -> EntityStatus:
        ident = payload.get("id", payload.get("numero", entity_id))
        if kind is EntityKind.GERMINATION:
            candidates = [payload.get("estado_germinacion"), payload.get("etapa_actual"), payload.get("estado")]
            when = parse_date(payload.get("fecha_germinacion")) or parse_date(payload.get("fecha_siembra"))
        else:
            candidates = [payload.get("estado_polinizacion"), payload.get("estado")]
            when = parse_date(payload.get("fechamad")) or parse_date(payload.get("fechapol"))
        statuses = [status for status in (normalise_status(item) for item in candidates) if status]
        status = next((item for item in statuses if item in FINALIZED_STATUSES), None)
        if status is None:
            status = statuses[0] if statuses else None
        # A recorded maturation date means the pollination is ready regardless of stage.
        if kind is EntityKind.POLLINATION and payload.get("fechamad") and status not in FINALIZED_STATUSES:
            status = STATUS_READY
        return cls(entity_id=str(ident), status=status, last_known_date=when, kind=kind)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "kind": self.kind.value if self.kind else None,
            "status": self.status,
            "last_known_date": self.last_known_date.isoformat() if self.last_known_date else None,
            "provisional": self.provisional,
        }


@dataclass(slots=True)
class SummaryRecord:
    """Lightweight notification entry pointing at a germination or pollination."""

    id: str
    entity_ref: EntityRef | None
    cached_status: str | None
    read: bool = False
    created_at: datetime | None = None
    favorite: bool = False
    archived: bool = False
    title: str = ""
    message: str = ""
    notification_type: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> SummaryRecord:
        details = payload.get("detalles_adicionales") or payload.get("detalles") or {}
        if not isinstance(details, Mapping):
            details = {}
        ref: EntityRef | None = None
        germination_id = details.get("germinacion_id", payload.get("germinacion_id"))
        pollination_id = details.get("polinizacion_id", payload.get("polinizacion_id"))
        if germination_id not in (None, ""):
            ref = EntityRef(EntityKind.GERMINATION, germination_id)
        elif pollination_id not in (None, ""):
            ref = EntityRef(EntityKind.POLLINATION, pollination_id)
        return cls(
            id=str(payload["id"]),
            entity_ref=ref,
            cached_status=normalise_status(details.get("estado")),
            read=bool(payload.get("leida", payload.get("read", False))),
            created_at=parse_datetime(payload.get("fecha_creacion", payload.get("created_at"))),
            favorite=bool(payload.get("favorita", False)),
            archived=bool(payload.get("archivada", False)),
            title=str(payload.get("titulo") or ""),
            message=str(payload.get("mensaje") or ""),
            notification_type=str(payload.get("tipo") or ""),
        )


@dataclass(slots=True, frozen=True)
class NotificationFilters:
    """Server-side filters for the notification feed."""

    unread_only: bool = False
    include_archived: bool = False
    favorites_only: bool = False
    notification_type: str | None = None
    category: str | None = None
    search: str | None = None

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.unread_only:
            params["solo_no_leidas"] = "true"
        if self.include_archived:
            params["incluir_archivadas"] = "true"
        if self.favorites_only:
            params["favorita"] = "true"
        if self.notification_type:
            params["tipo"] = self.notification_type
        if self.category:
            params["categoria"] = self.category
        if self.search and self.search.strip():
            params["search"] = self.search.strip()
        return params


SyncMap = dict[EntityRef, EntityStatus]
