"""Debounced server-side validation of form fields."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from functools import partial
from typing import Any

from .const import DEFAULT_VALIDATION_DELAY
from .debounce import DebounceScheduler
from .generation import GenerationGuard
from .models import ValidationResult
from .utils.listeners import ListenerRegistry
from .utils.logging import warn_once

_LOGGER = logging.getLogger(__name__)

RemoteCheck = Callable[[str], Awaitable[Mapping[str, Any] | ValidationResult]]


class FieldValidationPipeline:
    """Check field values against the lab API while the user types.

    Each field key owns one result slot. Empty values clear the slot without a
    request; other values flip it to ``checking`` immediately and are sent to
    ``remote_check`` once the field has been quiet for ``delay`` seconds.
    """

    def __init__(
        self,
        remote_check: RemoteCheck,
        *,
        scheduler: DebounceScheduler | None = None,
        guard: GenerationGuard | None = None,
        delay: float = DEFAULT_VALIDATION_DELAY,
    ) -> None:
        self._remote_check = remote_check
        self.scheduler = scheduler or DebounceScheduler()
        self.guard = guard or GenerationGuard()
        self.delay = delay
        self._results: dict[str, ValidationResult] = {}
        self._listeners = ListenerRegistry()

    def result(self, field_key: str) -> ValidationResult:
        return self._results.get(field_key) or ValidationResult.empty(field_key)

    @property
    def results(self) -> dict[str, ValidationResult]:
        return dict(self._results)

    def async_add_listener(self, callback: Callable[[ValidationResult], Any]) -> Callable[[], None]:
        return self._listeners.add(callback)

    def validate_field(self, field_key: str, value: Any) -> None:
        text = "" if value is None else str(value)
        if not text.strip():
            self.scheduler.cancel(field_key)
            self.guard.invalidate(field_key)
            self._set(ValidationResult.empty(field_key))
            return

        self.guard.invalidate(field_key)
        self._set(ValidationResult.checking(field_key))
        self.scheduler.schedule(field_key, self.delay, partial(self._check, field_key, text))

    def clear(self, field_key: str | None = None) -> None:
        """Drop pending checks and results for one key, or for all of them."""

        keys = [field_key] if field_key is not None else list(self._results)
        for key in keys:
            self.scheduler.cancel(key)
            self.guard.invalidate(key)
            self._results.pop(key, None)

    async def _check(self, field_key: str, value: str) -> None:
        await self.guard.run(
            field_key,
            partial(self._remote_check, value),
            partial(self._apply, field_key),
            partial(self._fail, field_key),
            raw_value=value,
        )

    def _apply(self, field_key: str, payload: Mapping[str, Any] | ValidationResult) -> None:
        if isinstance(payload, ValidationResult):
            result = ValidationResult(field_key, payload.available, payload.message)
        else:
            result = ValidationResult.from_payload(field_key, payload)
        self._set(result)

    def _fail(self, field_key: str, err: Exception) -> None:
        warn_once(_LOGGER, f"validation_{field_key}", f"could not validate {field_key}: {err}")
        self._set(ValidationResult.failed(field_key))

    def _set(self, result: ValidationResult) -> None:
        self._results[result.field_key] = result
        self._listeners.notify(result)
