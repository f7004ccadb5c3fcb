"""Per-form wiring of code validation and prediction."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from functools import partial
from typing import Any

from .api import LabApi
from .config import TrackerConfig
from .const import CODE_FIELD, GERMINATION_PREDICTION_FIELDS, POLLINATION_PREDICTION_FIELDS
from .debounce import DebounceScheduler
from .generation import GenerationGuard
from .models import EntityKind, PredictionInput, PredictionResult, ValidationResult
from .prediction import PredictionPipeline, RemotePredict
from .validation import FieldValidationPipeline, RemoteCheck

_LOGGER = logging.getLogger(__name__)


class FormSession:
    """Derived state for one open germination or pollination form.

    The session owns a scheduler and a generation table shared by its
    pipelines. Call :meth:`async_close` when the form goes away so no timer
    or request outlives it.
    """

    def __init__(
        self,
        kind: EntityKind,
        api: LabApi | None = None,
        *,
        config: TrackerConfig | None = None,
        remote_check: RemoteCheck | None = None,
        remote_predict: RemotePredict | None = None,
        code_field: str = CODE_FIELD,
        extra_prediction_fields: tuple[str, ...] = (),
    ) -> None:
        if api is None and (remote_check is None or remote_predict is None):
            raise ValueError("FormSession needs an api or both remote callables")
        config = config or TrackerConfig()
        self.kind = EntityKind(kind)
        self.code_field = code_field
        if self.kind is EntityKind.GERMINATION:
            base_fields = GERMINATION_PREDICTION_FIELDS
        else:
            base_fields = POLLINATION_PREDICTION_FIELDS
        self.prediction_fields: tuple[str, ...] = (*base_fields, *extra_prediction_fields)
        self._extra_fields = extra_prediction_fields
        self.values: dict[str, Any] = {}
        self.closed = False

        self.scheduler = DebounceScheduler()
        self.guard = GenerationGuard()
        self.validation = FieldValidationPipeline(
            remote_check or partial(api.check_code, self.kind),
            scheduler=self.scheduler,
            guard=self.guard,
            delay=config.validation_delay,
        )
        self.prediction = PredictionPipeline(
            remote_predict or partial(api.predict, self.kind),
            scheduler=self.scheduler,
            guard=self.guard,
            delay=config.prediction_delay,
        )

    @property
    def code_result(self) -> ValidationResult:
        return self.validation.result(self.code_field)

    @property
    def prediction_result(self) -> PredictionResult | None:
        return self.prediction.result

    @property
    def prediction_loading(self) -> bool:
        return self.prediction.loading

    @property
    def submittable(self) -> bool:
        """A form may be submitted unless its code is known to be taken.

        Pending or failed checks and missing predictions never block.
        """

        code = str(self.values.get(self.code_field) or "").strip()
        return bool(code) and self.code_result.available is not False

    def prediction_input(self) -> PredictionInput:
        values = [str(self.values.get(name) or "") for name in self.prediction_fields[:4]]
        extras = tuple((name, str(self.values.get(name) or "")) for name in self._extra_fields)
        return PredictionInput(*values, extras=extras)

    def set_field(self, name: str, value: Any) -> None:
        self.set_fields({name: value})

    def set_fields(self, values: Mapping[str, Any]) -> None:
        """Apply several edits at once (for example when loading a record)."""

        if self.closed:
            raise RuntimeError("form session is closed")
        self.values.update(values)
        if self.code_field in values:
            self.validation.validate_field(self.code_field, values[self.code_field])
        if any(name in values for name in self.prediction_fields):
            self.prediction.update_prediction_inputs(self.prediction_input())

    async def async_close(self) -> None:
        """Cancel timers and running requests and forget all derived state."""

        if self.closed:
            return
        self.closed = True
        await self.scheduler.async_shutdown()
        self.guard.reset()
        self.validation.clear()
        self.prediction.clear()
        _LOGGER.debug("Closed %s form session", self.kind.resource)
