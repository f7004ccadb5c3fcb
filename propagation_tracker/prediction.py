"""Debounced recomputation of advisory completion estimates."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from functools import partial
from typing import Any

from .const import DEFAULT_PREDICTION_DELAY, PREDICTION_KEY
from .debounce import DebounceScheduler
from .generation import GenerationGuard
from .models import PredictionInput, PredictionResult
from .utils.listeners import ListenerRegistry
from .utils.logging import warn_once

_LOGGER = logging.getLogger(__name__)

RemotePredict = Callable[[PredictionInput], Awaitable[Mapping[str, Any] | PredictionResult]]


class PredictionPipeline:
    """Keep ``result`` in step with the latest complete set of inputs.

    An incomplete input clears the estimate at once. A complete one sets
    ``loading`` and is sent to ``remote_predict`` after ``delay`` seconds of
    quiet. Failures leave no estimate; predictions never block submission.
    """

    def __init__(
        self,
        remote_predict: RemotePredict,
        *,
        scheduler: DebounceScheduler | None = None,
        guard: GenerationGuard | None = None,
        delay: float = DEFAULT_PREDICTION_DELAY,
        key: str = PREDICTION_KEY,
    ) -> None:
        self._remote_predict = remote_predict
        self.scheduler = scheduler or DebounceScheduler()
        self.guard = guard or GenerationGuard()
        self.delay = delay
        self.key = key
        self.result: PredictionResult | None = None
        self.loading = False
        self.inputs: PredictionInput | None = None
        self._listeners = ListenerRegistry()

    def async_add_listener(self, callback: Callable[[PredictionResult | None, bool], Any]) -> Callable[[], None]:
        return self._listeners.add(callback)

    def update_prediction_inputs(self, inputs: PredictionInput) -> None:
        if not inputs.is_complete():
            self.clear()
            return

        if inputs == self.inputs and (self.loading or self.result is not None):
            return

        self.guard.invalidate(self.key)
        self.inputs = inputs
        self.loading = True
        self._notify()
        self.scheduler.schedule(self.key, self.delay, partial(self._predict, inputs))

    def clear(self) -> None:
        """Forget the estimate and make sure no pending request can restore it."""

        self.scheduler.cancel(self.key)
        self.guard.invalidate(self.key)
        changed = self.result is not None or self.loading
        self.inputs = None
        self.result = None
        self.loading = False
        if changed:
            self._notify()

    async def _predict(self, inputs: PredictionInput) -> None:
        await self.guard.run(
            self.key,
            partial(self._remote_predict, inputs),
            self._apply,
            self._fail,
            raw_value=inputs,
        )

    def _apply(self, payload: Mapping[str, Any] | PredictionResult) -> None:
        self.result = payload if isinstance(payload, PredictionResult) else PredictionResult.from_payload(payload)
        self.loading = False
        _LOGGER.debug("Prediction updated: %s days (%s)", self.result.estimated_days, self.result.method)
        self._notify()

    def _fail(self, err: Exception) -> None:
        warn_once(_LOGGER, f"prediction_{self.key}", f"prediction unavailable: {err}")
        self.result = None
        self.loading = False
        self._notify()

    def _notify(self) -> None:
        self._listeners.notify(self.result, self.loading)
