"""Generation counters that keep out-of-order responses from overwriting newer state."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .models import FieldRequest

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class GenerationGuard:
    """Track the latest issued request per key.

    Callers :meth:`issue` a generation synchronously before starting work and
    check :meth:`is_current` synchronously before applying its result. Older
    requests are allowed to finish; their results are dropped.
    """

    def __init__(self) -> None:
        self._counters: dict[str, int] = {}
        self._requests: dict[str, FieldRequest] = {}

    def issue(self, key: str) -> int:
        generation = self._counters.get(key, 0) + 1
        self._counters[key] = generation
        return generation

    def request(self, key: str, raw_value: Any = None) -> FieldRequest:
        """Issue a generation for ``key`` and remember the value it was issued for."""

        request = FieldRequest(field_key=key, raw_value=raw_value, generation=self.issue(key))
        self._requests[key] = request
        return request

    def last_request(self, key: str) -> FieldRequest | None:
        return self._requests.get(key)

    def current(self, key: str) -> int:
        return self._counters.get(key, 0)

    def is_current(self, key: str, generation: int) -> bool:
        return self._counters.get(key, 0) == generation

    def invalidate(self, key: str) -> None:
        """Supersede any in-flight request for ``key`` without issuing a new one."""

        if key in self._counters:
            self._counters[key] += 1

    def reset(self) -> None:
        """Supersede every key. Counters never restart, so old responses stay stale."""

        for key in self._counters:
            self._counters[key] += 1
        self._requests.clear()

    async def run(
        self,
        key: str,
        call: Callable[[], Awaitable[T]],
        on_result: Callable[[T], None],
        on_error: Callable[[Exception], None] | None = None,
        *,
        raw_value: Any = None,
    ) -> bool:
        """Issue a generation, await ``call`` and apply the outcome if still current.

        Returns ``True`` when ``on_result`` or ``on_error`` ran. Errors from a
        superseded request are discarded like its results; errors from a
        current request propagate when no ``on_error`` is given.
        """

        generation = self.request(key, raw_value).generation
        try:
            result = await call()
        except Exception as err:
            if not self.is_current(key, generation):
                _LOGGER.debug("Discarding stale failure for %s (generation %s)", key, generation)
                return False
            if on_error is None:
                raise
            on_error(err)
            return True
        if not self.is_current(key, generation):
            _LOGGER.debug("Discarding stale result for %s (generation %s)", key, generation)
            return False
        on_result(result)
        return True
