from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

_LOGGER = logging.getLogger(__name__)


class ListenerRegistry:
    """Callbacks notified whenever a derived-state slot changes."""

    def __init__(self) -> None:
        self._listeners: list[Callable[..., Any]] = []

    def add(self, callback: Callable[..., Any]) -> Callable[[], None]:
        """Register ``callback`` and return a function that removes it."""

        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def notify(self, *args: Any) -> None:
        for callback in list(self._listeners):
            try:
                callback(*args)
            except Exception:
                _LOGGER.exception("Listener %r raised", callback)

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)
