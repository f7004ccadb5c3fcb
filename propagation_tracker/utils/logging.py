"""Rate-limited warnings for failures that repeat on every keystroke or refresh."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass


@dataclass(slots=True)
class _Seen:
    logged_at: float
    suppressed: int = 0


_SEEN: dict[str, _Seen] = {}
_MAX_CODES = 256


def warn_once(logger: logging.Logger, code: str, message: str, window: float = 60) -> bool:
    """Log ``message`` at warning level at most once per ``window`` seconds for ``code``.

    Repeats inside the window are counted and the count is appended to the
    next warning that does get through. Returns whether a warning was logged.
    """

    now = time.monotonic()
    seen = _SEEN.get(code)
    if seen is not None and now - seen.logged_at <= window:
        seen.suppressed += 1
        return False

    if seen is None and len(_SEEN) >= _MAX_CODES:
        _SEEN.pop(min(_SEEN, key=lambda key: _SEEN[key].logged_at), None)
    if seen is not None and seen.suppressed:
        logger.warning("%s: %s (%d similar suppressed)", code, message, seen.suppressed)
    else:
        logger.warning("%s: %s", code, message)
    _SEEN[code] = _Seen(logged_at=now)
    return True


def suppressed_count(code: str) -> int:
    seen = _SEEN.get(code)
    return seen.suppressed if seen else 0


def reset_warnings() -> None:
    """Forget every rate-limited code."""

    _SEEN.clear()
