import logging
from unittest.mock import MagicMock

from propagation_tracker.utils import logging as logging_utils
from propagation_tracker.utils.listeners import ListenerRegistry
from propagation_tracker.utils.logging import suppressed_count, warn_once


def test_warn_once_rate_limits_per_code():
    logger = MagicMock()
    assert warn_once(logger, "lab_api_network", "down")
    assert not warn_once(logger, "lab_api_network", "still down")
    assert warn_once(logger, "validation_codigo", "down")
    assert logger.warning.call_count == 2
    assert suppressed_count("lab_api_network") == 1


def test_suppressed_repeats_are_reported_with_next_warning():
    logger = MagicMock()
    warn_once(logger, "code", "first", window=60)
    warn_once(logger, "code", "second", window=60)
    warn_once(logger, "code", "third", window=60)
    warn_once(logger, "code", "fourth", window=-1)

    assert logger.warning.call_count == 2
    assert logger.warning.call_args.args == ("%s: %s (%d similar suppressed)", "code", "fourth", 2)
    assert suppressed_count("code") == 0


def test_warn_once_cache_is_capped(monkeypatch):
    monkeypatch.setattr(logging_utils, "_MAX_CODES", 2)
    logger = MagicMock()
    for code in ("a", "b", "c"):
        warn_once(logger, code, "msg")
    assert len(logging_utils._SEEN) == 2
    assert "a" not in logging_utils._SEEN


def test_listener_registry_remove_and_errors(caplog):
    registry = ListenerRegistry()
    seen = []

    def broken(value):
        raise RuntimeError("bad listener")

    remove = registry.add(seen.append)
    registry.add(broken)

    with caplog.at_level(logging.ERROR):
        registry.notify(1)
    assert seen == [1]
    assert "raised" in caplog.text

    remove()
    remove()
    registry.notify(2)
    assert seen == [1]
    assert len(registry) == 1
