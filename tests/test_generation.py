import asyncio

import pytest

from propagation_tracker.generation import GenerationGuard


def test_issue_counts_per_key():
    guard = GenerationGuard()
    assert guard.issue("codigo") == 1
    assert guard.issue("codigo") == 2
    assert guard.issue("prediction") == 1
    assert guard.is_current("codigo", 2)
    assert not guard.is_current("codigo", 1)


def test_invalidate_unknown_key_is_noop():
    guard = GenerationGuard()
    guard.invalidate("codigo")
    assert guard.current("codigo") == 0


def test_reset_never_reuses_generations():
    guard = GenerationGuard()
    first = guard.request("codigo", "A")
    assert guard.last_request("codigo") == first
    guard.reset()
    assert guard.last_request("codigo") is None
    assert not guard.is_current("codigo", first.generation)
    assert guard.issue("codigo") > first.generation


@pytest.mark.asyncio
async def test_out_of_order_result_is_discarded():
    guard = GenerationGuard()
    gates = {"A": asyncio.Event(), "AB": asyncio.Event()}
    applied = []

    async def check(value):
        await gates[value].wait()
        return value

    slow = asyncio.create_task(guard.run("codigo", lambda: check("A"), applied.append, raw_value="A"))
    await asyncio.sleep(0)
    fast = asyncio.create_task(guard.run("codigo", lambda: check("AB"), applied.append, raw_value="AB"))
    await asyncio.sleep(0)

    gates["AB"].set()
    assert await fast is True
    gates["A"].set()
    assert await slow is False

    assert applied == ["AB"]
    assert guard.last_request("codigo").raw_value == "AB"


@pytest.mark.asyncio
async def test_stale_error_is_discarded():
    guard = GenerationGuard()
    gate = asyncio.Event()
    errors = []

    async def failing():
        await gate.wait()
        raise RuntimeError("late")

    task = asyncio.create_task(guard.run("codigo", failing, lambda _: None, errors.append))
    await asyncio.sleep(0)
    guard.invalidate("codigo")
    gate.set()
    assert await task is False
    assert errors == []


@pytest.mark.asyncio
async def test_current_error_without_handler_propagates():
    guard = GenerationGuard()

    async def failing():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await guard.run("codigo", failing, lambda _: None)
