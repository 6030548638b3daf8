"""Polling controller scheduling and lifecycle tests."""

import asyncio
from typing import List

import pytest

from kavach.polling import PollingController


def test_failing_tick_does_not_stop_schedule() -> None:
    errors: List[BaseException] = []
    calls = {"n": 0}

    async def tick() -> str:
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("upstream down")
        return "ok"

    async def scenario() -> PollingController:
        ctl = PollingController("t", on_error=errors.append)
        ctl.start(0.01, lambda: True, tick, initial_delay_sec=0)
        await asyncio.sleep(0.15)
        ctl.stop()
        return ctl

    ctl = asyncio.run(scenario())

    assert ctl.failures == 1
    assert ctl.ticks >= 1
    assert ctl.last_error is None
    assert len(errors) == 1
    assert str(errors[0]) == "upstream down"


def test_stop_is_idempotent_and_releases_once() -> None:
    released = []

    async def scenario() -> None:
        ctl = PollingController("t", on_stop=lambda: released.append(True))
        ctl.start(1.0, lambda: True, lambda: None)
        ctl.stop()
        ctl.stop()
        assert not ctl.running

    asyncio.run(scenario())

    assert released == [True]


def test_stop_before_start_is_a_noop() -> None:
    released = []
    ctl = PollingController("t", on_stop=lambda: released.append(True))

    ctl.stop()

    assert released == []


def test_disabled_controller_never_ticks() -> None:
    calls = []

    async def scenario() -> PollingController:
        ctl = PollingController("t")
        ctl.start(0.01, lambda: False, lambda: calls.append(1), initial_delay_sec=0)
        await asyncio.sleep(0.08)
        ctl.stop()
        return ctl

    ctl = asyncio.run(scenario())

    assert calls == []
    assert ctl.ticks == 0


def test_busy_tick_skips_fires() -> None:
    state = {"active": 0, "peak": 0}

    async def slow_tick() -> None:
        state["active"] += 1
        state["peak"] = max(state["peak"], state["active"])
        try:
            await asyncio.sleep(0.1)
        finally:
            state["active"] -= 1

    async def scenario() -> PollingController:
        ctl = PollingController("t")
        ctl.start(0.01, lambda: True, slow_tick, initial_delay_sec=0)
        await asyncio.sleep(0.15)
        ctl.stop()
        return ctl

    ctl = asyncio.run(scenario())

    assert state["peak"] == 1
    assert ctl.skipped > 0


def test_allow_overlap_runs_ticks_concurrently() -> None:
    state = {"active": 0, "peak": 0}

    async def slow_tick() -> None:
        state["active"] += 1
        state["peak"] = max(state["peak"], state["active"])
        try:
            await asyncio.sleep(0.1)
        finally:
            state["active"] -= 1

    async def scenario() -> None:
        ctl = PollingController("t", allow_overlap=True)
        ctl.start(0.01, lambda: True, slow_tick, initial_delay_sec=0)
        await asyncio.sleep(0.08)
        ctl.stop()

    asyncio.run(scenario())

    assert state["peak"] > 1


def test_tick_timeout_counts_as_failure() -> None:
    async def hang() -> None:
        await asyncio.sleep(1)

    async def scenario() -> PollingController:
        ctl = PollingController("t", tick_timeout_sec=0.01)
        result = await ctl.run_once(hang)
        assert result is None
        return ctl

    ctl = asyncio.run(scenario())

    assert ctl.failures == 1
    assert ctl.last_error == "TimeoutError"


def test_run_once_accepts_sync_tick() -> None:
    seen = []

    async def scenario() -> object:
        ctl = PollingController("t", on_success=seen.append)
        return await ctl.run_once(lambda: 42)

    assert asyncio.run(scenario()) == 42
    assert seen == [42]


def test_start_twice_is_rejected() -> None:
    async def scenario() -> None:
        ctl = PollingController("t")
        ctl.start(1.0, lambda: True, lambda: None)
        try:
            with pytest.raises(RuntimeError):
                ctl.start(1.0, lambda: True, lambda: None)
        finally:
            ctl.stop()

    asyncio.run(scenario())


def test_non_positive_interval_is_rejected() -> None:
    async def scenario() -> None:
        ctl = PollingController("t")
        with pytest.raises(ValueError):
            ctl.start(0, lambda: True, lambda: None)
        assert not ctl.running

    asyncio.run(scenario())


def test_scheduled_ticks_are_stamped_on_the_cadence() -> None:
    stamps: List[float] = []

    async def scenario() -> None:
        ctl = PollingController("t", clock=lambda: 500.0)

        async def tick() -> None:
            stamps.append(ctl.last_tick_at)
            await asyncio.sleep(0.005)

        ctl.start(0.02, lambda: True, tick, initial_delay_sec=0)
        await asyncio.sleep(0.11)
        ctl.stop()

    asyncio.run(scenario())

    assert len(stamps) >= 3
    assert stamps[:3] == pytest.approx([500.0, 500.02, 500.04])


def test_fire_now_is_skipped_while_a_tick_runs() -> None:
    calls = []

    async def slow_tick() -> str:
        calls.append(1)
        await asyncio.sleep(0.1)
        return "done"

    async def scenario() -> PollingController:
        ctl = PollingController("t")
        ctl.start(60, lambda: True, slow_tick, initial_delay_sec=0)
        await asyncio.sleep(0.02)
        assert await ctl.fire_now(slow_tick) is None
        ctl.stop()
        return ctl

    ctl = asyncio.run(scenario())

    assert calls == [1]
    assert ctl.skipped == 1


def test_stop_cancels_fire_now() -> None:
    async def hang() -> None:
        await asyncio.sleep(1)

    async def scenario() -> object:
        ctl = PollingController("t")
        ctl.start(60, lambda: True, hang, initial_delay_sec=60)
        pending = asyncio.create_task(ctl.fire_now(hang))
        await asyncio.sleep(0.02)
        assert ctl.busy
        ctl.stop()
        return await pending

    assert asyncio.run(scenario()) is None
