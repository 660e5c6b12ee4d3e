import asyncio

import pytest

from tracking.timers import DebounceTimer, ManualScheduler


def test_manual_timer_fires_once_at_deadline():
    scheduler = ManualScheduler(start_ms=100)
    fired = []
    timer = scheduler.timer()

    timer.arm(50, lambda: fired.append(scheduler.now_ms))
    assert timer.armed
    assert timer.deadline_ms == 150

    scheduler.advance_to(149)
    assert fired == []

    scheduler.advance_to(1000)
    assert fired == [150]
    assert not timer.armed
    assert scheduler.now_ms == 1000


def test_manual_timer_rearm_replaces_previous_deadline():
    scheduler = ManualScheduler()
    fired = []
    timer = scheduler.timer()

    timer.arm(100, lambda: fired.append("first"))
    scheduler.advance_to(90)
    timer.arm(100, lambda: fired.append("second"))

    scheduler.advance_to(150)
    assert fired == []

    scheduler.advance_to(190)
    assert fired == ["second"]


def test_manual_timer_cancel_is_safe_when_not_armed():
    scheduler = ManualScheduler()
    timer = scheduler.timer()

    timer.cancel()
    timer.arm(10, lambda: pytest.fail("cancelled timer fired"))
    timer.cancel()
    timer.cancel()

    scheduler.advance_to(100)
    assert not timer.armed


def test_manual_scheduler_fires_in_deadline_order():
    scheduler = ManualScheduler()
    order = []
    late, early = scheduler.timer(), scheduler.timer()

    late.arm(300, lambda: order.append(("late", scheduler.now_ms)))
    early.arm(100, lambda: order.append(("early", scheduler.now_ms)))

    scheduler.advance_to(500)
    assert order == [("early", 100), ("late", 300)]


def test_manual_scheduler_rejects_going_backwards():
    scheduler = ManualScheduler(start_ms=1000)
    with pytest.raises(ValueError):
        scheduler.advance_to(999)


def test_debounce_timer_on_event_loop():
    async def scenario():
        fired = []
        timer = DebounceTimer()

        timer.arm(20, lambda: fired.append("stop"))
        await asyncio.sleep(0.005)
        # restart before expiry
        timer.arm(20, lambda: fired.append("stop"))
        assert timer.armed

        await asyncio.sleep(0.1)
        assert fired == ["stop"]
        assert not timer.armed

        timer.arm(20, lambda: fired.append("never"))
        timer.cancel()
        timer.cancel()
        await asyncio.sleep(0.05)
        return fired

    assert asyncio.run(scenario()) == ["stop"]
