import asyncio

from conftest import FakeScheduler

from wheel_overlay.timers import LoopScheduler, TimerSlot


def test_schedule_cancels_previous_handle() -> None:
    scheduler = FakeScheduler()
    slot = TimerSlot(scheduler, "test")
    fired: list[str] = []

    first = slot.schedule(1.0, lambda: fired.append("first"))
    slot.schedule(1.0, lambda: fired.append("second"))

    assert first.cancelled
    assert len(scheduler.pending) == 1
    scheduler.advance(2.0)
    assert fired == ["second"]
    assert not slot.pending


def test_callback_may_reschedule_its_own_slot() -> None:
    scheduler = FakeScheduler()
    slot = TimerSlot(scheduler, "tick")
    ticks: list[float] = []

    def _tick() -> None:
        ticks.append(scheduler.now())
        if len(ticks) < 3:
            slot.schedule(0.5, _tick)

    slot.schedule(0.5, _tick)
    scheduler.advance(5.0)

    assert ticks == [0.5, 1.0, 1.5]
    assert not slot.pending


def test_cancel_only_affects_own_slot() -> None:
    scheduler = FakeScheduler()
    a = TimerSlot(scheduler, "a")
    b = TimerSlot(scheduler, "b")
    fired: list[str] = []
    a.schedule(1.0, lambda: fired.append("a"))
    b.schedule(1.0, lambda: fired.append("b"))

    assert a.cancel() is True
    assert a.cancel() is False
    scheduler.advance(1.0)

    assert fired == ["b"]


def test_loop_scheduler_runs_on_event_loop() -> None:
    async def _run() -> list[str]:
        scheduler = LoopScheduler()
        slot = TimerSlot(scheduler, "loop")
        fired: list[str] = []
        cancelled = TimerSlot(scheduler, "cancelled")
        cancelled.schedule(0.01, lambda: fired.append("cancelled"))
        cancelled.cancel()
        slot.schedule(0.01, lambda: fired.append("ran"))
        assert scheduler.now() > 0
        await asyncio.sleep(0.05)
        return fired

    assert asyncio.run(_run()) == ["ran"]
