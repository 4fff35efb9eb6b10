import math
import random

import pytest
from conftest import FakeScheduler, RecordingRenderer, RecordingSender, SequenceRandom

from wheel_overlay.config import WheelSettings
from wheel_overlay.renderer import TWO_PI
from wheel_overlay.state import SpinPhase
from wheel_overlay.wheel import SpinEngine, ease_out_cubic, winner_index

ITEMS = ["A", "B", "C"]
ACTIONS = {"A": {"cmd": 1}}

# r1=0 -> 3 full turns; r2 picks the resting offset.
LANDS_ON_A = [0.0, 0.9]
LANDS_ON_B = [0.0, 0.5]


def build(scheduler, renderer, sender, rng_values=LANDS_ON_A) -> SpinEngine:
    return SpinEngine(
        scheduler=scheduler,
        renderer=renderer,
        send=sender,
        settings=WheelSettings(),
        rng=SequenceRandom(rng_values),
    )


def test_trigger_starts_spin_and_draws_first_frame(scheduler, renderer, sender) -> None:
    engine = build(scheduler, renderer, sender)

    assert engine.trigger(ITEMS, ACTIONS) is True

    assert engine.phase is SpinPhase.SPINNING
    assert engine.items == ("A", "B", "C")
    assert renderer.frames[0] == (("A", "B", "C"), 0.0)
    assert ("set_visible", True) in renderer.calls


def test_completed_spin_reports_winner_with_action(scheduler, renderer, sender) -> None:
    engine = build(scheduler, renderer, sender, LANDS_ON_A)
    engine.trigger(ITEMS, ACTIONS)

    scheduler.advance(4.1)

    assert engine.phase is SpinPhase.SHOWING_RESULT
    assert sender.sent == [{"type": "wheel_result", "result": "A", "action": {"cmd": 1}}]
    assert engine.last_result.index == 0
    assert 0.0 <= engine.rotation < TWO_PI
    assert ("show_result", "A") in renderer.calls


def test_result_without_mapped_action_omits_action(scheduler, renderer, sender) -> None:
    engine = build(scheduler, renderer, sender, LANDS_ON_B)
    engine.trigger(ITEMS, ACTIONS)

    scheduler.advance(10.0)

    assert sender.sent == [{"type": "wheel_result", "result": "B"}]


@pytest.mark.parametrize("seed", range(20))
def test_exactly_one_result_per_spin(seed) -> None:
    scheduler, renderer, sender = FakeScheduler(), RecordingRenderer(), RecordingSender()
    engine = SpinEngine(scheduler=scheduler, renderer=renderer, send=sender, rng=random.Random(seed))
    engine.trigger(ITEMS, ACTIONS)

    scheduler.advance(20.0)

    results = sender.of_type("wheel_result")
    assert len(results) == 1
    result = results[0]
    assert result["result"] in ITEMS
    if result["result"] == "A":
        assert result["action"] == {"cmd": 1}
    else:
        assert "action" not in result
    assert engine.phase is SpinPhase.IDLE


def test_rotation_is_monotonic_and_bounded(scheduler, renderer, sender) -> None:
    engine = build(scheduler, renderer, sender)
    engine.trigger(ITEMS)
    total = engine.session.total_rotation

    scheduler.advance(3.99)

    rotations = [rotation for _, rotation in renderer.frames]
    assert rotations == sorted(rotations)
    assert rotations[-1] <= total
    assert engine.phase is SpinPhase.SPINNING


def test_trigger_while_spinning_is_rejected_and_timers_untouched(scheduler, renderer, sender) -> None:
    engine = build(scheduler, renderer, sender)
    engine.trigger(ITEMS, ACTIONS)
    scheduler.advance(1.0)
    session = engine.session
    pending_before = list(scheduler.pending)

    assert engine.trigger(["X", "Y"], {"X": 1}) is False

    assert engine.session is session
    assert engine.items == ("A", "B", "C")
    assert scheduler.pending == pending_before
    assert not any(h.cancelled for h in pending_before)

    scheduler.advance(10.0)
    assert len(sender.of_type("wheel_result")) == 1


def test_trigger_while_showing_result_is_rejected(scheduler, renderer, sender) -> None:
    engine = build(scheduler, renderer, sender)
    engine.trigger(ITEMS)
    scheduler.advance(4.5)
    assert engine.phase is SpinPhase.SHOWING_RESULT

    assert engine.trigger(ITEMS) is False
    assert engine.phase is SpinPhase.SHOWING_RESULT


def test_result_display_fade_and_hide_sequence(scheduler, renderer, sender) -> None:
    engine = build(scheduler, renderer, sender)
    engine.trigger(ITEMS)
    scheduler.advance(4.1)
    completed_at = next(h.when for h in scheduler.handles if h.fired and h.when >= 4.0)
    renderer.calls.clear()

    scheduler.advance(completed_at + 3.0 - scheduler.now() + 0.01)
    assert renderer.names() == ["fade_result"]
    assert engine.phase is SpinPhase.SHOWING_RESULT

    scheduler.advance(0.5)
    assert renderer.names() == ["fade_result", "clear_result"]
    assert engine.phase is SpinPhase.IDLE
    assert engine.session is None

    scheduler.advance(0.5)
    assert renderer.calls[-1] == ("set_visible", False)


def test_new_spin_cancels_previous_hide_timer(scheduler, renderer, sender) -> None:
    engine = build(scheduler, renderer, sender, LANDS_ON_A + LANDS_ON_B)
    engine.trigger(ITEMS)
    scheduler.advance(4.0 + 1.0 / 60 + 3.55)
    assert engine.phase is SpinPhase.IDLE

    assert engine.trigger(ITEMS) is True
    renderer.calls.clear()
    scheduler.advance(1.0)

    assert ("set_visible", False) not in renderer.calls
    assert engine.phase is SpinPhase.SPINNING


def test_rotation_carries_over_between_spins(scheduler, renderer, sender) -> None:
    engine = build(scheduler, renderer, sender, LANDS_ON_A + LANDS_ON_B)
    engine.trigger(ITEMS)
    scheduler.advance(8.0)
    resting = engine.rotation

    engine.trigger(ITEMS)

    assert engine.session.start_rotation == resting


def test_result_is_dropped_not_retried_when_offline(scheduler, renderer) -> None:
    offline = RecordingSender(connected=False)
    engine = build(scheduler, renderer, offline)
    engine.trigger(ITEMS, ACTIONS)

    scheduler.advance(4.1)
    offline.connected = True
    scheduler.advance(10.0)

    assert offline.sent == []
    assert engine.phase is SpinPhase.IDLE


def test_empty_item_list_is_ignored(scheduler, renderer, sender) -> None:
    engine = build(scheduler, renderer, sender)

    assert engine.trigger([]) is False
    assert engine.phase is SpinPhase.IDLE
    assert renderer.calls == []


def test_stop_cancels_pending_timers(scheduler, renderer, sender) -> None:
    engine = build(scheduler, renderer, sender)
    engine.trigger(ITEMS)
    scheduler.advance(4.1)

    engine.stop()

    assert scheduler.pending == []
    assert engine.phase is SpinPhase.IDLE


def test_ease_out_curve_endpoints() -> None:
    assert ease_out_cubic(0.0) == 0.0
    assert ease_out_cubic(1.0) == 1.0
    assert ease_out_cubic(0.5) == pytest.approx(0.875)


@pytest.mark.parametrize("count", [1, 2, 3, 7, 12])
def test_winner_index_in_range(count) -> None:
    rng = random.Random(count)
    for _ in range(200):
        assert 0 <= winner_index(rng.uniform(0, 40 * math.pi), count) < count


@pytest.mark.parametrize("count", [1, 3, 8])
def test_full_turn_alignment_selects_first_item(count) -> None:
    assert winner_index(0.0, count) == 0
    assert winner_index(TWO_PI, count) == 0
    assert winner_index(TWO_PI - 1e-9, count) == 0


def test_pointer_reads_against_clockwise_rotation() -> None:
    # A small clockwise turn brings the last slice under the top pointer.
    assert winner_index(0.1, 4) == 3
    assert winner_index(math.pi / 2 + 0.1, 4) == 2


def test_winner_index_requires_items() -> None:
    with pytest.raises(ValueError):
        winner_index(1.0, 0)
