"""Spin lifecycle state machine for the wheel widget."""
from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

from . import protocol
from .config import WheelSettings
from .renderer import TWO_PI, Renderer
from .state import SpinPhase
from .timers import Scheduler, TimerSlot

logger = logging.getLogger(__name__)

Sender = Callable[[Dict[str, Any]], bool]


def ease_out_cubic(progress: float) -> float:
    return 1.0 - math.pow(1.0 - progress, 3)


def winner_index(rotation: float, item_count: int) -> int:
    """Index of the slice under the top pointer.

    Rotation is clockwise from the first slice's start edge, so the pointer sits
    at the complementary angle ``2pi - rotation``.
    """
    if item_count < 1:
        raise ValueError("item_count must be at least 1")
    slice_angle = TWO_PI / item_count
    normalized = (TWO_PI - (rotation % TWO_PI)) % TWO_PI
    return min(int(math.floor(normalized / slice_angle)), item_count - 1)


@dataclass
class SpinSession:
    items: Tuple[str, ...]
    actions: Dict[str, Any]
    started_at: float
    start_rotation: float
    total_rotation: float
    current_rotation: float = 0.0

    def __post_init__(self) -> None:
        self.current_rotation = self.start_rotation


@dataclass(frozen=True)
class SpinResult:
    index: int
    label: str
    action: Any = field(default=None)


class SpinEngine:
    """Idle -> Spinning -> ShowingResult -> Idle, driven by cancelable timers."""

    def __init__(
        self,
        *,
        scheduler: Scheduler,
        renderer: Renderer,
        send: Sender,
        settings: Optional[WheelSettings] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings or WheelSettings()
        self._scheduler = scheduler
        self._renderer = renderer
        self._send = send
        self._rng = rng or random.Random()

        self._phase: SpinPhase = SpinPhase.IDLE
        self._session: Optional[SpinSession] = None
        self._items: Tuple[str, ...] = ()
        self._rotation: float = 0.0
        self._last_result: Optional[SpinResult] = None

        self._frame_timer = TimerSlot(scheduler, "wheel-frame")
        self._result_timer = TimerSlot(scheduler, "wheel-result")
        self._fade_timer = TimerSlot(scheduler, "wheel-fade")
        self._hide_timer = TimerSlot(scheduler, "wheel-hide")

    @property
    def phase(self) -> SpinPhase:
        return self._phase

    @property
    def is_busy(self) -> bool:
        return self._phase is not SpinPhase.IDLE

    @property
    def items(self) -> Tuple[str, ...]:
        return self._items

    @property
    def rotation(self) -> float:
        return self._rotation

    @property
    def session(self) -> Optional[SpinSession]:
        return self._session

    @property
    def last_result(self) -> Optional[SpinResult]:
        return self._last_result

    def trigger(self, items: Sequence[str], actions: Optional[Mapping[str, Any]] = None) -> bool:
        """Start a spin; returns False (and changes nothing) while busy or without items."""
        if self.is_busy:
            logger.warning("Wheel is busy (%s), ignoring new spin request", self._phase.value)
            return False
        labels = tuple(items)
        if not labels:
            logger.warning("Spin requested with no items; ignoring")
            return False

        self._reset_display()
        self._items = labels

        full_turns = self.settings.min_full_turns + self._rng.random() * self.settings.extra_full_turns
        offset = self._rng.random() * TWO_PI
        self._session = SpinSession(
            items=labels,
            actions=dict(actions or {}),
            started_at=self._scheduler.now(),
            start_rotation=self._rotation,
            total_rotation=full_turns * TWO_PI + offset,
        )
        self._phase = SpinPhase.SPINNING
        logger.info(
            "🎡 Spin started: %d items, %.2f turns over %.1fs",
            len(labels),
            self._session.total_rotation / TWO_PI,
            self.settings.spin_duration,
        )
        self._on_frame()
        return True

    def stop(self) -> None:
        """Cancel every pending timer; used on shutdown."""
        for timer in (self._frame_timer, self._result_timer, self._fade_timer, self._hide_timer):
            timer.cancel()
        self._session = None
        self._phase = SpinPhase.IDLE

    # Frame loop ----------------------------------------------------------

    def _on_frame(self) -> None:
        session = self._session
        if session is None or self._phase is not SpinPhase.SPINNING:
            return
        duration = self.settings.spin_duration
        elapsed = self._scheduler.now() - session.started_at
        progress = 1.0 if duration <= 0 else min(elapsed / duration, 1.0)

        session.current_rotation = session.start_rotation + session.total_rotation * ease_out_cubic(progress)
        self._rotation = session.current_rotation
        self._renderer.draw(session.items, self._rotation)

        if progress < 1.0:
            self._frame_timer.schedule(self.settings.frame_interval, self._on_frame)
            return
        self._complete(session)

    def _complete(self, session: SpinSession) -> None:
        self._rotation = self._rotation % TWO_PI
        session.current_rotation = self._rotation
        index = winner_index(self._rotation, len(session.items))
        label = session.items[index]
        result = SpinResult(index=index, label=label, action=session.actions.get(label))

        # Single assignment: there is no instant where the engine reads as idle.
        self._phase = SpinPhase.SHOWING_RESULT
        self._last_result = result
        logger.info("🏆 Wheel landed on %r (slice %d/%d)", label, index + 1, len(session.items))

        self._renderer.show_result(label)
        self._result_timer.schedule(self.settings.result_display, self._begin_fade)
        self._hide_timer.schedule(self.settings.hide_delay, self._hide)

        if not self._send(protocol.wheel_result(label, result.action)):
            logger.warning("Wheel result %r was not delivered (controller offline)", label)

    # Result display ------------------------------------------------------

    def _begin_fade(self) -> None:
        self._renderer.fade_result()
        self._fade_timer.schedule(self.settings.result_fade, self._finish_result)

    def _finish_result(self) -> None:
        self._renderer.clear_result()
        self._session = None
        self._phase = SpinPhase.IDLE
        logger.info("Wheel back to idle")

    def _hide(self) -> None:
        self._renderer.set_visible(False)

    def _reset_display(self) -> None:
        for timer in (self._frame_timer, self._result_timer, self._fade_timer, self._hide_timer):
            timer.cancel()
        self._renderer.clear_result()
        self._renderer.set_visible(True)


__all__ = ["SpinEngine", "SpinResult", "SpinSession", "ease_out_cubic", "winner_index"]
