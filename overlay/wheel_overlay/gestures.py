"""Drag and corner-resize editing of widget layout in configuration mode."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from .config import GestureSettings
from .layout import LayoutStore, WidgetLayout
from .protocol import Rect
from .renderer import Renderer

logger = logging.getLogger(__name__)

Sender = Callable[[Dict[str, Any]], bool]

DRAG = "drag"
RESIZE = "resize"


@dataclass(frozen=True)
class Viewport:
    width: float
    height: float

    def percent_delta(self, dx: float, dy: float) -> Tuple[float, float]:
        return (dx / self.width) * 100.0, (dy / self.height) * 100.0

    def center_percent(self, rect: Rect) -> Tuple[float, float]:
        x = ((rect.left + rect.width / 2) / self.width) * 100.0
        y = ((rect.top + rect.height / 2) / self.height) * 100.0
        return x, y


@dataclass
class _Gesture:
    kind: str
    element: str
    start_x: float
    start_y: float
    center_x: float = 0.0
    center_y: float = 0.0
    start_scale: float = 1.0


class GestureController:
    """Turns pointer input into LayoutStore edits; emits the final layout on release."""

    def __init__(
        self,
        store: LayoutStore,
        send: Sender,
        renderer: Renderer,
        *,
        viewport: Viewport,
        settings: Optional[GestureSettings] = None,
        config_mode: bool = False,
    ) -> None:
        self.settings = settings or GestureSettings()
        self._store = store
        self._send = send
        self._renderer = renderer
        self._viewport = viewport
        self._config_mode = config_mode
        self._gesture: Optional[_Gesture] = None

    @property
    def config_mode(self) -> bool:
        return self._config_mode

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def active_gesture(self) -> Optional[str]:
        return self._gesture.kind if self._gesture else None

    def set_viewport(self, width: float, height: float) -> None:
        self._viewport = Viewport(width=width, height=height)

    def set_config_mode(self, enabled: bool) -> bool:
        if enabled == self._config_mode:
            return self._config_mode
        self._config_mode = enabled
        if not enabled and self._gesture is not None:
            logger.info("Configuration mode left mid-%s; edit discarded", self._gesture.kind)
            self._gesture = None
        logger.info("Configuration mode %s", "enabled" if enabled else "disabled")
        self._renderer.set_config_mode(enabled)
        return self._config_mode

    def toggle_config_mode(self) -> bool:
        return self.set_config_mode(not self._config_mode)

    # Pointer input -------------------------------------------------------

    def press(self, element: str, target: str, x: float, y: float, rect: Optional[Rect] = None) -> bool:
        """Begin a drag (``target="widget"``) or resize (``target="resize_handle"``)."""
        if not self._config_mode:
            logger.debug("Ignoring %s press outside configuration mode", target)
            return False
        if self._gesture is not None:
            # The handle sits inside the widget; one press never starts both.
            return False
        try:
            layout = self._store.get(element)
        except KeyError:
            logger.warning("Press on unknown widget %s", element)
            return False

        if target == "resize_handle":
            self._gesture = _Gesture(kind=RESIZE, element=element, start_x=x, start_y=y, start_scale=layout.scale)
        else:
            center_x, center_y = self._viewport.center_percent(rect) if rect else (layout.x, layout.y)
            self._gesture = _Gesture(
                kind=DRAG,
                element=element,
                start_x=x,
                start_y=y,
                center_x=center_x,
                center_y=center_y,
                start_scale=layout.scale,
            )
        logger.debug("Gesture %s started on %s at (%.1f, %.1f)", self._gesture.kind, element, x, y)
        return True

    def move(self, x: float, y: float) -> Optional[WidgetLayout]:
        gesture = self._gesture
        if gesture is None:
            return None
        layout = self._track(gesture, x, y)
        self._renderer.apply_layout(gesture.element, layout)
        return layout

    def release(self, x: float, y: float, rect: Optional[Rect] = None) -> Optional[Dict[str, Any]]:
        """Finish the gesture at the release point and emit a ``position_update``.

        The rendered ``rect``, when given, wins over the pointer-derived center.
        """
        gesture = self._gesture
        if gesture is None:
            return None
        self._gesture = None

        current = self._track(gesture, x, y)
        center_x, center_y = self._viewport.center_percent(rect) if rect else (current.x, current.y)
        message = self._store.apply_local_edit(gesture.element, center_x, center_y, current.scale)
        self._renderer.apply_layout(gesture.element, self._store.get(gesture.element))
        if self._send(message):
            logger.info(
                "Layout for %s saved: x=%.2f y=%.2f scale=%.2f",
                gesture.element,
                message["x"],
                message["y"],
                message["scale"],
            )
        else:
            logger.warning("Layout edit for %s not sent (controller offline)", gesture.element)
        return message

    def _track(self, gesture: _Gesture, x: float, y: float) -> WidgetLayout:
        dx = x - gesture.start_x
        dy = y - gesture.start_y
        if gesture.kind == DRAG:
            dx_pct, dy_pct = self._viewport.percent_delta(dx, dy)
            return self._store.preview(gesture.element, x=gesture.center_x + dx_pct, y=gesture.center_y + dy_pct)
        return self._store.preview(gesture.element, scale=self.resize_scale(gesture.start_scale, dx, dy))

    def resize_scale(self, start_scale: float, dx: float, dy: float) -> float:
        # Uniform scaling from the larger axis.
        delta = max(dx, dy)
        return self._store.clamp(start_scale + delta / self.settings.resize_divisor_px)


__all__ = ["DRAG", "GestureController", "RESIZE", "Viewport"]
