"""Renderer seam: draw calls become events for the browser page on /ws/ui."""
from __future__ import annotations

import asyncio
import logging
import math
from asyncio import QueueEmpty
from typing import Any, Callable, Dict, List, Mapping, Protocol, Sequence

from .layout import WidgetLayout
from .state import ConnectionState, OverlayEvent, SpinPhase

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * math.pi

SLICE_COLORS = (
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#FFA07A",
    "#98D8C8", "#F7DC6F", "#BB8FCE", "#85C1E2",
    "#F8B739", "#52C7B8", "#E74C3C", "#3498DB",
)


class Renderer(Protocol):
    def draw(self, items: Sequence[str], rotation: float) -> None: ...

    def show_result(self, label: str) -> None: ...

    def fade_result(self) -> None: ...

    def clear_result(self) -> None: ...

    def set_visible(self, visible: bool) -> None: ...

    def apply_layout(self, name: str, layout: WidgetLayout) -> None: ...

    def set_config_mode(self, enabled: bool) -> None: ...

    def set_connection_state(self, state: ConnectionState) -> None: ...


def slice_geometry(items: Sequence[str]) -> List[Dict[str, Any]]:
    """Unrotated slices; slice 0 starts at the top pointer (-pi/2) and runs clockwise."""
    if not items:
        return []
    slice_angle = TWO_PI / len(items)
    slices = []
    for index, label in enumerate(items):
        start = index * slice_angle - math.pi / 2
        slices.append(
            {
                "label": label,
                "start": start,
                "end": start + slice_angle,
                "color": SLICE_COLORS[index % len(SLICE_COLORS)],
            }
        )
    return slices


def _layout_data(name: str, layout: WidgetLayout) -> Dict[str, Any]:
    return {"element": name, **layout.to_dict(), "scale_label": layout.scale_label}


def _connection_data(state: ConnectionState) -> Dict[str, Any]:
    return {"state": state.value}


class BroadcastRenderer:
    """Fans renderer calls out to every subscribed UI queue, dropping the oldest when full."""

    def __init__(self, phase_source: Callable[[], SpinPhase], *, queue_size: int = 64) -> None:
        self._phase_source = phase_source
        self._queue_size = queue_size
        self._subscribers: List[asyncio.Queue[OverlayEvent]] = []
        self._geometry_items: Sequence[str] = ()
        self._geometry: List[Dict[str, Any]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[OverlayEvent]:
        queue: asyncio.Queue[OverlayEvent] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[OverlayEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, event_type: str, data: Dict[str, Any]) -> None:
        event = OverlayEvent(type=event_type, data=data, phase=self._phase_source())
        for queue in list(self._subscribers):
            self._offer(queue, event)

    def publish_to(self, queue: asyncio.Queue[OverlayEvent], event_type: str, data: Dict[str, Any]) -> None:
        self._offer(queue, OverlayEvent(type=event_type, data=data, phase=self._phase_source()))

    def send_snapshot(
        self,
        queue: asyncio.Queue[OverlayEvent],
        *,
        connection: ConnectionState,
        config_mode: bool,
        layouts: Mapping[str, WidgetLayout],
    ) -> None:
        """Bring one new subscriber up to date; other subscribers see nothing."""
        self.publish_to(queue, "connection", _connection_data(connection))
        self.publish_to(queue, "config_mode", {"enabled": config_mode})
        for name, layout in layouts.items():
            self.publish_to(queue, "layout", _layout_data(name, layout))

    def _offer(self, queue: asyncio.Queue[OverlayEvent], event: OverlayEvent) -> None:
        try:
            if queue.full():
                try:
                    queue.get_nowait()
                except QueueEmpty:
                    pass
            queue.put_nowait(event)
        except Exception as e:
            logger.warning("Failed to broadcast event to subscriber: %s", e)

    # Renderer protocol -------------------------------------------------

    def draw(self, items: Sequence[str], rotation: float) -> None:
        if not items:
            return
        if list(items) != list(self._geometry_items):
            self._geometry_items = tuple(items)
            self._geometry = slice_geometry(items)
        self.publish("frame", {"items": list(items), "rotation": rotation, "slices": self._geometry})

    def show_result(self, label: str) -> None:
        self.publish("result", {"state": "show", "label": label})

    def fade_result(self) -> None:
        self.publish("result", {"state": "fade"})

    def clear_result(self) -> None:
        self.publish("result", {"state": "clear"})

    def set_visible(self, visible: bool) -> None:
        self.publish("visibility", {"visible": visible})

    def apply_layout(self, name: str, layout: WidgetLayout) -> None:
        self.publish("layout", _layout_data(name, layout))

    def set_config_mode(self, enabled: bool) -> None:
        self.publish("config_mode", {"enabled": enabled})

    def set_connection_state(self, state: ConnectionState) -> None:
        self.publish("connection", _connection_data(state))


__all__ = ["BroadcastRenderer", "Renderer", "SLICE_COLORS", "TWO_PI", "slice_geometry"]
