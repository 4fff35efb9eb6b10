"""Per-widget position/scale state. Pure data; callers own all I/O."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, List, Mapping, Optional

from .protocol import MalformedMessage, WidgetPosition, parse_as, position_update

logger = logging.getLogger(__name__)

MIN_SCALE = 0.3
MAX_SCALE = 3.0
WHEEL = "wheel"


def clamp_scale(value: float, lower: float = MIN_SCALE, upper: float = MAX_SCALE) -> float:
    return max(lower, min(upper, float(value)))


@dataclass(frozen=True)
class WidgetLayout:
    """Widget center in viewport percent plus a uniform scale factor."""

    x: float
    y: float
    scale: float = 1.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @property
    def scale_label(self) -> str:
        return f"Scale: {self.scale * 100:.0f}%"


DEFAULT_LAYOUTS: Dict[str, WidgetLayout] = {
    WHEEL: WidgetLayout(x=50.0, y=50.0, scale=1.0),
}


class LayoutStore:
    def __init__(
        self,
        defaults: Optional[Mapping[str, WidgetLayout]] = None,
        *,
        min_scale: float = MIN_SCALE,
        max_scale: float = MAX_SCALE,
    ) -> None:
        self._defaults: Dict[str, WidgetLayout] = dict(defaults or DEFAULT_LAYOUTS)
        self._min_scale = min_scale
        self._max_scale = max_scale
        self._layouts: Dict[str, WidgetLayout] = {
            name: self._normalise(layout) for name, layout in self._defaults.items()
        }

    @property
    def widgets(self) -> List[str]:
        return list(self._layouts)

    def get(self, name: str) -> WidgetLayout:
        try:
            return self._layouts[name]
        except KeyError:
            raise KeyError(f"unknown widget {name!r}") from None

    def snapshot(self) -> Dict[str, WidgetLayout]:
        return dict(self._layouts)

    def clamp(self, scale: float) -> float:
        return clamp_scale(scale, self._min_scale, self._max_scale)

    def apply_server_layout(self, name: str, update: Mapping[str, Any]) -> WidgetLayout:
        """Replace ``name``'s full layout from a server push.

        Raises KeyError for widgets the overlay does not render and
        MalformedMessage when ``x``/``y`` are missing or not numeric.
        """
        if name not in self._layouts:
            raise KeyError(f"unknown widget {name!r}")
        if not isinstance(update, Mapping):
            raise MalformedMessage(f"layout for {name!r} is not an object")
        position = parse_as(WidgetPosition, dict(update))
        layout = self._normalise(WidgetLayout(x=position.x, y=position.y, scale=position.scale))
        self._layouts[name] = layout
        logger.debug("Server layout applied to %s: %s", name, layout)
        return layout

    def apply_positions(self, positions: Mapping[str, Any]) -> Dict[str, WidgetLayout]:
        """Apply every known widget in a ``config_update.positions`` mapping."""
        applied: Dict[str, WidgetLayout] = {}
        for name, update in positions.items():
            try:
                applied[name] = self.apply_server_layout(name, update)
            except KeyError:
                logger.debug("Ignoring layout for unknown widget %s", name)
            except MalformedMessage as exc:
                logger.warning("Skipping malformed layout for %s: %s", name, exc)
        return applied

    def apply_local_edit(self, name: str, x: float, y: float, scale: float) -> Dict[str, Any]:
        """Store a drag/resize result and return the ``position_update`` to send."""
        self.get(name)
        layout = self._normalise(WidgetLayout(x=x, y=y, scale=scale))
        self._layouts[name] = layout
        return position_update(name, layout.x, layout.y, layout.scale)

    def preview(self, name: str, *, x: Optional[float] = None, y: Optional[float] = None, scale: Optional[float] = None) -> WidgetLayout:
        """Live gesture feedback: update local state without producing a message."""
        current = self.get(name)
        changes: Dict[str, float] = {}
        if x is not None:
            changes["x"] = float(x)
        if y is not None:
            changes["y"] = float(y)
        if scale is not None:
            changes["scale"] = self.clamp(scale)
        layout = replace(current, **changes)
        self._layouts[name] = layout
        return layout

    def reset(self) -> List[Dict[str, Any]]:
        """Restore built-in defaults; returns one ``position_update`` per widget."""
        messages: List[Dict[str, Any]] = []
        for name, layout in self._defaults.items():
            messages.append(self.apply_local_edit(name, layout.x, layout.y, layout.scale))
        logger.info("Layout reset to defaults for %s", ", ".join(self._defaults))
        return messages

    def _normalise(self, layout: WidgetLayout) -> WidgetLayout:
        return WidgetLayout(x=float(layout.x), y=float(layout.y), scale=self.clamp(layout.scale))


__all__ = ["DEFAULT_LAYOUTS", "LayoutStore", "MAX_SCALE", "MIN_SCALE", "WHEEL", "WidgetLayout", "clamp_scale"]
