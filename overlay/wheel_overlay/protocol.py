"""Wire format for the controller link and the local renderer bridge.

Frames are single JSON objects with a ``type`` discriminator. Inbound frames are
decoded into plain dicts first; per-type validation happens at dispatch time so a
bad field only drops the one message.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

ModelT = TypeVar("ModelT", bound=BaseModel)

# Controller -> overlay
TRIGGER_ACTION = "trigger_action"
CONFIG_UPDATE = "config_update"
PING = "ping"

# Overlay -> controller
REQUEST_CONFIG = "request_config"
POSITION_UPDATE = "position_update"
WHEEL_RESULT = "wheel_result"

SPIN_WHEEL = "spin_wheel"


class MalformedMessage(ValueError):
    """Raised when a frame is not valid JSON or lacks required fields."""


# ============================================================
# Controller messages
# ============================================================

class SpinWheelData(BaseModel):
    items: List[str]
    actions: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("items", mode="before")
    @classmethod
    def _labels_as_text(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [item if isinstance(item, str) else str(item) for item in value]
        return value

    @field_validator("actions", mode="before")
    @classmethod
    def _actions_or_empty(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


class TriggerAction(BaseModel):
    type: Literal["trigger_action"] = TRIGGER_ACTION
    action_type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class WidgetPosition(BaseModel):
    x: float
    y: float
    scale: float = 1.0

    @field_validator("scale", mode="before")
    @classmethod
    def _default_scale(cls, value: Any) -> Any:
        # A missing, null or zero scale means "unscaled".
        if value is None or value == 0:
            return 1.0
        return value


class ConfigUpdate(BaseModel):
    type: Literal["config_update"] = CONFIG_UPDATE
    positions: Dict[str, Any] = Field(default_factory=dict)


# ============================================================
# Renderer bridge messages (browser -> overlay)
# ============================================================

class Rect(BaseModel):
    left: float
    top: float
    width: float
    height: float


class ViewportMessage(BaseModel):
    type: Literal["viewport"] = "viewport"
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class PointerMessage(BaseModel):
    type: Literal["pointer_down", "pointer_move", "pointer_up"]
    x: float
    y: float
    element: str = "wheel"
    target: Literal["widget", "resize_handle"] = "widget"
    rect: Optional[Rect] = None


class KeyMessage(BaseModel):
    type: Literal["key"] = "key"
    key: str


# ============================================================
# Codec helpers
# ============================================================

def decode(raw: str | bytes) -> Dict[str, Any]:
    """Parse one text frame into an envelope dict."""
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError, UnicodeDecodeError) as exc:
        raise MalformedMessage(f"invalid JSON frame: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedMessage("frame is not a JSON object")
    if not isinstance(payload.get("type"), str):
        raise MalformedMessage("frame has no string 'type'")
    return payload


def encode(message: Dict[str, Any]) -> str:
    return json.dumps(message, separators=(",", ":"))


def parse_as(model: Type[ModelT], payload: Dict[str, Any]) -> ModelT:
    """Validate a decoded frame against ``model``, wrapping pydantic errors."""
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise MalformedMessage(f"{payload.get('type')}: {exc.error_count()} invalid field(s)") from exc


def request_config() -> Dict[str, Any]:
    return {"type": REQUEST_CONFIG}


def position_update(element: str, x: float, y: float, scale: float) -> Dict[str, Any]:
    return {"type": POSITION_UPDATE, "element": element, "x": x, "y": y, "scale": scale}


def wheel_result(result: str, action: Any = None) -> Dict[str, Any]:
    message: Dict[str, Any] = {"type": WHEEL_RESULT, "result": result}
    if action is not None:
        message["action"] = action
    return message


__all__ = [
    "CONFIG_UPDATE",
    "ConfigUpdate",
    "KeyMessage",
    "MalformedMessage",
    "PING",
    "POSITION_UPDATE",
    "PointerMessage",
    "REQUEST_CONFIG",
    "Rect",
    "SPIN_WHEEL",
    "SpinWheelData",
    "TRIGGER_ACTION",
    "TriggerAction",
    "ViewportMessage",
    "WHEEL_RESULT",
    "WidgetPosition",
    "decode",
    "encode",
    "parse_as",
    "position_update",
    "request_config",
    "wheel_result",
]
