"""Shared overlay state definitions."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict


class ConnectionState(str, enum.Enum):
    """
    Controller link states:

    DISCONNECTED -> CONNECTING   on a connect attempt
    CONNECTING   -> CONNECTED    once the opening handshake succeeds
    CONNECTED/CONNECTING -> DISCONNECTED on error or close (reconnect scheduled)
    """
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class SpinPhase(str, enum.Enum):
    """
    Wheel phases in chronological order:

    1. IDLE            - Waiting for a trigger
    2. SPINNING        - Eased rotation in progress (4s)
    3. SHOWING_RESULT  - Winning label on screen (3s + 0.5s fade) -> IDLE
    """
    IDLE = "idle"
    SPINNING = "spinning"
    SHOWING_RESULT = "showing_result"


@dataclass
class OverlayEvent:
    """Event payload distributed to renderer clients over the local WebSocket."""

    type: str
    data: Dict[str, Any]
    phase: SpinPhase

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "phase": self.phase.value, "data": self.data}


__all__ = ["ConnectionState", "SpinPhase", "OverlayEvent"]
