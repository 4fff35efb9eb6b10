from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from wheel_overlay.config import Settings
from wheel_overlay.state import ConnectionState


class FakeHandle:
    def __init__(self, when: float, callback: Callable[[], None], seq: int) -> None:
        self.when = when
        self.callback = callback
        self.seq = seq
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock; callbacks only run inside advance()."""

    def __init__(self) -> None:
        self.time = 0.0
        self.handles: List[FakeHandle] = []

    def now(self) -> float:
        return self.time

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(self.time + max(0.0, delay), callback, len(self.handles))
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[FakeHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = [h for h in self.pending if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self.time = max(self.time, handle.when)
            handle.fired = True
            handle.callback()
        self.time = target


class SequenceRandom:
    """Stands in for random.Random; replays fixed values in order."""

    def __init__(self, values: Sequence[float]) -> None:
        self._values = list(values)

    def random(self) -> float:
        return self._values.pop(0) if self._values else 0.0


class RecordingRenderer:
    def __init__(self) -> None:
        self.calls: List[Tuple[str, Any]] = []
        self.frames: List[Tuple[Tuple[str, ...], float]] = []

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def draw(self, items, rotation) -> None:
        self.frames.append((tuple(items), rotation))
        self.calls.append(("draw", rotation))

    def show_result(self, label) -> None:
        self.calls.append(("show_result", label))

    def fade_result(self) -> None:
        self.calls.append(("fade_result", None))

    def clear_result(self) -> None:
        self.calls.append(("clear_result", None))

    def set_visible(self, visible) -> None:
        self.calls.append(("set_visible", visible))

    def apply_layout(self, name, layout) -> None:
        self.calls.append(("apply_layout", (name, layout)))

    def set_config_mode(self, enabled) -> None:
        self.calls.append(("set_config_mode", enabled))

    def set_connection_state(self, state) -> None:
        self.calls.append(("set_connection_state", state))


class RecordingSender:
    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.sent: List[Dict[str, Any]] = []

    def __call__(self, message: Dict[str, Any]) -> bool:
        if not self.connected:
            return False
        self.sent.append(message)
        return True

    def of_type(self, message_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == message_type]


class FakeTransport:
    def __init__(self, connected: bool = True) -> None:
        self.sender = RecordingSender(connected)
        self.connect_calls = 0
        self.closed = False

    @property
    def state(self) -> ConnectionState:
        return ConnectionState.CONNECTED if self.sender.connected else ConnectionState.DISCONNECTED

    @property
    def sent(self) -> List[Dict[str, Any]]:
        return self.sender.sent

    def connect(self) -> None:
        self.connect_calls += 1

    async def close(self) -> None:
        self.closed = True

    def send(self, message: Dict[str, Any]) -> bool:
        return self.sender(message)


class FakeConnection:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent: List[str] = []
        self.closed = False
        self._inbound: asyncio.Queue[Optional[str]] = asyncio.Queue()

    def feed(self, text: str) -> None:
        self._inbound.put_nowait(text)

    def hang_up(self) -> None:
        self._inbound.put_nowait(None)

    async def send(self, text: str) -> None:
        self.sent.append(text)

    async def close(self) -> None:
        # Closing ends iteration, as a real client connection does.
        if not self.closed:
            self.closed = True
            self._inbound.put_nowait(None)

    def __aiter__(self) -> "FakeConnection":
        return self

    async def __anext__(self) -> str:
        item = await self._inbound.get()
        if item is None:
            raise StopAsyncIteration
        return item


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        controller_ws_url="ws://127.0.0.1:9/ws",
        log_directory=tmp_path / "logs",
    )
