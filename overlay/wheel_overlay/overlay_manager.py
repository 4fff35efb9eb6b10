"""Overlay orchestration: routes controller events and UI input to the widgets."""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from . import protocol
from .backend.ws_client import OverlayWebSocketClient
from .config import Settings, get_settings
from .gestures import GestureController, Viewport
from .layout import LayoutStore
from .protocol import (
    ConfigUpdate,
    KeyMessage,
    MalformedMessage,
    PointerMessage,
    SpinWheelData,
    TriggerAction,
    ViewportMessage,
    parse_as,
)
from .renderer import BroadcastRenderer, Renderer
from .state import ConnectionState, OverlayEvent, SpinPhase
from .timers import LoopScheduler, Scheduler
from .wheel import SpinEngine

logger = logging.getLogger(__name__)

CONFIG_MODE_KEYS = {"c", "C"}


class Transport(Protocol):
    @property
    def state(self) -> ConnectionState: ...

    def connect(self) -> None: ...

    async def close(self) -> None: ...

    def send(self, message: Dict[str, Any]) -> bool: ...


class OverlayManager:
    """Process-wide context owning the transport, layout store, spin engine and gestures."""

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        scheduler: Optional[Scheduler] = None,
        renderer: Optional[Renderer] = None,
        transport: Optional[Transport] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._scheduler = scheduler or LoopScheduler()
        self._broadcaster = BroadcastRenderer(
            lambda: self.phase, queue_size=self.settings.performance.ui_event_queue_size
        )
        self._renderer: Renderer = renderer or self._broadcaster
        self._transport: Transport = transport or OverlayWebSocketClient(
            self.settings,
            scheduler=self._scheduler,
            on_message=self.handle_server_message,
            on_state_change=self._handle_connection_state,
        )
        self._layout = LayoutStore(
            min_scale=self.settings.gestures.min_scale,
            max_scale=self.settings.gestures.max_scale,
        )
        self._wheel = SpinEngine(
            scheduler=self._scheduler,
            renderer=self._renderer,
            send=self.send,
            settings=self.settings.wheel,
            rng=rng,
        )
        self._gestures = GestureController(
            self._layout,
            self.send,
            self._renderer,
            viewport=Viewport(self.settings.viewport_width, self.settings.viewport_height),
            settings=self.settings.gestures,
            config_mode=self.settings.config_mode,
        )

    @property
    def phase(self) -> SpinPhase:
        return self._wheel.phase

    @property
    def connection_state(self) -> ConnectionState:
        return self._transport.state

    @property
    def config_mode(self) -> bool:
        return self._gestures.config_mode

    @property
    def layout(self) -> LayoutStore:
        return self._layout

    @property
    def wheel(self) -> SpinEngine:
        return self._wheel

    @property
    def gestures(self) -> GestureController:
        return self._gestures

    async def start(self) -> None:
        logger.info("Starting overlay manager (config_mode=%s)", self.config_mode)
        self._transport.connect()

    async def stop(self) -> None:
        logger.info("Stopping overlay manager")
        self._wheel.stop()
        try:
            await self._transport.close()
        except Exception as e:
            logger.warning("Error closing controller websocket: %s", e)
        logger.info("Overlay manager stopped")

    def status(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "connection": self.connection_state.value,
            "config_mode": self.config_mode,
            "layouts": {name: layout.to_dict() for name, layout in self._layout.snapshot().items()},
        }

    # Renderer bridge subscribers ------------------------------------------

    def register_ui(self) -> asyncio.Queue[OverlayEvent]:
        queue = self._broadcaster.subscribe()
        self._broadcaster.send_snapshot(
            queue,
            connection=self.connection_state,
            config_mode=self.config_mode,
            layouts=self._layout.snapshot(),
        )
        return queue

    @property
    def ui_subscriber_count(self) -> int:
        return self._broadcaster.subscriber_count

    def unregister_ui(self, queue: asyncio.Queue[OverlayEvent]) -> None:
        self._broadcaster.unsubscribe(queue)

    # Outbound -------------------------------------------------------------

    def send(self, message: Dict[str, Any]) -> bool:
        return self._transport.send(message)

    # Controller events ------------------------------------------------------

    def handle_server_message(self, payload: Dict[str, Any]) -> None:
        event_type = payload.get("type")
        try:
            if event_type == protocol.TRIGGER_ACTION:
                self._handle_trigger_action(payload)
            elif event_type == protocol.CONFIG_UPDATE:
                self._handle_config_update(payload)
            elif event_type == protocol.PING:
                return
            else:
                logger.warning("Unknown event type: %s", event_type)
        except MalformedMessage as exc:
            logger.warning("Dropping malformed %s message: %s", event_type, exc)

    def trigger_spin(self, items: Sequence[Any], actions: Optional[Mapping[str, Any]] = None) -> bool:
        """Local trigger routed through the same path as a controller ``trigger_action``."""
        payload = {
            "type": protocol.TRIGGER_ACTION,
            "action_type": protocol.SPIN_WHEEL,
            "data": {"items": list(items), "actions": dict(actions or {})},
        }
        try:
            return self._handle_trigger_action(payload)
        except MalformedMessage as exc:
            logger.warning("Dropping malformed local spin request: %s", exc)
            return False

    def _handle_trigger_action(self, payload: Dict[str, Any]) -> bool:
        event = parse_as(TriggerAction, payload)
        if event.action_type != protocol.SPIN_WHEEL:
            logger.warning("Unknown action type: %s", event.action_type)
            return False
        if not isinstance(event.data.get("items"), list):
            logger.warning("spin_wheel trigger without an item list; ignoring")
            return False
        data = parse_as(SpinWheelData, event.data)
        return self._wheel.trigger(data.items, data.actions)

    def _handle_config_update(self, payload: Dict[str, Any]) -> None:
        event = parse_as(ConfigUpdate, payload)
        applied = self._layout.apply_positions(event.positions)
        for name, layout in applied.items():
            self._renderer.apply_layout(name, layout)
        if applied:
            logger.info("Layout updated from controller: %s", ", ".join(applied))

    def _handle_connection_state(self, state: ConnectionState) -> None:
        logger.debug("Controller link %s", state.value)
        self._renderer.set_connection_state(state)

    # UI input -------------------------------------------------------------

    def handle_ui_message(self, payload: Dict[str, Any]) -> None:
        event_type = payload.get("type")
        try:
            if event_type == "viewport":
                viewport = parse_as(ViewportMessage, payload)
                self._gestures.set_viewport(viewport.width, viewport.height)
            elif event_type in ("pointer_down", "pointer_move", "pointer_up"):
                self._handle_pointer(parse_as(PointerMessage, payload))
            elif event_type == "key":
                key = parse_as(KeyMessage, payload)
                if key.key in CONFIG_MODE_KEYS:
                    self.toggle_config_mode()
            elif event_type == "reset_layout":
                self.reset_layout()
            else:
                logger.debug("Ignoring UI message type %s", event_type)
        except MalformedMessage as exc:
            logger.warning("Dropping malformed UI message: %s", exc)

    def _handle_pointer(self, pointer: PointerMessage) -> None:
        if pointer.type == "pointer_down":
            self._gestures.press(pointer.element, pointer.target, pointer.x, pointer.y, pointer.rect)
        elif pointer.type == "pointer_move":
            self._gestures.move(pointer.x, pointer.y)
        else:
            self._gestures.release(pointer.x, pointer.y, pointer.rect)

    def set_config_mode(self, enabled: bool) -> bool:
        return self._gestures.set_config_mode(enabled)

    def toggle_config_mode(self) -> bool:
        return self._gestures.toggle_config_mode()

    def reset_layout(self) -> List[Dict[str, Any]]:
        messages = self._layout.reset()
        for message in messages:
            name = message["element"]
            self._renderer.apply_layout(name, self._layout.get(name))
            if not self.send(message):
                logger.warning("Layout reset for %s not sent (controller offline)", name)
        return messages


__all__ = ["OverlayManager", "Transport"]
