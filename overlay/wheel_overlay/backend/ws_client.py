"""Controller WebSocket client with fixed-delay reconnect."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Dict, Optional

import websockets

from .. import protocol
from ..config import Settings
from ..protocol import MalformedMessage
from ..state import ConnectionState
from ..timers import Scheduler, TimerSlot

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Dict[str, Any]], None]
StateListener = Callable[[ConnectionState], None]
Connector = Callable[[str], Awaitable[Any]]


class TransportError(RuntimeError):
    """Raised when the controller link cannot be opened."""


class OverlayWebSocketClient:
    """Owns the single duplex link to the controller; retries forever after a fixed delay."""

    def __init__(
        self,
        settings: Settings,
        *,
        scheduler: Scheduler,
        on_message: Optional[MessageHandler] = None,
        on_state_change: Optional[StateListener] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self.settings = settings
        self._on_message = on_message
        self._on_state_change = on_state_change
        self._connector: Connector = connector or self._open_websocket
        self._state = ConnectionState.DISCONNECTED
        self._conn: Optional[Any] = None
        self._connection_task: Optional[asyncio.Task[None]] = None
        self._sender_task: Optional[asyncio.Task[None]] = None
        self._outgoing: Optional[asyncio.Queue[str]] = None
        self._reconnect_timer = TimerSlot(scheduler, "controller-reconnect")
        self._closing = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer.pending

    def connect(self) -> None:
        """Start a connection attempt unless one is already in flight."""
        if self._closing:
            logger.debug("Connect ignored - client is closing")
            return
        if self._state is not ConnectionState.DISCONNECTED:
            logger.debug("Connect ignored - already %s", self._state.value)
            return
        self._reconnect_timer.cancel()
        self._set_state(ConnectionState.CONNECTING)
        logger.info("Connecting to controller websocket %s", self.settings.controller_ws_url)
        self._connection_task = asyncio.create_task(self._run_connection(), name="controller-ws-connection")

    async def close(self) -> None:
        """Close the link and cancel any pending reconnect; the client stays closed."""
        self._closing = True
        self._reconnect_timer.cancel()
        task = self._connection_task
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning("Error during connection task cleanup: %s", e)
        self._connection_task = None
        await self._teardown_connection()
        self._set_state(ConnectionState.DISCONNECTED)

    def send(self, message: Dict[str, Any]) -> bool:
        """Queue ``message`` on the open link; dropped with a warning when not connected."""
        if self._state is not ConnectionState.CONNECTED or self._outgoing is None:
            logger.warning("Cannot send %s - controller websocket not connected", message.get("type"))
            return False
        try:
            text = protocol.encode(message)
        except (TypeError, ValueError) as exc:
            logger.warning("Failed to serialise outgoing payload %s: %s", message, exc)
            return False
        self._outgoing.put_nowait(text)
        return True

    # Connection lifecycle -------------------------------------------------

    async def _open_websocket(self, uri: str) -> Any:
        return await websockets.connect(
            uri,
            ping_interval=None,
            ping_timeout=None,
            open_timeout=self.settings.connect_timeout_seconds,
        )

    async def _run_connection(self) -> None:
        try:
            try:
                conn = await self._connector(self.settings.controller_ws_url)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                raise TransportError(f"connect to {self.settings.controller_ws_url} failed: {exc}") from exc

            self._conn = conn
            self._outgoing = asyncio.Queue()
            self._sender_task = asyncio.create_task(
                self._flush_outgoing(conn, self._outgoing), name="controller-ws-sender"
            )
            self._set_state(ConnectionState.CONNECTED)
            logger.info("Controller websocket connected")
            self.send(protocol.request_config())
            await self._listen(conn)
        except asyncio.CancelledError:  # cooperative cancel
            raise
        except TransportError as exc:
            logger.warning("Controller websocket unavailable: %s", exc)
        except Exception:
            logger.exception("Controller websocket connection crashed")
        finally:
            self._set_state(ConnectionState.DISCONNECTED)
            await self._teardown_connection()
            if not self._closing:
                self._schedule_reconnect()

    async def _listen(self, conn: Any) -> None:
        try:
            async for raw in conn:
                self._dispatch(raw)
        except websockets.ConnectionClosedOK:
            logger.info("Controller websocket closed cleanly")
        except websockets.ConnectionClosedError as exc:
            logger.warning("Controller websocket closed: %s", exc)
        else:
            logger.info("Controller websocket disconnected")

    def _dispatch(self, raw: Any) -> None:
        try:
            payload = protocol.decode(raw)
        except MalformedMessage as exc:
            logger.warning("Discarding malformed frame from controller: %s", exc)
            return
        if self._on_message is None:
            return
        try:
            self._on_message(payload)
        except Exception as e:
            logger.exception("Error in websocket message handler: %s", e)

    async def _flush_outgoing(self, conn: Any, queue_ref: asyncio.Queue[str]) -> None:
        while True:
            text = await queue_ref.get()
            try:
                await conn.send(text)
            except websockets.ConnectionClosed:
                logger.warning("Cannot send message - websocket connection closed")
                break
            except Exception as e:
                logger.error("Failed to send websocket message: %s", e)
                break
        # The writer is gone: refuse further frames and close so the listener exits.
        if self._outgoing is queue_ref:
            self._outgoing = None
        try:
            await conn.close()
        except Exception as e:
            logger.warning("Error closing websocket after send failure: %s", e)

    async def _teardown_connection(self) -> None:
        sender = self._sender_task
        self._sender_task = None
        self._outgoing = None
        if sender and not sender.done():
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning("Error stopping sender task: %s", e)
        conn = self._conn
        self._conn = None
        if conn is not None:
            try:
                await conn.close()
            except Exception as e:
                logger.warning("Error closing websocket connection: %s", e)

    def _schedule_reconnect(self) -> None:
        delay = self.settings.reconnect_interval
        self._reconnect_timer.schedule(delay, self._reconnect)
        logger.info("Reconnecting to controller in %.1fs", delay)

    def _reconnect(self) -> None:
        logger.info("Attempting to reconnect...")
        self.connect()

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        self._state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception as e:
                logger.exception("Error in connection state listener: %s", e)


__all__ = ["OverlayWebSocketClient", "TransportError"]
