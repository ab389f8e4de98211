# src/testsmith/events/hub.py

from __future__ import annotations

"""
Client-side event hub.

One hub owns one live push connection and a registry of listeners keyed by
event kind. On connection loss it reconnects after a capped exponential delay
(1s, 2s, 4s, ... 30s); listeners stay registered across reconnects.

Events are handled on the event loop one at a time: all listeners for one
event run to completion before the next event is read.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Hashable, Sequence

from ..core.ports import EventTransport
from .models import EventKind, EventParseError, PushEvent, parse_push_event
from .sse import HttpxEventTransport, SseMessage, TransportError

logger = logging.getLogger(__name__)

Listener = Callable[[PushEvent], None]

DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 30000


def reconnect_delay_ms(
    attempts: int,
    *,
    base_ms: int = DEFAULT_BASE_DELAY_MS,
    max_ms: int = DEFAULT_MAX_DELAY_MS,
) -> int:
    """min(base * 2**attempts, max): 1000, 2000, 4000, 8000, 16000, 30000, 30000, ..."""
    exponent = min(max(0, int(attempts)), 32)
    return min(base_ms * 2**exponent, max_ms)


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass(slots=True)
class ConnectionState:
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    last_event: PushEvent | None = None
    connection_error: Exception | None = None
    reconnect_attempts: int = 0

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED


class ListenerRegistry:
    """kind -> insertion-ordered set of listeners. Empty kinds are dropped."""

    def __init__(self) -> None:
        self._by_kind: dict[EventKind, dict[Listener, None]] = {}

    def add(self, kind: EventKind, listener: Listener) -> None:
        self._by_kind.setdefault(kind, {})[listener] = None

    def remove(self, kind: EventKind, listener: Listener) -> None:
        listeners = self._by_kind.get(kind)
        if listeners is None:
            return
        listeners.pop(listener, None)
        if not listeners:
            del self._by_kind[kind]

    def listeners_for(self, kind: EventKind) -> list[Listener]:
        # Snapshot: listeners may unsubscribe while being notified.
        return list(self._by_kind.get(kind, ()))

    def kinds(self) -> list[EventKind]:
        return list(self._by_kind)

    def __len__(self) -> int:
        return sum(len(v) for v in self._by_kind.values())


class EventHub:
    def __init__(
        self,
        url: str,
        transport: EventTransport | None = None,
        *,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
        max_attempts: int | None = None,
    ) -> None:
        self._url = url
        self._transport: EventTransport = transport or HttpxEventTransport()
        self._base_delay_ms = base_delay_ms
        self._max_delay_ms = max_delay_ms
        self._max_attempts = max_attempts if max_attempts and max_attempts > 0 else None

        self._registry = ListenerRegistry()
        self._state = ConnectionState()
        self._reader: asyncio.Task[None] | None = None
        self._timer: asyncio.TimerHandle | None = None
        # Bumped on every connect()/stop(); callbacks from older connections are ignored.
        self._generation = 0
        self._active = False

    # ---- queries ----

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return replace(self._state)

    @property
    def is_connected(self) -> bool:
        return self._state.is_connected

    @property
    def last_event(self) -> PushEvent | None:
        return self._state.last_event

    @property
    def connection_error(self) -> Exception | None:
        return self._state.connection_error

    @property
    def reconnect_attempts(self) -> int:
        return self._state.reconnect_attempts

    @property
    def registry(self) -> ListenerRegistry:
        return self._registry

    @property
    def reconnect_pending(self) -> bool:
        return self._timer is not None

    # ---- listeners ----

    def subscribe(self, kind: EventKind | str, listener: Listener) -> Callable[[], None]:
        event_kind = EventKind(kind)
        self._registry.add(event_kind, listener)

        def unsubscribe() -> None:
            self._registry.remove(event_kind, listener)

        return unsubscribe

    def unsubscribe(self, kind: EventKind | str, listener: Listener) -> None:
        self._registry.remove(EventKind(kind), listener)

    # ---- lifecycle ----

    def start(self) -> None:
        self._active = True
        self.connect()

    async def stop(self) -> None:
        self._active = False
        self._generation += 1
        self._cancel_timer()
        reader, self._reader = self._reader, None
        if reader is not None and not reader.done():
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
        self._state.status = ConnectionStatus.DISCONNECTED
        logger.info("Event hub stopped")

    async def __aenter__(self) -> EventHub:
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    def connect(self) -> None:
        """(Re)open the connection. Must be called on the running event loop."""
        self._active = True
        self._cancel_timer()
        self._close_connection()

        self._generation += 1
        generation = self._generation
        self._state.status = ConnectionStatus.CONNECTING
        self._reader = asyncio.get_running_loop().create_task(
            self._read(generation), name=f"event-hub-reader-{generation}"
        )

    def _close_connection(self) -> None:
        reader, self._reader = self._reader, None
        if reader is not None and not reader.done():
            reader.cancel()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ---- connection handlers ----

    async def _read(self, generation: int) -> None:
        try:
            async with self._transport.open(self._url) as stream:
                self._on_open(generation)
                async for message in stream:
                    if generation != self._generation:
                        return
                    self._on_message(message)
            raise TransportError("event stream closed by server")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._on_error(generation, e)

    def _on_open(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._state.status = ConnectionStatus.CONNECTED
        self._state.connection_error = None
        self._state.reconnect_attempts = 0
        logger.info("SSE connection established url=%s", self._url)

    def _on_error(self, generation: int, error: Exception) -> None:
        if generation != self._generation:
            return
        self._state.connection_error = error
        attempts = self._state.reconnect_attempts

        if not self._active:
            self._state.status = ConnectionStatus.DISCONNECTED
            return

        if self._max_attempts is not None and attempts >= self._max_attempts:
            self._state.status = ConnectionStatus.DISCONNECTED
            logger.error("SSE connection failed %d times; giving up: %s", attempts, error)
            return

        delay_ms = reconnect_delay_ms(attempts, base_ms=self._base_delay_ms, max_ms=self._max_delay_ms)
        self._state.reconnect_attempts = attempts + 1
        self._state.status = ConnectionStatus.RECONNECTING
        logger.warning("SSE connection error: %s; reconnecting in %dms", error, delay_ms)
        self._schedule_reconnect(delay_ms)

    def _schedule_reconnect(self, delay_ms: int) -> None:
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().call_later(delay_ms / 1000.0, self._reconnect_now)

    def _reconnect_now(self) -> None:
        self._timer = None
        if self._active:
            self.connect()

    def _on_message(self, message: SseMessage) -> None:
        try:
            kind = EventKind(message.event)
        except ValueError:
            logger.debug("ignoring SSE event of unknown kind %r", message.event)
            return

        try:
            event = parse_push_event(kind, message.data)
        except EventParseError:
            logger.error("Error parsing SSE event %s", kind.value, exc_info=True)
            return

        self._state.last_event = event
        self._notify(event)

    def _notify(self, event: PushEvent) -> None:
        for listener in self._registry.listeners_for(event.kind):
            try:
                listener(event)
            except Exception:
                logger.exception("Error in event listener for %s", event.kind.value)


class EventSubscription:
    """
    Single-kind subscription that hands only the payload to its handler.

    update() re-subscribes when the dependency tuple changes, always removing
    the previous listener first; with unchanged dependencies the original
    handler stays in place.
    """

    def __init__(
        self,
        hub: EventHub,
        kind: EventKind | str,
        handler: Callable[[dict[str, Any]], None],
        dependencies: Sequence[Hashable] = (),
    ) -> None:
        self._hub = hub
        self._kind = EventKind(kind)
        self._handler = handler
        self._dependencies = tuple(dependencies)
        self._unsubscribe: Callable[[], None] | None = None
        self._subscribe()

    def _subscribe(self) -> None:
        kind = self._kind
        handler = self._handler

        def listener(event: PushEvent) -> None:
            if event.kind == kind:
                handler(event.data)

        self._unsubscribe = self._hub.subscribe(kind, listener)

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def update(
        self,
        handler: Callable[[dict[str, Any]], None],
        dependencies: Sequence[Hashable] = (),
    ) -> bool:
        """Returns True if the listener was replaced."""
        deps = tuple(dependencies)
        if self.active and deps == self._dependencies:
            return False
        self.close()
        self._handler = handler
        self._dependencies = deps
        self._subscribe()
        return True

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self) -> EventSubscription:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def subscribe_event(
    hub: EventHub,
    kind: EventKind | str,
    handler: Callable[[dict[str, Any]], None],
    dependencies: Sequence[Hashable] = (),
) -> EventSubscription:
    return EventSubscription(hub, kind, handler, dependencies)
