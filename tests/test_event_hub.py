# tests/test_event_hub.py

from __future__ import annotations

import asyncio
import json

import pytest

from testsmith.events.hub import (
    ConnectionStatus,
    EventHub,
    ListenerRegistry,
    reconnect_delay_ms,
    subscribe_event,
)
from testsmith.events.models import EventKind, PushEvent
from testsmith.events.sse import TransportError

from .fakes import FakeTransport, wait_until

STARTED = {"taskId": "7", "repoId": "1", "filePath": "src/foo.ts", "repoName": "widgets"}


class RecordingHub(EventHub):
    """Reconnects on the next loop iteration and records the delay it would have waited."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.delays: list[int] = []

    def _schedule_reconnect(self, delay_ms: int) -> None:
        self.delays.append(delay_ms)
        asyncio.get_running_loop().call_soon(self._reconnect_now)


def test_reconnect_delay_sequence() -> None:
    assert [reconnect_delay_ms(n) for n in range(8)] == [1000, 2000, 4000, 8000, 16000, 30000, 30000, 30000]
    assert reconnect_delay_ms(10_000) == 30000


def test_listener_registry_drops_empty_kinds() -> None:
    registry = ListenerRegistry()

    def listener(event: PushEvent) -> None:
        pass

    registry.add(EventKind.HEARTBEAT, listener)
    registry.add(EventKind.HEARTBEAT, listener)
    assert len(registry) == 1

    registry.remove(EventKind.HEARTBEAT, listener)
    registry.remove(EventKind.TASK_ERROR, listener)
    assert registry.kinds() == []


@pytest.mark.asyncio
async def test_events_reach_subscribers_of_that_kind_only() -> None:
    transport = FakeTransport()
    started: list[PushEvent] = []
    errors: list[PushEvent] = []

    async with EventHub("http://events.test/sse", transport) as hub:
        hub.subscribe("task-started", started.append)
        hub.subscribe(EventKind.TASK_ERROR, errors.append)
        await wait_until(lambda: hub.is_connected)

        transport.current.send("task-started", json.dumps(STARTED))
        await wait_until(lambda: len(started) == 1)

        assert started[0].data == STARTED
        assert errors == []
        assert hub.last_event == started[0]
        assert hub.connection_error is None

    assert hub.state.status == ConnectionStatus.DISCONNECTED
    assert transport.current.closed


@pytest.mark.asyncio
async def test_unsubscribe_and_duplicate_subscribe() -> None:
    transport = FakeTransport()
    seen: list[PushEvent] = []
    other: list[PushEvent] = []

    async with EventHub("http://events.test/sse", transport) as hub:
        unsubscribe = hub.subscribe("heartbeat", seen.append)
        hub.subscribe("heartbeat", seen.append)
        hub.subscribe("heartbeat", other.append)
        await wait_until(lambda: hub.is_connected)

        transport.current.send("heartbeat", '{"timestamp": "t1"}')
        await wait_until(lambda: len(other) == 1)
        assert len(seen) == 1

        unsubscribe()
        transport.current.send("heartbeat", '{"timestamp": "t2"}')
        await wait_until(lambda: len(other) == 2)
        assert len(seen) == 1


@pytest.mark.asyncio
async def test_malformed_and_unknown_events_are_dropped() -> None:
    transport = FakeTransport()
    seen: list[PushEvent] = []

    async with EventHub("http://events.test/sse", transport) as hub:
        hub.subscribe("task-started", seen.append)
        await wait_until(lambda: hub.is_connected)

        transport.current.send("heartbeat", '{"timestamp": "t"}')
        await wait_until(lambda: hub.last_event is not None)
        before = hub.last_event

        transport.current.send("task-started", "{not json")
        transport.current.send("task-started", json.dumps({"taskId": "7"}))
        await wait_until(transport.current.queue.empty)
        await asyncio.sleep(0.01)
        assert hub.last_event is before
        assert seen == []
        assert hub.is_connected and hub.reconnect_attempts == 0

        transport.current.send("task-started", "{not json")
        transport.current.send("task-started", json.dumps({"taskId": "7"}))
        transport.current.send("something-else", json.dumps(STARTED))
        transport.current.send("task-started", json.dumps(STARTED))
        await wait_until(lambda: len(seen) == 1)

        assert seen[0].data == STARTED
        assert hub.is_connected


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_others() -> None:
    transport = FakeTransport()
    seen: list[PushEvent] = []

    def broken(event: PushEvent) -> None:
        raise RuntimeError("listener bug")

    async with EventHub("http://events.test/sse", transport) as hub:
        hub.subscribe("heartbeat", broken)
        hub.subscribe("heartbeat", seen.append)
        await wait_until(lambda: hub.is_connected)

        transport.current.send("heartbeat", '{"timestamp": "t"}')
        await wait_until(lambda: len(seen) == 1)
        assert hub.is_connected


@pytest.mark.asyncio
async def test_backoff_grows_caps_and_resets_after_open() -> None:
    transport = FakeTransport(fail_first=6)
    hub = RecordingHub("http://events.test/sse", transport, base_delay_ms=1, max_delay_ms=8)

    hub.start()
    try:
        await wait_until(lambda: hub.is_connected)
        assert hub.delays == [1, 2, 4, 8, 8, 8]
        assert hub.reconnect_attempts == 0
        assert hub.connection_error is None

        transport.current.drop()
        await wait_until(lambda: len(transport.connections) == 2 and hub.is_connected)
        assert hub.delays[-1] == 1
    finally:
        await hub.stop()


@pytest.mark.asyncio
async def test_error_state_while_waiting_to_reconnect() -> None:
    transport = FakeTransport(fail_first=-1)
    hub = EventHub("http://events.test/sse", transport, base_delay_ms=60_000)

    hub.start()
    try:
        await wait_until(lambda: hub.reconnect_pending)
        state = hub.state
        assert state.status == ConnectionStatus.RECONNECTING
        assert not state.is_connected
        assert isinstance(state.connection_error, TransportError)
        assert state.reconnect_attempts == 1
    finally:
        await hub.stop()

    assert not hub.reconnect_pending
    assert hub.state.status == ConnectionStatus.DISCONNECTED
    assert transport.open_calls == 1


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts() -> None:
    transport = FakeTransport(fail_first=-1)
    hub = EventHub("http://events.test/sse", transport, base_delay_ms=1, max_attempts=2)

    hub.start()
    try:
        await wait_until(lambda: transport.open_calls == 3 and hub.state.status == ConnectionStatus.DISCONNECTED)
        await asyncio.sleep(0.02)
        assert transport.open_calls == 3
        assert not hub.reconnect_pending
    finally:
        await hub.stop()


@pytest.mark.asyncio
async def test_listeners_survive_reconnect() -> None:
    transport = FakeTransport()
    seen: list[PushEvent] = []

    async with EventHub("http://events.test/sse", transport, base_delay_ms=1) as hub:
        hub.subscribe("heartbeat", seen.append)
        await wait_until(lambda: hub.is_connected)

        transport.current.drop()
        await wait_until(lambda: len(transport.connections) == 2 and hub.is_connected)

        transport.current.send("heartbeat", '{"timestamp": "t"}')
        await wait_until(lambda: len(seen) == 1)


@pytest.mark.asyncio
async def test_connect_replaces_previous_connection() -> None:
    transport = FakeTransport()
    seen: list[PushEvent] = []

    async with EventHub("http://events.test/sse", transport) as hub:
        hub.subscribe("heartbeat", seen.append)
        await wait_until(lambda: hub.is_connected)
        first = transport.current

        hub.connect()
        await wait_until(lambda: len(transport.connections) == 2 and hub.is_connected)
        await wait_until(lambda: first.closed)

        first.send("heartbeat", '{"timestamp": "stale"}')
        transport.current.send("heartbeat", '{"timestamp": "fresh"}')
        await wait_until(lambda: len(seen) == 1)
        await asyncio.sleep(0.01)
        assert [e.data["timestamp"] for e in seen] == ["fresh"]


@pytest.mark.asyncio
async def test_event_subscription_delivers_payload_and_resubscribes_on_change() -> None:
    transport = FakeTransport()
    first: list[dict] = []
    second: list[dict] = []

    async with EventHub("http://events.test/sse", transport) as hub:
        sub = subscribe_event(hub, "task-started", first.append, dependencies=("a",))
        await wait_until(lambda: hub.is_connected)

        assert sub.update(second.append, ("a",)) is False
        transport.current.send("task-started", json.dumps(STARTED))
        await wait_until(lambda: len(first) == 1)
        assert first[0] == STARTED

        assert sub.update(second.append, ("b",)) is True
        assert len(hub.registry) == 1
        transport.current.send("task-started", json.dumps(STARTED))
        await wait_until(lambda: len(second) == 1)
        assert len(first) == 1

        with sub:
            pass
        assert not sub.active
        assert len(hub.registry) == 0
