# fieldwatch_project_root/tests/test_connection_manager.py
# STREAM CONNECTION LIFECYCLE & RECONNECT POLICY TESTS

import asyncio
import json

import pytest

from config import settings
from tracking import (ConnectionManager, ConnectionState, TrackingType,
                      build_stream_url, compute_backoff_delay_ms)
from tracking.connection import (ERROR_CONNECTION, ERROR_MAX_ATTEMPTS,
                                 ERROR_NO_TOKEN)

# Fixtures are sourced from conftest.py


class BlockingSocket:
    """Opens and then waits forever for frames."""
    def __init__(self):
        self.exited = False
        self._never = asyncio.Event()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.exited = True

    def __aiter__(self):
        return self

    async def __anext__(self):
        await self._never.wait()
        raise StopAsyncIteration


def _manager(factory, clock, scheduler, token, received=None, **kwargs):
    on_update = received.append if received is not None else (lambda update: None)
    return ConnectionManager(
        on_update=on_update, token_provider=token, connect_factory=factory,
        clock=clock, scheduler=scheduler, ws_base="wss://example.test/dappa", **kwargs
    )


# --- Pure Helper Tests ---
def test_backoff_doubles_and_caps_at_thirty_seconds():
    assert [compute_backoff_delay_ms(i) for i in range(7)] == [1000, 2000, 4000, 8000, 16000, 30000, 30000]


def test_build_stream_url_per_tracking_type():
    base = "wss://example.test/dappa"
    assert build_stream_url(TrackingType.FACILITY, None, "tok", base) == f"{base}/track/live/facility?token=tok"
    assert build_stream_url("zone", "Z1", "tok", base) == f"{base}/track/live/zone/Z1?token=tok"
    assert build_stream_url(TrackingType.TEAM, "T 1", "a/b c", base) == f"{base}/track/live/team/T%201?token=a%2Fb%20c"


def test_websocket_base_is_derived_from_api_base():
    assert settings.API_BASE_URL.startswith("https://")
    assert settings.WS_BASE_URL == settings.API_BASE_URL.replace("https://", "wss://")


# --- Connection Lifecycle Tests ---
def test_connects_and_forwards_location_updates(connect_factory, fake_socket, frames, clock, scheduler, token):
    received = []

    async def scenario():
        socket = fake_socket(frames({"zone": "Z1"}, {"zone": "Z2"}), clock, abnormal=False)
        factory = connect_factory([socket])
        manager = _manager(factory, clock, scheduler, token, received)
        states = []
        manager.subscribe(lambda status: states.append(status.state))

        manager.configure(TrackingType.ZONE, "Z1")
        assert manager.status.state == ConnectionState.CONNECTING
        await manager.join()

        assert factory.urls == ["wss://example.test/dappa/track/live/zone/Z1?token=tok-123"]
        assert states[:2] == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
        assert socket.exited
        manager.teardown()

    asyncio.run(scenario())
    assert [u.zone.id for u in received] == ["Z1", "Z2"]


def test_bad_frames_are_dropped_without_closing(connect_factory, fake_socket, event_payload, clock, scheduler, token):
    received = []
    invalid = dict(event_payload(), location={"type": "Point"})
    raw = [
        "not json{",
        json.dumps({"type": "heartbeat"}),
        json.dumps(["location_update"]),
        json.dumps(invalid),
        json.dumps(event_payload(zone="Z9")),
    ]

    async def scenario():
        manager = _manager(connect_factory([fake_socket(raw, clock, abnormal=False)]), clock, scheduler, token, received)
        manager.configure(TrackingType.FACILITY)
        await manager.join()
        manager.teardown()

    asyncio.run(scenario())
    assert [u.zone.id for u in received] == ["Z9"]


def test_handler_failure_does_not_stop_the_stream(connect_factory, fake_socket, frames, clock, scheduler, token):
    seen = []

    def flaky(update):
        seen.append(update.zone.id)
        if update.zone.id == "Z1":
            raise RuntimeError("boom")

    async def scenario():
        manager = ConnectionManager(
            on_update=flaky, token_provider=token, clock=clock, scheduler=scheduler,
            connect_factory=connect_factory([fake_socket(frames({"zone": "Z1"}, {"zone": "Z2"}), clock, abnormal=False)]),
        )
        manager.configure(TrackingType.FACILITY)
        await manager.join()
        manager.teardown()

    asyncio.run(scenario())
    assert seen == ["Z1", "Z2"]


def test_missing_token_leaves_stream_disconnected(connect_factory, clock, scheduler):
    async def scenario():
        factory = connect_factory()
        manager = _manager(factory, clock, scheduler, lambda: None)
        manager.configure(TrackingType.CAMPAIGN, "C1")
        await manager.join()
        return manager, factory

    manager, factory = asyncio.run(scenario())
    assert manager.status.state == ConnectionState.DISCONNECTED
    assert manager.status.error == ERROR_NO_TOKEN
    assert factory.urls == []
    assert scheduler.handles == []


def test_disabled_tracking_never_connects(connect_factory, clock, scheduler, token):
    async def scenario():
        factory = connect_factory()
        manager = _manager(factory, clock, scheduler, token)
        manager.configure(TrackingType.ZONE, "Z1", enabled=False)
        return manager, factory

    manager, factory = asyncio.run(scenario())
    assert manager.status.state == ConnectionState.IDLE
    assert factory.urls == []


# --- Reconnect Policy Tests ---
def test_reconnects_stop_after_max_attempts(connect_factory, fake_socket, clock, scheduler, token):
    async def scenario():
        factory = connect_factory(default=lambda: fake_socket([], clock, hold_ms=1000))
        manager = _manager(factory, clock, scheduler, token)
        manager.configure(TrackingType.ZONE, "Z1")
        await manager.join()
        for attempt in range(1, 6):
            assert manager.status.state == ConnectionState.RECONNECT_SCHEDULED
            assert manager.status.error == ERROR_CONNECTION
            scheduler.fire_last()
            assert manager.reconnect_attempts == attempt
            await manager.join()
        return manager, factory

    manager, factory = asyncio.run(scenario())
    assert manager.status.state == ConnectionState.FAILED
    assert manager.status.error == ERROR_MAX_ATTEMPTS
    assert scheduler.delays_ms == [1000, 2000, 4000, 8000, 16000]
    assert len(factory.urls) == 6
    assert not manager.has_pending_reconnect


def test_long_lived_connection_resets_attempt_counter(connect_factory, fake_socket, refusing_socket, clock, scheduler, token):
    async def scenario():
        sockets = [refusing_socket(), refusing_socket(), refusing_socket(), fake_socket([], clock, hold_ms=6000)]
        manager = _manager(connect_factory(sockets), clock, scheduler, token)
        manager.configure(TrackingType.TEAM, "T1")
        await manager.join()
        for _ in range(3):
            scheduler.fire_last()
            await manager.join()
        return manager

    manager = asyncio.run(scenario())
    # The fourth close comes after 6s of uptime with the counter at 3.
    assert scheduler.delays_ms == [1000, 2000, 4000, 1000]
    assert manager.reconnect_attempts == 0
    assert manager.status.reconnect_attempts == 0
    assert manager.status.state == ConnectionState.RECONNECT_SCHEDULED


def test_short_lived_connection_keeps_attempt_counter(connect_factory, fake_socket, refusing_socket, clock, scheduler, token):
    async def scenario():
        sockets = [refusing_socket(), fake_socket([], clock, hold_ms=5000)]
        manager = _manager(connect_factory(sockets), clock, scheduler, token)
        manager.configure(TrackingType.TEAM, "T1")
        await manager.join()
        scheduler.fire_last()
        await manager.join()
        return manager

    manager = asyncio.run(scenario())
    assert scheduler.delays_ms == [1000, 2000]
    assert manager.reconnect_attempts == 1


def test_manual_reconnect_restores_retry_budget(connect_factory, clock, scheduler, token):
    async def scenario():
        manager = _manager(connect_factory(), clock, scheduler, token, config=settings.TRACKING.model_copy(update={"max_reconnect_attempts": 1}))
        manager.configure(TrackingType.ZONE, "Z1")
        await manager.join()
        scheduler.fire_last()
        await manager.join()
        assert manager.status.state == ConnectionState.FAILED

        manager.reconnect()
        assert manager.reconnect_attempts == 0
        assert manager.status.state == ConnectionState.CONNECTING
        assert manager.status.error is None
        await manager.join()
        return manager

    manager = asyncio.run(scenario())
    assert manager.status.state == ConnectionState.RECONNECT_SCHEDULED


# --- Scope Changes & Teardown ---
def test_scope_change_replaces_the_socket_without_reconnect(connect_factory, clock, scheduler, token):
    async def scenario():
        first, second = BlockingSocket(), BlockingSocket()
        factory = connect_factory([first, second])
        manager = _manager(factory, clock, scheduler, token)
        manager.configure(TrackingType.ZONE, "Z1")
        await asyncio.sleep(0)
        assert manager.status.state == ConnectionState.CONNECTED

        manager.configure(TrackingType.TEAM, "T1")
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert first.exited
        assert manager.status.state == ConnectionState.CONNECTED
        assert manager.status.tracking_type == TrackingType.TEAM

        # Same scope again is a no-op.
        manager.configure(TrackingType.TEAM, "T1")
        assert len(factory.urls) == 2

        await manager.__aexit__(None, None, None)
        assert second.exited
        return factory

    factory = asyncio.run(scenario())
    assert [u.split("?")[0].rsplit("/", 2)[-2:] for u in factory.urls] == [["zone", "Z1"], ["team", "T1"]]
    assert scheduler.handles == []


def test_teardown_cancels_pending_reconnect(connect_factory, clock, scheduler, token):
    async def scenario():
        factory = connect_factory()
        manager = _manager(factory, clock, scheduler, token)
        statuses = []
        manager.subscribe(statuses.append)
        manager.configure(TrackingType.ZONE, "Z1")
        await manager.join()
        assert manager.has_pending_reconnect

        manager.teardown()
        count = len(statuses)
        # A timer that races teardown must not reopen anything.
        scheduler.handles[-1].callback()
        return manager, factory, statuses, count

    manager, factory, statuses, count = asyncio.run(scenario())
    assert scheduler.handles[-1].cancelled
    assert not manager.has_pending_reconnect
    assert manager.status.state == ConnectionState.IDLE
    assert len(factory.urls) == 1
    assert len(statuses) == count


def test_unsubscribed_observer_stops_receiving(connect_factory, clock, scheduler, token):
    async def scenario():
        manager = _manager(connect_factory(), clock, scheduler, token)
        seen = []
        unsubscribe = manager.subscribe(seen.append)
        manager.configure(TrackingType.FACILITY)
        unsubscribe()
        await manager.join()
        manager.teardown()
        return seen

    seen = asyncio.run(scenario())
    assert [s.state for s in seen] == [ConnectionState.CONNECTING]
