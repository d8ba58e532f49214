# fieldwatch_project_root/tests/conftest.py
# PYTEST FIXTURES - STREAM EVENTS, FAKE SOCKETS, CLOCK & SCHEDULER

import sys
from pathlib import Path

# --- Path Setup for Module Imports ---
_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import json
from typing import Any, Callable, Dict, List, Optional

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close

from data_processing import Team, Zone
from tracking import LocationUpdate


# --- Stream Event Fixtures ---

def _event_payload(
    zone: str = "Z1", team: str = "T1", lng: float = 9.70, lat: float = 4.05,
    campaign: str = "C1", timestamp: str = "2026-10-18T08:00:00Z", personality: str = "P1"
) -> Dict[str, Any]:
    return {
        "type": "location_update",
        "timestamp": timestamp,
        "location": {"type": "Point", "coordinates": [lng, lat]},
        "personality": {"id": personality, "first_name": "Awa", "last_name": "Nkem", "code": f"AG-{personality}"},
        "team": {"id": team, "name": f"Team {team}", "code": team, "team_lead_id": "P1", "members_count": 3},
        "campaign": {"id": campaign, "name": f"Campaign {campaign}", "status": "active"},
        "zone": {"id": zone, "name": f"Zone {zone}", "code": zone},
        "facility": {"id": "F1", "name": "Bonassama District Hospital"},
    }


@pytest.fixture
def event_payload() -> Callable[..., Dict[str, Any]]:
    """Factory for raw `location_update` frames as they arrive on the wire."""
    return _event_payload


@pytest.fixture
def make_update() -> Callable[..., LocationUpdate]:
    """Factory for validated `LocationUpdate` objects."""
    def _make(**kwargs: Any) -> LocationUpdate:
        return LocationUpdate.model_validate(_event_payload(**kwargs))
    return _make


@pytest.fixture(scope="session")
def zones() -> List[Zone]:
    """Two neighbouring square zones in Douala plus one without a boundary."""
    return [
        Zone.model_validate({
            "_id": "Z1", "name": "Bonaberi", "campaign_id": "C1", "campaign": {"_id": "C1", "name": "Polio Round 3"},
            "boundaries": {"type": "Polygon", "coordinates": [[[9.66, 4.06], [9.68, 4.06], [9.68, 4.08], [9.66, 4.08]]]},
        }),
        Zone.model_validate({
            "_id": "Z2", "name": "Akwa", "campaign_id": "C1",
            "boundaries": {"type": "Polygon", "coordinates": [[[9.69, 4.04], [9.71, 4.04], [9.71, 4.06], [9.69, 4.06], [9.69, 4.04]]]},
        }),
        Zone.model_validate({"_id": "Z3", "name": "Deido", "campaign_id": "C2"}),
    ]


@pytest.fixture(scope="session")
def teams() -> List[Team]:
    return [
        Team.model_validate({
            "_id": "T1", "name": "Alpha", "zone_id": "Z1", "campaign_id": "C1", "team_lead_id": "P1",
            "team_lead": {"_id": "P1", "first_name": "Awa", "last_name": "Nkem"},
        }),
        Team.model_validate({"_id": "T2", "name": "Bravo", "zone_id": "Z2", "campaign_id": "C1"}),
    ]


# --- Deterministic Time & Timers ---

class FakeClock:
    """Monotonic millisecond clock that only moves when told to."""
    def __init__(self, start_ms: float = 1_000.0):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


class FakeHandle:
    def __init__(self, delay_s: float, callback: Callable[[], None]):
        self.delay_s = delay_s
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Records reconnect timers instead of arming them; tests fire them explicitly."""
    def __init__(self):
        self.handles: List[FakeHandle] = []

    def __call__(self, delay_s: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(delay_s, callback)
        self.handles.append(handle)
        return handle

    @property
    def delays_ms(self) -> List[int]:
        return [round(h.delay_s * 1000) for h in self.handles]

    def fire_last(self) -> None:
        handle = self.handles[-1]
        assert not handle.cancelled, "reconnect timer was cancelled"
        handle.callback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


# --- Fake Websocket ---

class FakeSocket:
    """
    Async-iterable stand-in for a websocket connection.

    Yields the scripted frames, then advances the clock by `hold_ms` and
    either ends normally (server close with `close_code`) or raises
    `ConnectionClosedError` with code 1006.
    """
    def __init__(self, frames: List[Any], clock: Optional[FakeClock] = None, hold_ms: float = 0.0,
                 abnormal: bool = True, close_code: int = 1000):
        self.frames = list(frames)
        self.clock = clock
        self.hold_ms = hold_ms
        self.abnormal = abnormal
        self.close_code = close_code
        self.close_reason = ""
        self.exited = False

    async def __aenter__(self) -> 'FakeSocket':
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.exited = True

    def __aiter__(self) -> 'FakeSocket':
        return self

    async def __anext__(self) -> Any:
        if self.frames:
            return self.frames.pop(0)
        if self.clock is not None:
            self.clock.advance(self.hold_ms)
            self.hold_ms = 0.0
        if self.abnormal:
            raise ConnectionClosedError(Close(1006, "abnormal closure"), None)
        raise StopAsyncIteration


class RefusingSocket:
    """Connection attempt that fails before the socket opens."""
    async def __aenter__(self) -> Any:
        raise OSError("connection refused")

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


class FakeConnectFactory:
    """Hands out pre-scripted sockets in order and records the URLs dialled."""
    def __init__(self, sockets: Optional[List[Any]] = None, default: Optional[Callable[[], Any]] = None):
        self.sockets = list(sockets or [])
        self.default = default or RefusingSocket
        self.urls: List[str] = []

    def __call__(self, url: str) -> Any:
        self.urls.append(url)
        return self.sockets.pop(0) if self.sockets else self.default()


@pytest.fixture
def fake_socket() -> Callable[..., FakeSocket]:
    return FakeSocket


@pytest.fixture
def refusing_socket() -> Callable[[], RefusingSocket]:
    return RefusingSocket


@pytest.fixture
def connect_factory() -> Callable[..., FakeConnectFactory]:
    return FakeConnectFactory


@pytest.fixture
def frames(event_payload) -> Callable[..., List[str]]:
    """JSON-encodes a list of event payload kwargs into wire frames."""
    def _frames(*events: Dict[str, Any]) -> List[str]:
        return [json.dumps(event_payload(**e)) for e in events]
    return _frames


@pytest.fixture
def token() -> Callable[[], str]:
    return lambda: "tok-123"
