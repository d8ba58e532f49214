# fieldwatch_project_root/tests/test_tracking_selector.py
# SCOPE SELECTION, CLIENT-SIDE FILTERING & DATE WINDOW TESTS

import asyncio
from datetime import datetime, timezone

import pytest

from tracking import (ConnectionState, SmartLiveTracker, TrackingType,
                      TrailAggregator, TrailKey, filter_trails,
                      filter_updates, resolve_date_window,
                      select_tracking_scope)

# Fixtures are sourced from conftest.py


class RecordingConnection:
    """Stands in for ConnectionManager; records every configure call."""
    def __init__(self):
        self.calls = []
        self.reconnects = 0
        self.torn_down = False
        self.status = None

    def configure(self, tracking_type, scope_id=None, enabled=True):
        self.calls.append((tracking_type, scope_id, enabled))

    def reconnect(self):
        self.reconnects += 1

    def teardown(self):
        self.torn_down = True


@pytest.mark.parametrize("campaign, zone, team, expected", [
    ("C1", "Z1", "T1", (TrackingType.TEAM, "T1")),
    ("C1", "Z1", "", (TrackingType.ZONE, "Z1")),
    (None, "Z1", None, (TrackingType.ZONE, "Z1")),
    ("C1", "", "", (TrackingType.CAMPAIGN, "C1")),
    ("", "", "", (TrackingType.FACILITY, None)),
    (None, None, None, (TrackingType.FACILITY, None)),
])
def test_most_specific_filter_picks_the_stream(campaign, zone, team, expected):
    assert select_tracking_scope(campaign, zone, team) == expected


def test_trail_filters_are_conjunctive(make_update):
    agg = TrailAggregator()
    agg.ingest(make_update(zone="Z1", team="T1", campaign="C1"))
    agg.ingest(make_update(zone="Z1", team="T2", campaign="C1"))
    agg.ingest(make_update(zone="Z2", team="T1", campaign="C2"))

    assert filter_trails(agg.trails, zone_id="Z1", team_id="T3") == {}
    assert list(filter_trails(agg.trails, zone_id="Z1", team_id="T2")) == [TrailKey("Z1", "T2")]
    assert list(filter_trails(agg.trails, campaign_id="C2")) == [TrailKey("Z2", "T1")]
    assert len(filter_trails(agg.trails)) == 3


def test_update_filter_applies_date_window(make_update):
    updates = [
        make_update(timestamp="2026-10-17T23:59:59Z"),
        make_update(timestamp="2026-10-18T00:00:00Z"),
        make_update(timestamp="2026-10-18T12:30:00+01:00"),
        make_update(timestamp="garbage"),
    ]
    window = resolve_date_window("today", now=datetime(2026, 10, 18, 15, 0, tzinfo=timezone.utc))
    kept = filter_updates(updates, window=window)
    assert [u.timestamp for u in kept] == ["2026-10-18T00:00:00Z", "2026-10-18T12:30:00+01:00"]
    assert len(filter_updates(updates)) == 4


def test_date_windows():
    now = datetime(2026, 10, 18, 15, 0, tzinfo=timezone.utc)
    day = lambda d: datetime(2026, 10, d, tzinfo=timezone.utc)
    assert resolve_date_window("yesterday", now) == (day(17), day(18))
    assert resolve_date_window("last7days", now) == (day(12), day(19))
    assert resolve_date_window("thismonth", now) == (day(1), day(19))
    assert resolve_date_window("everything", now) is None


def test_tracker_clears_trails_only_when_stream_type_changes(make_update):
    connection = RecordingConnection()
    tracker = SmartLiveTracker(connection=connection)
    tracker.update_filters(campaign_id="C1")
    tracker.aggregator.ingest(make_update(zone="Z1", team="T1", campaign="C1"))

    # Same stream type, different scope: trails are kept.
    tracker.update_filters(campaign_id="C2")
    assert len(tracker.aggregator.trails) == 1

    tracker.update_filters(campaign_id="C2", zone_id="Z1")
    assert len(tracker.aggregator.trails) == 0
    assert tracker.active_tracking_type == TrackingType.ZONE
    assert connection.calls == [
        (TrackingType.CAMPAIGN, "C1", True),
        (TrackingType.CAMPAIGN, "C2", True),
        (TrackingType.ZONE, "Z1", True),
    ]


def test_tracker_snapshot_is_filtered(make_update):
    connection = RecordingConnection()
    tracker = SmartLiveTracker(connection=connection)
    tracker.update_filters(zone_id="Z1", team_id="T2")
    tracker.aggregator.ingest(make_update(zone="Z1", team="T1"))
    tracker.aggregator.ingest(make_update(zone="Z1", team="T2"))

    snap = tracker.snapshot()
    assert snap.active_tracking_type == TrackingType.TEAM
    assert list(snap.trails) == [TrailKey("Z1", "T2")]
    assert [u.team.id for u in snap.updates] == ["T2"]
    assert snap.filters.zone_id == "Z1" and snap.filters.campaign_id is None


def test_tracker_wires_ingest_into_connection(connect_factory, fake_socket, frames, clock, scheduler, token):
    async def scenario():
        tracker = SmartLiveTracker(
            connect_factory=connect_factory([fake_socket(frames({"zone": "Z1"}, {"zone": "Z1"}), clock, abnormal=False)]),
            token_provider=token, clock=clock, scheduler=scheduler,
        )
        tracker.update_filters(zone_id="Z1")
        await tracker.connection.join()
        tracker.teardown()
        return tracker

    tracker = asyncio.run(scenario())
    assert len(tracker.movement_trails[TrailKey("Z1", "T1")].points) == 2
    assert tracker.status.state == ConnectionState.IDLE
