# fieldwatch_project_root/tracking/selector.py
# LIVE TRACKING - SCOPE SELECTION & CLIENT-SIDE FILTERING

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .aggregator import TrailAggregator
from .connection import ConnectionManager
from .models import (ConnectionStatus, LocationUpdate, MovementTrail,
                     TrackingType, TrailKey)

logger = logging.getLogger(__name__)

DateWindow = Tuple[datetime, datetime]


@dataclass(frozen=True)
class TrackingFilters:
    campaign_id: Optional[str] = None
    zone_id: Optional[str] = None
    team_id: Optional[str] = None


@dataclass(frozen=True)
class LiveTrackingSnapshot:
    """Everything a render needs, captured at one instant."""
    trails: Mapping[TrailKey, MovementTrail]
    updates: Tuple[LocationUpdate, ...]
    status: ConnectionStatus
    active_tracking_type: TrackingType
    filters: TrackingFilters


def select_tracking_scope(
    campaign_id: Optional[str] = None,
    zone_id: Optional[str] = None,
    team_id: Optional[str] = None
) -> Tuple[TrackingType, Optional[str]]:
    """Most specific filter wins: team > zone > campaign > facility-wide."""
    if team_id:
        return TrackingType.TEAM, team_id
    if zone_id:
        return TrackingType.ZONE, zone_id
    if campaign_id:
        return TrackingType.CAMPAIGN, campaign_id
    return TrackingType.FACILITY, None


def filter_trails(
    trails: Mapping[TrailKey, MovementTrail],
    zone_id: Optional[str] = None,
    team_id: Optional[str] = None,
    campaign_id: Optional[str] = None
) -> Dict[TrailKey, MovementTrail]:
    """Keeps trails matching every set filter (AND); unset filters are ignored."""
    return {
        key: trail for key, trail in trails.items()
        if (not zone_id or trail.zone_id == zone_id)
        and (not team_id or trail.team_id == team_id)
        and (not campaign_id or trail.campaign_id == campaign_id)
    }


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def filter_updates(
    updates: Iterable[LocationUpdate],
    zone_id: Optional[str] = None,
    team_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    window: Optional[DateWindow] = None
) -> List[LocationUpdate]:
    """Same conjunctive filter as `filter_trails`, plus an optional [start, end) date window."""
    kept = []
    for update in updates:
        if zone_id and update.zone.id != zone_id: continue
        if team_id and update.team.id != team_id: continue
        if campaign_id and update.campaign.id != campaign_id: continue
        if window is not None:
            ts = _parse_timestamp(update.timestamp)
            if ts is None or not (window[0] <= ts < window[1]): continue
        kept.append(update)
    return kept


def resolve_date_window(option: Optional[str], now: Optional[datetime] = None) -> Optional[DateWindow]:
    """Maps a date filter option to a UTC [start, end) window; unknown options impose no limit."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    today = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    tomorrow = today + timedelta(days=1)
    windows = {
        "today": (today, tomorrow),
        "yesterday": (today - timedelta(days=1), today),
        "last7days": (today - timedelta(days=6), tomorrow),
        "last30days": (today - timedelta(days=29), tomorrow),
        "thismonth": (today.replace(day=1), tomorrow),
    }
    return windows.get(option or "")


class SmartLiveTracker:
    """
    Picks the stream scope from the active filters, keeps one connection open
    for it, and narrows the aggregated trails and updates to the selection.

    Must be driven from the event loop that owns the connection.
    """
    def __init__(
        self,
        aggregator: Optional[TrailAggregator] = None,
        connection: Optional[ConnectionManager] = None,
        **connection_kwargs: Any
    ):
        self.aggregator = aggregator or TrailAggregator()
        self.connection = connection or ConnectionManager(on_update=self.aggregator.ingest, **connection_kwargs)
        self._filters = TrackingFilters()
        self._active_type = TrackingType.FACILITY
        self._configured = False

    @property
    def filters(self) -> TrackingFilters:
        return self._filters

    @property
    def active_tracking_type(self) -> TrackingType:
        return self._active_type

    @property
    def status(self) -> ConnectionStatus:
        return self.connection.status

    def update_filters(
        self,
        campaign_id: Optional[str] = None,
        zone_id: Optional[str] = None,
        team_id: Optional[str] = None,
        enabled: bool = True
    ) -> Tuple[TrackingType, Optional[str]]:
        self._filters = TrackingFilters(campaign_id or None, zone_id or None, team_id or None)
        tracking_type, scope_id = select_tracking_scope(campaign_id, zone_id, team_id)

        if self._configured and tracking_type != self._active_type:
            logger.info(f"(SmartLiveTracker) Switching stream {self._active_type.value} -> {tracking_type.value}; dropping old trails.")
            self.aggregator.clear()
        self._active_type = tracking_type
        self._configured = True
        self.connection.configure(tracking_type, scope_id, enabled)
        return tracking_type, scope_id

    @property
    def movement_trails(self) -> Dict[TrailKey, MovementTrail]:
        f = self._filters
        return filter_trails(self.aggregator.trails, f.zone_id, f.team_id, f.campaign_id)

    @property
    def location_updates(self) -> List[LocationUpdate]:
        f = self._filters
        return filter_updates(self.aggregator.history, f.zone_id, f.team_id, f.campaign_id)

    def snapshot(self) -> LiveTrackingSnapshot:
        return LiveTrackingSnapshot(
            trails=self.movement_trails,
            updates=tuple(self.location_updates),
            status=self.connection.status,
            active_tracking_type=self._active_type,
            filters=self._filters,
        )

    def reconnect(self) -> None:
        self.connection.reconnect()

    def clear_trails(self) -> None:
        self.aggregator.clear()

    def teardown(self) -> None:
        self.connection.teardown()

    async def aclose(self) -> None:
        await self.connection.aclose()
