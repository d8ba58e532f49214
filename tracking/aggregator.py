# fieldwatch_project_root/tracking/aggregator.py
# LIVE TRACKING - MOVEMENT TRAIL AGGREGATION

import logging
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from config import settings
from .models import LocationUpdate, MovementTrail, TrailKey, TrailPoint

logger = logging.getLogger(__name__)


class TrailAggregator:
    """
    Folds the live `location_update` stream into one ordered trail per
    (zone, team) pair, plus a rolling history of the raw updates.

    Points are kept in arrival order; no reordering by timestamp is done.
    Every mutation publishes fresh immutable snapshots (copy-on-write), so
    `trails` and `history` can be read from any thread at any time.
    """
    def __init__(self, max_points: Optional[int] = None, max_history: Optional[int] = None):
        self.max_points = max_points or settings.TRACKING.trail_max_points
        self.max_history = max_history or settings.TRACKING.history_max_events
        self._trails: Mapping[TrailKey, MovementTrail] = MappingProxyType({})
        self._history: Tuple[LocationUpdate, ...] = ()

    @property
    def trails(self) -> Mapping[TrailKey, MovementTrail]:
        return self._trails

    @property
    def history(self) -> Tuple[LocationUpdate, ...]:
        return self._history

    def ingest(self, update: LocationUpdate) -> MovementTrail:
        """Appends one update to its trail and to the history buffer."""
        key = TrailKey.from_update(update)
        point = TrailPoint.from_update(update)

        existing = self._trails.get(key)
        if existing is None:
            trail = MovementTrail(
                key=key,
                entity_name=f"{update.zone.name} - {update.team.name}",
                campaign_id=update.campaign.id,
                points=(point,),
            )
            logger.debug(f"(TrailAggregator) New trail '{key.entity_id}' ({trail.entity_name}).")
        else:
            points = existing.points + (point,)
            if len(points) > self.max_points:
                points = points[-self.max_points:]
            trail = MovementTrail(key=key, entity_name=existing.entity_name, campaign_id=existing.campaign_id, points=points)

        updated: Dict[TrailKey, MovementTrail] = dict(self._trails)
        updated[key] = trail
        self._trails = MappingProxyType(updated)
        self._history = (self._history + (update,))[-self.max_history:]
        return trail

    def clear(self) -> None:
        if self._trails or self._history:
            logger.info(f"(TrailAggregator) Clearing {len(self._trails)} trails and {len(self._history)} buffered updates.")
        self._trails = MappingProxyType({})
        self._history = ()
