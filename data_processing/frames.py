# fieldwatch_project_root/data_processing/frames.py
# Tabular views of live trails and updates for plotting and the event table.

import logging
from typing import Iterable, Mapping

import pandas as pd

from tracking.models import LocationUpdate, MovementTrail, TrailKey

logger = logging.getLogger(__name__)

TRAIL_COLUMNS = ['entity_id', 'entity_name', 'zone_id', 'team_id', 'campaign_id', 'seq', 'lat', 'lng', 'timestamp', 'personality_id', 'personality_name']
UPDATE_COLUMNS = ['timestamp', 'personality_name', 'personality_code', 'team_name', 'zone_name', 'campaign_name', 'lat', 'lng', 'zone_id', 'team_id', 'campaign_id']


def trails_to_frame(trails: Mapping[TrailKey, MovementTrail]) -> pd.DataFrame:
    """One row per trail point, in trail insertion order then arrival order."""
    rows = [
        {
            'entity_id': trail.entity_id, 'entity_name': trail.entity_name,
            'zone_id': trail.zone_id, 'team_id': trail.team_id, 'campaign_id': trail.campaign_id,
            'seq': seq, 'lat': point.lat, 'lng': point.lng, 'timestamp': point.timestamp,
            'personality_id': point.personality.id, 'personality_name': point.personality.full_name,
        }
        for trail in trails.values()
        for seq, point in enumerate(trail.points)
    ]
    if not rows:
        return pd.DataFrame(columns=TRAIL_COLUMNS)
    df = pd.DataFrame(rows, columns=TRAIL_COLUMNS)
    df['timestamp'] = pd.to_datetime(df['timestamp'], errors='coerce', utc=True)
    return df


def updates_to_frame(updates: Iterable[LocationUpdate], newest_first: bool = True) -> pd.DataFrame:
    """Flattens location updates for the live event table."""
    rows = [
        {
            'timestamp': u.timestamp, 'personality_name': u.personality.full_name,
            'personality_code': u.personality.code, 'team_name': u.team.name,
            'zone_name': u.zone.name, 'campaign_name': u.campaign.name,
            'lat': u.location.latitude, 'lng': u.location.longitude,
            'zone_id': u.zone.id, 'team_id': u.team.id, 'campaign_id': u.campaign.id,
        }
        for u in updates
    ]
    if not rows:
        return pd.DataFrame(columns=UPDATE_COLUMNS)
    df = pd.DataFrame(rows, columns=UPDATE_COLUMNS)
    df['timestamp'] = pd.to_datetime(df['timestamp'], errors='coerce', utc=True)
    # Reception order is kept; reversing shows the most recent arrival first.
    return df.iloc[::-1].reset_index(drop=True) if newest_first else df
