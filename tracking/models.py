# fieldwatch_project_root/tracking/models.py
# LIVE TRACKING - STREAM PAYLOADS, TRAILS & CONNECTION SNAPSHOTS

"""
Typed data contracts for the live field-tracking subsystem.

Inbound stream frames are validated into frozen pydantic models; everything
the aggregator and connection manager hand to readers (trails, points,
connection status) is an immutable value so that a render running on another
thread can never observe a half-applied update.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

LOCATION_UPDATE_TYPE = "location_update"


class TrackingType(str, Enum):
    FACILITY = "facility"
    CAMPAIGN = "campaign"
    ZONE = "zone"
    TEAM = "team"


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECT_SCHEDULED = "reconnect_scheduled"
    FAILED = "failed"


# --- Stream Payload Models ---
class _StreamModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra='ignore')


class LocationPoint(_StreamModel):
    type: str = "Point"
    coordinates: Tuple[float, float]  # [longitude, latitude]

    @property
    def longitude(self) -> float: return self.coordinates[0]

    @property
    def latitude(self) -> float: return self.coordinates[1]


class PersonalityInfo(_StreamModel):
    id: str
    first_name: str = ""
    last_name: str = ""
    code: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.code or self.id


class TeamInfo(_StreamModel):
    id: str
    name: str = ""
    code: str = ""
    team_lead_id: Optional[str] = None
    members_count: int = 0


class CampaignInfo(_StreamModel):
    id: str
    name: str = ""
    status: str = ""


class ZoneInfo(_StreamModel):
    id: str
    name: str = ""
    code: str = ""


class FacilityInfo(_StreamModel):
    id: str
    name: str = ""


class LocationUpdate(_StreamModel):
    """A single `location_update` frame as pushed by the live tracking stream."""
    type: str = LOCATION_UPDATE_TYPE
    timestamp: str
    location: LocationPoint
    personality: PersonalityInfo
    team: TeamInfo
    campaign: CampaignInfo
    zone: ZoneInfo
    facility: FacilityInfo = Field(default_factory=lambda: FacilityInfo(id=""))


# --- Trail Value Objects ---
@dataclass(frozen=True)
class TrailKey:
    """Composite (zone, team) identity of a movement trail."""
    zone_id: str
    team_id: str

    @property
    def entity_id(self) -> str:
        return f"{self.zone_id}_{self.team_id}"

    @classmethod
    def from_update(cls, update: LocationUpdate) -> 'TrailKey':
        return cls(zone_id=update.zone.id, team_id=update.team.id)


@dataclass(frozen=True)
class TrailPoint:
    lat: float
    lng: float
    timestamp: str
    personality: PersonalityInfo

    @classmethod
    def from_update(cls, update: LocationUpdate) -> 'TrailPoint':
        return cls(
            lat=update.location.latitude,
            lng=update.location.longitude,
            timestamp=update.timestamp,
            personality=update.personality,
        )


@dataclass(frozen=True)
class MovementTrail:
    key: TrailKey
    entity_name: str
    campaign_id: str = ""
    points: Tuple[TrailPoint, ...] = field(default_factory=tuple)

    @property
    def entity_id(self) -> str: return self.key.entity_id

    @property
    def zone_id(self) -> str: return self.key.zone_id

    @property
    def team_id(self) -> str: return self.key.team_id

    @property
    def last_point(self) -> Optional[TrailPoint]:
        return self.points[-1] if self.points else None

    @property
    def first_point(self) -> Optional[TrailPoint]:
        return self.points[0] if self.points else None


# --- Connection Snapshot ---
@dataclass(frozen=True)
class ConnectionStatus:
    state: ConnectionState = ConnectionState.IDLE
    error: Optional[str] = None
    reconnect_attempts: int = 0
    tracking_type: Optional[TrackingType] = None
    scope_id: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED
