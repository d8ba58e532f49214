# fieldwatch_project_root/tracking/__init__.py
# LIVE TRACKING - PACKAGE API

"""
Initializes the tracking package, defining its public API.

The live field-tracking core: stream connection lifecycle, trail
aggregation, and scope selection / client-side filtering.
"""

# From models.py
from .models import (ConnectionState, ConnectionStatus, LocationUpdate,
                     MovementTrail, TrackingType, TrailKey, TrailPoint)

# From aggregator.py
from .aggregator import TrailAggregator

# From connection.py
from .connection import (ConnectionManager, build_stream_url,
                         compute_backoff_delay_ms)

# From selector.py
from .selector import (LiveTrackingSnapshot, SmartLiveTracker, TrackingFilters,
                       filter_trails, filter_updates, resolve_date_window,
                       select_tracking_scope)

# From auth.py
from .auth import read_auth_token

# From runtime.py
from .runtime import BackgroundLoop, LiveTrackingSession

__all__ = [
    # Data contracts
    "ConnectionState",
    "ConnectionStatus",
    "LocationUpdate",
    "MovementTrail",
    "TrackingType",
    "TrailKey",
    "TrailPoint",

    # Aggregation & connection
    "TrailAggregator",
    "ConnectionManager",
    "build_stream_url",
    "compute_backoff_delay_ms",

    # Scope selection & filtering
    "LiveTrackingSnapshot",
    "SmartLiveTracker",
    "TrackingFilters",
    "filter_trails",
    "filter_updates",
    "resolve_date_window",
    "select_tracking_scope",

    # Session plumbing
    "read_auth_token",
    "BackgroundLoop",
    "LiveTrackingSession",
]
