# fieldwatch_project_root/data_processing/__init__.py
# REFERENCE DATA & TABULAR VIEWS - PACKAGE API

"""
Initializes the data_processing package, defining its public API.

This file explicitly exports all public-facing names from its submodules,
providing a single, consistent import point for the rest of the application.
"""

# --- REST Client & Entity Models from api_client.py ---
from .api_client import (
    ApiError,
    Campaign,
    FieldApiClient,
    PageResult,
    Team,
    TeamMember,
    UnauthorizedError,
    Zone,
    normalize_pagination,
    parse_page,
)

# --- Accumulating Feeds from pagination.py ---
from .pagination import FeedState, PaginatedFeed

# --- Cascading Selection Cache from reference_cache.py ---
from .reference_cache import FilterState, ReferenceDataCache, search_options

# --- DataFrame Views from frames.py ---
from .frames import trails_to_frame, updates_to_frame


# --- Define the canonical public API for the package ---
__all__ = [
    # api_client.py
    "ApiError",
    "Campaign",
    "FieldApiClient",
    "PageResult",
    "Team",
    "TeamMember",
    "UnauthorizedError",
    "Zone",
    "normalize_pagination",
    "parse_page",

    # pagination.py
    "FeedState",
    "PaginatedFeed",

    # reference_cache.py
    "FilterState",
    "ReferenceDataCache",
    "search_options",

    # frames.py
    "trails_to_frame",
    "updates_to_frame",
]
