# fieldwatch_project_root/visualization/__init__.py
# LIVE MAP, CHARTS & UI COMPONENTS - PACKAGE API

"""
Initializes the visualization package, defining its public API.
This file explicitly exports all public-facing functions from its submodules,
providing a single, consistent import point for the rest of the application.
"""

# --- Core Plotting Functions from plots.py ---
from .plots import (
    set_plotly_theme,
    create_empty_figure,
    plot_team_activity,
    plot_update_timeline,
)

# --- Live Map Builders from maps.py ---
from .maps import (
    Bounds,
    MapMarker,
    MapView,
    TrailPalette,
    ZonePolygon,
    build_trail_markers,
    build_zone_polygons,
    compute_bounds,
    default_view,
    desired_view,
    fit_view,
    plot_live_tracking_map,
)

# --- Custom UI Element Renderers from ui_elements.py ---
from .ui_elements import (
    load_and_inject_css,
    render_kpi_card,
    render_traffic_light_indicator,
    describe_connection_status,
    render_connection_status,
    render_zone_info_card,
)

# --- Define the canonical public API for the package ---
__all__ = [
    # from plots.py
    "set_plotly_theme",
    "create_empty_figure",
    "plot_team_activity",
    "plot_update_timeline",

    # from maps.py
    "Bounds",
    "MapMarker",
    "MapView",
    "TrailPalette",
    "ZonePolygon",
    "build_trail_markers",
    "build_zone_polygons",
    "compute_bounds",
    "default_view",
    "desired_view",
    "fit_view",
    "plot_live_tracking_map",

    # from ui_elements.py
    "load_and_inject_css",
    "render_kpi_card",
    "render_traffic_light_indicator",
    "describe_connection_status",
    "render_connection_status",
    "render_zone_info_card",
]
