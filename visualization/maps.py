# fieldwatch_project_root/visualization/maps.py
# LIVE MAP - ZONE POLYGONS, TRAIL POLYLINES, MARKERS & AUTO-FIT

"""
Turns reference zones and filtered movement trails into map primitives and a
plotly MapLibre map figure.

The map itself is an external renderer; this module only decides what to
draw (closed zone rings, one polyline per trail, current/start markers), in
which colour, and which region the view should be fitted to.
"""

import html
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import plotly.graph_objects as go

from config import settings
from data_processing.api_client import Zone
from tracking.models import MovementTrail, TrailKey
from .plots import _hex_to_rgba, create_empty_figure

logger = logging.getLogger(__name__)

MERCATOR_MAX_LAT = 85.05112878
TILE_SIZE_PX = 512


# --- Map Primitives ---
@dataclass(frozen=True)
class ZonePolygon:
    zone_id: str
    name: str
    ring: Tuple[Tuple[float, float], ...]  # closed ring of (lng, lat)
    selected: bool = False


@dataclass(frozen=True)
class MapMarker:
    kind: str  # "current" or "start"
    entity_id: str
    lat: float
    lng: float
    label: str
    color: str


@dataclass(frozen=True)
class Bounds:
    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float


@dataclass(frozen=True)
class MapView:
    center_lat: float
    center_lng: float
    zoom: float


class TrailPalette:
    """Assigns each trail key a palette colour on first sight and keeps it."""
    def __init__(self, colors: Optional[Sequence[str]] = None):
        self.colors = list(colors or settings.TRAIL_COLOR_PALETTE)
        self._assigned: Dict[TrailKey, str] = {}

    def color_for(self, key: TrailKey) -> str:
        if key not in self._assigned:
            self._assigned[key] = self.colors[len(self._assigned) % len(self.colors)]
        return self._assigned[key]

    def reset(self) -> None:
        self._assigned.clear()


# --- Geometry Builders ---
def build_zone_polygons(zones: Iterable[Zone], selected_zone_id: Optional[str] = None) -> List[ZonePolygon]:
    polygons = []
    for zone in zones:
        if zone.boundaries is None or not zone.boundaries.coordinates:
            continue
        outer = zone.boundaries.coordinates[0]
        ring = [(float(p[0]), float(p[1])) for p in outer if len(p) >= 2]
        if len(ring) < 3:
            logger.debug(f"(ZonePolygons) Zone '{zone.id}' has a degenerate boundary; skipped.")
            continue
        if ring[0] != ring[-1]:
            ring.append(ring[0])
        polygons.append(ZonePolygon(zone.id, zone.name, tuple(ring), selected=bool(selected_zone_id) and zone.id == selected_zone_id))
    return polygons


def build_trail_markers(trails: Mapping[TrailKey, MovementTrail], palette: TrailPalette) -> List[MapMarker]:
    """A current-position marker per trail, plus a start marker once a trail has two points."""
    markers = []
    for key, trail in trails.items():
        if not trail.points:
            continue
        color = palette.color_for(key)
        last = trail.last_point
        markers.append(MapMarker("current", trail.entity_id, last.lat, last.lng, f"{trail.entity_name} · {last.personality.full_name}", color))
        if len(trail.points) >= 2:
            first = trail.first_point
            markers.append(MapMarker("start", trail.entity_id, first.lat, first.lng, f"{trail.entity_name} · start", color))
    return markers


def compute_bounds(
    polygons: Iterable[ZonePolygon] = (),
    trails: Optional[Mapping[TrailKey, MovementTrail]] = None
) -> Optional[Bounds]:
    lats: List[float] = []
    lngs: List[float] = []
    for polygon in polygons:
        lngs.extend(p[0] for p in polygon.ring)
        lats.extend(p[1] for p in polygon.ring)
    for trail in (trails or {}).values():
        lats.extend(p.lat for p in trail.points)
        lngs.extend(p.lng for p in trail.points)
    if not lats:
        return None
    lat_arr, lng_arr = np.asarray(lats, dtype=float), np.asarray(lngs, dtype=float)
    return Bounds(float(lat_arr.min()), float(lng_arr.min()), float(lat_arr.max()), float(lng_arr.max()))


def _mercator_y(lat: float) -> float:
    lat = float(np.clip(lat, -MERCATOR_MAX_LAT, MERCATOR_MAX_LAT))
    return float(np.log(np.tan(np.pi / 4 + np.radians(lat) / 2)))


def _inverse_mercator_y(y: float) -> float:
    return float(np.degrees(2 * np.arctan(np.exp(y)) - np.pi / 2))


def fit_view(
    bounds: Bounds,
    width_px: Optional[int] = None,
    height_px: Optional[int] = None,
    padding_px: Optional[int] = None,
    max_zoom: Optional[float] = None
) -> MapView:
    """Center and zoom that fit `bounds` inside the viewport minus padding on every side."""
    width_px = width_px or settings.MAP_WIDTH_PX
    height_px = height_px or settings.MAP_HEIGHT_PX
    padding_px = settings.MAP_FIT_PADDING_PX if padding_px is None else padding_px
    max_zoom = max_zoom or settings.MAP_MAX_ZOOM

    y_min, y_max = _mercator_y(bounds.min_lat), _mercator_y(bounds.max_lat)
    center_lat = _inverse_mercator_y((y_min + y_max) / 2)
    center_lng = (bounds.min_lng + bounds.max_lng) / 2

    usable_w = max(width_px - 2 * padding_px, 1)
    usable_h = max(height_px - 2 * padding_px, 1)
    lng_fraction = (bounds.max_lng - bounds.min_lng) / 360.0
    lat_fraction = (y_max - y_min) / (2 * np.pi)

    zooms = [max_zoom]
    if lng_fraction > 0:
        zooms.append(np.log2(usable_w / TILE_SIZE_PX / lng_fraction))
    if lat_fraction > 0:
        zooms.append(np.log2(usable_h / TILE_SIZE_PX / lat_fraction))
    zoom = float(np.clip(min(zooms), 0.0, max_zoom))
    return MapView(center_lat=center_lat, center_lng=center_lng, zoom=zoom)


def default_view() -> MapView:
    return MapView(settings.MAP_DEFAULT_CENTER[0], settings.MAP_DEFAULT_CENTER[1], float(settings.MAP_DEFAULT_ZOOM))


def desired_view(
    polygons: Sequence[ZonePolygon],
    trails: Optional[Mapping[TrailKey, MovementTrail]],
    show_trails: bool = True,
    width_px: Optional[int] = None,
    height_px: Optional[int] = None
) -> MapView:
    """Fits zones plus trail points while trails are shown; zone bounds alone otherwise."""
    bounds = compute_bounds(polygons, trails if show_trails else None)
    if bounds is None:
        return default_view()
    return fit_view(bounds, width_px, height_px)


# --- Figure Factory ---
def plot_live_tracking_map(
    polygons: Sequence[ZonePolygon],
    trails: Mapping[TrailKey, MovementTrail],
    palette: TrailPalette,
    show_trails: bool = True,
    view: Optional[MapView] = None,
    title: str = "Live Field Tracking"
) -> go.Figure:
    if not polygons and not trails:
        fig = create_empty_figure(title, "No zones or live positions to display yet.")
        fig.update_layout(height=settings.MAP_HEIGHT_PX)
        return fig
    try:
        fig = go.Figure()
        for polygon in polygons:
            outline = settings.COLOR_ZONE_SELECTED if polygon.selected else settings.COLOR_ZONE_OUTLINE
            fig.add_trace(go.Scattermap(
                lon=[p[0] for p in polygon.ring], lat=[p[1] for p in polygon.ring],
                mode='lines', fill='toself',
                fillcolor=_hex_to_rgba(settings.COLOR_ZONE_FILL, 0.35 if polygon.selected else 0.15),
                line=dict(color=outline, width=3 if polygon.selected else 1.5),
                name=polygon.name, hoverinfo='text', text=html.escape(polygon.name), showlegend=False,
            ))

        if show_trails:
            for key, trail in trails.items():
                color = palette.color_for(key)
                fig.add_trace(go.Scattermap(
                    lon=[p.lng for p in trail.points], lat=[p.lat for p in trail.points],
                    mode='lines', line=dict(color=color, width=3),
                    name=trail.entity_name, hoverinfo='name',
                ))
            markers = build_trail_markers(trails, palette)
            for kind, size, symbol in (("start", 9, "circle"), ("current", 14, "circle")):
                subset = [m for m in markers if m.kind == kind]
                if not subset:
                    continue
                fig.add_trace(go.Scattermap(
                    lon=[m.lng for m in subset], lat=[m.lat for m in subset],
                    mode='markers', marker=dict(size=size, color=[m.color for m in subset], symbol=symbol),
                    text=[html.escape(m.label) for m in subset], hoverinfo='text',
                    name="Current position" if kind == "current" else "Trail start", showlegend=False,
                ))

        view = view or desired_view(polygons, trails, show_trails)
        fig.update_layout(
            title_text=f"<b>{html.escape(title)}</b>", height=settings.MAP_HEIGHT_PX,
            margin={"r": 0, "t": 40, "l": 0, "b": 0}, showlegend=bool(show_trails and trails),
            map=dict(style=settings.MAP_STYLE,
                     center={"lat": view.center_lat, "lon": view.center_lng}, zoom=view.zoom),
        )
        return fig
    except Exception as e:
        logger.error(f"Failed to create live tracking map '{title}': {e}", exc_info=True)
        return create_empty_figure(title, "Error generating map.")
