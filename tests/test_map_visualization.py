# fieldwatch_project_root/tests/test_map_visualization.py
# LIVE MAP PRIMITIVES, AUTO-FIT & FIGURE TESTS

import math

import plotly.graph_objects as go
import pytest

from config import settings
from tracking import TrailAggregator, TrailKey
from visualization import (Bounds, TrailPalette, build_trail_markers,
                           build_zone_polygons, compute_bounds, default_view,
                           desired_view, fit_view, plot_live_tracking_map,
                           set_plotly_theme)

# Fixtures are sourced from conftest.py

@pytest.fixture(scope="module", autouse=True)
def apply_theme():
    set_plotly_theme()


@pytest.fixture
def trails(make_update):
    agg = TrailAggregator()
    agg.ingest(make_update(zone="Z1", team="T1", lng=9.670, lat=4.070))
    agg.ingest(make_update(zone="Z1", team="T1", lng=9.675, lat=4.072))
    agg.ingest(make_update(zone="Z2", team="T2", lng=9.700, lat=4.050))
    return agg.trails


# --- Geometry Tests ---
def test_zone_rings_are_closed_and_selection_flagged(zones):
    polygons = build_zone_polygons(zones, selected_zone_id="Z2")
    assert [p.zone_id for p in polygons] == ["Z1", "Z2"]  # Z3 has no boundary
    for polygon in polygons:
        assert polygon.ring[0] == polygon.ring[-1]
        assert len(polygon.ring) == 5
    assert [p.selected for p in polygons] == [False, True]
    assert not any(p.selected for p in build_zone_polygons(zones))


def test_palette_colours_are_stable_and_cycle():
    palette = TrailPalette(["#111111", "#222222"])
    a, b, c = TrailKey("Z1", "T1"), TrailKey("Z1", "T2"), TrailKey("Z2", "T1")
    assert palette.color_for(a) == "#111111"
    assert palette.color_for(b) == "#222222"
    assert palette.color_for(c) == "#111111"
    assert palette.color_for(a) == "#111111"


def test_markers_mark_current_and_start_positions(trails):
    markers = build_trail_markers(trails, TrailPalette())
    by_kind = [(m.entity_id, m.kind) for m in markers]
    assert by_kind == [("Z1_T1", "current"), ("Z1_T1", "start"), ("Z2_T2", "current")]
    current = markers[0]
    assert (current.lat, current.lng) == (4.072, 9.675)
    assert "Awa Nkem" in current.label
    assert markers[0].color == markers[1].color != markers[2].color


def test_bounds_cover_zones_and_trails(zones, trails):
    polygons = build_zone_polygons(zones)
    bounds = compute_bounds(polygons, trails)
    assert bounds == Bounds(min_lat=4.04, min_lng=9.66, max_lat=4.08, max_lng=9.71)
    assert compute_bounds([], {}) is None
    assert compute_bounds([], trails) == Bounds(4.05, 9.67, 4.072, 9.70)


# --- Auto-Fit Tests ---
def test_fit_view_zoom_matches_padded_viewport():
    span = 360.0 / 2 ** 10
    view = fit_view(Bounds(0.0, 10.0, 0.0, 10.0 + span), width_px=612, height_px=400, padding_px=50)
    # 512 usable pixels for a 1/1024 slice of the world at 512px tiles.
    assert view.zoom == pytest.approx(10.0)
    assert view.center_lng == pytest.approx(10.0 + span / 2)
    assert view.center_lat == pytest.approx(0.0)


def test_fit_view_more_padding_means_less_zoom():
    bounds = Bounds(4.04, 9.66, 4.08, 9.71)
    tight = fit_view(bounds, 1100, 640, padding_px=0)
    padded = fit_view(bounds, 1100, 640, padding_px=50)
    assert padded.zoom < tight.zoom
    assert padded.center_lat == pytest.approx(4.06, abs=1e-3)


def test_fit_view_single_point_uses_max_zoom():
    view = fit_view(Bounds(4.05, 9.7, 4.05, 9.7), max_zoom=17.0)
    assert view.zoom == 17.0
    assert (view.center_lat, view.center_lng) == pytest.approx((4.05, 9.7))


def test_desired_view_ignores_trails_when_hidden(zones, trails):
    polygons = build_zone_polygons(zones[:1])
    with_trails = desired_view(polygons, trails, show_trails=True)
    zones_only = desired_view(polygons, trails, show_trails=False)
    assert zones_only == fit_view(compute_bounds(polygons))
    assert with_trails.zoom <= zones_only.zoom
    assert desired_view([], {}, show_trails=True) == default_view()
    assert default_view().center_lat == settings.MAP_DEFAULT_CENTER[0]


# --- Figure Tests ---
def test_live_map_figure_structure(zones, trails):
    palette = TrailPalette()
    fig = plot_live_tracking_map(build_zone_polygons(zones, "Z1"), trails, palette)
    assert isinstance(fig, go.Figure)
    types = [trace.type for trace in fig.data]
    assert all(t == "scattermap" for t in types)
    # 2 zones + 2 trail lines + start markers + current markers
    assert len(fig.data) == 6
    assert fig.data[0].fill == "toself"
    assert fig.data[2].line.color == palette.color_for(TrailKey("Z1", "T1"))
    assert fig.layout.map.style == settings.MAP_STYLE
    assert math.isfinite(fig.layout.map.zoom)


def test_live_map_without_trails_draws_only_zones(zones, trails):
    fig = plot_live_tracking_map(build_zone_polygons(zones), trails, TrailPalette(), show_trails=False)
    assert len(fig.data) == 2


def test_live_map_empty_state():
    fig = plot_live_tracking_map([], {}, TrailPalette())
    assert len(fig.data) == 0
    assert "No zones or live positions" in fig.layout.annotations[0].text
