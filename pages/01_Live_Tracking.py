# fieldwatch_project_root/pages/01_Live_Tracking.py
# LIVE FIELD TRACKING - CASCADING FILTERS, LIVE MAP & UPDATE FEED

import html
import logging
from typing import Dict, List

import streamlit as st

from config import settings
from data_processing import (ApiError, FieldApiClient, ReferenceDataCache,
                             TeamMember, UnauthorizedError, search_options,
                             trails_to_frame, updates_to_frame)
from tracking import LiveTrackingSession, filter_updates, resolve_date_window
from visualization import (TrailPalette, build_zone_polygons,
                           load_and_inject_css, plot_live_tracking_map,
                           plot_team_activity, plot_update_timeline,
                           render_connection_status, render_kpi_card,
                           render_zone_info_card)

# --- Page Setup ---
st.set_page_config(page_title="Live Tracking", page_icon="🛰️", layout="wide")
load_and_inject_css(settings.STYLE_CSS_PATH)
logger = logging.getLogger(__name__)

FETCH_TIMEOUT_S = settings.API_TIMEOUT_SECONDS * 2
SELECT_KEYS = {"campaigns": "lt_campaign", "zones": "lt_zone", "teams": "lt_team"}
ALL_LABELS = {"campaigns": "All campaigns", "zones": "All zones", "teams": "All teams"}


# --- Per-Browser-Session Resources ---
def _get_session() -> LiveTrackingSession:
    if "lt_session" not in st.session_state:
        st.session_state.lt_session = LiveTrackingSession()
        logger.info("Started live tracking session.")
    return st.session_state.lt_session


def _get_cache() -> ReferenceDataCache:
    if "lt_cache" not in st.session_state:
        st.session_state.lt_cache = ReferenceDataCache(FieldApiClient())
    return st.session_state.lt_cache


def _get_palette() -> TrailPalette:
    if "lt_palette" not in st.session_state:
        st.session_state.lt_palette = TrailPalette()
    return st.session_state.lt_palette


# --- Widget Callbacks (run before the script body) ---
def _on_campaign_change():
    _get_cache().select_campaign(st.session_state[SELECT_KEYS["campaigns"]])
    st.session_state[SELECT_KEYS["zones"]] = ""
    st.session_state[SELECT_KEYS["teams"]] = ""


def _on_zone_change():
    _get_cache().select_zone(st.session_state[SELECT_KEYS["zones"]])
    st.session_state[SELECT_KEYS["teams"]] = ""


def _on_team_change():
    _get_cache().select_team(st.session_state[SELECT_KEYS["teams"]])


def _on_date_change():
    _get_cache().select_date(st.session_state.lt_date)


def _end_session():
    """Closes this browser session's socket, API client and background loop."""
    session = st.session_state.pop("lt_session", None)
    cache = st.session_state.pop("lt_cache", None)
    for key in (*SELECT_KEYS.values(), "lt_date", "lt_members"):
        st.session_state.pop(key, None)
    st.session_state.lt_ended = True
    if session is None:
        return
    try:
        if cache is not None:
            session.run(cache.client.aclose(), timeout=FETCH_TIMEOUT_S)
    except TimeoutError:
        logger.warning("API client did not close before the live session ended.")
    finally:
        session.close()
    logger.info("Ended live tracking session.")


def _resume_session():
    st.session_state.lt_ended = False


def _sync_reference_data(session: LiveTrackingSession, cache: ReferenceDataCache) -> None:
    try:
        session.run(cache.sync(), timeout=FETCH_TIMEOUT_S)
    except UnauthorizedError:
        st.error("🔒 Your session is not authorized. Sign in again to refresh the authentication token.")
    except ApiError as e:
        st.error(f"Could not load filter options: {e}")
    except TimeoutError:
        st.warning("⏳ Filter options are taking too long to load; showing what is already cached.")


def _render_filter(cache: ReferenceDataCache, kind: str, label: str, on_change) -> None:
    feed = cache.feed(kind)
    query = st.text_input(f"Search {label.lower()}", key=f"{SELECT_KEYS[kind]}_q", placeholder="Type to filter…")
    options = search_options(cache.options(kind), query)
    labels: Dict[str, str] = {"": ALL_LABELS[kind], **dict(options)}
    key = SELECT_KEYS[kind]
    if st.session_state.get(key, "") not in labels:
        # Keep the current selection visible even when the search hides it.
        labels[st.session_state[key]] = dict(cache.options(kind)).get(st.session_state[key], st.session_state[key])
    st.selectbox(label, options=list(labels), format_func=labels.get, key=key, on_change=on_change, disabled=feed.state.is_loading)
    if feed.state.error:
        st.caption(f"⚠️ {feed.state.error}")
    if feed.has_more:
        st.button(
            f"Load more {label.lower()}", key=f"{key}_more", use_container_width=True,
            on_click=cache.load_more, args=(kind,), disabled=feed.state.is_fetching
        )


def _team_members(session: LiveTrackingSession, cache: ReferenceDataCache, team_id: str) -> List[TeamMember]:
    members_cache = st.session_state.setdefault("lt_members", {})
    if team_id not in members_cache:
        try:
            members_cache[team_id] = session.run(cache.client.fetch_team_members(team_id), timeout=FETCH_TIMEOUT_S)
        except ApiError as e:
            st.warning(f"Could not load team members: {e}")
            return []
        except TimeoutError:
            st.warning("⏳ Team members are taking too long to load.")
            return []
    return members_cache[team_id]


# --- Main Page Logic ---
if st.session_state.get("lt_ended"):
    st.title("🛰️ Live Field Tracking")
    st.info("Live tracking session ended. The stream connection is closed.")
    st.button("Start a new session", on_click=_resume_session, type="primary")
    st.stop()

session = _get_session()
cache = _get_cache()
st.session_state.setdefault(SELECT_KEYS["campaigns"], cache.filters.selected_campaign)
st.session_state.setdefault(SELECT_KEYS["zones"], cache.filters.selected_zone)
st.session_state.setdefault(SELECT_KEYS["teams"], cache.filters.selected_team)
st.session_state.setdefault("lt_date", cache.filters.selected_date)

_sync_reference_data(session, cache)

with st.sidebar:
    st.header("🛰️ Live Filters")
    date_labels = {opt.option_id: opt.label for opt in settings.DATE_OPTIONS}
    st.selectbox("Date", options=list(date_labels), format_func=date_labels.get, key="lt_date", on_change=_on_date_change)
    _render_filter(cache, "campaigns", "Campaign", _on_campaign_change)
    _render_filter(cache, "zones", "Zone", _on_zone_change)
    _render_filter(cache, "teams", "Team", _on_team_change)
    st.divider()
    live_enabled = st.toggle("Live tracking", value=True, key="lt_enabled")
    show_trails = st.toggle("Show trails", value=True, key="lt_show_trails")
    col_a, col_b = st.columns(2)
    col_a.button("Reconnect", on_click=session.reconnect, use_container_width=True, disabled=not live_enabled)
    col_b.button("Clear trails", on_click=session.clear_trails, use_container_width=True)
    st.button("End session", on_click=_end_session, use_container_width=True, help="Closes the live stream for this browser tab.")

filters = cache.filters
tracking_type, scope_id = session.update_filters(filters.selected_campaign, filters.selected_zone, filters.selected_team, enabled=live_enabled)

st.title("🛰️ Live Field Tracking")
st.caption(f"Streaming **{html.escape(tracking_type.value)}** positions{f' for `{html.escape(scope_id)}`' if scope_id else ' facility-wide'}.")

if filters.selected_zone:
    zone = cache.zone_by_id(filters.selected_zone)
    if zone is not None:
        team = cache.team_for_zone(zone.id)
        members = _team_members(session, cache, team.id) if team is not None else []
        with st.expander(f"Zone details: {zone.label}", expanded=False):
            render_zone_info_card(zone, team, members)


@st.fragment(run_every=settings.LIVE_REFRESH_SECONDS)
def render_live_panel():
    snap = session.snapshot()
    render_connection_status(snap.status)

    window = resolve_date_window(st.session_state.lt_date)
    updates = filter_updates(snap.updates, window=window)
    updates_df = updates_to_frame(updates)

    kpi_cols = st.columns(4)
    with kpi_cols[0]: render_kpi_card("Active Trails", len(snap.trails), icon="🧭", help_text="Zone/team trails in the current selection.")
    with kpi_cols[1]: render_kpi_card("Updates in Window", len(updates), icon="📍", help_text="Location updates received in the selected date window.")
    with kpi_cols[2]: render_kpi_card("Field Agents", updates_df['personality_name'].nunique() if not updates_df.empty else 0, icon="👥")
    with kpi_cols[3]: render_kpi_card("Reconnect Attempts", snap.status.reconnect_attempts, unit=f" / {settings.TRACKING.max_reconnect_attempts}", icon="🔁", status_level="failed" if snap.status.error else None)

    polygons = build_zone_polygons(cache.zone_objects, filters.selected_zone)
    st.plotly_chart(plot_live_tracking_map(polygons, snap.trails, _get_palette(), show_trails=show_trails), use_container_width=True)

    feed_tab, trail_tab, team_tab, rate_tab = st.tabs(["📋 Update Feed", "🧭 Trails", "👥 Team Activity", "📈 Update Rate"])
    with feed_tab:
        if updates_df.empty:
            st.info("No location updates in the selected window yet.")
        else:
            st.dataframe(
                updates_df[['timestamp', 'personality_name', 'team_name', 'zone_name', 'campaign_name', 'lat', 'lng']],
                use_container_width=True, hide_index=True,
                column_config={
                    "timestamp": st.column_config.DatetimeColumn("Time (UTC)", format="YYYY-MM-DD HH:mm:ss"),
                    "personality_name": "Agent", "team_name": "Team", "zone_name": "Zone", "campaign_name": "Campaign",
                    "lat": st.column_config.NumberColumn("Lat", format="%.5f"),
                    "lng": st.column_config.NumberColumn("Lng", format="%.5f"),
                }
            )
    with trail_tab:
        trails_df = trails_to_frame(snap.trails)
        if trails_df.empty:
            st.info("No movement trails for the current selection yet.")
        else:
            summary = trails_df.groupby(['entity_id', 'entity_name'], sort=False).agg(
                points=('seq', 'size'), last_seen=('timestamp', 'max'),
                last_agent=('personality_name', 'last'), lat=('lat', 'last'), lng=('lng', 'last'),
            ).reset_index()
            st.dataframe(
                summary.drop(columns=['entity_id']), use_container_width=True, hide_index=True,
                column_config={
                    "entity_name": "Trail", "points": "Points", "last_agent": "Last Agent",
                    "last_seen": st.column_config.DatetimeColumn("Last Seen (UTC)", format="YYYY-MM-DD HH:mm:ss"),
                    "lat": st.column_config.NumberColumn("Lat", format="%.5f"),
                    "lng": st.column_config.NumberColumn("Lng", format="%.5f"),
                }
            )
    with team_tab:
        st.plotly_chart(plot_team_activity(updates_df), use_container_width=True)
    with rate_tab:
        st.plotly_chart(plot_update_timeline(updates_df), use_container_width=True)


render_live_panel()

st.divider()
st.caption(settings.APP_FOOTER_TEXT)
