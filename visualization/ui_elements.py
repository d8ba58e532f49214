# fieldwatch_project_root/visualization/ui_elements.py
# THEME-AWARE UI COMPONENTS - KPI CARDS, CONNECTION LIGHT & ZONE CARD

import html
import logging
from pathlib import Path
from typing import Any, Optional, Sequence, Tuple, Union

import pandas as pd
import streamlit as st

from config import settings
from data_processing.api_client import Team, TeamMember, Zone
from tracking.models import ConnectionState, ConnectionStatus

logger = logging.getLogger(__name__)

_STATUS_LEVELS = {
    ConnectionState.CONNECTED: ("connected", "Live"),
    ConnectionState.CONNECTING: ("connecting", "Connecting…"),
    ConnectionState.RECONNECT_SCHEDULED: ("connecting", "Reconnecting…"),
    ConnectionState.DISCONNECTED: ("failed", "Disconnected"),
    ConnectionState.FAILED: ("failed", "Connection failed"),
    ConnectionState.IDLE: ("idle", "Not tracking"),
}


@st.cache_resource
def load_and_inject_css(css_path: Union[str, Path]):
    """Loads a CSS file and injects it into the Streamlit application."""
    path = Path(css_path)
    if not path.is_file():
        logger.warning(f"CSS file not found at: {path}. UI may not be styled correctly.")
        return
    try:
        with path.open("r", encoding="utf-8") as f:
            st.markdown(f'<style>{f.read()}</style>', unsafe_allow_html=True)
        logger.debug(f"Successfully loaded and injected CSS from {path}.")
    except OSError as e:
        logger.error(f"Error loading CSS from {path}: {e}", exc_info=True)


def _format_value(value: Any) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return "N/A"
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.2f}"
    if isinstance(value, (int, float)):
        return f"{int(value):,}"
    return str(value)


def render_kpi_card(
    title: str,
    value: Any,
    unit: str = "",
    status_level: Optional[str] = None,
    help_text: Optional[str] = None,
    icon: str = "📍"
) -> None:
    """
    Renders a rich, custom HTML KPI card in Streamlit.
    """
    status_class = f"status-{status_level.lower().replace('_', '-')}" if status_level else ""
    tooltip_attr = f'title="{html.escape(help_text)}"' if help_text else ""
    unit_html = f'<span class="kpi-units">{html.escape(unit)}</span>' if unit else ""

    card_html = f"""
    <div class="kpi-card {status_class}" {tooltip_attr}>
        <div class="kpi-header">
            <span class="kpi-icon">{html.escape(icon)}</span>
            <div class="kpi-title">{html.escape(title)}</div>
        </div>
        <div class="kpi-body">
            <p class="kpi-value">{html.escape(_format_value(value))}{unit_html}</p>
        </div>
    </div>
    """
    st.markdown(card_html, unsafe_allow_html=True)


def render_traffic_light_indicator(
    message: str,
    status_level: str,
    details: Optional[str] = None
) -> None:
    """Renders a custom HTML traffic light status indicator."""
    status_class = f"status-{status_level.lower().replace('_', '-')}"
    details_html = f'<div class="traffic-light-details">{html.escape(details)}</div>' if details else ""

    indicator_html = f"""
    <div class="traffic-light-indicator">
        <div class="traffic-light-dot {status_class}"></div>
        <div class="traffic-light-message">{html.escape(message)}</div>
        {details_html}
    </div>
    """
    st.markdown(indicator_html, unsafe_allow_html=True)


def describe_connection_status(status: ConnectionStatus, max_attempts: Optional[int] = None) -> Tuple[str, str, Optional[str]]:
    """Maps a connection snapshot to (status level, headline, details) for the indicator."""
    level, message = _STATUS_LEVELS.get(status.state, ("idle", status.state.value))
    parts = []
    if status.tracking_type is not None:
        scope = f" {status.scope_id}" if status.scope_id else ""
        parts.append(f"Tracking {status.tracking_type.value}{scope}")
    if status.state in (ConnectionState.RECONNECT_SCHEDULED, ConnectionState.CONNECTING) and status.reconnect_attempts:
        limit = max_attempts or settings.TRACKING.max_reconnect_attempts
        parts.append(f"attempt {status.reconnect_attempts}/{limit}")
    if status.error:
        parts.append(status.error)
    return level, message, " · ".join(parts) or None


def render_connection_status(status: ConnectionStatus) -> None:
    level, message, details = describe_connection_status(status)
    render_traffic_light_indicator(message, level, details)


def render_zone_info_card(zone: Zone, team: Optional[Team] = None, members: Sequence[TeamMember] = ()) -> None:
    """Zone summary with the assigned team, its lead and members."""
    rows = [f'<div class="zone-card-title">{html.escape(zone.label)}</div>']
    if zone.campaign is not None and zone.campaign.name:
        rows.append(f'<div class="zone-card-row"><b>Campaign:</b> {html.escape(zone.campaign.name)}</div>')
    if zone.description:
        rows.append(f'<div class="zone-card-desc">{html.escape(zone.description)}</div>')
    if team is None:
        rows.append('<div class="zone-card-muted">No team assigned to this zone.</div>')
    else:
        rows.append(f'<div class="zone-card-row"><b>Team:</b> {html.escape(team.label)}</div>')
        if team.team_lead is not None:
            rows.append(f'<div class="zone-card-row"><b>Lead:</b> {html.escape(team.team_lead.full_name)}</div>')
        if members:
            items = "".join(
                f"<li>{html.escape(m.full_name)}{' (' + html.escape(m.role) + ')' if m.role else ''}</li>"
                for m in members
            )
            rows.append(f'<ul class="zone-card-members">{items}</ul>')
    st.markdown(f'<div class="zone-card">{"".join(rows)}</div>', unsafe_allow_html=True)
