# fieldwatch_project_root/visualization/plots.py
# CHART FACTORY - THEME, EMPTY STATES & LIVE ACTIVITY CHARTS

import logging
from typing import Optional

import html
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import plotly.io as pio

from config import settings

logger = logging.getLogger(__name__)

# --- Helper Functions ---
def _hex_to_rgba(hex_color: str, alpha: float) -> str:
    """Converts a hex color string to an rgba string for Plotly compatibility."""
    hex_color = hex_color.lstrip('#')
    if len(hex_color) != 6: return 'rgba(0,0,0,0.1)'
    try:
        rgb = tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))
        return f'rgba({rgb[0]}, {rgb[1]}, {rgb[2]}, {alpha})'
    except ValueError:
        return 'rgba(0,0,0,0.1)'

# --- Theme Setup ---
def set_plotly_theme():
    """Registers the 'fieldwatch' template and makes it the Plotly default."""
    base_layout = {
        'font': {'family': "sans-serif", 'size': 12, 'color': settings.COLOR_TEXT_PRIMARY},
        'title': {'x': 0.5, 'xanchor': 'center', 'font': {'size': 18, 'color': settings.COLOR_PRIMARY}},
        'paper_bgcolor': '#FFFFFF',
        'plot_bgcolor': '#FFFFFF',
        'margin': dict(l=60, r=40, t=60, b=60),
        'legend': dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1, font={'size': 10}),
        'xaxis': {'showgrid': False, 'zeroline': False},
        'yaxis': {'gridcolor': '#e9ecef', 'zeroline': False},
    }
    fieldwatch_template = go.layout.Template(layout=base_layout)
    fieldwatch_template.layout.colorway = settings.TRAIL_COLOR_PALETTE
    pio.templates['fieldwatch'] = fieldwatch_template
    pio.templates.default = 'fieldwatch'
    logger.debug("Custom 'fieldwatch' Plotly theme applied.")

# --- Factory Functions for Charts ---
def create_empty_figure(title: str, message: str = "No data available.") -> go.Figure:
    fig = go.Figure()
    fig.update_layout(
        title_text=f"<b>{html.escape(title)}</b>",
        xaxis={"visible": False}, yaxis={"visible": False},
        annotations=[{"text": html.escape(message), "xref": "paper", "yref": "paper", "showarrow": False, "font": {"size": 14, "color": settings.COLOR_TEXT_MUTED}}]
    )
    return fig

def plot_team_activity(updates_df: pd.DataFrame, title: str = "Updates per Team") -> go.Figure:
    """Horizontal bar of how many location updates each team has sent in the current window."""
    if not isinstance(updates_df, pd.DataFrame) or updates_df.empty:
        return create_empty_figure(title, "No location updates received yet.")
    try:
        counts = (
            updates_df.assign(team_name=updates_df['team_name'].replace('', 'Unknown team'))
            .groupby('team_name').size().reset_index(name='updates')
            .sort_values('updates', ascending=True)
        )
        fig = px.bar(
            counts, x='updates', y='team_name', orientation='h', text_auto=True,
            title=f"<b>{html.escape(title)}</b>", labels={'updates': 'Updates', 'team_name': 'Team'}
        )
        fig.update_traces(marker_color=settings.COLOR_PRIMARY, texttemplate='%{x:,.0f}', textposition='outside')
        fig.update_xaxes(tickformat='d', range=[0, None])
        return fig
    except Exception as e:
        logger.error(f"Failed to create team activity chart '{title}': {e}", exc_info=True)
        return create_empty_figure(title, "Error generating chart.")

def plot_update_timeline(updates_df: pd.DataFrame, title: str = "Update Rate", freq: str = "5min", y_title: Optional[str] = None) -> go.Figure:
    """Updates received per time bucket, oldest on the left."""
    if not isinstance(updates_df, pd.DataFrame) or updates_df.empty:
        return create_empty_figure(title, "No location updates received yet.")
    try:
        series = updates_df.dropna(subset=['timestamp']).set_index('timestamp').sort_index().resample(freq).size()
        if series.empty:
            return create_empty_figure(title, "No timestamped updates.")
        y_title = y_title or f"Updates / {freq}"
        fig = go.Figure(go.Scatter(
            x=series.index, y=series.values, mode='lines+markers',
            line=dict(color=settings.COLOR_PRIMARY, width=3),
            fill='tozeroy', fillcolor=_hex_to_rgba(settings.COLOR_PRIMARY, 0.15),
            hovertemplate=f'<b>%{{x|%H:%M}}</b><br>{html.escape(y_title)}: %{{y:,.0f}}<extra></extra>'
        ))
        fig.update_layout(title_text=f"<b>{html.escape(title)}</b>", yaxis_title=y_title, xaxis_title="Time (UTC)")
        return fig
    except Exception as e:
        logger.error(f"Failed to create timeline chart '{title}': {e}", exc_info=True)
        return create_empty_figure(title, "Error generating chart.")
