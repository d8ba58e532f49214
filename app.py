# fieldwatch_project_root/app.py
# APPLICATION ENTRY POINT

import logging
import sys
from pathlib import Path
import html

try:
    _project_root = Path(__file__).resolve().parent
    if str(_project_root) not in sys.path:
        sys.path.insert(0, str(_project_root))

    import streamlit as st
    from config import settings
    from tracking import read_auth_token
    from visualization import (load_and_inject_css, render_traffic_light_indicator,
                               set_plotly_theme)

except ImportError as e:
    print(f"FATAL ERROR in app.py: A core module failed to import.", file=sys.stderr)
    print("1. Install the project and its dependencies: `pip install -e .`", file=sys.stderr)
    print("2. Run the app from the project root: `streamlit run app.py`", file=sys.stderr)
    print(f"\nPython Path: {sys.path}\nOriginal ImportError: {e}", file=sys.stderr)
    sys.exit(1)

# --- Global Configuration ---
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format=settings.LOG_FORMAT,
    datefmt=settings.LOG_DATE_FORMAT,
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True
)
logger = logging.getLogger(__name__)

# Frame-level chatter from the websocket and HTTP clients drowns out our own logs.
logging.getLogger("websockets").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


st.set_page_config(
    page_title=f"{settings.APP_NAME} - Start",
    page_icon="🛰️",
    layout="wide", initial_sidebar_state="expanded",
    menu_items={
        "Get Help": f"mailto:{settings.SUPPORT_CONTACT_INFO}",
        "Report a bug": f"mailto:{settings.SUPPORT_CONTACT_INFO}?subject=Bug Report - {settings.APP_NAME} v{settings.APP_VERSION}",
        "About": f"### {settings.APP_NAME} (v{settings.APP_VERSION})\n{settings.APP_FOOTER_TEXT}"
    }
)

load_and_inject_css(settings.STYLE_CSS_PATH)
set_plotly_theme()

# --- Landing: Stream Readiness & Entry Point ---
LIVE_PAGE = "pages/01_Live_Tracking.py"
SCOPE_GUIDE = [
    ("Team", "A single team's agents, wherever they move."),
    ("Zone", "Every team working inside one zone."),
    ("Campaign", "All zones and teams of one campaign."),
    ("Facility", "Everything reported to your facility; used when no filter is set."),
]

st.title(f"🛰️ {settings.APP_NAME}")
st.caption("Real-time positions and movement trails of field teams.")

token_ready = read_auth_token() is not None
ready_col, endpoint_col = st.columns([0.4, 0.6])
with ready_col:
    render_traffic_light_indicator(
        "Authentication token found" if token_ready else "No authentication token",
        "connected" if token_ready else "failed",
        None if token_ready else f"Set {settings.AUTH_TOKEN_ENV_VAR} or write the token to {settings.AUTH_TOKEN_PATH}.",
    )
with endpoint_col:
    st.markdown(f"**REST API:** `{settings.API_BASE_URL}`  \n**Live stream:** `{settings.WS_BASE_URL}`")

with st.container(border=True):
    st.markdown("#### Which stream is opened?")
    st.markdown("The most specific filter wins; changing filters switches the stream without a page reload.")
    for rank, (scope, description) in enumerate(SCOPE_GUIDE, start=1):
        st.markdown(f"{rank}. **{scope}**: {html.escape(description)}")
    if (_project_root / LIVE_PAGE).is_file():
        st.page_link(LIVE_PAGE, label="Open live tracking", icon="➡️", use_container_width=True)
    else:
        st.warning("Live tracking page not found.")

with st.sidebar:
    st.markdown(f"**{html.escape(settings.ORGANIZATION_NAME)}** · v{settings.APP_VERSION}")
    st.markdown(f"Contact: <a href='mailto:{settings.SUPPORT_CONTACT_INFO}'>{settings.SUPPORT_CONTACT_INFO}</a>", unsafe_allow_html=True)
    st.caption(settings.APP_FOOTER_TEXT)

logger.info(f"Landing page loaded (auth token {'present' if token_ready else 'missing'}).")
