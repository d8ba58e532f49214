# fieldwatch_project_root/config/settings.py
# CENTRALIZED CONFIGURATION HUB - LIVE FIELD TRACKING

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

settings_logger = logging.getLogger(__name__)

# --- Nested Models for Structured Configuration ---
class TrackingConfig(BaseModel):
    trail_max_points: int = 500; history_max_events: int = 1000
    max_reconnect_attempts: int = 5; stability_threshold_ms: int = 5000
    backoff_base_ms: int = 1000; backoff_max_ms: int = 30000
    ping_interval_s: Optional[float] = 20.0; ping_timeout_s: Optional[float] = 20.0
    max_message_size: int = 1_000_000

class PaginationConfig(BaseModel):
    campaign_page_size: int = 20; zone_page_size: int = 20; team_page_size: int = 20

class DateOptionConfig(BaseModel):
    option_id: str
    label: str

# --- Main Settings Class ---
class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix='FIELDWATCH_', case_sensitive=False, env_file='.env', env_file_encoding='utf-8', extra='ignore')

    PROJECT_ROOT_DIR: Path = Path(__file__).resolve().parent.parent
    APP_NAME: str = "FieldWatch Live Tracking"; APP_VERSION: str = "1.0.0"
    ORGANIZATION_NAME: str = "Dappa Health Field Operations"; SUPPORT_CONTACT_INFO: str = "support@dappahealth.eu"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

    ASSETS_DIR: Path; STYLE_CSS_PATH: Path; AUTH_TOKEN_PATH: Path

    @model_validator(mode='before')
    @classmethod
    def set_default_paths(cls, values: Any) -> Any:
        if isinstance(values, dict):
            root = Path(values.get('PROJECT_ROOT_DIR', Path(__file__).resolve().parent.parent))
            assets = root / "assets"
            values.setdefault('ASSETS_DIR', assets); values.setdefault('STYLE_CSS_PATH', assets / "style_live_tracking.css")
            values.setdefault('AUTH_TOKEN_PATH', Path.home() / ".fieldwatch" / "authToken")
        return values

    # --- Upstream API & Auth ---
    API_BASE_URL: str = "https://api.dappahealth.eu/dappa"
    API_TIMEOUT_SECONDS: float = 15.0
    AUTH_TOKEN_ENV_VAR: str = Field("FIELDWATCH_AUTH_TOKEN", description="Read fresh at every connect; takes precedence over AUTH_TOKEN_PATH")

    @computed_field
    @property
    def WS_BASE_URL(self) -> str:
        return self.API_BASE_URL.replace("https://", "wss://").replace("http://", "ws://")

    LIVE_ENDPOINTS: Dict[str, str] = {
        "facility": "/track/live/facility",
        "campaign": "/track/live/campaign",
        "zone": "/track/live/zone",
        "team": "/track/live/team",
    }

    TRACKING: TrackingConfig = TrackingConfig(); PAGINATION: PaginationConfig = PaginationConfig()

    DATE_OPTIONS: List[DateOptionConfig] = [
        DateOptionConfig(option_id="today", label="Today"),
        DateOptionConfig(option_id="yesterday", label="Yesterday"),
        DateOptionConfig(option_id="last7days", label="Last 7 Days"),
        DateOptionConfig(option_id="last30days", label="Last 30 Days"),
        DateOptionConfig(option_id="thismonth", label="This Month"),
    ]
    DEFAULT_DATE_OPTION: str = "today"
    LIVE_REFRESH_SECONDS: float = 3.0

    # --- Map ---
    MAP_STYLE: str = "carto-positron"; MAP_DEFAULT_CENTER: Tuple[float, float] = (4.0511, 9.7679); MAP_DEFAULT_ZOOM: int = 13
    MAP_HEIGHT_PX: int = 640; MAP_WIDTH_PX: int = 1100; MAP_FIT_PADDING_PX: int = 50; MAP_MAX_ZOOM: float = 18.0

    COLOR_PRIMARY: str = "#15803D"; COLOR_SECONDARY: str = "#546E7A"
    COLOR_TEXT_PRIMARY: str = "#343A40"; COLOR_TEXT_MUTED: str = "#6C757D"
    COLOR_ZONE_FILL: str = "#22C55E"; COLOR_ZONE_SELECTED: str = "#15803D"; COLOR_ZONE_OUTLINE: str = "#16A34A"
    COLOR_STATUS_CONNECTED: str = "#388E3C"; COLOR_STATUS_CONNECTING: str = "#FBC02D"; COLOR_STATUS_FAILED: str = "#D32F2F"
    TRAIL_COLOR_PALETTE: List[str] = [
        "#E6194B", "#3CB44B", "#4363D8", "#F58231", "#911EB4",
        "#46F0F0", "#F032E6", "#BCF60C", "#008080", "#9A6324",
    ]

    @computed_field
    @property
    def APP_FOOTER_TEXT(self) -> str: return f"© {datetime.now().year} {self.ORGANIZATION_NAME}. Live field-team tracking."

try:
    settings = Settings()
    settings_logger.info(f"FieldWatch settings loaded successfully. App: {settings.APP_NAME} v{settings.APP_VERSION}")
except Exception as e:
    settings_logger.critical(f"FATAL: Could not initialize Pydantic settings. Error: {e}", exc_info=True)
    raise
