# fieldwatch_project_root/data_processing/api_client.py
# REFERENCE DATA - ASYNC REST CLIENT (CAMPAIGNS, ZONES, TEAMS)

import logging
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from config import settings
from tracking.auth import TokenProvider, read_auth_token

logger = logging.getLogger(__name__)

# --- Reference Entity Models ---
class _ReferenceModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra='ignore', populate_by_name=True)
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    name: str = ""

    @property
    def label(self) -> str:
        return self.name or self.id


class CampaignRef(BaseModel):
    model_config = ConfigDict(frozen=True, extra='ignore')
    id: str = Field("", validation_alias=AliasChoices("_id", "id"))
    name: str = ""
    code: str = ""
    status: str = ""


class ZoneRef(BaseModel):
    model_config = ConfigDict(frozen=True, extra='ignore')
    id: str = Field("", validation_alias=AliasChoices("_id", "id"))
    name: str = ""
    code: str = ""


class PersonRef(BaseModel):
    model_config = ConfigDict(frozen=True, extra='ignore')
    id: str = Field("", validation_alias=AliasChoices("_id", "id"))
    first_name: str = ""
    last_name: str = ""
    code: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class GeoJSONPolygon(BaseModel):
    model_config = ConfigDict(frozen=True, extra='ignore')
    type: str = "Polygon"
    coordinates: List[List[List[float]]] = Field(default_factory=list)


class Campaign(_ReferenceModel):
    description: str = ""
    status: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class Zone(_ReferenceModel):
    campaign_id: str = ""
    code: str = ""
    description: str = ""
    boundaries: Optional[GeoJSONPolygon] = None
    campaign: Optional[CampaignRef] = None
    team_count: int = 0


class Team(_ReferenceModel):
    campaign_id: str = ""
    zone_id: str = ""
    code: str = ""
    team_lead_id: str = ""
    members: List[str] = Field(default_factory=list)
    campaign: Optional[CampaignRef] = None
    zone: Optional[ZoneRef] = None
    team_lead: Optional[PersonRef] = None


class TeamMember(PersonRef):
    role: str = ""


EntityT = TypeVar("EntityT", bound=_ReferenceModel)


class PageResult(BaseModel):
    """One page of reference entities with normalised pagination metadata."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)
    items: Tuple[Any, ...] = ()
    current_page: int = 1
    total_pages: int = 1
    total_items: int = 0

    @property
    def has_more(self) -> bool:
        return self.current_page < self.total_pages


# --- Errors ---
class ApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UnauthorizedError(ApiError):
    pass


# --- Payload Normalisation ---
ITEM_KEYS = ("campaigns", "zones", "teams", "results", "members", "data")


def extract_items(payload: Any) -> List[Dict[str, Any]]:
    """Pulls the entity list out of a bare-list or wrapped response."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ITEM_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key]
    return []


def normalize_pagination(payload: Any, requested_page: int, item_count: int) -> Dict[str, int]:
    """Accepts both `current_page` and `page`; a response without pagination is a single page."""
    raw = payload.get("pagination") if isinstance(payload, dict) else None
    if not isinstance(raw, dict):
        if isinstance(payload, dict) and "total_pages" in payload:
            raw = payload
        else:
            return {"current_page": requested_page, "total_pages": requested_page, "total_items": item_count}
    current = raw.get("current_page", raw.get("page", requested_page))
    return {
        "current_page": int(current if current is not None else requested_page),
        "total_pages": int(raw.get("total_pages") or 1),
        "total_items": int(raw.get("total_items", raw.get("total", item_count)) or 0),
    }


def parse_items(payload: Any, model: Type[EntityT]) -> List[EntityT]:
    """Validates every entity of a response; a malformed entity fails the whole response."""
    try:
        return [model.model_validate(item) for item in extract_items(payload)]
    except ValidationError as e:
        logger.error(f"Malformed {model.__name__} in API response: {e.error_count()} validation error(s).")
        raise ApiError(f"Invalid {model.__name__} data in API response") from e


def parse_page(payload: Any, model: Type[EntityT], requested_page: int) -> PageResult:
    items = tuple(parse_items(payload, model))
    try:
        pagination = normalize_pagination(payload, requested_page, len(items))
    except (TypeError, ValueError) as e:
        raise ApiError(f"Invalid pagination in API response: {e}") from e
    return PageResult(items=items, **pagination)


class FieldApiClient:
    """
    Thin async client for the paginated reference endpoints used by the
    live view. The bearer token is read fresh for every request.
    """
    def __init__(
        self,
        base_url: Optional[str] = None,
        token_provider: TokenProvider = read_auth_token,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token_provider = token_provider
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.API_BASE_URL).rstrip('/'),
            timeout=timeout or settings.API_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> 'FieldApiClient':
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: Dict[str, Any]) -> Any:
        headers = {"accept": "application/json"}
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        query = {k: v for k, v in params.items() if v not in (None, "")}

        try:
            response = await self._client.get(path, params=query, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"(FieldApiClient) Request to {path} failed: {e}")
            raise ApiError(f"Request to {path} failed: {e}") from e

        if response.status_code == 401:
            logger.warning(f"(FieldApiClient) Unauthorized response from {path}.")
            raise UnauthorizedError("Unauthorized", status_code=401)
        if not response.is_success:
            try:
                message = response.json().get("message") or f"HTTP {response.status_code}"
            except (ValueError, AttributeError):
                message = f"HTTP {response.status_code}"
            logger.error(f"(FieldApiClient) {path} returned {response.status_code}: {message}")
            raise ApiError(message, status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"(FieldApiClient) {path} returned a non-JSON body: {e}")
            raise ApiError(f"Invalid JSON from {path}", status_code=response.status_code) from e

    # --- Campaigns ---
    async def fetch_campaigns(self, page: int = 1, limit: int = 20) -> PageResult:
        payload = await self._get("/campaign/all", {"page": page, "limit": limit})
        return parse_page(payload, Campaign, page)

    # --- Zones ---
    async def fetch_zones_by_facility(self, page: int = 1, page_size: int = 20, campaign_id: Optional[str] = None) -> PageResult:
        payload = await self._get("/zone/facility", {"page": page, "page_size": page_size, "campaign_id": campaign_id})
        return parse_page(payload, Zone, page)

    # --- Teams ---
    async def fetch_teams_by_facility(self, page: int = 1, page_size: int = 20) -> PageResult:
        payload = await self._get("/team/facility", {"page": page, "page_size": page_size})
        return parse_page(payload, Team, page)

    async def fetch_teams_by_campaign(self, campaign_id: str, page: int = 1, page_size: int = 20) -> PageResult:
        payload = await self._get("/team/campaign", {"campaign_id": campaign_id, "page": page, "page_size": page_size})
        return parse_page(payload, Team, page)

    async def fetch_teams_by_zone(self, zone_id: str, page: int = 1, page_size: int = 20) -> PageResult:
        payload = await self._get("/team/zone", {"zone_id": zone_id, "page": page, "page_size": page_size})
        return parse_page(payload, Team, page)

    async def fetch_team_members(self, team_id: str) -> List[TeamMember]:
        if not team_id:
            return []
        payload = await self._get("/team/members", {"team_id": team_id})
        return parse_items(payload, TeamMember)
