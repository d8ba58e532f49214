# fieldwatch_project_root/data_processing/reference_cache.py
# REFERENCE DATA - CASCADING CAMPAIGN → ZONE → TEAM SELECTION CACHE

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from config import settings
from config.settings import PaginationConfig
from .api_client import FieldApiClient, PageResult, Team, Zone
from .pagination import PaginatedFeed

logger = logging.getLogger(__name__)

Option = Tuple[str, str]

FEED_KINDS = ("campaigns", "zones", "teams")


@dataclass(frozen=True)
class FilterState:
    selected_campaign: str = ""
    selected_zone: str = ""
    selected_team: str = ""
    selected_date: str = "today"


def search_options(options: Sequence[Option], query: Optional[str]) -> List[Option]:
    """Case-insensitive label search, as used by the dropdown search boxes."""
    if not query:
        return list(options)
    needle = query.lower()
    return [opt for opt in options if needle in opt[1].lower()]


class ReferenceDataCache:
    """
    Holds the live view's filter selection and the three accumulating option
    feeds behind it.

    Changing a parent selection resets every dependent feed and selection in
    one synchronous call: campaign → (zone, team), zone → team.
    """
    def __init__(self, client: FieldApiClient, pagination: Optional[PaginationConfig] = None):
        self.client = client
        sizes = pagination or settings.PAGINATION
        self.campaigns = PaginatedFeed("campaigns", sizes.campaign_page_size, self._fetch_campaign_page)
        self.zones = PaginatedFeed("zones", sizes.zone_page_size, self._fetch_zone_page)
        self.teams = PaginatedFeed("teams", sizes.team_page_size, self._fetch_team_page)
        self._filters = FilterState(selected_date=settings.DEFAULT_DATE_OPTION)

    @property
    def filters(self) -> FilterState:
        return self._filters

    def feed(self, kind: str) -> PaginatedFeed:
        if kind not in FEED_KINDS:
            raise KeyError(f"Unknown reference feed '{kind}'")
        return getattr(self, kind)

    # --- Cascading Setters ---
    def select_campaign(self, campaign_id: Optional[str]) -> None:
        campaign_id = campaign_id or ""
        if campaign_id == self._filters.selected_campaign:
            return
        self._filters = replace(self._filters, selected_campaign=campaign_id, selected_zone="", selected_team="")
        self.zones.reset()
        self.teams.reset()
        logger.info(f"(ReferenceDataCache) Campaign -> '{campaign_id or 'all'}'; zone and team options reset.")

    def select_zone(self, zone_id: Optional[str]) -> None:
        zone_id = zone_id or ""
        if zone_id == self._filters.selected_zone:
            return
        self._filters = replace(self._filters, selected_zone=zone_id, selected_team="")
        self.teams.reset()
        logger.info(f"(ReferenceDataCache) Zone -> '{zone_id or 'all'}'; team options reset.")

    def select_team(self, team_id: Optional[str]) -> None:
        self._filters = replace(self._filters, selected_team=team_id or "")

    def select_date(self, date_option: Optional[str]) -> None:
        self._filters = replace(self._filters, selected_date=date_option or settings.DEFAULT_DATE_OPTION)

    # --- Source Selection ---
    def zone_source_scope(self) -> Tuple[str, Optional[str]]:
        if self._filters.selected_campaign:
            return "campaign", self._filters.selected_campaign
        return "facility", None

    def team_source_scope(self) -> Tuple[str, Optional[str]]:
        if self._filters.selected_zone:
            return "zone", self._filters.selected_zone
        if self._filters.selected_campaign:
            return "campaign", self._filters.selected_campaign
        return "facility", None

    async def _fetch_campaign_page(self, page: int, size: int) -> PageResult:
        return await self.client.fetch_campaigns(page=page, limit=size)

    async def _fetch_zone_page(self, page: int, size: int) -> PageResult:
        scope, scope_id = self.zone_source_scope()
        if scope == "campaign":
            return await self.client.fetch_zones_by_facility(page=page, page_size=size, campaign_id=scope_id)
        return await self.client.fetch_zones_by_facility(page=page, page_size=size)

    async def _fetch_team_page(self, page: int, size: int) -> PageResult:
        scope, scope_id = self.team_source_scope()
        if scope == "zone":
            return await self.client.fetch_teams_by_zone(scope_id, page=page, page_size=size)
        if scope == "campaign":
            return await self.client.fetch_teams_by_campaign(scope_id, page=page, page_size=size)
        return await self.client.fetch_teams_by_facility(page=page, page_size=size)

    # --- Loading ---
    def load_more(self, kind: str) -> bool:
        return self.feed(kind).load_more()

    async def sync(self) -> Dict[str, Optional[PageResult]]:
        """
        Fetches every feed whose current page is not loaded yet, concurrently.
        Re-raises the first failure once all fetches have settled.
        """
        pending = [kind for kind in FEED_KINDS if self.feed(kind).state.needs_fetch]
        if not pending:
            return {}
        results = await asyncio.gather(*(self.feed(kind).fetch() for kind in pending), return_exceptions=True)
        errors = [r for r in results if isinstance(r, Exception)]
        if errors:
            raise errors[0]
        return dict(zip(pending, results))

    # --- Read Side ---
    def options(self, kind: str) -> List[Option]:
        return [(item.id, item.label) for item in self.feed(kind).items]

    @property
    def zone_objects(self) -> Tuple[Zone, ...]:
        return self.zones.items

    def team_for_zone(self, zone_id: Optional[str]) -> Optional[Team]:
        if not zone_id:
            return None
        return next((t for t in self.teams.items if t.zone_id == zone_id), None)

    def zone_by_id(self, zone_id: Optional[str]) -> Optional[Zone]:
        if not zone_id:
            return None
        return next((z for z in self.zones.items if z.id == zone_id), None)
