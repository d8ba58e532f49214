# fieldwatch_project_root/data_processing/pagination.py
# REFERENCE DATA - ACCUMULATING PAGINATED FEEDS

import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, Tuple

from .api_client import PageResult

logger = logging.getLogger(__name__)

PageSource = Callable[[int, int], Awaitable[PageResult]]


def _item_id(item: Any) -> Any:
    return item.get("id") if isinstance(item, dict) else getattr(item, "id", None)


@dataclass(frozen=True)
class FeedState:
    """Immutable snapshot of one feed; replaced wholesale on every transition."""
    page: int = 1
    loaded_page: int = 0
    items: Tuple[Any, ...] = ()
    current_page: int = 0
    total_pages: int = 0
    is_fetching: bool = False
    generation: int = 0
    error: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def is_loading(self) -> bool:
        return self.is_fetching and self.page == 1

    @property
    def is_loading_more(self) -> bool:
        return self.is_fetching and self.page > 1

    @property
    def needs_fetch(self) -> bool:
        return not self.is_fetching and self.page != self.loaded_page


class PaginatedFeed:
    """
    Builds a growing, de-duplicated list from a paged source.

    Page 1 replaces the accumulated list (this is how a cascade reset lands);
    later pages only append ids not seen yet, first-seen wins. Each reset
    bumps a generation number and responses from an older generation are
    discarded, so a slow page from a previous parent scope can never leak
    into the new list.
    """
    def __init__(self, name: str, page_size: int, source: Optional[PageSource] = None):
        self.name = name
        self.page_size = page_size
        self._source = source
        self._state = FeedState()

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def items(self) -> Tuple[Any, ...]:
        return self._state.items

    @property
    def page(self) -> int:
        return self._state.page

    @property
    def has_more(self) -> bool:
        return self._state.has_more

    def reset(self) -> None:
        self._state = FeedState(generation=self._state.generation + 1)
        logger.debug(f"({self.name}) Feed reset to page 1 (generation {self._state.generation}).")

    def load_more(self) -> bool:
        """Advances to the next page if one exists and nothing is in flight."""
        state = self._state
        if not state.has_more or state.is_fetching or state.page != state.loaded_page:
            return False
        self._state = replace(state, page=state.page + 1)
        return True

    def apply_page(self, result: PageResult, generation: int, requested_page: int) -> bool:
        state = self._state
        if generation != state.generation or requested_page != state.page:
            logger.debug(f"({self.name}) Discarding stale page {requested_page} (generation {generation}, current {state.generation}).")
            return False

        if requested_page == 1:
            items = tuple(result.items)
        else:
            seen = {_item_id(item) for item in state.items}
            fresh = []
            for item in result.items:
                item_id = _item_id(item)
                if item_id not in seen:
                    seen.add(item_id)
                    fresh.append(item)
            items = state.items + tuple(fresh)

        self._state = replace(
            state, items=items, loaded_page=requested_page,
            current_page=result.current_page, total_pages=result.total_pages,
            is_fetching=False, error=None
        )
        return True

    async def fetch(self) -> Optional[PageResult]:
        """
        Fetches the current page and merges it in.

        Failures leave the accumulated list untouched, roll a `load_more`
        page bump back, and are re-raised to the caller.
        """
        if self._source is None:
            return None
        state = self._state
        generation, page = state.generation, state.page
        self._state = replace(state, is_fetching=True, error=None)

        try:
            result = await self._source(page, self.page_size)
        except Exception as e:
            current = self._state
            if current.generation == generation:
                self._state = replace(current, is_fetching=False, error=str(e), page=max(current.loaded_page, 1))
            logger.error(f"({self.name}) Failed to fetch page {page}: {e}")
            raise

        return result if self.apply_page(result, generation, page) else None
