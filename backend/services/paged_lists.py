"""Accumulated "load more" lists built from repository pages.

The list state is an explicit value: every operation takes a ``ListState`` and
returns a new one, so callers own the accumulated items, the cursor and the
loading flags.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from backend.repositories.collections_repository import CollectionsRepository
from shared import config
from shared.collection_specs import get_collection_spec
from shared.errors import BackendUnavailableError, InvalidCursorError
from shared.models import DefaultMode, FetchMode, ListState, Page, PageCursor, PrefixSearchMode, Record


logger = logging.getLogger(__name__)


def dedupe_by_id(records: Iterable[Record]) -> list[Record]:
    """Drop repeated ids, keeping the first occurrence."""

    seen: set[str] = set()
    unique: list[Record] = []
    for record in records:
        if record.id in seen:
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


def mode_for(collection: str, search: str | None) -> FetchMode:
    if not search or not search.strip():
        return DefaultMode()
    return PrefixSearchMode(term=search, field=get_collection_spec(collection).search_field)


def start_request(state: ListState) -> ListState:
    """Mark ``state`` as waiting for a page."""

    return state.model_copy(update={"busy": True, "error": None})


def apply_page(
    state: ListState,
    page: Page,
    requested_mode: FetchMode,
    requested_cursor: PageCursor | None,
) -> ListState:
    """Merge ``page`` into ``state``; responses for an outdated request are ignored.

    A page requested without a cursor replaces the accumulated items, any other
    page is appended.
    """

    if requested_mode != state.mode or requested_cursor != state.cursor:
        logger.info(
            "stale_page_ignored collection=%s requested_mode=%s current_mode=%s",
            state.collection,
            requested_mode.key(),
            state.mode.key(),
        )
        return state

    items = page.items if requested_cursor is None else [*state.items, *page.items]
    return state.model_copy(
        update={
            "items": dedupe_by_id(items),
            "cursor": page.next_cursor,
            "has_more": page.has_more,
            "busy": False,
            "error": None,
        }
    )


class PagedListService:
    def __init__(
        self,
        repository: CollectionsRepository,
        *,
        strict_cursors: bool | None = None,
        page_size: int | None = None,
    ) -> None:
        self._repository = repository
        self._strict_cursors = config.strict_cursors() if strict_cursors is None else strict_cursors
        self._page_size = config.default_page_size() if page_size is None else page_size

    def new_state(self, collection: str, search: str | None = None, page_size: int | None = None) -> ListState:
        get_collection_spec(collection)
        return ListState(
            collection=collection,
            mode=mode_for(collection, search),
            page_size=page_size or self._page_size,
        )

    def load_first(self, collection: str, search: str | None = None, page_size: int | None = None) -> ListState:
        """Start a new listing (initial load or new search term)."""

        return self._load(self.new_state(collection, search, page_size))

    def load_more(self, state: ListState) -> ListState:
        """Append the next page to ``state``; busy or exhausted states are returned as-is.

        The fetch runs synchronously, so the returned state is never busy. A caller
        that shares the state while a page is in flight marks it with
        ``start_request`` and finishes it with ``apply_page``; ``load_more`` on the
        marked state does nothing until then.
        """

        if state.busy or not state.has_more:
            return state
        return self._load(state)

    def _load(self, state: ListState) -> ListState:
        pending = start_request(state)
        try:
            page = self._repository.fetch_page(
                pending.collection,
                pending.mode,
                pending.cursor,
                pending.page_size,
            )
        except BackendUnavailableError as exc:
            logger.warning("list_page_fetch_failed collection=%s error=%s", state.collection, exc)
            return state.model_copy(update={"busy": False, "error": str(exc)})
        except InvalidCursorError:
            if self._strict_cursors:
                raise
            logger.warning(
                "invalid_cursor_restarting collection=%s mode=%s",
                state.collection,
                state.mode.key(),
            )
            restarted = state.model_copy(update={"items": [], "cursor": None, "has_more": True})
            return self._load(restarted)

        return apply_page(pending, page, pending.mode, pending.cursor)
