"""Repository interfaces and adapters for paginated collection records.

Pages are keyset-paginated: a page cursor holds the sort values of the last
record returned, and the next page starts strictly after that position under
the same ordering.

- Default mode orders by the collection sort field descending (missing values
  last), ties broken by ``id`` ascending.
- Prefix search keeps records whose search field lies in
  ``[term, term + PREFIX_SEARCH_SENTINEL)`` and orders by search field
  ascending, then by the default ordering.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Protocol
from uuid import uuid4

from pydantic import BaseModel

from backend.db.supabase_client import SupabaseClient
from shared.collection_specs import COLLECTIONS, CollectionSpec, get_collection_spec
from shared.config import MAX_PAGE_SIZE
from shared.date_values import to_iso
from shared.errors import BackendUnavailableError, InvalidCursorError, RecordNotFoundError
from shared.models import DefaultMode, FetchMode, Page, PageCursor, PrefixSearchMode, Record


PREFIX_SEARCH_SENTINEL = "\uf8ff"
DEFAULT_PAGE_SIZE = 10
_FIND_LIMIT = 500


class CollectionsRepository(Protocol):
    def fetch_page(
        self,
        collection: str,
        mode: FetchMode,
        cursor: PageCursor | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page:
        """Return one page of records after ``cursor`` under ``mode``'s ordering."""

    def get_record(self, collection: str, record_id: str) -> Record:
        """Return one record or raise RecordNotFoundError."""

    def find_records(
        self,
        collection: str,
        *,
        field: str,
        value: object,
        limit: int = _FIND_LIMIT,
    ) -> list[Record]:
        """Return records whose ``field`` equals ``value``, newest first."""

    def create_record(self, collection: str, payload: dict[str, object]) -> Record:
        """Validate and insert a record; the store assigns id and timestamps."""

    def update_record(self, collection: str, record_id: str, changes: dict[str, object | None]) -> Record:
        """Merge ``changes`` into a record and return the stored result."""

    def delete_record(self, collection: str, record_id: str) -> None:
        """Delete one record or raise RecordNotFoundError."""


def check_page_request(
    spec: CollectionSpec,
    mode: FetchMode,
    cursor: PageCursor | None,
    page_size: int,
) -> None:
    """Reject page requests whose size, search field or cursor do not fit ``mode``."""

    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

    if isinstance(mode, PrefixSearchMode) and mode.field != spec.search_field:
        raise ValueError(f"{spec.name} can only be searched by {spec.search_field}")

    if cursor is None:
        return

    if cursor.mode_key != mode.key():
        raise InvalidCursorError(
            f"Cursor was issued for mode {cursor.mode_key!r}, not {mode.key()!r}; restart from the first page"
        )

    if isinstance(mode, PrefixSearchMode):
        if cursor.search_value is None or not cursor.search_value.startswith(mode.term):
            raise InvalidCursorError("Cursor does not point inside the searched prefix range")


def cursor_for(record: Record, spec: CollectionSpec, mode: FetchMode) -> PageCursor:
    search_value = getattr(record, spec.search_field) if isinstance(mode, PrefixSearchMode) else None
    return PageCursor(
        mode_key=mode.key(),
        last_id=record.id,
        sort_value=getattr(record, spec.sort_field),
        search_value=search_value,
    )


def build_page(window: list[Record], spec: CollectionSpec, mode: FetchMode, page_size: int) -> Page:
    """Build a page from up to ``page_size + 1`` ordered records.

    The extra lookahead record only tells whether another page exists; it is
    never returned.
    """

    items = window[:page_size]
    has_more = len(window) > page_size
    next_cursor = cursor_for(items[-1], spec, mode) if has_more and items else None
    return Page(items=items, next_cursor=next_cursor, has_more=has_more)


def in_prefix_range(value: str | None, term: str) -> bool:
    return value is not None and term <= value < term + PREFIX_SEARCH_SENTINEL


def _sort_after(record: Record, cursor: PageCursor, sort_field: str) -> bool:
    record_sort = getattr(record, sort_field)
    if cursor.sort_value is None:
        return record_sort is None and record.id > cursor.last_id
    if record_sort is None:
        return True
    if record_sort != cursor.sort_value:
        return record_sort < cursor.sort_value
    return record.id > cursor.last_id


def is_after_cursor(record: Record, cursor: PageCursor, spec: CollectionSpec, mode: FetchMode) -> bool:
    if isinstance(mode, PrefixSearchMode):
        record_search = getattr(record, spec.search_field)
        if record_search != cursor.search_value:
            return record_search > cursor.search_value
    return _sort_after(record, cursor, spec.sort_field)


def order_records(records: list[Record], spec: CollectionSpec, mode: FetchMode) -> list[Record]:
    ordered = sorted(records, key=lambda record: record.id)
    # reverse=True keeps the id order of equal sort values
    ordered.sort(
        key=lambda record: (getattr(record, spec.sort_field) is not None, getattr(record, spec.sort_field)),
        reverse=True,
    )
    if isinstance(mode, PrefixSearchMode):
        ordered.sort(key=lambda record: getattr(record, spec.search_field))
    return ordered


def _validate_changes(spec: CollectionSpec, changes: dict[str, object | None]) -> None:
    unknown = sorted(set(changes) - set(spec.fields))
    if unknown:
        raise ValueError(f"Unsupported {spec.name} fields: {', '.join(unknown)}")
    frozen = sorted(set(changes) & (spec.immutable_fields | {"id"}))
    if frozen:
        raise ValueError(f"Immutable {spec.name} fields: {', '.join(frozen)}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryCollectionsRepository:
    """In-memory repository used for local dev/tests when Supabase is not configured."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._records: dict[str, dict[str, Record]] = {name: {} for name in COLLECTIONS}
        self.available = True

    def _ensure_available(self) -> None:
        if not self.available:
            raise BackendUnavailableError("In-memory store marked unavailable")

    def _collection(self, name: str) -> tuple[CollectionSpec, dict[str, Record]]:
        spec = get_collection_spec(name)
        return spec, self._records[spec.name]

    def insert_records(self, collection: str, rows: list[dict[str, object]]) -> list[Record]:
        """Store fully-formed records (ids included) as-is."""

        spec, records = self._collection(collection)
        inserted = [spec.model.model_validate(row) for row in rows]
        for record in inserted:
            records[record.id] = record
        return inserted

    def fetch_page(
        self,
        collection: str,
        mode: FetchMode,
        cursor: PageCursor | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page:
        self._ensure_available()
        spec, records = self._collection(collection)
        check_page_request(spec, mode, cursor, page_size)

        candidates = list(records.values())
        if isinstance(mode, PrefixSearchMode):
            candidates = [
                record for record in candidates if in_prefix_range(getattr(record, spec.search_field), mode.term)
            ]

        ordered = order_records(candidates, spec, mode)
        if cursor is not None:
            ordered = [record for record in ordered if is_after_cursor(record, cursor, spec, mode)]

        window = [record.model_copy(deep=True) for record in ordered[: page_size + 1]]
        return build_page(window, spec, mode, page_size)

    def get_record(self, collection: str, record_id: str) -> Record:
        self._ensure_available()
        spec, records = self._collection(collection)
        record = records.get(record_id)
        if record is None:
            raise RecordNotFoundError(spec.name, record_id)
        return record.model_copy(deep=True)

    def find_records(
        self,
        collection: str,
        *,
        field: str,
        value: object,
        limit: int = _FIND_LIMIT,
    ) -> list[Record]:
        self._ensure_available()
        spec, records = self._collection(collection)
        if field not in spec.fields:
            raise ValueError(f"Unsupported {spec.name} field: {field}")

        matching = [record for record in records.values() if getattr(record, field) == value]
        ordered = order_records(matching, spec, DefaultMode())
        return [record.model_copy(deep=True) for record in ordered[:limit]]

    def create_record(self, collection: str, payload: dict[str, object]) -> Record:
        spec, records = self._collection(collection)
        data = spec.create_model.model_validate(payload).model_dump()
        self._ensure_available()

        now = self._clock()
        for field_name in spec.server_timestamp_fields:
            if data.get(field_name) is None:
                data[field_name] = now

        record = spec.model.model_validate({"id": str(uuid4()), **data})
        records[record.id] = record
        return record.model_copy(deep=True)

    def update_record(self, collection: str, record_id: str, changes: dict[str, object | None]) -> Record:
        spec, records = self._collection(collection)
        _validate_changes(spec, changes)
        self._ensure_available()

        existing = records.get(record_id)
        if existing is None:
            raise RecordNotFoundError(spec.name, record_id)

        merged = {**existing.model_dump(), **changes}
        if spec.tracks_updated_at:
            merged["updated_at"] = self._clock()
        updated = spec.model.model_validate(merged)
        records[record_id] = updated
        return updated.model_copy(deep=True)

    def delete_record(self, collection: str, record_id: str) -> None:
        self._ensure_available()
        spec, records = self._collection(collection)
        if records.pop(record_id, None) is None:
            raise RecordNotFoundError(spec.name, record_id)


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _sort_seek_filter(cursor: PageCursor, sort_field: str) -> str:
    last_id = _quote(cursor.last_id)
    if cursor.sort_value is None:
        return f"and({sort_field}.is.null,id.gt.{last_id})"

    sort_value = _quote(to_iso(cursor.sort_value) or "")
    return (
        f"or({sort_field}.lt.{sort_value},"
        f"and({sort_field}.eq.{sort_value},id.gt.{last_id}),"
        f"{sort_field}.is.null)"
    )


def _jsonable(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json")


class SupabaseCollectionsRepository:
    """Supabase-backed repository: one table per collection, one column per field."""

    def __init__(self, client: SupabaseClient, clock: Callable[[], datetime] = _utcnow) -> None:
        self._client = client
        self._clock = clock

    @staticmethod
    def _select(spec: CollectionSpec) -> str:
        return ",".join(spec.fields)

    def build_page_query(
        self,
        spec: CollectionSpec,
        mode: FetchMode,
        cursor: PageCursor | None,
        page_size: int,
    ) -> list[tuple[str, str | int]]:
        query: list[tuple[str, str | int]] = [("select", self._select(spec))]
        sort_order = f"{spec.sort_field}.desc.nullslast,id.asc"

        if isinstance(mode, PrefixSearchMode):
            query.append((spec.search_field, f"gte.{mode.term}"))
            query.append((spec.search_field, f"lt.{mode.term}{PREFIX_SEARCH_SENTINEL}"))
            query.append(("order", f"{spec.search_field}.asc,{sort_order}"))
        else:
            query.append(("order", sort_order))

        if cursor is not None:
            sort_seek = _sort_seek_filter(cursor, spec.sort_field)
            if isinstance(mode, PrefixSearchMode):
                search_value = _quote(cursor.search_value or "")
                query.append(
                    (
                        "or",
                        f"({spec.search_field}.gt.{search_value},"
                        f"and({spec.search_field}.eq.{search_value},{sort_seek}))",
                    )
                )
            else:
                query.append(("or", f"({sort_seek})"))

        query.append(("limit", page_size + 1))
        return query

    def fetch_page(
        self,
        collection: str,
        mode: FetchMode,
        cursor: PageCursor | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page:
        spec = get_collection_spec(collection)
        check_page_request(spec, mode, cursor, page_size)

        rows, _ = self._client.get_rows(
            table=spec.name,
            query=self.build_page_query(spec, mode, cursor, page_size),
            with_count=False,
        )
        window = [spec.model.model_validate(row) for row in rows]
        return build_page(window, spec, mode, page_size)

    def get_record(self, collection: str, record_id: str) -> Record:
        spec = get_collection_spec(collection)
        rows, _ = self._client.get_rows(
            table=spec.name,
            query=[("select", self._select(spec)), ("id", f"eq.{record_id}"), ("limit", 1)],
            with_count=False,
        )
        if not rows:
            raise RecordNotFoundError(spec.name, record_id)
        return spec.model.model_validate(rows[0])

    def find_records(
        self,
        collection: str,
        *,
        field: str,
        value: object,
        limit: int = _FIND_LIMIT,
    ) -> list[Record]:
        spec = get_collection_spec(collection)
        if field not in spec.fields:
            raise ValueError(f"Unsupported {spec.name} field: {field}")

        rows, _ = self._client.get_rows(
            table=spec.name,
            query=[
                ("select", self._select(spec)),
                (field, f"eq.{value}"),
                ("order", f"{spec.sort_field}.desc.nullslast,id.asc"),
                ("limit", limit),
            ],
            with_count=False,
        )
        return [spec.model.model_validate(row) for row in rows]

    def create_record(self, collection: str, payload: dict[str, object]) -> Record:
        spec = get_collection_spec(collection)
        validated = spec.create_model.model_validate(payload)
        body = _jsonable(validated)
        for field_name in spec.server_timestamp_fields:
            if body.get(field_name) is None:
                # column default now() assigns the server timestamp
                body.pop(field_name, None)

        rows = self._client.post_rows(
            table=spec.name,
            payload=body,
            query={"select": self._select(spec)},
        )
        if not rows:
            raise RuntimeError(f"Supabase did not return created {spec.name} record")
        return spec.model.model_validate(rows[0])

    def update_record(self, collection: str, record_id: str, changes: dict[str, object | None]) -> Record:
        spec = get_collection_spec(collection)
        _validate_changes(spec, changes)

        existing = self.get_record(spec.name, record_id)
        merged = spec.model.model_validate({**existing.model_dump(), **changes})
        existing_json = _jsonable(existing)
        body = {
            key: value
            for key, value in _jsonable(merged).items()
            if key in changes or value != existing_json.get(key)
        }
        if spec.tracks_updated_at:
            body["updated_at"] = to_iso(self._clock())

        rows = self._client.patch_rows(
            table=spec.name,
            query={"id": f"eq.{record_id}", "select": self._select(spec)},
            payload=body,
        )
        if not rows:
            raise RecordNotFoundError(spec.name, record_id)
        return spec.model.model_validate(rows[0])

    def delete_record(self, collection: str, record_id: str) -> None:
        spec = get_collection_spec(collection)
        rows = self._client.delete_rows(
            table=spec.name,
            query={"id": f"eq.{record_id}", "select": "id"},
        )
        if not rows:
            raise RecordNotFoundError(spec.name, record_id)
