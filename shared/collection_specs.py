"""Registry of stored collections: model, ordering and search fields."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel

from shared.errors import UnknownCollectionError
from shared.models import (
    Activity,
    ActivityCreate,
    Donation,
    DonationCreate,
    Expense,
    ExpenseCreate,
    Link,
    LinkCreate,
    Meeting,
    MeetingCreate,
    Member,
    MemberCreate,
    Record,
    WordPressPost,
    WordPressPostCreate,
    WorkshopResource,
    WorkshopResourceCreate,
)


@dataclass(frozen=True, slots=True)
class CollectionSpec:
    name: str
    model: type[Record]
    create_model: type[BaseModel]
    sort_field: str
    search_field: str
    server_timestamp_fields: tuple[str, ...] = ()
    immutable_fields: frozenset[str] = field(default_factory=frozenset)

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(self.model.model_fields)

    @property
    def tracks_updated_at(self) -> bool:
        return "updated_at" in self.model.model_fields


COLLECTIONS: dict[str, CollectionSpec] = {
    spec.name: spec
    for spec in (
        CollectionSpec(
            name="members",
            model=Member,
            create_model=MemberCreate,
            sort_field="join_date",
            search_field="name",
            server_timestamp_fields=("join_date", "created_at"),
            immutable_fields=frozenset({"join_date", "created_at"}),
        ),
        CollectionSpec(
            name="donations",
            model=Donation,
            create_model=DonationCreate,
            sort_field="date",
            search_field="donor",
            server_timestamp_fields=("date",),
        ),
        CollectionSpec(
            name="expenses",
            model=Expense,
            create_model=ExpenseCreate,
            sort_field="date",
            search_field="description",
            server_timestamp_fields=("created_at",),
            immutable_fields=frozenset({"created_at"}),
        ),
        CollectionSpec(
            name="activities",
            model=Activity,
            create_model=ActivityCreate,
            sort_field="date",
            search_field="title",
            server_timestamp_fields=("created_at",),
            immutable_fields=frozenset({"created_at"}),
        ),
        CollectionSpec(
            name="workshops",
            model=WorkshopResource,
            create_model=WorkshopResourceCreate,
            sort_field="created_at",
            search_field="name",
            server_timestamp_fields=("created_at",),
            immutable_fields=frozenset({"created_at"}),
        ),
        CollectionSpec(
            name="meetings",
            model=Meeting,
            create_model=MeetingCreate,
            sort_field="date",
            search_field="title",
            server_timestamp_fields=("created_at",),
            immutable_fields=frozenset({"created_at"}),
        ),
        CollectionSpec(
            name="links",
            model=Link,
            create_model=LinkCreate,
            sort_field="created_at",
            search_field="title",
            server_timestamp_fields=("created_at",),
            immutable_fields=frozenset({"created_at"}),
        ),
        CollectionSpec(
            name="wordpress_posts",
            model=WordPressPost,
            create_model=WordPressPostCreate,
            sort_field="date",
            search_field="title",
        ),
    )
}


def get_collection_spec(name: str) -> CollectionSpec:
    """Return the spec registered for ``name`` or raise UnknownCollectionError."""
    try:
        return COLLECTIONS[name]
    except KeyError as exc:
        raise UnknownCollectionError(name) from exc
