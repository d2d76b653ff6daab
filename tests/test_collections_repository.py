"""Tests for in-memory and Supabase collection repositories."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from backend.repositories.collections_repository import (
    InMemoryCollectionsRepository,
    SupabaseCollectionsRepository,
)
from shared.collection_specs import get_collection_spec
from shared.errors import BackendUnavailableError, RecordNotFoundError, UnknownCollectionError
from shared.models import Activity, DefaultMode, Donation, Member, PageCursor, PrefixSearchMode
from tests.fakes import BASE_TIME, FixedClock, StubSupabaseClient, day


def test_create_assigns_id_and_server_timestamps() -> None:
    repository = InMemoryCollectionsRepository(clock=FixedClock())

    member = repository.create_record("members", {"name": "Asha", "email": "asha@example.org"})

    assert isinstance(member, Member)
    assert member.id
    assert member.join_date == BASE_TIME
    assert member.created_at == BASE_TIME
    assert repository.get_record("members", member.id) == member


def test_create_keeps_client_supplied_donation_date() -> None:
    repository = InMemoryCollectionsRepository(clock=FixedClock())

    donation = repository.create_record("donations", {"donor": "Ann", "amount": 50, "date": "2023-06-01"})

    assert isinstance(donation, Donation)
    assert donation.date == datetime(2023, 6, 1, tzinfo=timezone.utc)


def test_create_rejects_invalid_payload_before_touching_store() -> None:
    repository = InMemoryCollectionsRepository()
    repository.available = False

    with pytest.raises(ValidationError):
        repository.create_record("donations", {"donor": "", "amount": -5})


def test_create_rejects_unknown_fields() -> None:
    repository = InMemoryCollectionsRepository()

    with pytest.raises(ValidationError):
        repository.create_record("links", {"title": "Docs", "url": "https://docs", "colour": "red"})


def test_update_merges_changes_and_sets_updated_at() -> None:
    clock = FixedClock()
    repository = InMemoryCollectionsRepository(clock=clock)
    expense = repository.create_record("expenses", {"description": "Rent", "amount": 900})

    updated = repository.update_record("expenses", expense.id, {"amount": 950, "paid_to": "Landlord"})

    assert updated.amount == 950
    assert updated.paid_to == "Landlord"
    assert updated.description == "Rent"
    assert updated.updated_at is not None
    assert updated.updated_at > expense.created_at


def test_update_rejects_immutable_and_unknown_fields() -> None:
    repository = InMemoryCollectionsRepository(clock=FixedClock())
    member = repository.create_record("members", {"name": "Asha"})

    with pytest.raises(ValueError, match="Immutable"):
        repository.update_record("members", member.id, {"join_date": day(3)})
    with pytest.raises(ValueError, match="Unsupported"):
        repository.update_record("members", member.id, {"nickname": "A"})


def test_update_recounts_activity_participants() -> None:
    repository = InMemoryCollectionsRepository(clock=FixedClock())
    activity = repository.create_record("activities", {"title": "Food drive", "participants": ["m1"]})
    assert isinstance(activity, Activity)
    assert activity.current_participants == 1

    updated = repository.update_record("activities", activity.id, {"participants": ["m1", "m2", "m3"]})

    assert updated.current_participants == 3


def test_missing_records_raise_not_found() -> None:
    repository = InMemoryCollectionsRepository()

    with pytest.raises(RecordNotFoundError):
        repository.get_record("meetings", "missing")
    with pytest.raises(RecordNotFoundError):
        repository.update_record("meetings", "missing", {"title": "x"})
    with pytest.raises(RecordNotFoundError):
        repository.delete_record("meetings", "missing")


def test_delete_removes_record() -> None:
    repository = InMemoryCollectionsRepository(clock=FixedClock())
    link = repository.create_record("links", {"title": "Docs", "url": "https://docs"})

    repository.delete_record("links", link.id)

    with pytest.raises(RecordNotFoundError):
        repository.get_record("links", link.id)


def test_find_records_matches_field_newest_first() -> None:
    repository = InMemoryCollectionsRepository()
    repository.insert_records(
        "donations",
        [
            {"id": "a", "donor": "Ann", "amount": 1, "date": day(1)},
            {"id": "b", "donor": "Bob", "amount": 1, "date": day(2)},
            {"id": "c", "donor": "Ann", "amount": 1, "date": day(3)},
        ],
    )

    assert [record.id for record in repository.find_records("donations", field="donor", value="Ann")] == ["c", "a"]


def test_returned_records_are_copies() -> None:
    repository = InMemoryCollectionsRepository(clock=FixedClock())
    activity = repository.create_record("activities", {"title": "Walk"})

    activity.participants.append("intruder")

    assert repository.get_record("activities", activity.id).participants == []


def test_unavailable_store_raises_backend_unavailable() -> None:
    repository = InMemoryCollectionsRepository()
    repository.available = False

    with pytest.raises(BackendUnavailableError):
        repository.fetch_page("donations", DefaultMode(), None, 10)


def test_unknown_collection_is_rejected() -> None:
    repository = InMemoryCollectionsRepository()

    with pytest.raises(UnknownCollectionError, match="Unknown collection: pets"):
        repository.fetch_page("pets", DefaultMode(), None, 10)


def test_supabase_first_page_query_orders_and_requests_lookahead_row() -> None:
    repository = SupabaseCollectionsRepository(client=StubSupabaseClient())
    spec = get_collection_spec("donations")

    query = repository.build_page_query(spec, DefaultMode(), None, 10)

    assert ("order", "date.desc.nullslast,id.asc") in query
    assert ("limit", 11) in query
    assert not any(key == "or" for key, _ in query)


def test_supabase_prefix_query_uses_half_open_range() -> None:
    repository = SupabaseCollectionsRepository(client=StubSupabaseClient())
    spec = get_collection_spec("donations")

    query = repository.build_page_query(spec, PrefixSearchMode(term="Ann", field="donor"), None, 5)

    assert ("donor", "gte.Ann") in query
    assert ("donor", "lt.Ann\uf8ff") in query
    assert ("order", "donor.asc,date.desc.nullslast,id.asc") in query


def test_supabase_cursor_query_seeks_past_last_record() -> None:
    repository = SupabaseCollectionsRepository(client=StubSupabaseClient())
    spec = get_collection_spec("donations")
    cursor = PageCursor(mode_key="default", last_id="d1", sort_value=day(2))

    query = dict(repository.build_page_query(spec, DefaultMode(), cursor, 5))

    assert query["or"] == (
        '(or(date.lt."2024-01-03T00:00:00+00:00",'
        'and(date.eq."2024-01-03T00:00:00+00:00",id.gt."d1"),'
        "date.is.null))"
    )


def test_supabase_cursor_after_missing_sort_value_stays_in_null_block() -> None:
    repository = SupabaseCollectionsRepository(client=StubSupabaseClient())
    spec = get_collection_spec("donations")
    cursor = PageCursor(mode_key="default", last_id="d9", sort_value=None)

    query = dict(repository.build_page_query(spec, DefaultMode(), cursor, 5))

    assert query["or"] == '(and(date.is.null,id.gt."d9"))'


def test_supabase_fetch_page_trims_lookahead_row() -> None:
    rows = [{"id": f"d{index}", "donor": "Ann", "amount": 1, "date": day(10 - index).isoformat()} for index in range(3)]
    client = StubSupabaseClient(get_responses=[rows])
    repository = SupabaseCollectionsRepository(client=client)

    page = repository.fetch_page("donations", DefaultMode(), None, 2)

    assert [record.id for record in page.items] == ["d0", "d1"]
    assert page.has_more is True
    assert page.next_cursor == PageCursor(mode_key="default", last_id="d1", sort_value=day(9))


def test_supabase_create_leaves_missing_server_timestamps_to_the_database() -> None:
    client = StubSupabaseClient(
        post_responses=[[{"id": "m1", "name": "Asha", "join_date": "2024-01-01T00:00:00Z"}]]
    )
    repository = SupabaseCollectionsRepository(client=client)

    member = repository.create_record("members", {"name": "Asha"})

    _, kwargs = client.calls[0]
    assert kwargs["table"] == "members"
    assert kwargs["payload"] == {"name": "Asha", "email": "", "phone": ""}
    assert member.join_date == BASE_TIME


def test_supabase_update_patches_changed_fields_and_updated_at() -> None:
    existing = {"id": "a1", "title": "Walk", "participants": ["m1"]}
    client = StubSupabaseClient(
        get_responses=[[existing]],
        patch_responses=[[{**existing, "participants": ["m1", "m2"], "current_participants": 2}]],
    )
    repository = SupabaseCollectionsRepository(client=client, clock=FixedClock())

    updated = repository.update_record("activities", "a1", {"participants": ["m1", "m2"]})

    method, kwargs = client.calls[1]
    assert method == "patch"
    assert kwargs["query"]["id"] == "eq.a1"
    assert kwargs["payload"] == {
        "participants": ["m1", "m2"],
        "current_participants": 2,
        "updated_at": "2024-01-01T00:00:00+00:00",
    }
    assert updated.current_participants == 2


def test_supabase_delete_of_missing_row_raises_not_found() -> None:
    repository = SupabaseCollectionsRepository(client=StubSupabaseClient())

    with pytest.raises(RecordNotFoundError):
        repository.delete_record("links", "missing")
