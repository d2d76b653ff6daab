"""Contract tests for TrustToolService operations."""

from __future__ import annotations

from pydantic import ValidationError

from backend.repositories.collections_repository import InMemoryCollectionsRepository
from backend.services.donor_aggregation import DonorNameMatching
from backend.services.tools import TrustToolService, tool_error_from_exception
from shared.errors import BackendUnavailableError
from shared.models import (
    DashboardStats,
    DonorsListing,
    DonorsPageResult,
    DonorsSummaryResult,
    ListState,
    Member,
    MembersListResult,
    RecordsPage,
    ToolError,
    ToolErrorCode,
    TrusteeRole,
    WordPressContent,
)
from tests.fakes import FixedClock, day, donation_rows, seeded_repository


def _service(repository: InMemoryCollectionsRepository | None = None, **kwargs) -> TrustToolService:
    options = {"strict_cursors": True, "page_size": 3, "clock": FixedClock(now=day(30))}
    options.update(kwargs)
    return TrustToolService(repository=repository or seeded_repository(), **options)


def test_records_list_returns_page_with_opaque_cursor() -> None:
    service = _service(seeded_repository(donations=donation_rows(5)))

    first = service.records_list("donations")
    assert isinstance(first, RecordsPage)
    assert [item["id"] for item in first.items] == ["d004", "d003", "d002"]
    assert first.items[0]["date"] == "2024-01-05T00:00:00+00:00"
    assert first.has_more is True
    assert isinstance(first.next_cursor, str)

    second = service.records_list("donations", cursor_token=first.next_cursor)
    assert [item["id"] for item in second.items] == ["d001", "d000"]
    assert second.has_more is False
    assert second.next_cursor is None


def test_records_list_rejects_cursor_from_other_search_when_strict() -> None:
    service = _service(seeded_repository(donations=donation_rows(5)))
    first = service.records_list("donations")

    result = service.records_list("donations", search="Donor", cursor_token=first.next_cursor)

    assert isinstance(result, ToolError)
    assert result.code == ToolErrorCode.INVALID_CURSOR


def test_records_list_restarts_on_bad_cursor_when_lenient() -> None:
    service = _service(seeded_repository(donations=donation_rows(5)), strict_cursors=False)

    result = service.records_list("donations", cursor_token="garbage")

    assert isinstance(result, RecordsPage)
    assert [item["id"] for item in result.items] == ["d004", "d003", "d002"]


def test_unknown_collection_maps_to_tool_error() -> None:
    result = _service().records_list("pets")

    assert isinstance(result, ToolError)
    assert result.code == ToolErrorCode.UNKNOWN_COLLECTION


def test_create_with_invalid_payload_returns_validation_details() -> None:
    result = _service().records_create("donations", {"donor": "", "amount": "lots"})

    assert isinstance(result, ToolError)
    assert result.code == ToolErrorCode.VALIDATION_ERROR
    locations = {tuple(error["loc"]) for error in result.details["validation_errors"]}
    assert ("donor",) in locations
    assert ("amount",) in locations


def test_crud_round_trip() -> None:
    service = _service()

    created = service.records_create("links", {"title": "Charity register", "url": "https://register"})
    fetched = service.records_get("links", created.id)
    updated = service.records_update("links", created.id, {"set": {"category": "legal"}})
    deleted = service.records_delete("links", created.id)
    missing = service.records_get("links", created.id)

    assert fetched == created
    assert updated.category == "legal"
    assert deleted == {"ok": True, "id": created.id}
    assert isinstance(missing, ToolError)
    assert missing.code == ToolErrorCode.NOT_FOUND


def test_update_with_empty_set_is_rejected() -> None:
    service = _service()
    created = service.records_create("links", {"title": "Docs", "url": "https://docs"})

    result = service.records_update("links", created.id, {"set": {}})

    assert isinstance(result, ToolError)
    assert result.code == ToolErrorCode.VALIDATION_ERROR


def test_backend_outage_maps_to_backend_unavailable() -> None:
    repository = seeded_repository()
    repository.available = False

    result = _service(repository).dashboard_stats()

    assert isinstance(result, ToolError)
    assert result.code == ToolErrorCode.BACKEND_UNAVAILABLE


def test_unexpected_exceptions_map_to_backend_error() -> None:
    error = tool_error_from_exception(KeyError("boom"))

    assert error.code == ToolErrorCode.BACKEND_ERROR


def test_validation_error_takes_precedence_over_value_error() -> None:
    try:
        Member.model_validate({"id": "m1"})
    except ValidationError as exc:
        error = tool_error_from_exception(exc)

    assert error.code == ToolErrorCode.VALIDATION_ERROR
    assert error.details["validation_errors"][0]["loc"] == ["name"]


def test_donors_list_summarizes_the_returned_page() -> None:
    repository = seeded_repository(
        donations=[
            {"id": "1", "donor": "A", "amount": 100, "date": day(2)},
            {"id": "2", "donor": "B", "amount": 50, "date": day(1)},
            {"id": "3", "donor": "A", "amount": 30, "date": day(3)},
            {"id": "4", "donor": "C", "amount": 5, "date": day(0)},
        ]
    )

    result = _service(repository).donors_list()

    assert isinstance(result, DonorsPageResult)
    assert [item["id"] for item in result.donations.items] == ["3", "1", "2"]
    assert [(donor.donor_name, donor.total_amount, donor.donation_count) for donor in result.donors] == [
        ("A", 130, 2),
        ("B", 50, 1),
    ]
    assert result.donors[0].most_recent_date == day(3)


def test_donors_load_accumulates_pages_before_summarizing() -> None:
    repository = seeded_repository(donations=donation_rows(4, donor="Same") + donation_rows(2, start=10))
    service = _service(repository)

    first = service.donors_load()
    assert isinstance(first, DonorsListing)
    assert len(first.state.items) == 3

    second = service.donors_load(first.state)
    assert len(second.state.items) == 6
    assert sum(donor.donation_count for donor in second.donors) == 6


def test_donors_load_continues_from_a_state_sent_back_as_json() -> None:
    repository = seeded_repository(donations=donation_rows(5))
    service = _service(repository)
    first = service.donors_load()

    returned = ListState.model_validate(first.model_dump(mode="json")["state"])
    second = service.donors_load(returned)

    assert isinstance(second, DonorsListing)
    assert [item.id for item in second.state.items] == ["d004", "d003", "d002", "d001", "d000"]
    assert second.state.has_more is False


def test_donors_summary_walks_every_page() -> None:
    rows = donation_rows(250)
    repository = seeded_repository(donations=rows)

    result = _service(repository).donors_summary()

    assert isinstance(result, DonorsSummaryResult)
    assert result.donation_count == 250
    assert result.total_amount == sum(row["amount"] for row in rows)
    assert result.donors[0].donor_name == "Donor 249"


def test_donors_summary_can_merge_case_variants() -> None:
    repository = seeded_repository(
        donations=[
            {"id": "1", "donor": "Ann Lee", "amount": 10},
            {"id": "2", "donor": "ann lee", "amount": 15},
        ]
    )
    service = _service(repository, donor_name_matching=DonorNameMatching.CASE_INSENSITIVE_TRIMMED)

    result = service.donors_summary()

    assert [(donor.donor_name, donor.total_amount) for donor in result.donors] == [("Ann Lee", 25)]


def test_member_donation_history_matches_member_name() -> None:
    repository = seeded_repository(
        members=[{"id": "m1", "name": "Ravi"}],
        donations=[
            {"id": "1", "donor": "Ravi", "amount": 10, "date": day(1)},
            {"id": "2", "donor": "Ravina", "amount": 10, "date": day(2)},
            {"id": "3", "donor": "Ravi", "amount": 20, "date": day(3)},
        ],
    )

    result = _service(repository).member_donation_history("m1")

    assert [item.id for item in result.items] == ["3", "1"]


def test_trustee_role_assignment_and_removal() -> None:
    repository = seeded_repository(members=[{"id": "m1", "name": "Ravi"}, {"id": "m2", "name": "Sita"}])
    service = _service(repository)

    assigned = service.trustee_assign_role("m1", {"role": "Secretary Treasurer"})
    assert assigned.trustee_role == TrusteeRole.SECRETARY_TREASURER
    assert assigned.role_start_date == day(30)
    assert assigned.role_end_date is None

    trustees = service.trustees_list()
    assert isinstance(trustees, MembersListResult)
    assert [member.id for member in trustees.items] == ["m1"]

    removed = service.trustee_remove_role("m1", {"end_date": "2024-12-31"})
    assert removed.trustee_role is None
    assert removed.role_start_date == day(30)
    assert removed.role_end_date == day(365)
    assert service.trustees_list().items == []


def test_trustee_assignment_rejects_unknown_role() -> None:
    repository = seeded_repository(members=[{"id": "m1", "name": "Ravi"}])

    result = _service(repository).trustee_assign_role("m1", {"role": "Overlord"})

    assert isinstance(result, ToolError)
    assert result.code == ToolErrorCode.VALIDATION_ERROR


def test_activity_participants_behave_like_a_set() -> None:
    repository = seeded_repository(
        members=[{"id": "m1", "name": "Ravi"}, {"id": "m2", "name": "Sita"}],
        activities=[{"id": "a1", "title": "Beach clean", "max_participants": 1}],
    )
    service = _service(repository)

    joined = service.activity_add_participant("a1", "m1")
    again = service.activity_add_participant("a1", "m1")
    full = service.activity_add_participant("a1", "m2")

    assert joined.participants == ["m1"]
    assert joined.current_participants == 1
    assert again.participants == ["m1"]
    assert isinstance(full, ToolError)
    assert full.code == ToolErrorCode.VALIDATION_ERROR

    left = service.activity_remove_participant("a1", "m1")
    assert left.participants == []
    assert left.current_participants == 0
    assert service.activity_remove_participant("a1", "m1").participants == []


def test_adding_unknown_member_is_not_found() -> None:
    repository = seeded_repository(activities=[{"id": "a1", "title": "Beach clean"}])

    result = _service(repository).activity_add_participant("a1", "ghost")

    assert isinstance(result, ToolError)
    assert result.code == ToolErrorCode.NOT_FOUND


def test_dashboard_stats_totals_and_recent_items() -> None:
    repository = seeded_repository(
        members=[{"id": f"m{index}", "name": f"Member {index}"} for index in range(3)],
        donations=donation_rows(7),
        expenses=[
            {"id": "e1", "description": "Rent", "amount": 500, "date": day(1)},
            {"id": "e2", "description": "Food", "amount": 120, "date": day(2)},
        ],
        activities=[
            {"id": "a1", "title": "Fair", "status": "completed", "actual_amount": 300, "date": day(1)},
            {"id": "a2", "title": "Walk", "status": "completed", "date": day(2)},
            {"id": "a3", "title": "Gala", "status": "upcoming", "date": day(9)},
            {"id": "a4", "title": "Drive", "status": "ongoing", "actual_amount": 50, "date": day(5)},
        ],
    )

    stats = _service(repository).dashboard_stats()

    assert isinstance(stats, DashboardStats)
    assert stats.total_members == 3
    assert stats.total_donations == sum(range(1, 8))
    assert stats.total_expenses == 620
    assert stats.total_contributions == 300
    assert (stats.upcoming_activities, stats.ongoing_activities, stats.completed_activities) == (1, 1, 2)
    assert [donation.id for donation in stats.recent_donations] == ["d006", "d005", "d004", "d003", "d002"]
    assert [expense.id for expense in stats.recent_expenses] == ["e2", "e1"]
    assert [activity.id for activity in stats.recent_activities] == ["a3", "a4", "a2", "a1"]


def test_wordpress_sync_without_service_is_reported() -> None:
    result = _service().wordpress_sync()

    assert isinstance(result, ToolError)
    assert result.code == ToolErrorCode.BACKEND_ERROR


def test_wordpress_sync_outage_maps_to_backend_unavailable() -> None:
    class _FailingSync:
        def sync(self, wp_url: str):
            raise BackendUnavailableError("WordPress is unreachable")

    result = _service(wordpress_sync_service=_FailingSync()).wordpress_sync("https://blog")

    assert isinstance(result, ToolError)
    assert result.code == ToolErrorCode.BACKEND_UNAVAILABLE


def test_wordpress_content_passes_posts_and_pages_through() -> None:
    class _Content:
        def fetch_content(self, wp_url: str) -> WordPressContent:
            return WordPressContent(posts=[{"id": 1, "url": wp_url}], pages=[{"id": 2}])

    result = _service(wordpress_sync_service=_Content()).wordpress_content("https://blog")

    assert isinstance(result, WordPressContent)
    assert result.posts == [{"id": 1, "url": "https://blog"}]
    assert result.pages == [{"id": 2}]


def test_wordpress_content_without_service_is_reported() -> None:
    result = _service().wordpress_content()

    assert isinstance(result, ToolError)
    assert result.code == ToolErrorCode.BACKEND_ERROR


def test_donors_listing_rejects_unknown_fields() -> None:
    try:
        DonorsListing.model_validate({"state": {"collection": "donations"}, "donors": [], "total": 0})
    except ValidationError as exc:
        assert exc.errors()[0]["type"] == "extra_forbidden"
    else:
        raise AssertionError("DonorsListing accepted an unknown field")
