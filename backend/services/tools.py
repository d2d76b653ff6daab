"""Service operations exposed to the HTTP layer.

Every public method returns either its result model or a ``ToolError``;
exceptions never cross this boundary.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from pydantic import ValidationError

from backend.repositories.collections_repository import CollectionsRepository
from backend.services.donor_aggregation import DonorNameMatching, summarize
from backend.services.paged_lists import PagedListService, dedupe_by_id, mode_for
from backend.services.wordpress_sync import WordPressSyncService
from shared import config
from shared.config import MAX_PAGE_SIZE
from shared.errors import (
    BackendUnavailableError,
    InvalidCursorError,
    RecordNotFoundError,
    UnknownCollectionError,
)
from shared.models import (
    Activity,
    ActivityStatus,
    DashboardStats,
    DefaultMode,
    Donation,
    DonationsListResult,
    DonorsListing,
    DonorsPageResult,
    DonorsSummaryResult,
    Expense,
    FetchMode,
    ListState,
    Member,
    MembersListResult,
    Page,
    PageCursor,
    Record,
    RecordsPage,
    RecordUpdateRequest,
    SyncResult,
    ToolError,
    ToolErrorCode,
    TrusteeRoleAssignRequest,
    TrusteeRoleRemoveRequest,
    WordPressContent,
)


logger = logging.getLogger(__name__)

_RECENT_LIMIT = 5


def tool_error_from_exception(exc: Exception) -> ToolError:
    """Normalize an exception into a ToolError at the contract boundary."""

    if isinstance(exc, ValidationError):
        return ToolError(
            code=ToolErrorCode.VALIDATION_ERROR,
            message="Invalid payload",
            details={"validation_errors": json.loads(exc.json(include_url=False))},
        )
    if isinstance(exc, InvalidCursorError):
        return ToolError(code=ToolErrorCode.INVALID_CURSOR, message=str(exc))
    if isinstance(exc, RecordNotFoundError):
        return ToolError(code=ToolErrorCode.NOT_FOUND, message=str(exc))
    if isinstance(exc, UnknownCollectionError):
        return ToolError(code=ToolErrorCode.UNKNOWN_COLLECTION, message=str(exc))
    if isinstance(exc, BackendUnavailableError):
        return ToolError(code=ToolErrorCode.BACKEND_UNAVAILABLE, message=str(exc))
    if isinstance(exc, ValueError):
        return ToolError(code=ToolErrorCode.VALIDATION_ERROR, message=str(exc))

    logger.exception("unexpected_service_error exception_type=%s", type(exc).__name__)
    return ToolError(code=ToolErrorCode.BACKEND_ERROR, message=str(exc))


def to_records_page(collection: str, page: Page) -> RecordsPage:
    return RecordsPage(
        collection=collection,
        items=[item.model_dump(mode="json") for item in page.items],
        next_cursor=page.next_cursor.encode() if page.next_cursor else None,
        has_more=page.has_more,
    )


@dataclass(slots=True)
class TrustToolService:
    repository: CollectionsRepository
    wordpress_sync_service: WordPressSyncService | None = None
    strict_cursors: bool = field(default_factory=config.strict_cursors)
    page_size: int = field(default_factory=config.default_page_size)
    donor_name_matching: DonorNameMatching = field(
        default_factory=lambda: DonorNameMatching(config.donor_name_matching())
    )
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)

    def _iter_all(self, collection: str, mode: FetchMode | None = None) -> Iterator[Record]:
        """Yield every record of ``collection`` by walking its pages."""

        fetch_mode = mode or DefaultMode()
        cursor: PageCursor | None = None
        seen: set[str] = set()
        while True:
            page = self.repository.fetch_page(collection, fetch_mode, cursor, MAX_PAGE_SIZE)
            for record in page.items:
                if record.id not in seen:
                    seen.add(record.id)
                    yield record
            if not page.has_more or page.next_cursor is None:
                return
            cursor = page.next_cursor

    def _fetch_page(
        self,
        collection: str,
        search: str | None,
        cursor_token: str | None,
        page_size: int | None,
    ) -> Page:
        mode = mode_for(collection, search)
        size = page_size or self.page_size
        try:
            cursor = PageCursor.decode(cursor_token) if cursor_token else None
            return self.repository.fetch_page(collection, mode, cursor, size)
        except InvalidCursorError:
            if self.strict_cursors:
                raise
            logger.warning("invalid_cursor_restarting collection=%s mode=%s", collection, mode.key())
            return self.repository.fetch_page(collection, mode, None, size)

    def records_list(
        self,
        collection: str,
        *,
        search: str | None = None,
        cursor_token: str | None = None,
        page_size: int | None = None,
    ) -> RecordsPage | ToolError:
        try:
            page = self._fetch_page(collection, search, cursor_token, page_size)
            return to_records_page(collection, page)
        except Exception as exc:
            return tool_error_from_exception(exc)

    def records_get(self, collection: str, record_id: str) -> Record | ToolError:
        try:
            return self.repository.get_record(collection, record_id)
        except Exception as exc:
            return tool_error_from_exception(exc)

    def records_create(self, collection: str, payload: dict[str, object]) -> Record | ToolError:
        try:
            record = self.repository.create_record(collection, payload)
            logger.info("record_created collection=%s id=%s", collection, record.id)
            return record
        except Exception as exc:
            return tool_error_from_exception(exc)

    def records_update(
        self,
        collection: str,
        record_id: str,
        request: RecordUpdateRequest | dict[str, object],
    ) -> Record | ToolError:
        try:
            update = RecordUpdateRequest.model_validate(request)
            record = self.repository.update_record(collection, record_id, update.set)
            logger.info("record_updated collection=%s id=%s fields=%s", collection, record_id, sorted(update.set))
            return record
        except Exception as exc:
            return tool_error_from_exception(exc)

    def records_delete(self, collection: str, record_id: str) -> dict[str, object] | ToolError:
        try:
            self.repository.delete_record(collection, record_id)
            logger.info("record_deleted collection=%s id=%s", collection, record_id)
            return {"ok": True, "id": record_id}
        except Exception as exc:
            return tool_error_from_exception(exc)

    def donors_list(
        self,
        *,
        search: str | None = None,
        cursor_token: str | None = None,
        page_size: int | None = None,
    ) -> DonorsPageResult | ToolError:
        """Return one page of donations and the donors found on that page."""

        try:
            page = self._fetch_page("donations", search, cursor_token, page_size)
            donations = [item for item in page.items if isinstance(item, Donation)]
            return DonorsPageResult(
                donations=to_records_page("donations", page),
                donors=summarize(donations, self.donor_name_matching),
            )
        except Exception as exc:
            return tool_error_from_exception(exc)

    def donors_load(self, state: ListState | None = None, *, search: str | None = None) -> DonorsListing | ToolError:
        """Load the first (``state is None``) or next page of donations and rebuild donor summaries.

        Summaries only cover the donations accumulated so far.
        """

        try:
            lists = PagedListService(self.repository, strict_cursors=self.strict_cursors, page_size=self.page_size)
            if state is None:
                next_state = lists.load_first("donations", search)
            else:
                next_state = lists.load_more(state)
            donations = [item for item in next_state.items if isinstance(item, Donation)]
            return DonorsListing(state=next_state, donors=summarize(donations, self.donor_name_matching))
        except Exception as exc:
            return tool_error_from_exception(exc)

    def donors_summary(self, *, search: str | None = None) -> DonorsSummaryResult | ToolError:
        """Summarize every donation (optionally restricted to a donor prefix)."""

        try:
            donations = [
                item
                for item in self._iter_all("donations", mode_for("donations", search))
                if isinstance(item, Donation)
            ]
            return DonorsSummaryResult(
                donors=summarize(donations, self.donor_name_matching),
                donation_count=len(donations),
                total_amount=sum(donation.amount for donation in donations),
            )
        except Exception as exc:
            return tool_error_from_exception(exc)

    def member_donation_history(self, member_id: str) -> DonationsListResult | ToolError:
        try:
            member = self.repository.get_record("members", member_id)
            donations = self.repository.find_records("donations", field="donor", value=member.name)
            return DonationsListResult(items=dedupe_by_id(donations))
        except Exception as exc:
            return tool_error_from_exception(exc)

    def trustees_list(self) -> MembersListResult | ToolError:
        try:
            trustees = [
                member
                for member in self._iter_all("members")
                if isinstance(member, Member) and member.trustee_role is not None
            ]
            return MembersListResult(items=trustees)
        except Exception as exc:
            return tool_error_from_exception(exc)

    def trustee_assign_role(
        self,
        member_id: str,
        request: TrusteeRoleAssignRequest | dict[str, object],
    ) -> Record | ToolError:
        try:
            assignment = TrusteeRoleAssignRequest.model_validate(request)
            return self.repository.update_record(
                "members",
                member_id,
                {
                    "trustee_role": assignment.role,
                    "role_start_date": assignment.start_date or self.clock(),
                    "role_end_date": None,
                },
            )
        except Exception as exc:
            return tool_error_from_exception(exc)

    def trustee_remove_role(
        self,
        member_id: str,
        request: TrusteeRoleRemoveRequest | dict[str, object] | None = None,
    ) -> Record | ToolError:
        try:
            removal = TrusteeRoleRemoveRequest.model_validate(request or {})
            return self.repository.update_record(
                "members",
                member_id,
                {"trustee_role": None, "role_end_date": removal.end_date or self.clock()},
            )
        except Exception as exc:
            return tool_error_from_exception(exc)

    def activity_add_participant(self, activity_id: str, member_id: str) -> Record | ToolError:
        try:
            activity = self.repository.get_record("activities", activity_id)
            self.repository.get_record("members", member_id)
            if not isinstance(activity, Activity):
                raise RecordNotFoundError("activities", activity_id)
            if member_id in activity.participants:
                return activity
            if activity.max_participants and len(activity.participants) >= activity.max_participants:
                return ToolError(
                    code=ToolErrorCode.VALIDATION_ERROR,
                    message="Maximum participants limit reached",
                    details={"max_participants": activity.max_participants},
                )
            return self.repository.update_record(
                "activities",
                activity_id,
                {"participants": [*activity.participants, member_id]},
            )
        except Exception as exc:
            return tool_error_from_exception(exc)

    def activity_remove_participant(self, activity_id: str, member_id: str) -> Record | ToolError:
        try:
            activity = self.repository.get_record("activities", activity_id)
            if not isinstance(activity, Activity):
                raise RecordNotFoundError("activities", activity_id)
            if member_id not in activity.participants:
                return activity
            return self.repository.update_record(
                "activities",
                activity_id,
                {"participants": [participant for participant in activity.participants if participant != member_id]},
            )
        except Exception as exc:
            return tool_error_from_exception(exc)

    def dashboard_stats(self) -> DashboardStats | ToolError:
        try:
            total_members = sum(1 for _ in self._iter_all("members"))
            total_donations = sum(
                item.amount for item in self._iter_all("donations") if isinstance(item, Donation)
            )
            total_expenses = sum(
                item.amount for item in self._iter_all("expenses") if isinstance(item, Expense)
            )

            status_counts = {status: 0 for status in ActivityStatus}
            total_contributions = 0
            for activity in self._iter_all("activities"):
                if not isinstance(activity, Activity):
                    continue
                status_counts[activity.status] += 1
                if activity.status == ActivityStatus.COMPLETED:
                    total_contributions += activity.actual_amount or 0

            def _recent(collection: str) -> list[Record]:
                return self.repository.fetch_page(collection, DefaultMode(), None, _RECENT_LIMIT).items

            return DashboardStats(
                total_members=total_members,
                total_donations=total_donations,
                total_expenses=total_expenses,
                total_contributions=total_contributions,
                upcoming_activities=status_counts[ActivityStatus.UPCOMING],
                ongoing_activities=status_counts[ActivityStatus.ONGOING],
                completed_activities=status_counts[ActivityStatus.COMPLETED],
                recent_donations=_recent("donations"),
                recent_expenses=_recent("expenses"),
                recent_activities=_recent("activities"),
            )
        except Exception as exc:
            return tool_error_from_exception(exc)

    def wordpress_sync(self, wp_url: str | None = None) -> SyncResult | ToolError:
        if self.wordpress_sync_service is None:
            return ToolError(
                code=ToolErrorCode.BACKEND_ERROR,
                message="WordPress sync service unavailable",
            )

        try:
            return self.wordpress_sync_service.sync(wp_url or config.wordpress_url())
        except Exception as exc:
            logger.warning("wordpress_sync_failed error=%s", exc)
            return tool_error_from_exception(exc)

    def wordpress_content(self, wp_url: str | None = None) -> WordPressContent | ToolError:
        if self.wordpress_sync_service is None:
            return ToolError(
                code=ToolErrorCode.BACKEND_ERROR,
                message="WordPress service unavailable",
            )

        try:
            return self.wordpress_sync_service.fetch_content(wp_url or config.wordpress_url())
        except Exception as exc:
            logger.warning("wordpress_content_failed error=%s", exc)
            return tool_error_from_exception(exc)
