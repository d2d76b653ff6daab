"""Pydantic contracts shared across repositories, services and the HTTP API."""

from __future__ import annotations

import base64
import binascii
import json
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializeAsAny,
    ValidationError,
    field_validator,
    model_validator,
)

from shared.date_values import Instant
from shared.errors import InvalidCursorError


class ToolErrorCode(str, Enum):
    """Stable error codes for service contracts across layers."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_CURSOR = "INVALID_CURSOR"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN_COLLECTION = "UNKNOWN_COLLECTION"
    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    BACKEND_ERROR = "BACKEND_ERROR"


class ToolError(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: ToolErrorCode
    message: str
    details: dict[str, object] | None = None


class TrusteeRole(str, Enum):
    PRESIDENT = "President"
    VICE_PRESIDENT = "Vice President"
    SECRETARY_TREASURER = "Secretary Treasurer"
    MANAGING_TRUSTEE = "Managing Trustee"
    PROGRAM_DIRECTOR = "Program Director"
    LOGISTICS_COORDINATOR = "Logistics Coordinator"
    DIGITAL_ENGAGEMENT_COORDINATOR = "Digital Engagement Coordinator"
    VOLUNTEER_COORDINATOR = "Volunteer Coordinator"
    VOLUNTEER = "Volunteer"
    IT_TEAM = "IT Team"
    SOCIAL_MEDIA_TEAM = "Social Media Team"
    GENERAL_TRUSTEE = "General Trustee"


class DonationKind(str, Enum):
    MEMBER = "member"
    GENERAL = "general"


class ActivityStatus(str, Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WorkshopResourceKind(str, Enum):
    MEMBER = "member"
    EXTERNAL = "external"


class WorkshopResourceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Record(BaseModel):
    """Base shape of every stored document: a store-assigned immutable id."""

    model_config = ConfigDict(extra="forbid")

    id: str


class Member(Record):
    name: str
    email: str = ""
    phone: str = ""
    join_date: Instant = None
    created_at: Instant = None
    updated_at: Instant = None
    trustee_role: TrusteeRole | None = None
    role_start_date: Instant = None
    role_end_date: Instant = None


class MemberCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    email: str = ""
    phone: str = ""


class Donation(Record):
    donor: str = Field(min_length=1)
    amount: int = Field(ge=0)
    date: Instant = None
    purpose: str = ""
    notes: str | None = None
    kind: DonationKind = DonationKind.GENERAL
    member_id: str | None = None


class DonationCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    donor: str = Field(min_length=1)
    amount: int = Field(ge=0)
    purpose: str = ""
    notes: str | None = None
    kind: DonationKind = DonationKind.GENERAL
    member_id: str | None = None
    date: Instant = None


class Expense(Record):
    description: str
    amount: int = Field(ge=0)
    date: Instant = None
    category: str = ""
    payment_method: str = ""
    paid_to: str = ""
    bill_number: str | None = None
    notes: str | None = None
    created_at: Instant = None
    updated_at: Instant = None


class ExpenseCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: str = Field(min_length=1)
    amount: int = Field(ge=0)
    date: Instant = None
    category: str = ""
    payment_method: str = ""
    paid_to: str = ""
    bill_number: str | None = None
    notes: str | None = None


class Activity(Record):
    title: str
    description: str = ""
    date: Instant = None
    start_time: str = ""
    end_time: str = ""
    location: str = ""
    category: str = ""
    status: ActivityStatus = ActivityStatus.UPCOMING
    organizer: str = ""
    max_participants: int | None = Field(default=None, ge=0)
    participants: list[str] = Field(default_factory=list)
    current_participants: int = 0
    budget: int | None = Field(default=None, ge=0)
    actual_amount: int | None = Field(default=None, ge=0)
    contribution_date: Instant = None
    contribution_notes: str | None = None
    expenses: int | None = Field(default=None, ge=0)
    notes: str | None = None
    created_at: Instant = None
    updated_at: Instant = None

    @model_validator(mode="after")
    def count_participants(self) -> Activity:
        self.current_participants = len(self.participants)
        return self


class ActivityCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    description: str = ""
    date: Instant = None
    start_time: str = ""
    end_time: str = ""
    location: str = ""
    category: str = ""
    status: ActivityStatus = ActivityStatus.UPCOMING
    organizer: str = ""
    max_participants: int | None = Field(default=None, ge=0)
    participants: list[str] = Field(default_factory=list)
    budget: int | None = Field(default=None, ge=0)
    actual_amount: int | None = Field(default=None, ge=0)
    contribution_date: Instant = None
    contribution_notes: str | None = None
    expenses: int | None = Field(default=None, ge=0)
    notes: str | None = None


class ContactDetails(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str = ""
    phone: str = ""
    address: str | None = None


class WorkshopReference(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = ""
    relationship: str = ""
    contact: ContactDetails = Field(default_factory=ContactDetails)


class WorkshopResource(Record):
    name: str
    specialization: str = ""
    kind: WorkshopResourceKind = WorkshopResourceKind.EXTERNAL
    expertise: list[str] = Field(default_factory=list)
    reference: WorkshopReference = Field(default_factory=WorkshopReference)
    contact: ContactDetails = Field(default_factory=ContactDetails)
    availability: str = ""
    previous_workshops: str = ""
    notes: str = ""
    status: WorkshopResourceStatus = WorkshopResourceStatus.ACTIVE
    created_at: Instant = None
    updated_at: Instant = None


class WorkshopResourceCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    specialization: str = ""
    kind: WorkshopResourceKind = WorkshopResourceKind.EXTERNAL
    expertise: list[str] = Field(default_factory=list)
    reference: WorkshopReference = Field(default_factory=WorkshopReference)
    contact: ContactDetails = Field(default_factory=ContactDetails)
    availability: str = ""
    previous_workshops: str = ""
    notes: str = ""
    status: WorkshopResourceStatus = WorkshopResourceStatus.ACTIVE


class MeetingAttendee(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    role: str | None = None
    present: bool = False


class MeetingAttachment(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    url: str
    kind: str = ""


class Meeting(Record):
    title: str
    date: Instant = None
    start_time: str = ""
    end_time: str = ""
    location: str = ""
    attendees: list[MeetingAttendee] = Field(default_factory=list)
    agenda: str = ""
    minutes: str = ""
    decisions: list[str] = Field(default_factory=list)
    attachments: list[MeetingAttachment] = Field(default_factory=list)
    created_at: Instant = None
    updated_at: Instant = None


class MeetingCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    date: Instant = None
    start_time: str = ""
    end_time: str = ""
    location: str = ""
    attendees: list[MeetingAttendee] = Field(default_factory=list)
    agenda: str = ""
    minutes: str = ""
    decisions: list[str] = Field(default_factory=list)
    attachments: list[MeetingAttachment] = Field(default_factory=list)

    @field_validator("decisions")
    @classmethod
    def drop_blank_decisions(cls, value: list[str]) -> list[str]:
        return [decision for decision in value if decision.strip()]


class Link(Record):
    title: str
    url: str
    category: str = ""
    description: str | None = None
    icon: str | None = None
    created_at: Instant = None
    updated_at: Instant = None


class LinkCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    url: str = Field(min_length=1)
    category: str = ""
    description: str | None = None
    icon: str | None = None


class WordPressPost(Record):
    wp_id: int
    title: str
    content: str = ""
    date: Instant = None
    last_modified: Instant = None
    slug: str = ""
    synced_at: Instant = None


class WordPressPostCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    wp_id: int
    title: str
    content: str = ""
    date: Instant = None
    last_modified: Instant = None
    slug: str = ""
    synced_at: Instant = None


class RecordUpdateRequest(BaseModel):
    """Partial update: the fields in ``set`` are merged into the stored record."""

    model_config = ConfigDict(extra="forbid")

    set: dict[str, object | None]

    @field_validator("set")
    @classmethod
    def validate_set(cls, value: dict[str, object | None]) -> dict[str, object | None]:
        if not value:
            raise ValueError("set must contain at least one field")
        if "id" in value:
            raise ValueError("id is immutable")
        return value


class DefaultMode(BaseModel):
    """Newest-first listing ordered by the collection sort field."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["default"] = "default"

    def key(self) -> str:
        return "default"


class PrefixSearchMode(BaseModel):
    """Range-prefix match on a search field, ordered by that field."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["prefix"] = "prefix"
    term: str = Field(min_length=1)
    field: str = Field(min_length=1)

    def key(self) -> str:
        return f"prefix:{self.field}:{self.term}"


FetchMode = Annotated[Union[DefaultMode, PrefixSearchMode], Field(discriminator="kind")]


class PageCursor(BaseModel):
    """Position after the last record of a page, valid for one ordering only."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    mode_key: str
    last_id: str
    sort_value: Instant = None
    search_value: str | None = None

    def encode(self) -> str:
        raw = json.dumps(self.model_dump(mode="json"), separators=(",", ":"), sort_keys=True)
        return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")

    @classmethod
    def decode(cls, token: str) -> PageCursor:
        padded = token + "=" * (-len(token) % 4)
        try:
            payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
            return cls.model_validate(payload)
        except (binascii.Error, UnicodeError, ValueError, ValidationError) as exc:
            raise InvalidCursorError("Malformed page cursor") from exc


class Page(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: list[SerializeAsAny[Record]]
    next_cursor: PageCursor | None = None
    has_more: bool = False


class ListState(BaseModel):
    """Accumulated list shown across successive "load more" calls."""

    model_config = ConfigDict(extra="forbid")

    collection: str
    mode: FetchMode = Field(default_factory=DefaultMode)
    page_size: int = Field(default=10, ge=1, le=100)
    items: list[SerializeAsAny[Record]] = Field(default_factory=list)
    cursor: PageCursor | None = None
    has_more: bool = True
    busy: bool = False
    error: str | None = None

    @model_validator(mode="before")
    @classmethod
    def items_as_collection_records(cls, data: Any) -> Any:
        """Rebuild dumped items with the record model of their collection."""

        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            return data
        if not any(isinstance(item, dict) for item in data["items"]):
            return data

        from shared.collection_specs import get_collection_spec

        try:
            model = get_collection_spec(str(data.get("collection"))).model
        except KeyError as exc:
            raise ValueError(str(exc)) from exc
        items = [model.model_validate(item) if isinstance(item, dict) else item for item in data["items"]]
        return {**data, "items": items}


class RecordsPage(BaseModel):
    """HTTP-facing page: records serialized, cursor as an opaque token."""

    model_config = ConfigDict(extra="forbid")

    collection: str
    items: list[dict[str, Any]]
    next_cursor: str | None = None
    has_more: bool


class DonorSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    donor_name: str
    total_amount: int = Field(ge=0)
    donation_count: int = Field(ge=1)
    most_recent_date: Instant = None


class DonorsPageResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    donations: RecordsPage
    donors: list[DonorSummary]


class DonorsListing(BaseModel):
    """Accumulated donations plus the donor summaries computed from them."""

    model_config = ConfigDict(extra="forbid")

    state: ListState
    donors: list[DonorSummary]


class DonorsSummaryResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    donors: list[DonorSummary]
    donation_count: int
    total_amount: int


class DonationsListResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: list[Donation]


class MembersListResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: list[Member]


class TrusteeRoleAssignRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: TrusteeRole
    start_date: Instant = None


class TrusteeRoleRemoveRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    end_date: Instant = None


class DashboardStats(BaseModel):
    model_config = ConfigDict(extra="forbid")

    total_members: int
    total_donations: int
    total_expenses: int
    total_contributions: int
    upcoming_activities: int
    ongoing_activities: int
    completed_activities: int
    recent_donations: list[Donation]
    recent_expenses: list[Expense]
    recent_activities: list[Activity]


class SyncRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    api_key: str
    wp_url: str | None = None


class SyncResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool
    synced: int = 0
    created: int = 0
    updated: int = 0
    message: str


class WordPressContent(BaseModel):
    """Live WordPress posts and pages, passed through unchanged."""

    model_config = ConfigDict(extra="forbid")

    success: bool = True
    posts: list[dict[str, Any]]
    pages: list[dict[str, Any]]
