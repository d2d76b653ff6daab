"""Per-donor rollups computed from raw donation records."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from shared.models import Donation, DonorSummary


class DonorNameMatching(str, Enum):
    """How donor names are compared when grouping donations."""

    EXACT = "exact"
    CASE_INSENSITIVE_TRIMMED = "case_insensitive_trimmed"


@dataclass(slots=True)
class DonorTotals:
    donor_name: str
    total_amount: int = 0
    donation_count: int = 0
    most_recent_date: datetime | None = None


DonorAccumulator = dict[str, DonorTotals]


def donor_key(name: str, name_matching: DonorNameMatching | str = DonorNameMatching.EXACT) -> str:
    if DonorNameMatching(name_matching) is DonorNameMatching.CASE_INSENSITIVE_TRIMMED:
        return name.strip().casefold()
    return name


def new_accumulator() -> DonorAccumulator:
    return {}


def fold(
    accumulator: DonorAccumulator,
    donation: Donation,
    name_matching: DonorNameMatching | str = DonorNameMatching.EXACT,
) -> DonorAccumulator:
    """Add one donation to ``accumulator`` (updated in place) and return it.

    The first spelling seen for a donor is the one reported. The most recent
    date only moves on a strictly later date, so equal dates keep the value
    from the donation seen first.
    """

    key = donor_key(donation.donor, name_matching)
    totals = accumulator.get(key)
    if totals is None:
        totals = DonorTotals(donor_name=donation.donor)
        accumulator[key] = totals

    totals.total_amount += donation.amount
    totals.donation_count += 1
    if totals.most_recent_date is None:
        totals.most_recent_date = donation.date
    elif donation.date is not None and donation.date > totals.most_recent_date:
        totals.most_recent_date = donation.date

    return accumulator


def finalize(accumulator: DonorAccumulator) -> list[DonorSummary]:
    """Return summaries by total amount, highest first; ties keep first-seen order."""

    ranked = sorted(accumulator.values(), key=lambda totals: totals.total_amount, reverse=True)
    return [
        DonorSummary(
            donor_name=totals.donor_name,
            total_amount=totals.total_amount,
            donation_count=totals.donation_count,
            most_recent_date=totals.most_recent_date,
        )
        for totals in ranked
    ]


def summarize(
    donations: Iterable[Donation],
    name_matching: DonorNameMatching | str = DonorNameMatching.EXACT,
) -> list[DonorSummary]:
    """Group donations by donor and rank the donors by total amount."""

    accumulator = new_accumulator()
    for donation in donations:
        fold(accumulator, donation, name_matching)
    return finalize(accumulator)
