"""Normalization of stored date values into timezone-aware instants.

Stored records carry dates in several shapes: native ``datetime``/``date``
objects, ISO-8601 strings, epoch numbers, Firestore-style timestamp payloads
(``{"seconds": ..., "nanoseconds": ...}``) or nothing at all. Every model date
field goes through :func:`normalize_date_value` so comparisons and formatting
only ever see ``datetime`` in UTC or ``None``.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Annotated, Any, Union

from pydantic import BeforeValidator, PlainSerializer


DateValue = Union[datetime, date, str, int, float, dict[str, Any], None]


def _from_epoch(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def _from_timestamp_payload(payload: dict[str, Any]) -> datetime:
    seconds = payload.get("seconds", payload.get("_seconds"))
    nanoseconds = payload.get("nanoseconds", payload.get("_nanoseconds", 0)) or 0
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        raise ValueError(f"Unsupported timestamp payload: {payload!r}")
    return _from_epoch(seconds + nanoseconds / 1_000_000_000)


def _from_iso_string(value: str) -> datetime | None:
    cleaned = value.strip()
    if not cleaned:
        return None
    if cleaned.endswith(("Z", "z")):
        cleaned = f"{cleaned[:-1]}+00:00"
    try:
        return datetime.fromisoformat(cleaned)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO date string: {value!r}") from exc


def normalize_date_value(value: DateValue) -> datetime | None:
    """Return ``value`` as an aware UTC datetime, or ``None`` when missing.

    Naive datetimes are assumed to already be in UTC and plain dates map to
    midnight UTC. Raises ``ValueError`` for values that cannot be interpreted.
    """

    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        parsed = _from_iso_string(value)
        if parsed is None:
            return None
    elif isinstance(value, bool):
        raise ValueError("Booleans are not date values")
    elif isinstance(value, (int, float)):
        parsed = _from_epoch(value)
    elif isinstance(value, dict):
        parsed = _from_timestamp_payload(value)
    else:
        raise ValueError(f"Unsupported date value type: {type(value).__name__}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    """Return the canonical ISO string stored for an instant."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


Instant = Annotated[
    Union[datetime, None],
    BeforeValidator(normalize_date_value),
    PlainSerializer(to_iso, return_type=Union[str, None], when_used="json"),
]
