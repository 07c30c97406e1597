"""Availability: occupied and blocked calendar dates for one listing.

Every range endpoint is reduced to a plain calendar date before it is
expanded or compared. A date stored as ``2024-06-01T00:00:00Z`` is June 1
for every caller; the UTC components are used, never the caller's offset.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Iterator, List, Optional, Set, Tuple, Union
from uuid import UUID

from dateutil import parser

from booking_service.domain.exceptions import BookingValidationException
from booking_service.domain.models import (
    CONFIRMED_OCCUPANCY,
    BlackoutRange,
    Rental,
)

DateLike = Union[date, datetime, str]
DateRange = Tuple[date, date]


def to_calendar_date(value: DateLike) -> date:
    """Normalize a date, datetime or ISO string to a timezone-agnostic date."""
    if isinstance(value, str):
        text = value.strip()
        if len(text) <= 10:
            return date.fromisoformat(text)
        value = parser.isoparse(text)

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()

    if isinstance(value, date):
        return value

    raise TypeError(f"Unsupported date value: {value!r}")


def total_days(start: DateLike, end: DateLike) -> int:
    """Inclusive whole-day count: a same-day rental is 1 day."""
    return (to_calendar_date(end) - to_calendar_date(start)).days + 1


def validate_range(start: DateLike, end: DateLike) -> DateRange:
    """Normalize both endpoints and reject empty ranges."""
    start_date = to_calendar_date(start)
    end_date = to_calendar_date(end)
    if start_date > end_date:
        raise BookingValidationException(
            f"Start date {start_date} is after end date {end_date}"
        )
    return start_date, end_date


def ranges_overlap(a: DateRange, b: DateRange) -> bool:
    """Inclusive overlap test."""
    return a[0] <= b[1] and b[0] <= a[1]


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


class IntervalSet:
    """Blocked and confirmed-occupancy ranges of a single listing."""

    def __init__(self, ranges: Optional[Iterable[Tuple[DateLike, DateLike]]] = None):
        self._ranges: List[DateRange] = []
        for start, end in ranges or ():
            self.add(start, end)

    @classmethod
    def for_listing(
        cls,
        blackouts: Iterable[BlackoutRange],
        rentals: Iterable[Rental],
        exclude_rental_id: Optional[UUID] = None,
    ) -> "IntervalSet":
        """Build from blackouts plus every rental that holds confirmed occupancy."""
        interval_set = cls()
        for blackout in blackouts:
            interval_set.add(blackout.start_date, blackout.end_date)
        for rental in rentals:
            if rental.status not in CONFIRMED_OCCUPANCY:
                continue
            if exclude_rental_id is not None and rental.rental_id == exclude_rental_id:
                continue
            interval_set.add(rental.start_date, rental.end_date)
        return interval_set

    @property
    def ranges(self) -> List[DateRange]:
        return list(self._ranges)

    def add(self, start: DateLike, end: DateLike) -> None:
        self._ranges.append(validate_range(start, end))

    def overlaps(self, start: DateLike, end: DateLike) -> bool:
        candidate = validate_range(start, end)
        return any(ranges_overlap(candidate, blocked) for blocked in self._ranges)

    def is_bookable(self, start: DateLike, end: DateLike) -> bool:
        return not self.overlaps(start, end)

    def unavailable_dates(
        self,
        window_start: Optional[DateLike] = None,
        window_end: Optional[DateLike] = None,
    ) -> List[date]:
        """Sorted union of every blocked day, clipped to the window if given."""
        low = to_calendar_date(window_start) if window_start is not None else None
        high = to_calendar_date(window_end) if window_end is not None else None

        days: Set[date] = set()
        for start, end in self._ranges:
            if low is not None and start < low:
                start = low
            if high is not None and end > high:
                end = high
            days.update(iter_days(start, end))
        return sorted(days)

    def __len__(self) -> int:
        return len(self._ranges)
