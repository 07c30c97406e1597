"""Dashboard status classification of rentals.

All functions are pure: ``now`` is always passed in, so a dashboard render
classifies every rental against the same instant.
"""
from datetime import date, datetime
from typing import Dict, Iterable, List, Union

from booking_service.domain.availability import to_calendar_date
from booking_service.domain.models import (
    CONFIRMED_OCCUPANCY,
    DashboardStatus,
    DashboardView,
    Rental,
    RentalStatus,
)

Now = Union[date, datetime]

_OWNER_EXCLUDED = frozenset({RentalStatus.DECLINED, RentalStatus.CANCELLED})
_OWNER_FINISHED = frozenset({RentalStatus.COMPLETED, RentalStatus.ARCHIVED})
# Only a rental that was handed over can be late for the renter.
_RENTER_CAN_BE_OVERDUE = frozenset({RentalStatus.ACTIVE, RentalStatus.RETURNED})


def _today(now: Now) -> date:
    return to_calendar_date(now)


def classify_for_renter(rental: Rental, now: Now) -> DashboardStatus:
    """Renter taxonomy, defined for confirmed rentals only."""
    if rental.status not in CONFIRMED_OCCUPANCY:
        raise ValueError(
            f"Renter dashboard does not classify rentals in status {rental.status.value}"
        )

    today = _today(now)
    if today > rental.end_date and rental.status in _RENTER_CAN_BE_OVERDUE:
        return DashboardStatus.OVERDUE
    if today == rental.end_date:
        return DashboardStatus.DUE_TODAY
    return DashboardStatus.ACTIVE


def classify_for_owner(rental: Rental, now: Now) -> DashboardStatus:
    """Owner taxonomy, spanning every rental that was not declined or cancelled."""
    if rental.status in _OWNER_EXCLUDED:
        raise ValueError(
            f"Owner dashboard does not classify rentals in status {rental.status.value}"
        )

    if rental.status in _OWNER_FINISHED:
        return DashboardStatus.COMPLETED

    today = _today(now)
    if rental.start_date > today:
        return DashboardStatus.UPCOMING
    if rental.end_date < today and rental.status != RentalStatus.RETURNED:
        return DashboardStatus.OVERDUE
    return DashboardStatus.ACTIVE


def classify(
    rental: Rental, now: Now, view: DashboardView = DashboardView.RENTER
) -> DashboardStatus:
    if view == DashboardView.OWNER:
        return classify_for_owner(rental, now)
    return classify_for_renter(rental, now)


def sort_for_dashboard(
    rentals: Iterable[Rental], now: Now, view: DashboardView = DashboardView.RENTER
) -> List[Rental]:
    """Overdue first (most overdue first), then the rest by soonest end date."""

    def key(rental: Rental):
        overdue = classify(rental, now, view) == DashboardStatus.OVERDUE
        return (
            0 if overdue else 1,
            rental.end_date,
            rental.start_date,
            str(rental.rental_id),
        )

    return sorted(rentals, key=key)


def count_by_status(rentals: Iterable[Rental], now: Now) -> Dict[str, int]:
    """Owner dashboard filter counts."""
    counts = {
        "all": 0,
        DashboardStatus.UPCOMING.value: 0,
        DashboardStatus.ACTIVE.value: 0,
        DashboardStatus.OVERDUE.value: 0,
        DashboardStatus.COMPLETED.value: 0,
    }
    for rental in rentals:
        counts["all"] += 1
        counts[classify_for_owner(rental, now).value] += 1
    return counts


def days_overdue(rental: Rental, now: Now) -> int:
    """Whole days elapsed since the end date, 0 when not past it."""
    return max((_today(now) - rental.end_date).days, 0)
