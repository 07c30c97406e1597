"""Tests for dashboard status classification."""
import pytest
from datetime import date, datetime, timedelta, timezone

from booking_service.domain.classification import (
    classify,
    classify_for_owner,
    classify_for_renter,
    count_by_status,
    days_overdue,
    sort_for_dashboard,
)
from booking_service.domain.models import DashboardStatus, DashboardView, RentalStatus

TODAY = date(2024, 7, 15)
YESTERDAY = TODAY - timedelta(days=1)


def test_active_rental_ended_yesterday_is_overdue_for_both(make_rental) -> None:
    rental = make_rental(date(2024, 7, 10), YESTERDAY, RentalStatus.ACTIVE)

    assert classify(rental, TODAY, DashboardView.RENTER) == DashboardStatus.OVERDUE
    assert classify(rental, TODAY, DashboardView.OWNER) == DashboardStatus.OVERDUE
    assert days_overdue(rental, TODAY) == 1


def test_renter_view(make_rental) -> None:
    due = make_rental(date(2024, 7, 10), TODAY, RentalStatus.ACTIVE)
    running = make_rental(date(2024, 7, 10), date(2024, 7, 20), RentalStatus.ACTIVE)
    upcoming = make_rental(date(2024, 7, 20), date(2024, 7, 22), RentalStatus.APPROVED)

    assert classify_for_renter(due, TODAY) == DashboardStatus.DUE_TODAY
    assert classify_for_renter(running, TODAY) == DashboardStatus.ACTIVE
    assert classify_for_renter(upcoming, TODAY) == DashboardStatus.ACTIVE


def test_renter_view_never_handed_over_is_not_overdue(make_rental) -> None:
    approved = make_rental(date(2024, 7, 10), YESTERDAY, RentalStatus.APPROVED)
    returned = make_rental(date(2024, 7, 10), YESTERDAY, RentalStatus.RETURNED)

    assert classify_for_renter(approved, TODAY) == DashboardStatus.ACTIVE
    assert classify_for_renter(returned, TODAY) == DashboardStatus.OVERDUE
    assert classify_for_owner(approved, TODAY) == DashboardStatus.OVERDUE


def test_renter_view_rejects_unconfirmed(make_rental) -> None:
    pending = make_rental(date(2024, 7, 20), date(2024, 7, 22), RentalStatus.PENDING)
    with pytest.raises(ValueError):
        classify_for_renter(pending, TODAY)


def test_owner_view(make_rental) -> None:
    upcoming = make_rental(date(2024, 7, 20), date(2024, 7, 22), RentalStatus.APPROVED)
    running = make_rental(date(2024, 7, 10), TODAY, RentalStatus.ACTIVE)
    returned_late = make_rental(date(2024, 7, 1), date(2024, 7, 3), RentalStatus.RETURNED)
    completed = make_rental(date(2024, 7, 1), date(2024, 7, 3), RentalStatus.COMPLETED)
    archived = make_rental(date(2024, 6, 1), date(2024, 6, 3), RentalStatus.ARCHIVED)

    assert classify_for_owner(upcoming, TODAY) == DashboardStatus.UPCOMING
    assert classify_for_owner(running, TODAY) == DashboardStatus.ACTIVE
    assert classify_for_owner(returned_late, TODAY) == DashboardStatus.ACTIVE
    assert classify_for_owner(completed, TODAY) == DashboardStatus.COMPLETED
    assert classify_for_owner(archived, TODAY) == DashboardStatus.COMPLETED


def test_owner_view_rejects_declined_and_cancelled(make_rental) -> None:
    for status in (RentalStatus.DECLINED, RentalStatus.CANCELLED):
        rental = make_rental(date(2024, 7, 20), date(2024, 7, 22), status)
        with pytest.raises(ValueError):
            classify_for_owner(rental, TODAY)


def test_classification_accepts_datetime_and_is_repeatable(make_rental) -> None:
    rental = make_rental(date(2024, 7, 10), TODAY, RentalStatus.ACTIVE)
    now = datetime(2024, 7, 15, 23, 59)

    first = classify(rental, now)
    second = classify(rental, now)

    assert first == second == DashboardStatus.DUE_TODAY


def test_aware_datetime_uses_utc_calendar_day(make_rental) -> None:
    rental = make_rental(date(2024, 7, 10), TODAY, RentalStatus.ACTIVE)
    # 23:30 at UTC-5 is already July 16 in UTC.
    now = datetime(2024, 7, 15, 23, 30, tzinfo=timezone(timedelta(hours=-5)))

    assert classify(rental, now) == DashboardStatus.OVERDUE
    assert days_overdue(rental, now) == 1


def test_sort_puts_most_overdue_first(make_rental) -> None:
    soon = make_rental(date(2024, 7, 14), date(2024, 7, 16), RentalStatus.ACTIVE)
    later = make_rental(date(2024, 7, 14), date(2024, 7, 25), RentalStatus.ACTIVE)
    overdue = make_rental(date(2024, 7, 10), date(2024, 7, 13), RentalStatus.ACTIVE)
    very_overdue = make_rental(date(2024, 7, 1), date(2024, 7, 5), RentalStatus.ACTIVE)

    ordered = sort_for_dashboard([later, soon, overdue, very_overdue], TODAY)

    assert [r.rental_id for r in ordered] == [
        very_overdue.rental_id,
        overdue.rental_id,
        soon.rental_id,
        later.rental_id,
    ]


def test_count_by_status(make_rental) -> None:
    rentals = [
        make_rental(date(2024, 7, 20), date(2024, 7, 22), RentalStatus.APPROVED),
        make_rental(date(2024, 7, 10), date(2024, 7, 16), RentalStatus.ACTIVE),
        make_rental(date(2024, 7, 10), date(2024, 7, 12), RentalStatus.ACTIVE),
        make_rental(date(2024, 7, 1), date(2024, 7, 3), RentalStatus.COMPLETED),
    ]

    counts = count_by_status(rentals, TODAY)

    assert counts == {
        "all": 4,
        "upcoming": 1,
        "active": 1,
        "overdue": 1,
        "completed": 1,
    }


def test_days_overdue_is_zero_before_end(make_rental) -> None:
    rental = make_rental(date(2024, 7, 10), date(2024, 7, 20), RentalStatus.ACTIVE)
    assert days_overdue(rental, TODAY) == 0
