"""Tests for BookingService."""
import asyncio
import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

from booking_service.domain.exceptions import (
    ActorNotAuthorizedException,
    BookingOverlapException,
    BookingValidationException,
    InvalidTransitionException,
    ListingNotFoundException,
    RentalNotFoundException,
)
from booking_service.domain.models import (
    BlackoutRange,
    DashboardStatus,
    Listing,
    ListingStatus,
    RentalStatus,
)
from booking_service.infrastructure.repositories_inmemory import (
    InMemoryBookingRepository,
    InMemoryChatRepository,
)
from booking_service.services.booking_service import BookingService
from booking_service.services.messaging_service import MessagingService

TODAY = date(2024, 7, 1)
NOW = datetime(2024, 7, 1, 9, 30)


async def _messages_for(chat_repository: InMemoryChatRepository):
    messages = []
    for thread in chat_repository.threads:
        messages.extend(await chat_repository.list_messages(thread.chat_id))
    return messages


@pytest.mark.asyncio
async def test_request_booking_creates_pending_rental(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    listing: Listing,
    renter_id: UUID,
) -> None:
    """Test request on a request-type listing."""
    # Act
    rental = await booking_service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
    )

    # Assert
    assert rental.status == RentalStatus.PENDING
    assert rental.owner_id == listing.owner_id
    assert rental.total_days == 3
    assert rental.daily_price_snapshot == Decimal("25.00")
    assert rental.risk_tier_snapshot == 2
    assert rental.rental_fee == Decimal("75.00")
    assert rental.peace_fund_fee == Decimal("12.00")
    assert rental.total_paid == Decimal("87.00")

    stored = await seeded_repository.get_rental(rental.rental_id)
    assert stored == rental
    events = seeded_repository.events_for(rental.rental_id)
    assert [e["event_type"] for e in events] == ["BOOKING_REQUESTED"]


@pytest.mark.asyncio
async def test_request_booking_applies_listing_tier_override_and_deposit(
    seeded_repository: InMemoryBookingRepository,
    listing: Listing,
    renter_id: UUID,
) -> None:
    await seeded_repository.save_listing(
        listing.model_copy(
            update={"risk_tier_override": 3, "deposit_override": Decimal("100")}
        )
    )
    service = BookingService(seeded_repository, platform_deposit=Decimal("0"))

    rental = await service.request_booking(
        listing.listing_id, renter_id, "2024-07-10", "2024-07-11", TODAY
    )

    assert rental.risk_tier_snapshot == 3
    assert rental.peace_fund_fee == Decimal("18.00")
    assert rental.deposit_amount == Decimal("100.00")
    assert rental.total_paid == Decimal("168.00")


@pytest.mark.asyncio
async def test_request_booking_posts_chat_messages(
    booking_service: BookingService,
    chat_repository: InMemoryChatRepository,
    listing: Listing,
    renter_id: UUID,
    owner_id: UUID,
) -> None:
    await booking_service.request_booking(
        listing.listing_id,
        renter_id,
        date(2024, 7, 10),
        date(2024, 7, 12),
        TODAY,
        message="Is the battery included?",
    )

    assert len(chat_repository.threads) == 1
    messages = await _messages_for(chat_repository)
    system = [m for m in messages if m.message_type == "system"]
    notes = [m for m in messages if m.message_type == "text"]

    assert len(system) == 2
    owner_message = next(m for m in system if m.recipient_id == owner_id)
    assert "Alex has requested to rent your tool" in owner_message.content
    assert "$87.00" in owner_message.content
    assert "$80.91" in owner_message.content
    renter_message = next(m for m in system if m.recipient_id == renter_id)
    assert "Cordless Drill" in renter_message.content

    assert {m.recipient_id for m in notes} == {owner_id, renter_id}
    assert all(m.sender_id == renter_id for m in notes)


@pytest.mark.asyncio
async def test_instant_listing_rejects_overlap_with_approved_rental(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    instant_listing: Listing,
    renter_id: UUID,
    other_renter_id: UUID,
    make_rental,
) -> None:
    """Approved 10..12 blocks an instant request for 12..14 (July 12 shared)."""
    await seeded_repository.create_rental(
        make_rental(
            date(2024, 7, 10), date(2024, 7, 12), renter=other_renter_id, target=instant_listing
        )
    )

    with pytest.raises(BookingOverlapException):
        await booking_service.request_booking(
            instant_listing.listing_id, renter_id, date(2024, 7, 12), date(2024, 7, 14), TODAY
        )

    rentals = await seeded_repository.list_rentals_for_listing(instant_listing.listing_id)
    assert len(rentals) == 1


@pytest.mark.asyncio
async def test_instant_listing_rejects_blackout(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    instant_listing: Listing,
    renter_id: UUID,
) -> None:
    await seeded_repository.add_blackout(
        BlackoutRange(
            listing_id=instant_listing.listing_id,
            owner_id=instant_listing.owner_id,
            start_date=date(2024, 7, 4),
            end_date=date(2024, 7, 4),
        )
    )

    with pytest.raises(BookingOverlapException):
        await booking_service.request_booking(
            instant_listing.listing_id, renter_id, date(2024, 7, 3), date(2024, 7, 5), TODAY
        )


@pytest.mark.asyncio
async def test_request_listing_defers_overlap_to_approval(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    listing: Listing,
    owner_id: UUID,
    renter_id: UUID,
    other_renter_id: UUID,
    make_rental,
) -> None:
    await seeded_repository.create_rental(
        make_rental(date(2024, 7, 10), date(2024, 7, 12), renter=other_renter_id)
    )

    rental = await booking_service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 12), date(2024, 7, 14), TODAY
    )
    assert rental.status == RentalStatus.PENDING

    with pytest.raises(BookingOverlapException):
        await booking_service.approve_booking(rental.rental_id, owner_id, TODAY)

    stored = await seeded_repository.get_rental(rental.rental_id)
    assert stored.status == RentalStatus.PENDING


@pytest.mark.asyncio
async def test_request_booking_validation(
    booking_service: BookingService,
    listing: Listing,
    renter_id: UUID,
) -> None:
    with pytest.raises(BookingValidationException):
        await booking_service.request_booking(
            listing.listing_id, renter_id, date(2024, 7, 12), date(2024, 7, 10), TODAY
        )
    with pytest.raises(BookingValidationException):
        await booking_service.request_booking(
            listing.listing_id, renter_id, date(2024, 6, 30), date(2024, 7, 2), TODAY
        )
    with pytest.raises(ListingNotFoundException):
        await booking_service.request_booking(
            uuid4(), renter_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
        )


@pytest.mark.asyncio
async def test_same_day_request_is_allowed(
    booking_service: BookingService,
    listing: Listing,
    renter_id: UUID,
) -> None:
    rental = await booking_service.request_booking(
        listing.listing_id, renter_id, TODAY, TODAY, datetime(2024, 7, 1, 23, 0)
    )
    assert rental.total_days == 1


@pytest.mark.asyncio
async def test_request_booking_rejects_owner_archived_and_duplicates(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    listing: Listing,
    owner_id: UUID,
    renter_id: UUID,
) -> None:
    with pytest.raises(ActorNotAuthorizedException):
        await booking_service.request_booking(
            listing.listing_id, owner_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
        )

    await booking_service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
    )
    with pytest.raises(BookingValidationException):
        await booking_service.request_booking(
            listing.listing_id, renter_id, date(2024, 8, 1), date(2024, 8, 2), TODAY
        )

    await seeded_repository.save_listing(
        listing.model_copy(update={"status": ListingStatus.ARCHIVED})
    )
    with pytest.raises(BookingValidationException):
        await booking_service.request_booking(
            listing.listing_id, uuid4(), date(2024, 7, 20), date(2024, 7, 21), TODAY
        )


@pytest.mark.asyncio
async def test_approve_auto_declines_overlapping_pending_requests(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    chat_repository: InMemoryChatRepository,
    listing: Listing,
    owner_id: UUID,
    renter_id: UUID,
    other_renter_id: UUID,
) -> None:
    first = await booking_service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
    )
    competing = await booking_service.request_booking(
        listing.listing_id, other_renter_id, date(2024, 7, 12), date(2024, 7, 13), TODAY
    )
    unrelated = await booking_service.request_booking(
        listing.listing_id, uuid4(), date(2024, 7, 20), date(2024, 7, 21), TODAY
    )

    approved = await booking_service.approve_booking(first.rental_id, owner_id, TODAY)

    assert approved.status == RentalStatus.APPROVED
    declined = await seeded_repository.get_rental(competing.rental_id)
    assert declined.status == RentalStatus.DECLINED
    assert declined.decline_reason == "conflict"
    untouched = await seeded_repository.get_rental(unrelated.rental_id)
    assert untouched.status == RentalStatus.PENDING

    messages = await _messages_for(chat_repository)
    to_loser = [
        m for m in messages
        if m.recipient_id == other_renter_id and "booked by someone else" in m.content
    ]
    assert len(to_loser) == 1


@pytest.mark.asyncio
async def test_concurrent_approvals_never_double_book(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    listing: Listing,
    owner_id: UUID,
    renter_id: UUID,
    other_renter_id: UUID,
) -> None:
    first = await booking_service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
    )
    second = await booking_service.request_booking(
        listing.listing_id, other_renter_id, date(2024, 7, 11), date(2024, 7, 14), TODAY
    )

    results = await asyncio.gather(
        booking_service.approve_booking(first.rental_id, owner_id, TODAY),
        booking_service.approve_booking(second.rental_id, owner_id, TODAY),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], (InvalidTransitionException, BookingOverlapException))

    confirmed = await seeded_repository.list_rentals_for_listing(
        listing.listing_id, [RentalStatus.APPROVED]
    )
    assert len(confirmed) == 1


@pytest.mark.asyncio
async def test_approve_checks_actor_state_and_start_date(
    booking_service: BookingService,
    listing: Listing,
    owner_id: UUID,
    renter_id: UUID,
) -> None:
    rental = await booking_service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 5), date(2024, 7, 6), TODAY
    )

    with pytest.raises(ActorNotAuthorizedException):
        await booking_service.approve_booking(rental.rental_id, renter_id, TODAY)
    with pytest.raises(BookingValidationException):
        await booking_service.approve_booking(rental.rental_id, owner_id, date(2024, 7, 6))
    with pytest.raises(RentalNotFoundException):
        await booking_service.approve_booking(uuid4(), owner_id, TODAY)

    await booking_service.approve_booking(rental.rental_id, owner_id, TODAY)
    with pytest.raises(InvalidTransitionException):
        await booking_service.approve_booking(rental.rental_id, owner_id, TODAY)


@pytest.mark.asyncio
async def test_decline_booking(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    listing: Listing,
    owner_id: UUID,
    renter_id: UUID,
) -> None:
    rental = await booking_service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
    )

    declined = await booking_service.decline_booking(
        rental.rental_id, owner_id, "In for repair"
    )

    assert declined.status == RentalStatus.DECLINED
    assert declined.decline_reason == "In for repair"
    events = seeded_repository.events_for(rental.rental_id)
    assert events[-1]["event_type"] == "BOOKING_DECLINED"
    assert events[-1]["payload"]["reason"] == "In for repair"

    with pytest.raises(InvalidTransitionException):
        await booking_service.decline_booking(rental.rental_id, owner_id)


@pytest.mark.asyncio
async def test_reschedule_keeps_booked_rate(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    listing: Listing,
    owner_id: UUID,
    renter_id: UUID,
) -> None:
    rental = await booking_service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
    )
    await booking_service.approve_booking(rental.rental_id, owner_id, TODAY)
    await seeded_repository.save_listing(
        listing.model_copy(update={"daily_price": Decimal("40.00")})
    )

    moved = await booking_service.reschedule(
        rental.rental_id, renter_id, date(2024, 7, 11), date(2024, 7, 15), TODAY
    )

    assert moved.status == RentalStatus.APPROVED
    assert moved.start_date == date(2024, 7, 11)
    assert moved.total_days == 5
    assert moved.daily_price_snapshot == Decimal("25.00")
    assert moved.rental_fee == Decimal("125.00")
    assert moved.peace_fund_fee == Decimal("20.00")
    assert moved.total_paid == Decimal("145.00")


@pytest.mark.asyncio
async def test_reschedule_rejects_overlap_and_other_actors(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    listing: Listing,
    owner_id: UUID,
    renter_id: UUID,
    other_renter_id: UUID,
    make_rental,
) -> None:
    await seeded_repository.create_rental(
        make_rental(date(2024, 7, 20), date(2024, 7, 22), renter=other_renter_id)
    )
    rental = await booking_service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
    )

    with pytest.raises(BookingOverlapException):
        await booking_service.reschedule(
            rental.rental_id, renter_id, date(2024, 7, 18), date(2024, 7, 20), TODAY
        )
    with pytest.raises(ActorNotAuthorizedException):
        await booking_service.reschedule(
            rental.rental_id, owner_id, date(2024, 7, 14), date(2024, 7, 15), TODAY
        )


@pytest.mark.asyncio
async def test_reschedule_closed_once_approved_rental_starts(
    booking_service: BookingService,
    listing: Listing,
    owner_id: UUID,
    renter_id: UUID,
) -> None:
    rental = await booking_service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
    )
    await booking_service.approve_booking(rental.rental_id, owner_id, TODAY)

    with pytest.raises(InvalidTransitionException):
        await booking_service.reschedule(
            rental.rental_id, renter_id, date(2024, 7, 20), date(2024, 7, 22), date(2024, 7, 10)
        )
    with pytest.raises(InvalidTransitionException):
        await booking_service.cancel(rental.rental_id, renter_id, date(2024, 7, 10))


@pytest.mark.asyncio
async def test_cancel(
    booking_service: BookingService,
    chat_repository: InMemoryChatRepository,
    listing: Listing,
    owner_id: UUID,
    renter_id: UUID,
) -> None:
    rental = await booking_service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
    )

    with pytest.raises(ActorNotAuthorizedException):
        await booking_service.cancel(rental.rental_id, owner_id, TODAY)

    cancelled = await booking_service.cancel(rental.rental_id, renter_id, TODAY)
    assert cancelled.status == RentalStatus.CANCELLED

    messages = await _messages_for(chat_repository)
    assert any(
        m.recipient_id == owner_id and "Alex cancelled the rental" in m.content
        for m in messages
    )

    with pytest.raises(InvalidTransitionException):
        await booking_service.cancel(rental.rental_id, renter_id, TODAY)


@pytest.mark.asyncio
async def test_full_lifecycle(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    listing: Listing,
    owner_id: UUID,
    renter_id: UUID,
) -> None:
    rental = await booking_service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
    )
    await booking_service.approve_booking(rental.rental_id, owner_id, TODAY)

    with pytest.raises(BookingValidationException):
        await booking_service.start_rental(rental.rental_id, owner_id, date(2024, 7, 9))

    active = await booking_service.start_rental(rental.rental_id, owner_id, date(2024, 7, 10))
    assert active.status == RentalStatus.ACTIVE

    with pytest.raises(InvalidTransitionException):
        await booking_service.cancel(rental.rental_id, renter_id, date(2024, 7, 10))
    with pytest.raises(InvalidTransitionException):
        await booking_service.complete_rental(rental.rental_id, owner_id)

    returned = await booking_service.mark_returned(rental.rental_id, renter_id)
    assert returned.status == RentalStatus.RETURNED

    with pytest.raises(ActorNotAuthorizedException):
        await booking_service.complete_rental(rental.rental_id, renter_id)

    completed = await booking_service.complete_rental(rental.rental_id, owner_id)
    assert completed.status == RentalStatus.COMPLETED

    events = [e["event_type"] for e in seeded_repository.events_for(rental.rental_id)]
    assert events == [
        "BOOKING_REQUESTED",
        "BOOKING_APPROVED",
        "RENTAL_STARTED",
        "RENTAL_RETURNED",
        "RENTAL_COMPLETED",
    ]


@pytest.mark.asyncio
async def test_expire_stale_requests(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    chat_repository: InMemoryChatRepository,
    renter_id: UUID,
    other_renter_id: UUID,
    make_rental,
) -> None:
    stale = make_rental(
        date(2024, 7, 20), date(2024, 7, 22), RentalStatus.PENDING,
        created_at=NOW - timedelta(hours=25),
    )
    fresh = make_rental(
        date(2024, 7, 25), date(2024, 7, 26), RentalStatus.PENDING,
        renter=other_renter_id, created_at=NOW - timedelta(hours=2),
    )
    started = make_rental(
        date(2024, 6, 30), date(2024, 7, 2), RentalStatus.PENDING,
        renter=uuid4(), created_at=NOW - timedelta(hours=1),
    )
    approved = make_rental(
        date(2024, 7, 5), date(2024, 7, 6), created_at=NOW - timedelta(days=3)
    )
    for rental in (stale, fresh, started, approved):
        await seeded_repository.create_rental(rental)

    expired = await booking_service.expire_stale_requests(NOW)

    assert {r.rental_id for r in expired} == {stale.rental_id, started.rental_id}
    assert all(r.decline_reason == "expired" for r in expired)
    assert (await seeded_repository.get_rental(fresh.rental_id)).status == RentalStatus.PENDING
    assert (await seeded_repository.get_rental(approved.rental_id)).status == RentalStatus.APPROVED

    messages = await _messages_for(chat_repository)
    assert sum("expired before the owner responded" in m.content for m in messages) == 2

    assert await booking_service.expire_stale_requests(NOW) == []


@pytest.mark.asyncio
async def test_messaging_failure_does_not_fail_booking(
    seeded_repository: InMemoryBookingRepository,
    listing: Listing,
    renter_id: UUID,
) -> None:
    messaging = AsyncMock(spec=MessagingService)
    messaging.handle = AsyncMock(side_effect=RuntimeError("chat store down"))
    service = BookingService(seeded_repository, messaging_service=messaging)

    rental = await service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
    )

    messaging.handle.assert_awaited_once()
    stored = await seeded_repository.get_rental(rental.rental_id)
    assert stored.status == RentalStatus.PENDING


@pytest.mark.asyncio
async def test_get_rental_visible_to_participants_only(
    booking_service: BookingService,
    listing: Listing,
    owner_id: UUID,
    renter_id: UUID,
) -> None:
    rental = await booking_service.request_booking(
        listing.listing_id, renter_id, date(2024, 7, 10), date(2024, 7, 12), TODAY
    )

    assert (await booking_service.get_rental(rental.rental_id, owner_id)) == rental
    assert (await booking_service.get_rental(rental.rental_id, renter_id)) == rental
    with pytest.raises(ActorNotAuthorizedException):
        await booking_service.get_rental(rental.rental_id, uuid4())


@pytest.mark.asyncio
async def test_owner_dashboard(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    owner_id: UUID,
    make_rental,
) -> None:
    today = date(2024, 7, 15)
    pending = make_rental(date(2024, 7, 20), date(2024, 7, 21), RentalStatus.PENDING)
    upcoming = make_rental(date(2024, 7, 25), date(2024, 7, 26))
    overdue = make_rental(date(2024, 7, 10), date(2024, 7, 12), RentalStatus.ACTIVE)
    completed = make_rental(date(2024, 7, 1), date(2024, 7, 3), RentalStatus.COMPLETED)
    declined = make_rental(date(2024, 7, 1), date(2024, 7, 3), RentalStatus.DECLINED)
    for rental in (pending, upcoming, overdue, completed, declined):
        await seeded_repository.create_rental(rental)

    dashboard = await booking_service.owner_dashboard(owner_id, today)

    assert [r.rental_id for r in dashboard.pending_requests] == [pending.rental_id]
    assert dashboard.rentals[0].rental.rental_id == overdue.rental_id
    assert dashboard.rentals[0].display_status == DashboardStatus.OVERDUE
    assert dashboard.rentals[0].days_overdue == 3
    assert {e.rental.rental_id for e in dashboard.rentals} == {
        upcoming.rental_id,
        overdue.rental_id,
        completed.rental_id,
    }
    assert dashboard.counts["all"] == 3
    assert dashboard.counts["overdue"] == 1
    assert dashboard.counts["upcoming"] == 1


@pytest.mark.asyncio
async def test_renter_dashboard(
    booking_service: BookingService,
    seeded_repository: InMemoryBookingRepository,
    renter_id: UUID,
    make_rental,
) -> None:
    today = date(2024, 7, 15)
    pending = make_rental(date(2024, 7, 20), date(2024, 7, 21), RentalStatus.PENDING)
    due = make_rental(date(2024, 7, 13), today, RentalStatus.ACTIVE)
    completed = make_rental(date(2024, 7, 1), date(2024, 7, 3), RentalStatus.COMPLETED)
    for rental in (pending, due, completed):
        await seeded_repository.create_rental(rental)

    dashboard = await booking_service.renter_dashboard(renter_id, today)

    assert [r.rental_id for r in dashboard.pending_requests] == [pending.rental_id]
    assert len(dashboard.rentals) == 1
    assert dashboard.rentals[0].display_status == DashboardStatus.DUE_TODAY
    assert dashboard.rentals[0].days_overdue == 0
