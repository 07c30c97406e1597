"""Booking lifecycle service."""
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Union
from uuid import UUID

from prometheus_client import Counter

from booking_service.config import settings
from booking_service.domain.availability import (
    DateLike,
    IntervalSet,
    ranges_overlap,
    to_calendar_date,
    total_days,
    validate_range,
)
from booking_service.domain.classification import (
    classify,
    count_by_status,
    days_overdue,
    sort_for_dashboard,
)
from booking_service.domain.events import (
    BookingApproved,
    BookingCancelled,
    BookingDeclined,
    BookingEvent,
    BookingRequested,
)
from booking_service.domain.exceptions import (
    ActorNotAuthorizedException,
    BookingOverlapException,
    BookingValidationException,
    CategoryNotFoundException,
    InvalidTransitionException,
    ListingNotFoundException,
    RentalNotFoundException,
)
from booking_service.domain.models import (
    CONFIRMED_OCCUPANCY,
    BookingType,
    Category,
    DashboardEntry,
    DashboardStatus,
    DashboardView,
    Listing,
    ListingStatus,
    OwnerDashboard,
    PriceBreakdown,
    Rental,
    RentalStatus,
    RenterDashboard,
)
from booking_service.domain.pricing import compute_price, resolve_tier
from booking_service.infrastructure.repositories import BookingRepository
from booking_service.services.messaging_service import MessagingService

logger = logging.getLogger(__name__)

messaging_failures_total = Counter(
    "booking_messaging_failures_total",
    "Booking events whose chat side effects failed",
    ["event_type"],
)

DECLINE_REASON_CONFLICT = "conflict"
DECLINE_REASON_EXPIRED = "expired"

_OWNER_DASHBOARD_STATUSES = frozenset(
    {
        RentalStatus.APPROVED,
        RentalStatus.ACTIVE,
        RentalStatus.RETURNED,
        RentalStatus.COMPLETED,
        RentalStatus.ARCHIVED,
    }
)

Now = Union[date, datetime]


def _utc_naive(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


class BookingService:
    """Service for requesting, confirming and tracking rentals.

    Every check-then-write runs inside ``repository.atomic``; operations that
    can change confirmed occupancy also hold the listing guard. Events are
    handed to the messaging collaborator only after the unit of work commits.
    """

    def __init__(
        self,
        booking_repository: BookingRepository,
        messaging_service: Optional[MessagingService] = None,
        platform_deposit: Decimal = settings.platform_deposit,
        pending_request_ttl_hours: int = settings.pending_request_ttl_hours,
        reschedule_cutoff_days: int = settings.reschedule_cutoff_days,
    ):
        self.booking_repository = booking_repository
        self.messaging_service = messaging_service
        self.platform_deposit = platform_deposit
        self.pending_request_ttl_hours = pending_request_ttl_hours
        self.reschedule_cutoff_days = reschedule_cutoff_days

    # Lookups

    async def _get_listing(self, listing_id: UUID) -> Listing:
        listing = await self.booking_repository.get_listing(listing_id)
        if listing is None:
            raise ListingNotFoundException(str(listing_id))
        return listing

    async def _get_category(self, category_id: UUID) -> Category:
        category = await self.booking_repository.get_category(category_id)
        if category is None:
            raise CategoryNotFoundException(str(category_id))
        return category

    async def _get_rental(self, rental_id: UUID) -> Rental:
        rental = await self.booking_repository.get_rental(rental_id)
        if rental is None:
            raise RentalNotFoundException(str(rental_id))
        return rental

    # Guards

    @staticmethod
    def _ensure_owner(rental: Rental, actor_id: UUID, action: str) -> None:
        if rental.owner_id != actor_id:
            raise ActorNotAuthorizedException(str(actor_id), f"{action} rental {rental.rental_id}")

    @staticmethod
    def _ensure_renter(rental: Rental, actor_id: UUID, action: str) -> None:
        if rental.renter_id != actor_id:
            raise ActorNotAuthorizedException(str(actor_id), f"{action} rental {rental.rental_id}")

    @staticmethod
    def _ensure_status(
        rental: Rental, allowed: Iterable[RentalStatus], action: str
    ) -> None:
        if rental.status not in set(allowed):
            raise InvalidTransitionException(
                str(rental.rental_id), rental.status.value, action
            )

    def _ensure_change_window(self, rental: Rental, today: date, action: str) -> None:
        """Approved rentals may only change while the start date is still ahead."""
        if rental.status != RentalStatus.APPROVED:
            return
        deadline = rental.start_date - timedelta(days=self.reschedule_cutoff_days)
        if not today < deadline:
            raise InvalidTransitionException(
                str(rental.rental_id),
                rental.status.value,
                f"{action} on or after {deadline}",
            )

    @staticmethod
    def _validate_dates(start: DateLike, end: DateLike, today: date):
        start_date, end_date = validate_range(start, end)
        if start_date < today:
            raise BookingValidationException(
                f"Start date {start_date} is in the past (today is {today})"
            )
        return start_date, end_date

    async def _ensure_available(
        self,
        listing_id: UUID,
        start_date: date,
        end_date: date,
        exclude_rental_id: Optional[UUID] = None,
    ) -> None:
        blackouts = await self.booking_repository.list_blackouts(listing_id)
        confirmed = await self.booking_repository.list_rentals_for_listing(
            listing_id, CONFIRMED_OCCUPANCY
        )
        blocked = IntervalSet.for_listing(blackouts, confirmed, exclude_rental_id)
        if blocked.overlaps(start_date, end_date):
            raise BookingOverlapException(str(listing_id), str(start_date), str(end_date))

    # State changes

    @staticmethod
    def _with_status(
        rental: Rental, status: RentalStatus, decline_reason: Optional[str] = None
    ) -> Rental:
        update = {"status": status, "updated_at": datetime.utcnow()}
        if decline_reason is not None:
            update["decline_reason"] = decline_reason
        return rental.model_copy(update=update)

    async def _save_transition(
        self, rental: Rental, event_type: str, payload: Optional[dict] = None
    ) -> None:
        await self.booking_repository.update_rental(rental)
        await self.booking_repository.log_event(
            rental.rental_id,
            event_type,
            {"status": rental.status.value, **(payload or {})},
        )

    async def _dispatch(self, events: List[BookingEvent]) -> None:
        if self.messaging_service is None:
            return
        for event in events:
            try:
                await self.messaging_service.handle(event)
            except Exception:
                messaging_failures_total.labels(event_type=event.event_type).inc()
                logger.exception(
                    f"Failed to deliver {event.event_type} for rental {event.rental.rental_id}"
                )

    def _price(
        self,
        daily_price: Decimal,
        start_date: date,
        end_date: date,
        tier: Optional[int],
        category: Category,
        deposit: Decimal,
    ) -> PriceBreakdown:
        resolution = resolve_tier(category, manual_tier=tier)
        return compute_price(
            daily_price, total_days(start_date, end_date), resolution, deposit
        )

    # Operations

    async def request_booking(
        self,
        listing_id: UUID,
        renter_id: UUID,
        start_date: DateLike,
        end_date: DateLike,
        today: Now,
        message: Optional[str] = None,
    ) -> Rental:
        """Create a pending rental.

        Instant listings are checked against blackouts and confirmed occupancy
        under the listing guard; request listings accept competing pending
        requests and defer the check to approval.
        """
        today = to_calendar_date(today)
        start, end = self._validate_dates(start_date, end_date, today)

        listing = await self._get_listing(listing_id)
        if listing.status == ListingStatus.ARCHIVED:
            raise BookingValidationException(f"Listing {listing_id} is archived")
        if listing.owner_id == renter_id:
            raise ActorNotAuthorizedException(str(renter_id), "book their own listing")

        category = await self._get_category(listing.category_id)
        deposit = (
            listing.deposit_override
            if listing.deposit_override is not None
            else self.platform_deposit
        )
        price = self._price(
            listing.daily_price, start, end, listing.risk_tier_override, category, deposit
        )

        rental = Rental(
            listing_id=listing.listing_id,
            renter_id=renter_id,
            owner_id=listing.owner_id,
            start_date=start,
            end_date=end,
            total_days=price.total_days,
            daily_price_snapshot=price.daily_price,
            risk_tier_snapshot=price.effective_tier,
            rental_fee=price.subtotal,
            peace_fund_fee=price.peace_fund_total,
            deposit_amount=price.deposit,
            total_paid=price.total_due,
        )

        is_instant = listing.booking_type == BookingType.INSTANT
        guard = listing.listing_id if is_instant else None
        async with self.booking_repository.atomic(guard):
            existing = await self.booking_repository.find_pending(listing.listing_id, renter_id)
            if existing is not None:
                raise BookingValidationException(
                    f"You already have a pending request ({existing.rental_id}) for this listing"
                )
            if is_instant:
                await self._ensure_available(listing.listing_id, start, end)

            await self.booking_repository.create_rental(rental)
            await self.booking_repository.log_event(
                rental.rental_id,
                "BOOKING_REQUESTED",
                {
                    "renter_id": str(renter_id),
                    "start_date": start.isoformat(),
                    "end_date": end.isoformat(),
                    "total_paid": str(rental.total_paid),
                    "booking_type": listing.booking_type.value,
                },
            )

        logger.info(
            f"Rental {rental.rental_id} requested for listing {listing.listing_id} "
            f"({start}..{end}, {rental.total_days} days, total {rental.total_paid})"
        )
        await self._dispatch(
            [BookingRequested(rental=rental, listing=listing, message=message)]
        )
        return rental

    async def approve_booking(self, rental_id: UUID, owner_id: UUID, today: Now) -> Rental:
        """Confirm a pending rental and decline the pending requests it displaces."""
        today = to_calendar_date(today)
        rental = await self._get_rental(rental_id)
        self._ensure_owner(rental, owner_id, "approve")
        listing = await self._get_listing(rental.listing_id)

        events: List[BookingEvent] = []
        async with self.booking_repository.atomic(rental.listing_id):
            rental = await self._get_rental(rental_id)
            self._ensure_status(rental, [RentalStatus.PENDING], "approve")
            if rental.start_date < today:
                raise BookingValidationException(
                    f"Rental {rental_id} starts on {rental.start_date}, which has already passed"
                )

            confirmed = await self.booking_repository.list_rentals_for_listing(
                rental.listing_id, CONFIRMED_OCCUPANCY
            )
            occupied = IntervalSet.for_listing([], confirmed, exclude_rental_id=rental.rental_id)
            if occupied.overlaps(rental.start_date, rental.end_date):
                raise BookingOverlapException(
                    str(rental.listing_id), str(rental.start_date), str(rental.end_date)
                )

            rental = self._with_status(rental, RentalStatus.APPROVED)
            await self._save_transition(rental, "BOOKING_APPROVED", {"owner_id": str(owner_id)})
            events.append(BookingApproved(rental=rental, listing=listing))

            competing = await self.booking_repository.list_rentals_for_listing(
                rental.listing_id, [RentalStatus.PENDING]
            )
            approved_range = (rental.start_date, rental.end_date)
            for other in competing:
                if other.rental_id == rental.rental_id:
                    continue
                if not ranges_overlap(approved_range, (other.start_date, other.end_date)):
                    continue
                declined = self._with_status(
                    other, RentalStatus.DECLINED, DECLINE_REASON_CONFLICT
                )
                await self._save_transition(
                    declined,
                    "BOOKING_DECLINED",
                    {"reason": DECLINE_REASON_CONFLICT, "approved_rental_id": str(rental_id)},
                )
                events.append(
                    BookingDeclined(
                        rental=declined, listing=listing, reason=DECLINE_REASON_CONFLICT
                    )
                )

        logger.info(
            f"Rental {rental_id} approved; auto-declined {len(events) - 1} conflicting requests"
        )
        await self._dispatch(events)
        return rental

    async def decline_booking(
        self, rental_id: UUID, owner_id: UUID, reason: Optional[str] = None
    ) -> Rental:
        rental = await self._get_rental(rental_id)
        self._ensure_owner(rental, owner_id, "decline")
        listing = await self._get_listing(rental.listing_id)

        async with self.booking_repository.atomic(rental.listing_id):
            rental = await self._get_rental(rental_id)
            self._ensure_status(rental, [RentalStatus.PENDING], "decline")
            rental = self._with_status(rental, RentalStatus.DECLINED, reason)
            await self._save_transition(rental, "BOOKING_DECLINED", {"reason": reason})

        logger.info(f"Rental {rental_id} declined by owner")
        await self._dispatch([BookingDeclined(rental=rental, listing=listing, reason=reason)])
        return rental

    async def reschedule(
        self,
        rental_id: UUID,
        actor_id: UUID,
        new_start: DateLike,
        new_end: DateLike,
        today: Now,
    ) -> Rental:
        """Move a pending or approved rental; the daily rate and tier stay as booked."""
        today = to_calendar_date(today)
        start, end = self._validate_dates(new_start, new_end, today)

        rental = await self._get_rental(rental_id)
        self._ensure_renter(rental, actor_id, "reschedule")
        listing = await self._get_listing(rental.listing_id)
        category = await self._get_category(listing.category_id)

        async with self.booking_repository.atomic(rental.listing_id):
            rental = await self._get_rental(rental_id)
            self._ensure_status(rental, [RentalStatus.PENDING, RentalStatus.APPROVED], "reschedule")
            self._ensure_change_window(rental, today, "reschedule")
            await self._ensure_available(
                rental.listing_id, start, end, exclude_rental_id=rental.rental_id
            )

            price = self._price(
                rental.daily_price_snapshot,
                start,
                end,
                rental.risk_tier_snapshot,
                category,
                rental.deposit_amount,
            )
            previous = (rental.start_date, rental.end_date)
            rental = rental.model_copy(
                update={
                    "start_date": start,
                    "end_date": end,
                    "total_days": price.total_days,
                    "rental_fee": price.subtotal,
                    "peace_fund_fee": price.peace_fund_total,
                    "total_paid": price.total_due,
                    "updated_at": datetime.utcnow(),
                }
            )
            await self._save_transition(
                rental,
                "BOOKING_RESCHEDULED",
                {
                    "old_start_date": previous[0].isoformat(),
                    "old_end_date": previous[1].isoformat(),
                    "start_date": start.isoformat(),
                    "end_date": end.isoformat(),
                    "total_paid": str(rental.total_paid),
                },
            )

        logger.info(f"Rental {rental_id} rescheduled to {start}..{end}")
        return rental

    async def cancel(self, rental_id: UUID, actor_id: UUID, today: Now) -> Rental:
        today = to_calendar_date(today)
        rental = await self._get_rental(rental_id)
        self._ensure_renter(rental, actor_id, "cancel")
        listing = await self._get_listing(rental.listing_id)

        async with self.booking_repository.atomic(rental.listing_id):
            rental = await self._get_rental(rental_id)
            self._ensure_status(rental, [RentalStatus.PENDING, RentalStatus.APPROVED], "cancel")
            self._ensure_change_window(rental, today, "cancel")
            rental = self._with_status(rental, RentalStatus.CANCELLED)
            await self._save_transition(rental, "BOOKING_CANCELLED")

        logger.info(f"Rental {rental_id} cancelled by renter")
        await self._dispatch([BookingCancelled(rental=rental, listing=listing)])
        return rental

    async def start_rental(self, rental_id: UUID, owner_id: UUID, today: Now) -> Rental:
        """Record the handover of the tool to the renter."""
        today = to_calendar_date(today)
        rental = await self._get_rental(rental_id)
        self._ensure_owner(rental, owner_id, "hand over")

        async with self.booking_repository.atomic(rental.listing_id):
            rental = await self._get_rental(rental_id)
            self._ensure_status(rental, [RentalStatus.APPROVED], "hand over")
            if today < rental.start_date:
                raise BookingValidationException(
                    f"Rental {rental_id} cannot be handed over before {rental.start_date}"
                )
            rental = self._with_status(rental, RentalStatus.ACTIVE)
            await self._save_transition(rental, "RENTAL_STARTED")

        logger.info(f"Rental {rental_id} handed over")
        return rental

    async def mark_returned(self, rental_id: UUID, actor_id: UUID) -> Rental:
        rental = await self._get_rental(rental_id)
        if actor_id not in (rental.owner_id, rental.renter_id):
            raise ActorNotAuthorizedException(str(actor_id), f"return rental {rental_id}")

        async with self.booking_repository.atomic(rental.listing_id):
            rental = await self._get_rental(rental_id)
            self._ensure_status(rental, [RentalStatus.ACTIVE], "return")
            rental = self._with_status(rental, RentalStatus.RETURNED)
            await self._save_transition(rental, "RENTAL_RETURNED", {"actor_id": str(actor_id)})

        logger.info(f"Rental {rental_id} marked returned")
        return rental

    async def complete_rental(self, rental_id: UUID, owner_id: UUID) -> Rental:
        """Owner confirms the tool came back in order."""
        rental = await self._get_rental(rental_id)
        self._ensure_owner(rental, owner_id, "complete")

        async with self.booking_repository.atomic(rental.listing_id):
            rental = await self._get_rental(rental_id)
            self._ensure_status(rental, [RentalStatus.RETURNED], "complete")
            rental = self._with_status(rental, RentalStatus.COMPLETED)
            await self._save_transition(rental, "RENTAL_COMPLETED")

        logger.info(f"Rental {rental_id} completed")
        return rental

    async def expire_stale_requests(self, now: datetime) -> List[Rental]:
        """Decline pending requests left unanswered too long or whose start date passed."""
        moment = _utc_naive(now)
        created_before = moment - timedelta(hours=self.pending_request_ttl_hours)
        today = moment.date()

        stale = await self.booking_repository.list_stale_pending(created_before, today)
        expired: List[Rental] = []
        for candidate in stale:
            listing = await self.booking_repository.get_listing(candidate.listing_id)
            async with self.booking_repository.atomic(candidate.listing_id):
                rental = await self.booking_repository.get_rental(candidate.rental_id)
                # Answered by the owner since the scan.
                if rental is None or rental.status != RentalStatus.PENDING:
                    continue
                rental = self._with_status(rental, RentalStatus.DECLINED, DECLINE_REASON_EXPIRED)
                await self._save_transition(
                    rental, "BOOKING_DECLINED", {"reason": DECLINE_REASON_EXPIRED}
                )
            expired.append(rental)
            if listing is not None:
                await self._dispatch(
                    [BookingDeclined(rental=rental, listing=listing, reason=DECLINE_REASON_EXPIRED)]
                )

        if expired:
            logger.info(f"Expired {len(expired)} stale booking requests")
        return expired

    # Queries

    @staticmethod
    def _entry(rental: Rental, now: Now, view: DashboardView) -> DashboardEntry:
        status = classify(rental, now, view)
        overdue = days_overdue(rental, now) if status == DashboardStatus.OVERDUE else 0
        return DashboardEntry(rental=rental, display_status=status, days_overdue=overdue)

    async def get_rental(self, rental_id: UUID, actor_id: UUID) -> Rental:
        rental = await self._get_rental(rental_id)
        if actor_id not in (rental.owner_id, rental.renter_id):
            raise ActorNotAuthorizedException(str(actor_id), f"view rental {rental_id}")
        return rental

    async def owner_dashboard(self, owner_id: UUID, now: Now) -> OwnerDashboard:
        rentals = await self.booking_repository.list_rentals_for_owner(owner_id)
        pending = sorted(
            (r for r in rentals if r.status == RentalStatus.PENDING),
            key=lambda r: (r.start_date, r.created_at),
        )
        shown = [r for r in rentals if r.status in _OWNER_DASHBOARD_STATUSES]
        entries = [
            self._entry(r, now, DashboardView.OWNER)
            for r in sort_for_dashboard(shown, now, DashboardView.OWNER)
        ]
        return OwnerDashboard(
            pending_requests=pending,
            rentals=entries,
            counts=count_by_status(shown, now),
        )

    async def renter_dashboard(self, renter_id: UUID, now: Now) -> RenterDashboard:
        rentals = await self.booking_repository.list_rentals_for_renter(renter_id)
        pending = sorted(
            (r for r in rentals if r.status == RentalStatus.PENDING),
            key=lambda r: (r.start_date, r.created_at),
        )
        confirmed = [r for r in rentals if r.status in CONFIRMED_OCCUPANCY]
        entries = [
            self._entry(r, now, DashboardView.RENTER)
            for r in sort_for_dashboard(confirmed, now, DashboardView.RENTER)
        ]
        return RenterDashboard(pending_requests=pending, rentals=entries)
