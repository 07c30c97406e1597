"""API routes."""
import logging
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from prometheus_client import Counter, Histogram

from booking_service.domain.exceptions import (
    ActorNotAuthorizedException,
    BookingOverlapException,
    BookingValidationException,
    DomainException,
    InvalidTransitionException,
    NotFoundException,
)
from booking_service.domain.models import (
    BlackoutRange,
    OwnerDashboard,
    PriceBreakdown,
    Rental,
    RenterDashboard,
    TierSuggestion,
)
from booking_service.schemas import (
    BlackoutRequest,
    CreateRentalRequest,
    DeclineRequest,
    ExpirePendingResponse,
    QuoteRequest,
    RescheduleRequest,
    UnavailableDatesResponse,
)
from booking_service.services.booking_service import BookingService
from booking_service.services.catalog_service import CatalogService

from .dependencies import get_booking_service, get_catalog_service, get_clock, get_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["bookings"])
internal_router = APIRouter(prefix="/internal", tags=["internal"])

# Prometheus metrics
booking_requests_counter = Counter(
    "booking_requests_total", "Total number of booking requests", ["status"]
)
booking_transitions_counter = Counter(
    "booking_transitions_total", "Total number of rental state transitions", ["action", "status"]
)
booking_queries_counter = Counter(
    "booking_queries_total", "Total number of read-side queries", ["endpoint", "status"]
)
blackout_changes_counter = Counter(
    "blackout_changes_total", "Total number of blackout changes", ["action", "status"]
)
booking_request_duration = Histogram(
    "booking_request_duration_seconds", "Time spent creating booking requests"
)

_STATUS_BY_EXCEPTION = (
    (BookingValidationException, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (BookingOverlapException, status.HTTP_409_CONFLICT),
    (InvalidTransitionException, status.HTTP_409_CONFLICT),
    (NotFoundException, status.HTTP_404_NOT_FOUND),
    (ActorNotAuthorizedException, status.HTTP_403_FORBIDDEN),
)


def _domain_error(e: DomainException, counter: Counter, **labels: str) -> HTTPException:
    """Map a domain exception to its HTTP response and count it."""
    status_code = status.HTTP_400_BAD_REQUEST
    for exc_type, code in _STATUS_BY_EXCEPTION:
        if isinstance(e, exc_type):
            status_code = code
            break
    logger.warning(f"{e.code}: {e.message}")
    counter.labels(status=e.code.lower(), **labels).inc()
    return HTTPException(
        status_code=status_code,
        detail={"code": e.code, "message": e.message},
    )


def _internal_error(
    e: Exception, counter: Counter, action: str, **labels: str
) -> HTTPException:
    logger.exception(f"Unexpected error {action}: {e}")
    counter.labels(status="internal_error", **labels).inc()
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"code": "INTERNAL_ERROR", "message": "Internal server error"},
    )


# Rentals


@router.post("/rentals", response_model=Rental, status_code=status.HTTP_201_CREATED)
async def request_booking(
    request: CreateRentalRequest,
    user_id: UUID = Depends(get_user_id),
    now: datetime = Depends(get_clock),
    service: BookingService = Depends(get_booking_service),
) -> Rental:
    """Submit a booking request for a listing."""
    try:
        with booking_request_duration.time():
            rental = await service.request_booking(
                listing_id=request.listing_id,
                renter_id=user_id,
                start_date=request.start_date,
                end_date=request.end_date,
                today=now,
                message=request.message,
            )
        booking_requests_counter.labels(status="success").inc()
        return rental
    except DomainException as e:
        raise _domain_error(e, booking_requests_counter)
    except Exception as e:
        raise _internal_error(e, booking_requests_counter, "requesting booking")


@router.get("/rentals/{rental_id}", response_model=Rental)
async def get_rental(
    rental_id: UUID,
    user_id: UUID = Depends(get_user_id),
    service: BookingService = Depends(get_booking_service),
) -> Rental:
    try:
        rental = await service.get_rental(rental_id, user_id)
        booking_queries_counter.labels(endpoint="get_rental", status="success").inc()
        return rental
    except DomainException as e:
        raise _domain_error(e, booking_queries_counter, endpoint="get_rental")
    except Exception as e:
        raise _internal_error(
            e, booking_queries_counter, "getting rental", endpoint="get_rental"
        )


@router.post("/rentals/{rental_id}/approve", response_model=Rental)
async def approve_booking(
    rental_id: UUID,
    user_id: UUID = Depends(get_user_id),
    now: datetime = Depends(get_clock),
    service: BookingService = Depends(get_booking_service),
) -> Rental:
    """Approve a pending request; overlapping pending requests are declined."""
    try:
        rental = await service.approve_booking(rental_id, user_id, now)
        booking_transitions_counter.labels(action="approve", status="success").inc()
        return rental
    except DomainException as e:
        raise _domain_error(e, booking_transitions_counter, action="approve")
    except Exception as e:
        raise _internal_error(
            e, booking_transitions_counter, "approving rental", action="approve"
        )


@router.post("/rentals/{rental_id}/decline", response_model=Rental)
async def decline_booking(
    rental_id: UUID,
    request: Optional[DeclineRequest] = None,
    user_id: UUID = Depends(get_user_id),
    service: BookingService = Depends(get_booking_service),
) -> Rental:
    try:
        reason = request.reason if request else None
        rental = await service.decline_booking(rental_id, user_id, reason)
        booking_transitions_counter.labels(action="decline", status="success").inc()
        return rental
    except DomainException as e:
        raise _domain_error(e, booking_transitions_counter, action="decline")
    except Exception as e:
        raise _internal_error(
            e, booking_transitions_counter, "declining rental", action="decline"
        )


@router.post("/rentals/{rental_id}/reschedule", response_model=Rental)
async def reschedule_booking(
    rental_id: UUID,
    request: RescheduleRequest,
    user_id: UUID = Depends(get_user_id),
    now: datetime = Depends(get_clock),
    service: BookingService = Depends(get_booking_service),
) -> Rental:
    try:
        rental = await service.reschedule(
            rental_id, user_id, request.start_date, request.end_date, now
        )
        booking_transitions_counter.labels(action="reschedule", status="success").inc()
        return rental
    except DomainException as e:
        raise _domain_error(e, booking_transitions_counter, action="reschedule")
    except Exception as e:
        raise _internal_error(
            e, booking_transitions_counter, "rescheduling rental", action="reschedule"
        )


@router.post("/rentals/{rental_id}/cancel", response_model=Rental)
async def cancel_booking(
    rental_id: UUID,
    user_id: UUID = Depends(get_user_id),
    now: datetime = Depends(get_clock),
    service: BookingService = Depends(get_booking_service),
) -> Rental:
    try:
        rental = await service.cancel(rental_id, user_id, now)
        booking_transitions_counter.labels(action="cancel", status="success").inc()
        return rental
    except DomainException as e:
        raise _domain_error(e, booking_transitions_counter, action="cancel")
    except Exception as e:
        raise _internal_error(
            e, booking_transitions_counter, "cancelling rental", action="cancel"
        )


@router.post("/rentals/{rental_id}/handover", response_model=Rental)
async def hand_over_rental(
    rental_id: UUID,
    user_id: UUID = Depends(get_user_id),
    now: datetime = Depends(get_clock),
    service: BookingService = Depends(get_booking_service),
) -> Rental:
    try:
        rental = await service.start_rental(rental_id, user_id, now)
        booking_transitions_counter.labels(action="handover", status="success").inc()
        return rental
    except DomainException as e:
        raise _domain_error(e, booking_transitions_counter, action="handover")
    except Exception as e:
        raise _internal_error(
            e, booking_transitions_counter, "handing over rental", action="handover"
        )


@router.post("/rentals/{rental_id}/return", response_model=Rental)
async def return_rental(
    rental_id: UUID,
    user_id: UUID = Depends(get_user_id),
    service: BookingService = Depends(get_booking_service),
) -> Rental:
    try:
        rental = await service.mark_returned(rental_id, user_id)
        booking_transitions_counter.labels(action="return", status="success").inc()
        return rental
    except DomainException as e:
        raise _domain_error(e, booking_transitions_counter, action="return")
    except Exception as e:
        raise _internal_error(
            e, booking_transitions_counter, "returning rental", action="return"
        )


@router.post("/rentals/{rental_id}/complete", response_model=Rental)
async def complete_rental(
    rental_id: UUID,
    user_id: UUID = Depends(get_user_id),
    service: BookingService = Depends(get_booking_service),
) -> Rental:
    try:
        rental = await service.complete_rental(rental_id, user_id)
        booking_transitions_counter.labels(action="complete", status="success").inc()
        return rental
    except DomainException as e:
        raise _domain_error(e, booking_transitions_counter, action="complete")
    except Exception as e:
        raise _internal_error(
            e, booking_transitions_counter, "completing rental", action="complete"
        )


# Dashboards


@router.get("/dashboard/owner", response_model=OwnerDashboard)
async def owner_dashboard(
    user_id: UUID = Depends(get_user_id),
    now: datetime = Depends(get_clock),
    service: BookingService = Depends(get_booking_service),
) -> OwnerDashboard:
    """Incoming requests plus classified rentals, overdue first."""
    try:
        dashboard = await service.owner_dashboard(user_id, now)
        booking_queries_counter.labels(endpoint="owner_dashboard", status="success").inc()
        return dashboard
    except Exception as e:
        raise _internal_error(
            e, booking_queries_counter, "building owner dashboard", endpoint="owner_dashboard"
        )


@router.get("/dashboard/renter", response_model=RenterDashboard)
async def renter_dashboard(
    user_id: UUID = Depends(get_user_id),
    now: datetime = Depends(get_clock),
    service: BookingService = Depends(get_booking_service),
) -> RenterDashboard:
    try:
        dashboard = await service.renter_dashboard(user_id, now)
        booking_queries_counter.labels(endpoint="renter_dashboard", status="success").inc()
        return dashboard
    except Exception as e:
        raise _internal_error(
            e, booking_queries_counter, "building renter dashboard", endpoint="renter_dashboard"
        )


# Listings


@router.get(
    "/listings/{listing_id}/unavailable-dates", response_model=UnavailableDatesResponse
)
async def get_unavailable_dates(
    listing_id: UUID,
    window_start: Optional[date] = Query(default=None),
    window_end: Optional[date] = Query(default=None),
    now: datetime = Depends(get_clock),
    service: CatalogService = Depends(get_catalog_service),
) -> UnavailableDatesResponse:
    """Blocked and booked days, for greying out a date picker."""
    try:
        dates = await service.get_unavailable_dates(
            listing_id, now, window_start=window_start, window_end=window_end
        )
        booking_queries_counter.labels(endpoint="unavailable_dates", status="success").inc()
        return UnavailableDatesResponse(listing_id=listing_id, dates=dates)
    except DomainException as e:
        raise _domain_error(e, booking_queries_counter, endpoint="unavailable_dates")
    except Exception as e:
        raise _internal_error(
            e, booking_queries_counter, "listing unavailable dates", endpoint="unavailable_dates"
        )


@router.post("/listings/{listing_id}/quote", response_model=PriceBreakdown)
async def quote_listing(
    listing_id: UUID,
    request: QuoteRequest,
    service: CatalogService = Depends(get_catalog_service),
) -> PriceBreakdown:
    try:
        breakdown = await service.quote(
            listing_id,
            request.start_date,
            request.end_date,
            tier_override=request.tier_override,
            suggested_tier=request.suggested_tier,
        )
        booking_queries_counter.labels(endpoint="quote", status="success").inc()
        return breakdown
    except DomainException as e:
        raise _domain_error(e, booking_queries_counter, endpoint="quote")
    except Exception as e:
        raise _internal_error(
            e, booking_queries_counter, "quoting listing", endpoint="quote"
        )


@router.get("/listings/{listing_id}/blackouts", response_model=List[BlackoutRange])
async def list_blackouts(
    listing_id: UUID,
    service: CatalogService = Depends(get_catalog_service),
) -> List[BlackoutRange]:
    try:
        blackouts = await service.list_blackouts(listing_id)
        booking_queries_counter.labels(endpoint="list_blackouts", status="success").inc()
        return blackouts
    except DomainException as e:
        raise _domain_error(e, booking_queries_counter, endpoint="list_blackouts")
    except Exception as e:
        raise _internal_error(
            e, booking_queries_counter, "listing blackouts", endpoint="list_blackouts"
        )


@router.post(
    "/listings/{listing_id}/blackouts",
    response_model=BlackoutRange,
    status_code=status.HTTP_201_CREATED,
)
async def add_blackout(
    listing_id: UUID,
    request: BlackoutRequest,
    user_id: UUID = Depends(get_user_id),
    service: CatalogService = Depends(get_catalog_service),
) -> BlackoutRange:
    try:
        blackout = await service.add_blackout(
            listing_id, user_id, request.start_date, request.end_date, request.reason
        )
        blackout_changes_counter.labels(action="add", status="success").inc()
        return blackout
    except DomainException as e:
        raise _domain_error(e, blackout_changes_counter, action="add")
    except Exception as e:
        raise _internal_error(
            e, blackout_changes_counter, "adding blackout", action="add"
        )


@router.delete(
    "/listings/{listing_id}/blackouts/{blackout_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_blackout(
    listing_id: UUID,
    blackout_id: UUID,
    user_id: UUID = Depends(get_user_id),
    service: CatalogService = Depends(get_catalog_service),
) -> None:
    try:
        await service.delete_blackout(listing_id, blackout_id, user_id)
        blackout_changes_counter.labels(action="delete", status="success").inc()
    except DomainException as e:
        raise _domain_error(e, blackout_changes_counter, action="delete")
    except Exception as e:
        raise _internal_error(
            e, blackout_changes_counter, "deleting blackout", action="delete"
        )


@router.get("/categories/suggest", response_model=Optional[TierSuggestion])
async def suggest_category(
    title: str = Query(..., max_length=200),
    tier_override: Optional[int] = Query(default=None, ge=1),
    service: CatalogService = Depends(get_catalog_service),
) -> Optional[TierSuggestion]:
    """Category and protection tier for a listing title; null when nothing fits."""
    try:
        suggestion = await service.suggest_tier(title, tier_override=tier_override)
        outcome = "success" if suggestion else "no_suggestion"
        booking_queries_counter.labels(endpoint="suggest_category", status=outcome).inc()
        return suggestion
    except Exception as e:
        raise _internal_error(
            e, booking_queries_counter, "suggesting category", endpoint="suggest_category"
        )


# Internal


@internal_router.post("/rentals/expire-pending", response_model=ExpirePendingResponse)
async def expire_pending(
    now: datetime = Depends(get_clock),
    service: BookingService = Depends(get_booking_service),
) -> ExpirePendingResponse:
    """Decline unanswered requests; called periodically by the platform scheduler."""
    try:
        expired = await service.expire_stale_requests(now)
        booking_transitions_counter.labels(action="expire", status="success").inc()
        return ExpirePendingResponse(
            expired=len(expired), rental_ids=[r.rental_id for r in expired]
        )
    except Exception as e:
        raise _internal_error(
            e, booking_transitions_counter, "expiring pending requests", action="expire"
        )
