"""Booking lifecycle events consumed by the messaging collaborator."""
from typing import Optional

from pydantic import BaseModel

from booking_service.domain.models import Listing, Rental


class BookingEvent(BaseModel):
    """Base booking event."""

    event_type: str = "BOOKING_EVENT"
    rental: Rental
    listing: Listing


class BookingRequested(BookingEvent):
    """A renter submitted a new booking request."""

    event_type: str = "BOOKING_REQUESTED"
    message: Optional[str] = None


class BookingApproved(BookingEvent):
    """The owner approved a pending request."""

    event_type: str = "BOOKING_APPROVED"


class BookingDeclined(BookingEvent):
    """A pending request was declined by the owner, a conflict or expiry."""

    event_type: str = "BOOKING_DECLINED"
    reason: Optional[str] = None


class BookingCancelled(BookingEvent):
    """The renter cancelled a pending or approved booking."""

    event_type: str = "BOOKING_CANCELLED"
