"""Domain layer."""
from booking_service.domain.exceptions import (
    ActorNotAuthorizedException,
    BlackoutNotFoundException,
    BookingOverlapException,
    BookingValidationException,
    CategoryNotFoundException,
    DomainException,
    InvalidTransitionException,
    ListingNotFoundException,
    NotFoundException,
    RentalNotFoundException,
)
from booking_service.domain.models import (
    CONFIRMED_OCCUPANCY,
    BlackoutRange,
    BookingType,
    Category,
    CategorySuggestion,
    ChatMessage,
    ChatThread,
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
    TierResolution,
    TierSuggestion,
)

__all__ = [
    # Models
    "BlackoutRange",
    "BookingType",
    "Category",
    "CategorySuggestion",
    "ChatMessage",
    "ChatThread",
    "CONFIRMED_OCCUPANCY",
    "DashboardEntry",
    "DashboardStatus",
    "DashboardView",
    "Listing",
    "ListingStatus",
    "OwnerDashboard",
    "PriceBreakdown",
    "Rental",
    "RentalStatus",
    "RenterDashboard",
    "TierResolution",
    "TierSuggestion",
    # Exceptions
    "DomainException",
    "BookingValidationException",
    "BookingOverlapException",
    "NotFoundException",
    "ListingNotFoundException",
    "CategoryNotFoundException",
    "RentalNotFoundException",
    "BlackoutNotFoundException",
    "ActorNotAuthorizedException",
    "InvalidTransitionException",
]
