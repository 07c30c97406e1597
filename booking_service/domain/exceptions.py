"""Domain exceptions for the Booking Service."""


class DomainException(Exception):
    """Base domain exception."""

    def __init__(self, message: str, code: str = "DOMAIN_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


class BookingValidationException(DomainException):
    """Malformed, retroactive or otherwise unacceptable booking input."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")


class BookingOverlapException(DomainException):
    """Requested range conflicts with blocked or confirmed dates."""

    def __init__(self, listing_id: str, start_date: str, end_date: str) -> None:
        super().__init__(
            message=(
                f"Dates {start_date}..{end_date} are not available "
                f"for listing {listing_id}"
            ),
            code="BOOKING_OVERLAP",
        )


class NotFoundException(DomainException):
    """Base class for unknown entities."""


class ListingNotFoundException(NotFoundException):
    """Listing not found exception."""

    def __init__(self, listing_id: str) -> None:
        super().__init__(
            message=f"Listing with id {listing_id} not found",
            code="LISTING_NOT_FOUND",
        )


class CategoryNotFoundException(NotFoundException):
    """Category not found exception."""

    def __init__(self, category_id: str) -> None:
        super().__init__(
            message=f"Category with id {category_id} not found",
            code="CATEGORY_NOT_FOUND",
        )


class RentalNotFoundException(NotFoundException):
    """Rental not found exception."""

    def __init__(self, rental_id: str) -> None:
        super().__init__(
            message=f"Rental with id {rental_id} not found",
            code="RENTAL_NOT_FOUND",
        )


class BlackoutNotFoundException(NotFoundException):
    """Blackout range not found exception."""

    def __init__(self, blackout_id: str) -> None:
        super().__init__(
            message=f"Blackout range with id {blackout_id} not found",
            code="BLACKOUT_NOT_FOUND",
        )


class ActorNotAuthorizedException(DomainException):
    """Actor is not allowed to perform this operation."""

    def __init__(self, actor_id: str, action: str) -> None:
        super().__init__(
            message=f"User {actor_id} is not allowed to {action}",
            code="NOT_AUTHORIZED",
        )


class InvalidTransitionException(DomainException):
    """Operation is not permitted from the rental's current state."""

    def __init__(self, rental_id: str, status: str, action: str) -> None:
        super().__init__(
            message=f"Cannot {action} rental {rental_id} in status {status}",
            code="INVALID_TRANSITION",
        )
