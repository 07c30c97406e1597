"""Abstract repository interfaces."""
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import AsyncContextManager, Iterable, List, Optional
from uuid import UUID

from booking_service.domain.models import (
    BlackoutRange,
    Category,
    ChatMessage,
    ChatThread,
    Listing,
    Rental,
    RentalStatus,
)


class BookingRepository(ABC):
    """Abstract store of listings, blackouts and rentals."""

    @abstractmethod
    def atomic(self, listing_id: Optional[UUID] = None) -> AsyncContextManager[None]:
        """Run a block as one unit of work.

        Every write inside the block is committed together when it exits
        normally and discarded when it raises. With ``listing_id`` the block
        also holds the listing guard, so concurrent check-then-write blocks
        on the same listing run one after another.
        """
        pass

    @abstractmethod
    async def get_category(self, category_id: UUID) -> Optional[Category]:
        """Get category by ID."""
        pass

    @abstractmethod
    async def list_categories(self) -> List[Category]:
        """Get all categories."""
        pass

    @abstractmethod
    async def save_category(self, category: Category) -> Category:
        """Insert or replace a category."""
        pass

    @abstractmethod
    async def get_listing(self, listing_id: UUID) -> Optional[Listing]:
        """Get listing by ID."""
        pass

    @abstractmethod
    async def save_listing(self, listing: Listing) -> Listing:
        """Insert or replace a listing."""
        pass

    @abstractmethod
    async def list_blackouts(self, listing_id: UUID) -> List[BlackoutRange]:
        """Get all blackout ranges of a listing."""
        pass

    @abstractmethod
    async def get_blackout(self, blackout_id: UUID) -> Optional[BlackoutRange]:
        """Get blackout range by ID."""
        pass

    @abstractmethod
    async def add_blackout(self, blackout: BlackoutRange) -> BlackoutRange:
        """Create a blackout range."""
        pass

    @abstractmethod
    async def delete_blackout(self, blackout_id: UUID) -> None:
        """Delete a blackout range."""
        pass

    @abstractmethod
    async def get_rental(self, rental_id: UUID) -> Optional[Rental]:
        """Get rental by ID."""
        pass

    @abstractmethod
    async def list_rentals_for_listing(
        self, listing_id: UUID, statuses: Optional[Iterable[RentalStatus]] = None
    ) -> List[Rental]:
        """Get rentals of a listing, optionally restricted to some statuses."""
        pass

    @abstractmethod
    async def list_rentals_for_owner(self, owner_id: UUID) -> List[Rental]:
        """Get all rentals of listings owned by a user."""
        pass

    @abstractmethod
    async def list_rentals_for_renter(self, renter_id: UUID) -> List[Rental]:
        """Get all rentals requested by a user."""
        pass

    @abstractmethod
    async def find_pending(self, listing_id: UUID, renter_id: UUID) -> Optional[Rental]:
        """Get the renter's pending request for a listing, if any."""
        pass

    @abstractmethod
    async def list_stale_pending(
        self, created_before: datetime, starting_before: date
    ) -> List[Rental]:
        """Get pending rentals created before a moment or starting before a date."""
        pass

    @abstractmethod
    async def create_rental(self, rental: Rental) -> Rental:
        """Create a new rental."""
        pass

    @abstractmethod
    async def update_rental(self, rental: Rental) -> Rental:
        """Persist the mutable fields of an existing rental."""
        pass

    @abstractmethod
    async def log_event(self, rental_id: UUID, event_type: str, payload: dict) -> None:
        """Log audit event."""
        pass


class ChatRepository(ABC):
    """Abstract store of chat threads and messages."""

    @abstractmethod
    async def get_or_create_thread(
        self, listing_id: UUID, owner_id: UUID, renter_id: UUID
    ) -> ChatThread:
        """Get the single thread for an owner, renter and listing, creating it if missing."""
        pass

    @abstractmethod
    async def add_message(self, message: ChatMessage) -> ChatMessage:
        """Append a message to a thread."""
        pass

    @abstractmethod
    async def list_messages(self, chat_id: UUID) -> List[ChatMessage]:
        """Get messages of a thread, oldest first."""
        pass
