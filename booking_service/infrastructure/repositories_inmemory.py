"""In-memory repository implementations for development/testing."""
import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Dict, Iterable, List, Optional, Tuple
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
from booking_service.infrastructure.repositories import (
    BookingRepository,
    ChatRepository,
)


class InMemoryBookingRepository(BookingRepository):
    """In-memory implementation of booking repository.

    Objects are copied on the way in and out, so a caller mutating a returned
    rental changes nothing until it calls ``update_rental``.
    """

    def __init__(self) -> None:
        self._categories: Dict[UUID, Category] = {}
        self._listings: Dict[UUID, Listing] = {}
        self._blackouts: Dict[UUID, BlackoutRange] = {}
        self._rentals: Dict[UUID, Rental] = {}
        self._audit_events: List[dict] = []
        self._locks: Dict[UUID, asyncio.Lock] = {}

    def _lock_for(self, listing_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(listing_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[listing_id] = lock
        return lock

    def _snapshot(self) -> Tuple[dict, dict, dict, dict, list]:
        return (
            dict(self._categories),
            dict(self._listings),
            dict(self._blackouts),
            dict(self._rentals),
            list(self._audit_events),
        )

    def _restore(self, snapshot: Tuple[dict, dict, dict, dict, list]) -> None:
        (
            self._categories,
            self._listings,
            self._blackouts,
            self._rentals,
            self._audit_events,
        ) = snapshot

    @asynccontextmanager
    async def atomic(self, listing_id: Optional[UUID] = None) -> AsyncIterator[None]:
        if listing_id is None:
            snapshot = self._snapshot()
            try:
                yield
            except Exception:
                self._restore(snapshot)
                raise
            return

        async with self._lock_for(listing_id):
            snapshot = self._snapshot()
            try:
                yield
            except Exception:
                self._restore(snapshot)
                raise

    async def get_category(self, category_id: UUID) -> Optional[Category]:
        category = self._categories.get(category_id)
        return category.model_copy() if category else None

    async def list_categories(self) -> List[Category]:
        return [c.model_copy() for c in self._categories.values()]

    async def save_category(self, category: Category) -> Category:
        self._categories[category.category_id] = category.model_copy()
        return category

    async def get_listing(self, listing_id: UUID) -> Optional[Listing]:
        listing = self._listings.get(listing_id)
        return listing.model_copy() if listing else None

    async def save_listing(self, listing: Listing) -> Listing:
        self._listings[listing.listing_id] = listing.model_copy()
        return listing

    async def list_blackouts(self, listing_id: UUID) -> List[BlackoutRange]:
        blackouts = [b for b in self._blackouts.values() if b.listing_id == listing_id]
        blackouts.sort(key=lambda b: (b.start_date, b.end_date))
        return [b.model_copy() for b in blackouts]

    async def get_blackout(self, blackout_id: UUID) -> Optional[BlackoutRange]:
        blackout = self._blackouts.get(blackout_id)
        return blackout.model_copy() if blackout else None

    async def add_blackout(self, blackout: BlackoutRange) -> BlackoutRange:
        self._blackouts[blackout.blackout_id] = blackout.model_copy()
        return blackout

    async def delete_blackout(self, blackout_id: UUID) -> None:
        self._blackouts.pop(blackout_id, None)

    async def get_rental(self, rental_id: UUID) -> Optional[Rental]:
        rental = self._rentals.get(rental_id)
        return rental.model_copy() if rental else None

    async def list_rentals_for_listing(
        self, listing_id: UUID, statuses: Optional[Iterable[RentalStatus]] = None
    ) -> List[Rental]:
        wanted = set(statuses) if statuses is not None else None
        return [
            rental.model_copy()
            for rental in self._rentals.values()
            if rental.listing_id == listing_id
            and (wanted is None or rental.status in wanted)
        ]

    async def list_rentals_for_owner(self, owner_id: UUID) -> List[Rental]:
        return [r.model_copy() for r in self._rentals.values() if r.owner_id == owner_id]

    async def list_rentals_for_renter(self, renter_id: UUID) -> List[Rental]:
        return [r.model_copy() for r in self._rentals.values() if r.renter_id == renter_id]

    async def find_pending(self, listing_id: UUID, renter_id: UUID) -> Optional[Rental]:
        for rental in self._rentals.values():
            if (
                rental.listing_id == listing_id
                and rental.renter_id == renter_id
                and rental.status == RentalStatus.PENDING
            ):
                return rental.model_copy()
        return None

    async def list_stale_pending(
        self, created_before: datetime, starting_before: date
    ) -> List[Rental]:
        return [
            rental.model_copy()
            for rental in self._rentals.values()
            if rental.status == RentalStatus.PENDING
            and (rental.created_at < created_before or rental.start_date < starting_before)
        ]

    async def create_rental(self, rental: Rental) -> Rental:
        self._rentals[rental.rental_id] = rental.model_copy()
        return rental

    async def update_rental(self, rental: Rental) -> Rental:
        if rental.rental_id not in self._rentals:
            raise KeyError(f"Rental {rental.rental_id} does not exist")
        self._rentals[rental.rental_id] = rental.model_copy()
        return rental

    async def log_event(self, rental_id: UUID, event_type: str, payload: dict) -> None:
        self._audit_events.append(
            {
                "rental_id": rental_id,
                "event_type": event_type,
                "ts": datetime.utcnow(),
                "payload": payload,
            }
        )

    def events_for(self, rental_id: UUID) -> List[dict]:
        """Audit trail of one rental (for testing)."""
        return [e for e in self._audit_events if e["rental_id"] == rental_id]

    def clear(self) -> None:
        """Clear all data (for testing)."""
        self._categories.clear()
        self._listings.clear()
        self._blackouts.clear()
        self._rentals.clear()
        self._audit_events.clear()
        self._locks.clear()


class InMemoryChatRepository(ChatRepository):
    """In-memory implementation of chat repository."""

    def __init__(self) -> None:
        self._threads: Dict[Tuple[UUID, UUID, UUID], ChatThread] = {}
        self._messages: List[ChatMessage] = []

    async def get_or_create_thread(
        self, listing_id: UUID, owner_id: UUID, renter_id: UUID
    ) -> ChatThread:
        key = (owner_id, renter_id, listing_id)
        thread = self._threads.get(key)
        if thread is None:
            thread = ChatThread(listing_id=listing_id, owner_id=owner_id, renter_id=renter_id)
            self._threads[key] = thread
        return thread

    async def add_message(self, message: ChatMessage) -> ChatMessage:
        self._messages.append(message)
        return message

    async def list_messages(self, chat_id: UUID) -> List[ChatMessage]:
        return [m for m in self._messages if m.chat_id == chat_id]

    @property
    def threads(self) -> List[ChatThread]:
        return list(self._threads.values())

    def clear(self) -> None:
        """Clear all data (for testing)."""
        self._threads.clear()
        self._messages.clear()
