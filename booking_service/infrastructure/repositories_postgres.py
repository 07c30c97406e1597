"""PostgreSQL repository implementation."""
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_service.domain.models import (
    BlackoutRange,
    Category,
    ChatMessage,
    ChatThread,
    Listing,
    Rental,
    RentalStatus,
)
from booking_service.infrastructure.models import (
    BlackoutRangeModel,
    CategoryModel,
    ChatModel,
    ListingModel,
    MessageModel,
    RentalEventModel,
    RentalModel,
)
from booking_service.infrastructure.repositories import (
    BookingRepository,
    ChatRepository,
)

logger = logging.getLogger(__name__)

_RENTAL_MUTABLE_FIELDS = (
    "start_date",
    "end_date",
    "total_days",
    "rental_fee",
    "peace_fund_fee",
    "deposit_amount",
    "total_paid",
    "status",
    "decline_reason",
    "updated_at",
)


class PostgresBookingRepository(BookingRepository):
    """PostgreSQL implementation of booking repository.

    The listing guard is a ``SELECT ... FOR UPDATE`` on the listing row,
    held until the unit of work commits or rolls back.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def atomic(self, listing_id: Optional[UUID] = None) -> AsyncIterator[None]:
        try:
            if listing_id is not None:
                stmt = (
                    select(ListingModel.listing_id)
                    .where(ListingModel.listing_id == listing_id)
                    .with_for_update()
                )
                await self.session.execute(stmt)
                logger.debug(f"Acquired listing guard for {listing_id}")
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def get_category(self, category_id: UUID) -> Optional[Category]:
        model = await self.session.get(CategoryModel, category_id)
        return Category.model_validate(model) if model else None

    async def list_categories(self) -> List[Category]:
        result = await self.session.execute(
            select(CategoryModel).order_by(CategoryModel.name)
        )
        return [Category.model_validate(m) for m in result.scalars().all()]

    async def save_category(self, category: Category) -> Category:
        await self.session.merge(CategoryModel(**category.model_dump()))
        await self.session.flush()
        return category

    async def get_listing(self, listing_id: UUID) -> Optional[Listing]:
        model = await self.session.get(ListingModel, listing_id)
        return Listing.model_validate(model) if model else None

    async def save_listing(self, listing: Listing) -> Listing:
        await self.session.merge(ListingModel(**listing.model_dump()))
        await self.session.flush()
        return listing

    async def list_blackouts(self, listing_id: UUID) -> List[BlackoutRange]:
        stmt = (
            select(BlackoutRangeModel)
            .where(BlackoutRangeModel.listing_id == listing_id)
            .order_by(BlackoutRangeModel.start_date, BlackoutRangeModel.end_date)
        )
        result = await self.session.execute(stmt)
        return [BlackoutRange.model_validate(m) for m in result.scalars().all()]

    async def get_blackout(self, blackout_id: UUID) -> Optional[BlackoutRange]:
        model = await self.session.get(BlackoutRangeModel, blackout_id)
        return BlackoutRange.model_validate(model) if model else None

    async def add_blackout(self, blackout: BlackoutRange) -> BlackoutRange:
        self.session.add(BlackoutRangeModel(**blackout.model_dump()))
        await self.session.flush()
        logger.info(f"Added blackout {blackout.blackout_id} to listing {blackout.listing_id}")
        return blackout

    async def delete_blackout(self, blackout_id: UUID) -> None:
        await self.session.execute(
            delete(BlackoutRangeModel).where(BlackoutRangeModel.blackout_id == blackout_id)
        )
        await self.session.flush()
        logger.info(f"Deleted blackout {blackout_id}")

    async def get_rental(self, rental_id: UUID) -> Optional[Rental]:
        stmt = (
            select(RentalModel)
            .where(RentalModel.rental_id == rental_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return Rental.model_validate(model) if model else None

    async def _list_rentals(self, *criteria) -> List[Rental]:
        stmt = (
            select(RentalModel)
            .where(*criteria)
            .order_by(RentalModel.start_date, RentalModel.created_at)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [Rental.model_validate(m) for m in result.scalars().all()]

    async def list_rentals_for_listing(
        self, listing_id: UUID, statuses: Optional[Iterable[RentalStatus]] = None
    ) -> List[Rental]:
        criteria = [RentalModel.listing_id == listing_id]
        if statuses is not None:
            criteria.append(RentalModel.status.in_(list(statuses)))
        return await self._list_rentals(*criteria)

    async def list_rentals_for_owner(self, owner_id: UUID) -> List[Rental]:
        return await self._list_rentals(RentalModel.owner_id == owner_id)

    async def list_rentals_for_renter(self, renter_id: UUID) -> List[Rental]:
        return await self._list_rentals(RentalModel.renter_id == renter_id)

    async def find_pending(self, listing_id: UUID, renter_id: UUID) -> Optional[Rental]:
        stmt = select(RentalModel).where(
            RentalModel.listing_id == listing_id,
            RentalModel.renter_id == renter_id,
            RentalModel.status == RentalStatus.PENDING,
        ).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        model = result.scalars().first()
        return Rental.model_validate(model) if model else None

    async def list_stale_pending(
        self, created_before: datetime, starting_before: date
    ) -> List[Rental]:
        return await self._list_rentals(
            RentalModel.status == RentalStatus.PENDING,
            or_(
                RentalModel.created_at < created_before,
                RentalModel.start_date < starting_before,
            ),
        )

    async def create_rental(self, rental: Rental) -> Rental:
        self.session.add(RentalModel(**rental.model_dump()))
        await self.session.flush()
        logger.info(f"Created rental {rental.rental_id} in database")
        return rental

    async def update_rental(self, rental: Rental) -> Rental:
        model = await self.session.get(RentalModel, rental.rental_id)
        if model is None:
            raise KeyError(f"Rental {rental.rental_id} does not exist")

        old_status = model.status
        for field in _RENTAL_MUTABLE_FIELDS:
            setattr(model, field, getattr(rental, field))
        await self.session.flush()

        if old_status != rental.status:
            logger.info(
                f"Updated rental {rental.rental_id} status: "
                f"{old_status.value} -> {rental.status.value}"
            )
        return rental

    async def log_event(self, rental_id: UUID, event_type: str, payload: dict) -> None:
        self.session.add(
            RentalEventModel(
                rental_id=rental_id,
                event_type=event_type,
                ts=datetime.utcnow(),
                payload_json=payload,
            )
        )
        await self.session.flush()

        logger.debug(f"Logged audit event {event_type} for rental {rental_id}")


class PostgresChatRepository(ChatRepository):
    """PostgreSQL implementation of chat repository.

    Each call commits on its own; chat writes happen after the booking
    transaction they describe has been committed.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _find_thread(
        self, listing_id: UUID, owner_id: UUID, renter_id: UUID
    ) -> Optional[ChatModel]:
        stmt = select(ChatModel).where(
            ChatModel.owner_id == owner_id,
            ChatModel.renter_id == renter_id,
            ChatModel.listing_id == listing_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_thread(
        self, listing_id: UUID, owner_id: UUID, renter_id: UUID
    ) -> ChatThread:
        model = await self._find_thread(listing_id, owner_id, renter_id)
        if model is not None:
            return ChatThread.model_validate(model)

        thread = ChatThread(listing_id=listing_id, owner_id=owner_id, renter_id=renter_id)
        self.session.add(ChatModel(**thread.model_dump()))
        try:
            await self.session.commit()
        except IntegrityError:
            # Created concurrently by another request; use that one.
            await self.session.rollback()
            model = await self._find_thread(listing_id, owner_id, renter_id)
            if model is None:
                raise
            return ChatThread.model_validate(model)

        logger.info(f"Created chat {thread.chat_id} for listing {listing_id}")
        return thread

    async def add_message(self, message: ChatMessage) -> ChatMessage:
        self.session.add(MessageModel(**message.model_dump()))
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return message

    async def list_messages(self, chat_id: UUID) -> List[ChatMessage]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.chat_id == chat_id)
            .order_by(MessageModel.created_at)
        )
        result = await self.session.execute(stmt)
        return [ChatMessage.model_validate(m) for m in result.scalars().all()]
