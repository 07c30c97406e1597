"""Listing-level queries: availability, quotes, blackouts and tier suggestions."""
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Union
from uuid import UUID

from booking_service.config import settings
from booking_service.domain.availability import (
    DateLike,
    IntervalSet,
    to_calendar_date,
    total_days,
    validate_range,
)
from booking_service.domain.exceptions import (
    ActorNotAuthorizedException,
    BlackoutNotFoundException,
    CategoryNotFoundException,
    ListingNotFoundException,
)
from booking_service.domain.models import (
    CONFIRMED_OCCUPANCY,
    BlackoutRange,
    Category,
    Listing,
    PriceBreakdown,
    TierSuggestion,
)
from booking_service.domain.pricing import (
    CategorySuggester,
    RiskTierResolver,
    compute_price,
    resolve_tier,
)
from booking_service.infrastructure.repositories import BookingRepository

logger = logging.getLogger(__name__)


class CatalogService:
    """Read-side queries over a listing plus owner blackout management."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        suggester: Optional[CategorySuggester] = None,
        platform_deposit: Decimal = settings.platform_deposit,
        availability_horizon_days: int = settings.availability_horizon_days,
        min_title_length: int = settings.min_title_length_for_suggestion,
    ):
        self.booking_repository = booking_repository
        self.suggester = suggester
        self.platform_deposit = platform_deposit
        self.availability_horizon_days = availability_horizon_days
        self.min_title_length = min_title_length

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

    async def get_unavailable_dates(
        self,
        listing_id: UUID,
        today: Union[date, datetime],
        window_start: Optional[DateLike] = None,
        window_end: Optional[DateLike] = None,
    ) -> List[date]:
        """Sorted blocked and confirmed days of a listing within a window.

        The window defaults to today through the availability horizon.
        """
        await self._get_listing(listing_id)
        today = to_calendar_date(today)
        low = to_calendar_date(window_start) if window_start is not None else today
        high = (
            to_calendar_date(window_end)
            if window_end is not None
            else today + timedelta(days=self.availability_horizon_days)
        )
        validate_range(low, high)

        blackouts = await self.booking_repository.list_blackouts(listing_id)
        confirmed = await self.booking_repository.list_rentals_for_listing(
            listing_id, CONFIRMED_OCCUPANCY
        )
        return IntervalSet.for_listing(blackouts, confirmed).unavailable_dates(low, high)

    async def quote(
        self,
        listing_id: UUID,
        start_date: DateLike,
        end_date: DateLike,
        tier_override: Optional[int] = None,
        suggested_tier: Optional[int] = None,
    ) -> PriceBreakdown:
        """Price a prospective rental without booking it."""
        start, end = validate_range(start_date, end_date)
        listing = await self._get_listing(listing_id)
        category = await self._get_category(listing.category_id)

        manual_tier = tier_override if tier_override is not None else listing.risk_tier_override
        resolution = resolve_tier(
            category, manual_tier=manual_tier, suggested_tier=suggested_tier
        )
        deposit = (
            listing.deposit_override
            if listing.deposit_override is not None
            else self.platform_deposit
        )
        return compute_price(listing.daily_price, total_days(start, end), resolution, deposit)

    async def list_blackouts(self, listing_id: UUID) -> List[BlackoutRange]:
        await self._get_listing(listing_id)
        return await self.booking_repository.list_blackouts(listing_id)

    async def add_blackout(
        self,
        listing_id: UUID,
        owner_id: UUID,
        start_date: DateLike,
        end_date: DateLike,
        reason: Optional[str] = None,
    ) -> BlackoutRange:
        start, end = validate_range(start_date, end_date)
        listing = await self._get_listing(listing_id)
        if listing.owner_id != owner_id:
            raise ActorNotAuthorizedException(str(owner_id), f"block dates of listing {listing_id}")

        blackout = BlackoutRange(
            listing_id=listing_id,
            owner_id=owner_id,
            start_date=start,
            end_date=end,
            reason=reason,
        )
        async with self.booking_repository.atomic(listing_id):
            await self.booking_repository.add_blackout(blackout)
        return blackout

    async def delete_blackout(
        self, listing_id: UUID, blackout_id: UUID, owner_id: UUID
    ) -> None:
        listing = await self._get_listing(listing_id)
        if listing.owner_id != owner_id:
            raise ActorNotAuthorizedException(str(owner_id), f"unblock dates of listing {listing_id}")

        blackout = await self.booking_repository.get_blackout(blackout_id)
        if blackout is None or blackout.listing_id != listing_id:
            raise BlackoutNotFoundException(str(blackout_id))

        async with self.booking_repository.atomic(listing_id):
            await self.booking_repository.delete_blackout(blackout_id)

    async def suggest_tier(
        self, title: str, tier_override: Optional[int] = None
    ) -> Optional[TierSuggestion]:
        """Run a listing title through the tier resolver.

        Returns None when the title is too short or nothing was suggested.
        """
        categories = await self.booking_repository.list_categories()
        resolver = RiskTierResolver(
            categories, suggester=self.suggester, min_title_length=self.min_title_length
        )
        await resolver.update_title(title)
        if resolver.selected_category is None:
            return None

        is_auto_suggested = resolver.is_auto_suggested
        if tier_override is not None:
            resolver.set_tier_override(tier_override)

        resolution = resolver.resolve()
        return TierSuggestion(
            category_id=resolver.selected_category.category_id,
            category_name=resolver.selected_category.name,
            is_auto_suggested=is_auto_suggested,
            effective_tier=resolution.effective_tier,
            peace_fund_daily_fee=resolution.peace_fund_daily_fee,
            deductible=resolution.deductible,
        )
