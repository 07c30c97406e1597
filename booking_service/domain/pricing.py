"""Risk tier resolution and rental price computation."""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Optional, Protocol, Union
from uuid import UUID

from booking_service.domain.models import (
    Category,
    CategorySuggestion,
    PriceBreakdown,
    TierResolution,
)

logger = logging.getLogger(__name__)

PEACE_FUND_DAILY_FEES: Dict[int, Decimal] = {
    1: Decimal("1.50"),
    2: Decimal("4.00"),
    3: Decimal("9.00"),
}

DEDUCTIBLES: Dict[int, Decimal] = {
    1: Decimal("25.00"),
    2: Decimal("75.00"),
    3: Decimal("250.00"),
}

MIN_TITLE_LENGTH = 3

CENTS = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_money(value: Number) -> Decimal:
    """Quantize to cents."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def peace_fund_daily_fee(tier: int, category: Category) -> Decimal:
    if tier in PEACE_FUND_DAILY_FEES:
        return PEACE_FUND_DAILY_FEES[tier]
    return to_money(category.risk_daily_fee)


def deductible_for(tier: int, category: Category) -> Decimal:
    if tier in DEDUCTIBLES:
        return DEDUCTIBLES[tier]
    return to_money(category.deductible_amount)


def resolve_tier(
    category: Category,
    manual_tier: Optional[int] = None,
    suggested_tier: Optional[int] = None,
) -> TierResolution:
    """Manual override wins, then the auto-suggested tier, then the category default."""
    if manual_tier is not None:
        tier = manual_tier
    elif suggested_tier is not None:
        tier = suggested_tier
    else:
        tier = category.risk_tier

    return TierResolution(
        effective_tier=tier,
        peace_fund_daily_fee=peace_fund_daily_fee(tier, category),
        deductible=deductible_for(tier, category),
    )


def compute_price(
    daily_price: Number,
    total_days: int,
    resolution: TierResolution,
    deposit: Number = Decimal("0.00"),
) -> PriceBreakdown:
    """Price a rental.

    A daily price of zero is a free-to-borrow listing; the Peace Fund fee is
    still charged for every day.
    """
    if total_days < 1:
        raise ValueError(f"total_days must be at least 1, got {total_days}")

    price = to_money(daily_price)
    if price < 0:
        raise ValueError(f"daily_price must not be negative, got {price}")

    subtotal = to_money(price * total_days)
    peace_fund_total = to_money(resolution.peace_fund_daily_fee * total_days)
    final_total = subtotal + peace_fund_total
    deposit_amount = to_money(deposit)

    return PriceBreakdown(
        total_days=total_days,
        daily_price=price,
        effective_tier=resolution.effective_tier,
        subtotal=subtotal,
        peace_fund_total=peace_fund_total,
        final_total=final_total,
        deposit=deposit_amount,
        total_due=final_total + deposit_amount,
        deductible=resolution.deductible,
    )


def owner_earnings(total: Number, seller_fee_percent: Number) -> Decimal:
    """What the owner keeps after the platform's seller fee."""
    fee = Decimal(str(seller_fee_percent)) / Decimal("100")
    return to_money(to_money(total) * (Decimal("1") - fee))


class CategorySuggester(Protocol):
    async def suggest_category(self, title: str) -> Optional[CategorySuggestion]:
        ...


class RiskTierResolver:
    """Tier selection state of a single listing form.

    Tracks the selected category, whether it was picked by auto-suggestion,
    the suggested tier attached to it and the owner's manual tier override.
    """

    def __init__(
        self,
        categories: Iterable[Category],
        suggester: Optional[CategorySuggester] = None,
        min_title_length: int = MIN_TITLE_LENGTH,
    ):
        self._categories: Dict[UUID, Category] = {c.category_id: c for c in categories}
        self._suggester = suggester
        self._min_title_length = min_title_length

        self.selected_category: Optional[Category] = None
        self.is_auto_suggested: bool = False
        self.suggested_tier: Optional[int] = None
        self.manual_tier: Optional[int] = None
        self._suggestions_enabled = True
        self._category_manually_selected = False

    def select_category(self, category_id: UUID) -> Category:
        """Manual category pick; detaches any suggestion."""
        category = self._categories.get(category_id)
        if category is None:
            raise KeyError(f"Unknown category {category_id}")
        self.selected_category = category
        self.is_auto_suggested = False
        self.suggested_tier = None
        self._suggestions_enabled = False
        self._category_manually_selected = True
        return category

    def set_tier_override(self, tier: int) -> None:
        self.manual_tier = tier
        self.is_auto_suggested = False
        self._suggestions_enabled = False

    def clear_tier_override(self) -> None:
        self.manual_tier = None
        self._suggestions_enabled = not self._category_manually_selected

    async def update_title(self, title: str) -> None:
        """React to a change of the free-text title."""
        if len(title.strip()) < self._min_title_length:
            # A manually chosen category is never cleared by text edits.
            if self.is_auto_suggested:
                self._reset()
            return

        if self._suggester is None or not self._suggestions_enabled:
            return

        suggestion = await self._suggester.suggest_category(title)
        if suggestion is None:
            return

        category = self._categories.get(suggestion.category_id)
        if category is None:
            logger.warning(f"Suggested unknown category {suggestion.category_id}")
            return

        if (
            self.selected_category is not None
            and self.selected_category.category_id == category.category_id
        ):
            return

        self.selected_category = category
        self.is_auto_suggested = True
        self._category_manually_selected = False
        self.suggested_tier = suggestion.tier if suggestion.tier is not None else category.risk_tier
        self.manual_tier = None
        logger.debug(
            f"Adopted suggested category {category.name} "
            f"(tier {self.suggested_tier}, confidence {suggestion.confidence})"
        )

    def resolve(self) -> Optional[TierResolution]:
        if self.selected_category is None:
            return None
        return resolve_tier(
            self.selected_category,
            manual_tier=self.manual_tier,
            suggested_tier=self.suggested_tier,
        )

    def _reset(self) -> None:
        self.selected_category = None
        self.is_auto_suggested = False
        self.suggested_tier = None
        self.manual_tier = None
        self._suggestions_enabled = True
        self._category_manually_selected = False
