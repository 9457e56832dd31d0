"""Repayment tier table - maps days elapsed since cycle start to a rate bracket"""

from typing import Iterable, List, Optional
from vendor_credit.domain.exceptions import ValidationError
from vendor_credit.domain.models import Tier, TierKind


DEFAULT_TIERS: List[Tier] = [
    Tier("early_discount", "3% Early Payment Discount", TierKind.DISCOUNT, 0, 60, 300),
    Tier("standard_discount", "1% Standard Discount", TierKind.DISCOUNT, 61, 89, 100),
    Tier("neutral", "Standard Rate", TierKind.NEUTRAL, 90, 104, 0),
    Tier("late_interest", "5% Late Interest", TierKind.INTEREST, 105, 120, 500),
    Tier("severe_interest", "10% Severe Late Interest", TierKind.INTEREST, 121, None, 1000),
]


class TierPolicy:
    """
    Validated, contiguous tier table.

    Requirements:
    - First tier starts at day 0, tiers are sorted and leave no gaps
    - Only the last tier may be open-ended
    - Neutral tiers carry a 0 rate, discount/interest tiers a positive one
    - Discount rates never increase and interest rates never decrease over time
    """

    def __init__(self, tiers: Iterable[Tier]):
        self.tiers: List[Tier] = sorted(tiers, key=lambda t: t.start_day)
        self._validate()

    @classmethod
    def default(cls) -> "TierPolicy":
        return cls(DEFAULT_TIERS)

    @classmethod
    def from_settings(cls, tier_settings) -> "TierPolicy":
        """Build from config.TierSetting rows, falling back to the built-in table"""
        if not tier_settings:
            return cls.default()
        return cls(
            Tier(
                tier_id=t.tier_id,
                name=t.name,
                kind=TierKind(t.kind),
                start_day=t.start_day,
                end_day=t.end_day,
                rate_bps=t.rate_bps,
            )
            for t in tier_settings
        )

    def _validate(self) -> None:
        if not self.tiers:
            raise ValidationError("Tier table is empty")
        if self.tiers[0].start_day != 0:
            raise ValidationError("Tier table must start at day 0")

        expected_start = 0
        last_discount: Optional[int] = None
        last_interest: Optional[int] = None
        seen_neutral = False
        seen_interest = False
        for index, tier in enumerate(self.tiers):
            is_last = index == len(self.tiers) - 1
            if tier.start_day != expected_start:
                raise ValidationError(
                    f"Tier {tier.tier_id} starts at day {tier.start_day}, expected {expected_start}",
                    {"tier_id": tier.tier_id},
                )
            if tier.end_day is None and not is_last:
                raise ValidationError(f"Only the last tier may be open-ended ({tier.tier_id})")
            if tier.end_day is not None and tier.end_day < tier.start_day:
                raise ValidationError(f"Tier {tier.tier_id} ends before it starts")

            if tier.kind == TierKind.NEUTRAL and tier.rate_bps != 0:
                raise ValidationError(f"Neutral tier {tier.tier_id} must have a 0 rate")
            if tier.kind != TierKind.NEUTRAL and tier.rate_bps <= 0:
                raise ValidationError(f"Tier {tier.tier_id} needs a positive rate")

            # Monotonic in time: discounts shrink, then neutral, then growing interest
            if tier.kind == TierKind.DISCOUNT:
                if seen_neutral or seen_interest or (last_discount is not None and tier.rate_bps > last_discount):
                    raise ValidationError(f"Discount tier {tier.tier_id} breaks monotonic ordering")
                last_discount = tier.rate_bps
            elif tier.kind == TierKind.INTEREST:
                if last_interest is not None and tier.rate_bps < last_interest:
                    raise ValidationError(f"Interest tier {tier.tier_id} breaks monotonic ordering")
                last_interest = tier.rate_bps
                seen_interest = True
            else:
                if seen_interest:
                    raise ValidationError(f"Neutral tier {tier.tier_id} follows an interest tier")
                seen_neutral = True

            if tier.end_day is not None:
                expected_start = tier.end_day + 1

        if self.tiers[-1].end_day is not None:
            raise ValidationError("Last tier must be open-ended")

    def resolve_tier(self, days_elapsed: int) -> Tier:
        """Return the tier in force after `days_elapsed` whole days"""
        if days_elapsed < 0:
            raise ValidationError(
                f"Days elapsed cannot be negative ({days_elapsed})", {"days_elapsed": days_elapsed}
            )
        for tier in self.tiers:
            if tier.contains(days_elapsed):
                return tier
        # Unreachable for a validated table
        raise ValidationError(f"No tier covers day {days_elapsed}")

    @property
    def first_interest_day(self) -> Optional[int]:
        for tier in self.tiers:
            if tier.kind == TierKind.INTEREST:
                return tier.start_day
        return None

    @property
    def last_interest_free_day(self) -> Optional[int]:
        """Last day on which no interest is charged; None if interest never applies"""
        first = self.first_interest_day
        return None if first is None else first - 1

    @property
    def first_neutral_day(self) -> Optional[int]:
        for tier in self.tiers:
            if tier.kind == TierKind.NEUTRAL:
                return tier.start_day
        return None

    @property
    def top_discount_end_day(self) -> Optional[int]:
        first = self.tiers[0]
        return first.end_day if first.kind == TierKind.DISCOUNT else None

    @property
    def second_interest_day(self) -> Optional[int]:
        interest = [t for t in self.tiers if t.kind == TierKind.INTEREST]
        return interest[1].start_day if len(interest) > 1 else None

    def boundaries(self) -> List[int]:
        """First day of every tier, used for projections"""
        return [t.start_day for t in self.tiers]


def resolve_tier(days_elapsed: int, policy: Optional[TierPolicy] = None) -> Tier:
    """Module-level convenience wrapper around the default table"""
    return (policy or TierPolicy.default()).resolve_tier(days_elapsed)
