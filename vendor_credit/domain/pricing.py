"""Repayment calculator - prices repayments against the tier table"""

from datetime import datetime
from typing import List, Optional
from vendor_credit.domain.exceptions import InvalidAmountError, ValidationError
from vendor_credit.domain.models import CycleSnapshot, RepaymentPricing, RepaymentQuote, TierKind
from vendor_credit.domain.tiers import TierPolicy
from vendor_credit.utils.date_utils import days_between

BPS_DENOMINATOR = 10_000


def apply_rate(amount_cents: int, rate_bps: int) -> int:
    """amount × rate, rounded half-up to a whole cent"""
    return (amount_cents * rate_bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def days_elapsed(cycle_start: datetime, as_of: datetime) -> int:
    """Cycle-relative whole days; as_of may never precede the cycle start"""
    days = days_between(cycle_start, as_of)
    if days < 0:
        raise ValidationError(
            f"as_of {as_of.isoformat()} precedes cycle start {cycle_start.isoformat()}",
            {"as_of": as_of.isoformat(), "cycle_start_date": cycle_start.isoformat()},
        )
    return days


def price_repayment(amount_cents: int, days: int, policy: TierPolicy) -> RepaymentPricing:
    """
    Price one repayment at the rate in force on `days`.

    Each installment is priced independently (pro-rata per transaction): the
    rate is never blended with earlier repayments on the same cycle. At most
    one of discount/interest is non-zero.
    """
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise InvalidAmountError(amount_cents)

    tier = policy.resolve_tier(days)
    discount = apply_rate(amount_cents, tier.rate_bps) if tier.kind == TierKind.DISCOUNT else 0
    interest = apply_rate(amount_cents, tier.rate_bps) if tier.kind == TierKind.INTEREST else 0

    return RepaymentPricing(
        principal_cents=amount_cents,
        days_elapsed=days,
        tier=tier,
        discount_cents=discount,
        interest_cents=interest,
    )


def _quote(base_cents: int, days: int, policy: TierPolicy) -> RepaymentQuote:
    tier = policy.resolve_tier(days)
    savings = apply_rate(base_cents, tier.rate_bps) if tier.kind == TierKind.DISCOUNT else 0
    penalty = apply_rate(base_cents, tier.rate_bps) if tier.kind == TierKind.INTEREST else 0

    return RepaymentQuote(
        days_elapsed=days,
        tier=tier,
        base_amount_cents=base_cents,
        discount_rate_bps=tier.rate_bps if tier.kind == TierKind.DISCOUNT else 0,
        interest_rate_bps=tier.rate_bps if tier.kind == TierKind.INTEREST else 0,
        savings_from_early_payment_cents=savings,
        penalty_from_late_payment_cents=penalty,
        final_payable_cents=base_cents - savings + penalty,
    )


def calculate_repayment_amount(
    cycle: CycleSnapshot,
    as_of: datetime,
    policy: Optional[TierPolicy] = None,
) -> RepaymentQuote:
    """
    Preview what settling the cycle's current outstanding balance would cost at `as_of`.

    Pure function of (cycle, as_of): safe to call any number of times.
    A cycle with nothing outstanding yields a zero quote at the current tier.
    """
    policy = policy or TierPolicy.default()
    days = days_elapsed(cycle.cycle_start_date, as_of)
    return _quote(cycle.outstanding_cents, days, policy)


def project_repayment_schedule(
    cycle: CycleSnapshot,
    as_of: datetime,
    policy: Optional[TierPolicy] = None,
) -> List[RepaymentQuote]:
    """
    Quotes for today and for the first day of every later tier.

    Lets a vendor see how the payable amount on the current outstanding
    balance moves as the cycle ages.
    """
    policy = policy or TierPolicy.default()
    today = days_elapsed(cycle.cycle_start_date, as_of)
    quotes = [_quote(cycle.outstanding_cents, today, policy)]
    quotes.extend(
        _quote(cycle.outstanding_cents, start_day, policy)
        for start_day in policy.boundaries()
        if start_day > today
    )
    return quotes
