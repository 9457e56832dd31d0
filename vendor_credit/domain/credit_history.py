"""Vendor credit history - rolling repayment statistics and credit score"""

from dataclasses import replace
from datetime import datetime
from typing import Optional
from vendor_credit.domain.models import CreditHistory, PerformanceTier, RepaymentPricing
from vendor_credit.domain.tiers import TierPolicy


def on_time_threshold(policy: TierPolicy, override_days: Optional[int] = None) -> Optional[int]:
    """
    Last day a repayment still counts as on time.

    Follows the tier table (last interest-free day) unless pinned by config.
    None means the table never charges interest, so every repayment is on time.
    """
    if override_days is not None:
        return override_days
    return policy.last_interest_free_day


def calculate_credit_score(history: CreditHistory, threshold_days: Optional[int]) -> int:
    """
    Score from 0 (worst) to 100 (best).

    Weights:
    - 70%: on-time ratio
    - 30%: repayment speed, linear from day 0 (full marks) to the on-time threshold (none)

    A vendor without repayments keeps the default 100.
    """
    if history.total_repayment_count == 0:
        return 100

    on_time_ratio = history.on_time_repayment_count / history.total_repayment_count

    if threshold_days is None or threshold_days <= 0:
        speed_score = 1.0
    else:
        speed_score = (threshold_days - history.avg_repayment_days) / threshold_days
        speed_score = min(max(speed_score, 0.0), 1.0)

    score = round(70 * on_time_ratio + 30 * speed_score)
    return min(max(score, 0), 100)


def tier_for_score(score: int) -> PerformanceTier:
    """Automatic performance tier policy"""
    if score >= 90:
        return PerformanceTier.PLATINUM
    elif score >= 80:
        return PerformanceTier.GOLD
    elif score >= 65:
        return PerformanceTier.SILVER
    else:
        return PerformanceTier.BRONZE


def update_credit_history(
    history: CreditHistory,
    pricing: RepaymentPricing,
    repayment_date: datetime,
    threshold_days: Optional[int],
) -> CreditHistory:
    """
    Fold one repayment into the vendor's history and return the new history.

    avg_repayment_days is a running mean over all repayments (rounded to 2dp).
    """
    count = history.total_repayment_count + 1
    on_time = threshold_days is None or pricing.days_elapsed <= threshold_days
    avg_days = (history.avg_repayment_days * history.total_repayment_count + pricing.days_elapsed) / count

    updated = replace(
        history,
        total_repayment_count=count,
        on_time_repayment_count=history.on_time_repayment_count + (1 if on_time else 0),
        avg_repayment_days=round(avg_days, 2),
        total_discounts_earned_cents=history.total_discounts_earned_cents + pricing.discount_cents,
        total_interest_paid_cents=history.total_interest_paid_cents + pricing.interest_cents,
        last_repayment_date=repayment_date,
    )
    updated.credit_score = calculate_credit_score(updated, threshold_days)
    return updated
