"""Performance analyzer - credit-limit recommendations from repayment history"""

from vendor_credit.domain.models import (
    CreditHistory,
    PerformanceAnalysis,
    PerformanceTier,
    Recommendation,
    RiskLevel,
)

# Suggested limit changes, in cents (50,000 / 25,000 / 10,000 currency units)
TOP_TIER_INCREASE_CENTS = 5_000_000
HIGH_TIER_INCREASE_CENTS = 2_500_000
STANDARD_INCREASE_CENTS = 1_000_000
MIN_REDUCED_LIMIT_CENTS = 5_000_000

MIN_REPAYMENTS_FOR_RATE = 5
ACTIVE_VENDOR_REPAYMENTS = 10


def _raise_risk(current: RiskLevel, floor: RiskLevel) -> RiskLevel:
    """Escalate risk, never downgrade it"""
    order = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH]
    return current if order.index(current) >= order.index(floor) else floor


def analyze_vendor_performance(
    vendor_id: str,
    credit_limit_cents: int,
    credit_used_cents: int,
    history: CreditHistory,
    performance_tier: PerformanceTier = PerformanceTier.NOT_RATED,
) -> PerformanceAnalysis:
    """
    Derive an increase/maintain/decrease recommendation.

    Rules, in order (later rules may escalate, never soften, a decrease or high risk):
    1. Credit score >= 90 leans increase; < 60 forces decrease with high risk
    2. On-time rate (needs >= 5 repayments) >= 90% leans increase; < 60% forces decrease, high risk
    3. Average repayment days <= 30 supports increase; > 100 raises risk to at least medium
    4. Discounts earned > interest paid is a discipline signal; interest > 2x discounts raises risk
    5. >= 10 repayments while recommending increase bumps the delta to the top tier

    Never mutates anything: applying the suggestion is a separate authorized action.
    """
    analysis = PerformanceAnalysis(
        vendor_id=vendor_id,
        current_limit_cents=credit_limit_cents,
        current_used_cents=credit_used_cents,
        credit_score=history.credit_score,
        performance_tier=performance_tier,
        suggested_new_limit_cents=credit_limit_cents,
    )
    count = history.total_repayment_count

    # Rule 1: credit score
    if history.credit_score >= 90:
        analysis.recommendation = Recommendation.INCREASE
        analysis.reasoning.append("Excellent credit score (90+)")
    elif history.credit_score < 60:
        analysis.recommendation = Recommendation.DECREASE
        analysis.risk_level = RiskLevel.HIGH
        analysis.reasoning.append("Poor credit score (<60)")

    # Rule 2: on-time repayment rate
    if count >= MIN_REPAYMENTS_FOR_RATE:
        on_time_rate = history.on_time_rate or 0.0
        if on_time_rate >= 90:
            if analysis.recommendation != Recommendation.DECREASE:
                analysis.recommendation = Recommendation.INCREASE
            analysis.reasoning.append(f"Excellent on-time payment rate ({on_time_rate:.1f}%)")
        elif on_time_rate < 60:
            analysis.recommendation = Recommendation.DECREASE
            analysis.risk_level = RiskLevel.HIGH
            analysis.reasoning.append(f"Poor on-time payment rate ({on_time_rate:.1f}%)")

    # Rule 3: average repayment days
    if count > 0:
        if history.avg_repayment_days <= 30:
            analysis.reasoning.append("Consistently pays within 30 days (high discount tier)")
            if analysis.recommendation != Recommendation.DECREASE:
                analysis.recommendation = Recommendation.INCREASE
        elif history.avg_repayment_days > 100:
            analysis.reasoning.append("Average repayment time >100 days (frequently in interest zone)")
            analysis.risk_level = _raise_risk(analysis.risk_level, RiskLevel.MEDIUM)

    # Rule 4: discount vs interest
    discounts = history.total_discounts_earned_cents
    interest = history.total_interest_paid_cents
    if discounts > interest:
        analysis.reasoning.append("Earns more discounts than pays interest (financially disciplined)")
    elif interest > discounts * 2:
        analysis.reasoning.append("Pays significantly more interest than earns discounts")
        analysis.risk_level = _raise_risk(analysis.risk_level, RiskLevel.MEDIUM)

    # Rule 5: activity
    active_vendor = count >= ACTIVE_VENDOR_REPAYMENTS
    if active_vendor:
        analysis.reasoning.append(f"Active vendor with {count} completed repayments")

    # Suggested limit
    if analysis.recommendation == Recommendation.INCREASE:
        if history.credit_score >= 95 and active_vendor:
            analysis.suggested_new_limit_cents = credit_limit_cents + TOP_TIER_INCREASE_CENTS
            analysis.reasoning.append("Top-tier performance: +50,000 increase recommended")
        elif active_vendor:
            analysis.suggested_new_limit_cents = credit_limit_cents + TOP_TIER_INCREASE_CENTS
            analysis.reasoning.append("Activity bonus: +50,000 increase recommended")
        elif history.credit_score >= 85:
            analysis.suggested_new_limit_cents = credit_limit_cents + HIGH_TIER_INCREASE_CENTS
            analysis.reasoning.append("High performer: +25,000 increase recommended")
        else:
            analysis.suggested_new_limit_cents = credit_limit_cents + STANDARD_INCREASE_CENTS
            analysis.reasoning.append("Good performer: +10,000 increase recommended")
    elif analysis.recommendation == Recommendation.DECREASE and analysis.risk_level == RiskLevel.HIGH:
        reduced = credit_limit_cents * 4 // 5
        if reduced >= MIN_REDUCED_LIMIT_CENTS:
            analysis.suggested_new_limit_cents = reduced
            analysis.reasoning.append(f"High risk: 20% reduction to {reduced / 100:,.2f}")
        else:
            analysis.suggested_new_limit_cents = MIN_REDUCED_LIMIT_CENTS
            analysis.reasoning.append(
                f"High risk: limit set to the {MIN_REDUCED_LIMIT_CENTS / 100:,.2f} minimum"
            )

    return analysis
