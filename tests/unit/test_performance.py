"""Unit tests for vendor performance analysis"""

from vendor_credit.domain.models import CreditHistory, PerformanceTier, Recommendation, RiskLevel
from vendor_credit.domain.performance import analyze_vendor_performance

LIMIT = 50_000_000  # 500,000


def analyze(history: CreditHistory, limit: int = LIMIT, used: int = 0):
    return analyze_vendor_performance("vendor_1", limit, used, history, PerformanceTier.PLATINUM)


def test_top_performer_gets_top_tier_increase():
    """Test score 96 with 12 repayments and ~95% on time"""
    history = CreditHistory(
        credit_score=96,
        total_repayment_count=12,
        on_time_repayment_count=11,
        avg_repayment_days=25,
        total_discounts_earned_cents=500_000,
        total_interest_paid_cents=0,
    )
    analysis = analyze(history)

    assert analysis.recommendation == Recommendation.INCREASE
    assert analysis.suggested_delta_cents == 5_000_000
    assert analysis.suggested_new_limit_cents == LIMIT + 5_000_000
    assert analysis.risk_level == RiskLevel.LOW
    assert "Active vendor with 12 completed repayments" in analysis.reasoning


def test_high_performer_increase():
    history = CreditHistory(credit_score=88, total_repayment_count=4, on_time_repayment_count=4, avg_repayment_days=20)
    analysis = analyze(history)

    assert analysis.recommendation == Recommendation.INCREASE
    assert analysis.suggested_delta_cents == 2_500_000


def test_good_performer_standard_increase():
    history = CreditHistory(credit_score=75, total_repayment_count=3, on_time_repayment_count=3, avg_repayment_days=28)
    analysis = analyze(history)

    assert analysis.recommendation == Recommendation.INCREASE
    assert analysis.suggested_delta_cents == 1_000_000


def test_activity_bonus_bumps_delta_to_top_tier():
    history = CreditHistory(credit_score=86, total_repayment_count=10, on_time_repayment_count=10, avg_repayment_days=40)
    analysis = analyze(history)

    assert analysis.recommendation == Recommendation.INCREASE
    assert analysis.suggested_delta_cents == 5_000_000


def test_poor_score_forces_decrease():
    history = CreditHistory(
        credit_score=40,
        total_repayment_count=6,
        on_time_repayment_count=2,
        avg_repayment_days=115,
        total_discounts_earned_cents=0,
        total_interest_paid_cents=900_000,
    )
    analysis = analyze(history)

    assert analysis.recommendation == Recommendation.DECREASE
    assert analysis.risk_level == RiskLevel.HIGH
    assert analysis.suggested_new_limit_cents == 40_000_000  # 20% reduction
    assert "High risk: 20% reduction to 400,000.00" in analysis.reasoning


def test_decrease_respects_floor():
    history = CreditHistory(credit_score=30, total_repayment_count=2, on_time_repayment_count=0, avg_repayment_days=130)
    analysis = analyze(history, limit=6_000_000)

    assert analysis.recommendation == Recommendation.DECREASE
    assert analysis.suggested_new_limit_cents == 5_000_000
    assert "High risk: limit set to the 50,000.00 minimum" in analysis.reasoning


def test_decrease_floor_applies_to_small_limits():
    """Test a 40,000 limit with a poor score is suggested at the 50,000 minimum"""
    history = CreditHistory(credit_score=50, total_repayment_count=2, on_time_repayment_count=0, avg_repayment_days=130)
    analysis = analyze(history, limit=4_000_000)

    assert analysis.recommendation == Recommendation.DECREASE
    assert analysis.risk_level == RiskLevel.HIGH
    assert analysis.suggested_new_limit_cents == 5_000_000
    assert analysis.suggested_delta_cents == 1_000_000
    assert not any("20% reduction" in line for line in analysis.reasoning)


def test_later_rules_never_soften_decrease():
    """Test a fast average cannot undo a decrease forced by the on-time rate"""
    history = CreditHistory(credit_score=70, total_repayment_count=5, on_time_repayment_count=2, avg_repayment_days=20)
    analysis = analyze(history)

    assert analysis.recommendation == Recommendation.DECREASE
    assert analysis.risk_level == RiskLevel.HIGH


def test_slow_payer_raises_risk_but_maintains():
    history = CreditHistory(
        credit_score=70,
        total_repayment_count=3,
        on_time_repayment_count=2,
        avg_repayment_days=101,
        total_discounts_earned_cents=100,
        total_interest_paid_cents=500,
    )
    analysis = analyze(history)

    assert analysis.recommendation == Recommendation.MAINTAIN
    assert analysis.risk_level == RiskLevel.MEDIUM
    assert analysis.suggested_delta_cents == 0


def test_new_vendor_without_history():
    """Test the default score of 100 leans increase without the activity bonus"""
    analysis = analyze(CreditHistory())

    assert analysis.recommendation == Recommendation.INCREASE
    assert analysis.suggested_delta_cents == 2_500_000
    assert analysis.available_credit_cents == LIMIT
