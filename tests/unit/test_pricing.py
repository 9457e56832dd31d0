"""Unit tests for the repayment calculator"""

import pytest
from datetime import datetime, timedelta, timezone
from vendor_credit.domain.exceptions import InvalidAmountError, ValidationError
from vendor_credit.domain.models import CycleSnapshot, CycleStatus, TierKind
from vendor_credit.domain.pricing import (
    apply_rate,
    calculate_repayment_amount,
    days_elapsed,
    price_repayment,
    project_repayment_schedule,
)
from vendor_credit.domain.tiers import TierPolicy

START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_cycle(outstanding: int = 6_000_000, principal: int = 10_000_000) -> CycleSnapshot:
    return CycleSnapshot(
        cycle_id="cycle_1",
        vendor_id="vendor_1",
        principal_cents=principal,
        outstanding_cents=outstanding,
        total_repaid_cents=principal - outstanding,
        cycle_start_date=START,
        cycle_status=CycleStatus.PARTIALLY_PAID if outstanding < principal else CycleStatus.ACTIVE,
    )


def test_apply_rate_rounds_half_up():
    assert apply_rate(4_000_000, 300) == 120_000
    assert apply_rate(50, 300) == 2  # 1.5 cents -> 2
    assert apply_rate(49, 300) == 1  # 1.47 cents -> 1
    assert apply_rate(12345, 0) == 0


def test_days_elapsed_floors_partial_days():
    assert days_elapsed(START, START) == 0
    assert days_elapsed(START, START + timedelta(hours=23, minutes=59)) == 0
    assert days_elapsed(START, START + timedelta(days=20, hours=5)) == 20


def test_days_elapsed_before_start():
    with pytest.raises(ValidationError):
        days_elapsed(START, START - timedelta(seconds=1))


def test_days_elapsed_naive_datetime_treated_as_utc():
    naive = datetime(2024, 3, 21, 9, 0)
    assert days_elapsed(START, naive) == 20


def test_price_repayment_discount():
    """Test 40,000 repaid on day 20 earns a 3% discount"""
    pricing = price_repayment(4_000_000, 20, TierPolicy.default())

    assert pricing.tier.tier_id == "early_discount"
    assert pricing.discount_cents == 120_000
    assert pricing.interest_cents == 0
    assert pricing.actual_amount_paid_cents == 3_880_000


def test_price_repayment_interest():
    """Test 60,000 repaid on day 110 pays 5% interest"""
    pricing = price_repayment(6_000_000, 110, TierPolicy.default())

    assert pricing.tier.kind == TierKind.INTEREST
    assert pricing.discount_cents == 0
    assert pricing.interest_cents == 300_000
    assert pricing.actual_amount_paid_cents == 6_300_000


def test_price_repayment_neutral():
    pricing = price_repayment(1_000_000, 95, TierPolicy.default())
    assert pricing.discount_cents == 0
    assert pricing.interest_cents == 0
    assert pricing.actual_amount_paid_cents == 1_000_000


@pytest.mark.parametrize("amount", [0, -100, 10.5, "100", True, None])
def test_price_repayment_invalid_amount(amount):
    with pytest.raises(InvalidAmountError):
        price_repayment(amount, 10, TierPolicy.default())


def test_discount_and_interest_mutually_exclusive():
    policy = TierPolicy.default()
    for days in range(0, 200):
        pricing = price_repayment(1_234_567, days, policy)
        assert not (pricing.discount_cents > 0 and pricing.interest_cents > 0)


def test_calculate_repayment_amount_discount_window():
    quote = calculate_repayment_amount(make_cycle(), START + timedelta(days=30))

    assert quote.days_elapsed == 30
    assert quote.tier_applied == "3% Early Payment Discount"
    assert quote.discount_rate_bps == 300
    assert quote.interest_rate_bps == 0
    assert quote.base_amount_cents == 6_000_000
    assert quote.savings_from_early_payment_cents == 180_000
    assert quote.penalty_from_late_payment_cents == 0
    assert quote.final_payable_cents == 5_820_000


def test_calculate_repayment_amount_severe_interest():
    quote = calculate_repayment_amount(make_cycle(), START + timedelta(days=150))

    assert quote.interest_rate_bps == 1000
    assert quote.penalty_from_late_payment_cents == 600_000
    assert quote.final_payable_cents == 6_600_000


def test_calculate_repayment_amount_is_pure():
    cycle = make_cycle()
    as_of = START + timedelta(days=70)
    first = calculate_repayment_amount(cycle, as_of)
    second = calculate_repayment_amount(cycle, as_of)

    assert first == second
    assert cycle.outstanding_cents == 6_000_000


def test_calculate_repayment_amount_nothing_outstanding():
    quote = calculate_repayment_amount(make_cycle(outstanding=0), START + timedelta(days=10))
    assert quote.final_payable_cents == 0
    assert quote.savings_from_early_payment_cents == 0


def test_project_repayment_schedule():
    """Test one quote for today plus one per later tier boundary"""
    quotes = project_repayment_schedule(make_cycle(), START + timedelta(days=70))

    assert [q.days_elapsed for q in quotes] == [70, 90, 105, 121]
    assert [q.final_payable_cents for q in quotes] == [5_940_000, 6_000_000, 6_300_000, 6_600_000]


def test_project_repayment_schedule_in_last_tier():
    quotes = project_repayment_schedule(make_cycle(), START + timedelta(days=200))
    assert len(quotes) == 1
    assert quotes[0].tier.tier_id == "severe_interest"
