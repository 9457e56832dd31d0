"""Integration tests for performance analysis and applying its recommendations"""

import pytest

from tests.conftest import CYCLE_START, day
from vendor_credit.domain.exceptions import AuthorizationError, NotFoundError, ValidationError
from vendor_credit.infrastructure.database.models import VendorNotification
from vendor_credit.infrastructure.database.repositories import VendorAccountRepository

ADMIN = "admin@credit-ops"
REASON = "Applying quarterly performance review"


def _repay_three_times(ledger, vendor_id, on_day):
    cycle = ledger.open_cycle(vendor_id, 10_000_000, CYCLE_START)
    for _ in range(3):
        ledger.apply_partial_repayment(cycle.cycle_id, 1_000_000, day(on_day))
    return cycle


@pytest.fixture
def prompt_vendor(accounts, ledger):
    """Three early repayments: score 97, increase recommended"""
    vendor = accounts.create_vendor_account("prompt_vendor", "Prompt Payers Ltd", 50_000_000)
    _repay_three_times(ledger, vendor.vendor_id, 10)
    return vendor


@pytest.fixture
def late_vendor(accounts, ledger):
    """Three repayments deep in the interest zone: score 0, decrease recommended"""
    vendor = accounts.create_vendor_account("late_vendor", "Slow Pay Co", 50_000_000)
    _repay_three_times(ledger, vendor.vendor_id, 130)
    return vendor


@pytest.fixture
def steady_vendor(accounts, ledger):
    """Three repayments in the neutral zone: score 73, no change recommended"""
    vendor = accounts.create_vendor_account("steady_vendor", "Steady Supply", 50_000_000)
    _repay_three_times(ledger, vendor.vendor_id, 95)
    return vendor


def test_analyze_prompt_vendor(performance, prompt_vendor):
    analysis = performance.analyze_vendor_performance(prompt_vendor.vendor_id)

    assert analysis.credit_score == 97
    assert analysis.performance_tier == "platinum"
    assert analysis.recommendation == "increase"
    assert analysis.risk_level == "low"
    # Fewer than 10 repayments, score >= 85
    assert analysis.suggested_new_limit_cents == 52_500_000
    assert analysis.suggested_delta_cents == 2_500_000
    assert analysis.current_used_cents == 7_000_000


def test_analyze_late_vendor(performance, late_vendor):
    analysis = performance.analyze_vendor_performance(late_vendor.vendor_id)

    assert analysis.credit_score == 0
    assert analysis.performance_tier == "bronze"
    assert analysis.recommendation == "decrease"
    assert analysis.risk_level == "high"
    assert analysis.suggested_new_limit_cents == 40_000_000


def test_analyze_unknown_vendor(performance):
    with pytest.raises(NotFoundError):
        performance.analyze_vendor_performance("ghost_vendor")


def test_analysis_is_read_only(performance, prompt_vendor, session_factory):
    performance.analyze_vendor_performance(prompt_vendor.vendor_id)

    with session_factory() as db:
        repo = VendorAccountRepository(db)
        assert repo.get(prompt_vendor.vendor_id).credit_limit_cents == 50_000_000
        assert repo.get_adjustments(prompt_vendor.vendor_id) == []


def test_bulk_analysis_groups_by_recommendation(performance, accounts, prompt_vendor, late_vendor, steady_vendor):
    # Not enough history to be analyzed in bulk
    accounts.create_vendor_account("new_vendor", "Fresh Start Inc", 10_000_000)

    result = performance.bulk_analyze_vendors()

    assert result.total_analyzed == 3
    assert [a.vendor_id for a in result.increase] == ["prompt_vendor"]
    assert [a.vendor_id for a in result.decrease] == ["late_vendor"]
    assert [a.vendor_id for a in result.maintain] == ["steady_vendor"]


def test_apply_increase_recommendation(performance, prompt_vendor, session_factory):
    change = performance.apply_performance_recommendation(prompt_vendor.vendor_id, ADMIN, REASON, day(40))

    assert change.old_value == "50000000"
    assert change.new_value == "52500000"

    with session_factory() as db:
        adjustments = VendorAccountRepository(db).get_adjustments(prompt_vendor.vendor_id)
        assert [a.source for a in adjustments] == ["recommendation"]
        notification = db.query(VendorNotification).one()
        assert notification.notification_type == "credit_limit_increase"


def test_apply_decrease_recommendation(performance, late_vendor, session_factory):
    change = performance.apply_performance_recommendation(late_vendor.vendor_id, ADMIN, REASON, day(140))

    assert change.new_value == "40000000"
    assert change.available_credit_cents == 33_000_000
    with session_factory() as db:
        assert db.query(VendorNotification).count() == 0


def test_apply_maintain_recommendation_is_rejected(performance, steady_vendor):
    with pytest.raises(ValidationError) as exc_info:
        performance.apply_performance_recommendation(steady_vendor.vendor_id, ADMIN, REASON, day(100))
    assert exc_info.value.details["recommendation"] == "maintain"


def test_apply_recommendation_requires_authorization(performance, prompt_vendor):
    with pytest.raises(AuthorizationError):
        performance.apply_performance_recommendation(prompt_vendor.vendor_id, "", REASON, day(40))
