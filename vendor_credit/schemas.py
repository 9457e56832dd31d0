"""Pydantic schemas for the structured results returned to callers"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from vendor_credit.domain.exceptions import InsufficientCreditError
from vendor_credit.domain.models import (
    CreditHistory,
    PerformanceAnalysis,
    RepaymentQuote,
    Tier,
)
from vendor_credit.infrastructure.database.models import (
    CreditCycle,
    RepaymentRecord,
    VendorCreditAccount,
)
from vendor_credit.utils.date_utils import ensure_utc


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


class PurchaseValidation(BaseModel):
    """Result of the read-only purchase admission check"""

    allowed: bool
    vendor_id: str
    credit_limit_cents: int
    credit_used_cents: int
    available_credit_cents: int
    requested_cents: int
    shortfall_cents: Optional[int] = None
    remaining_after_purchase_cents: Optional[int] = None
    reason: Optional[str] = None

    def ensure_allowed(self) -> "PurchaseValidation":
        if not self.allowed:
            raise InsufficientCreditError(self.vendor_id, self.requested_cents, self.available_credit_cents)
        return self


class TierSchema(BaseModel):
    """Single row of the repayment tier table"""

    tier_id: str
    name: str
    kind: str
    start_day: int
    end_day: Optional[int]
    rate_bps: int
    rate_percent: float

    @classmethod
    def from_tier(cls, tier: Tier) -> "TierSchema":
        return cls(
            tier_id=tier.tier_id,
            name=tier.name,
            kind=tier.kind.value,
            start_day=tier.start_day,
            end_day=tier.end_day,
            rate_bps=tier.rate_bps,
            rate_percent=tier.rate_percent,
        )


class RepaymentQuoteSchema(BaseModel):
    """Pricing preview for the current outstanding balance"""

    days_elapsed: int
    tier_applied: str
    tier_id: str
    tier_kind: str
    discount_rate_bps: int
    interest_rate_bps: int
    base_amount_cents: int
    savings_from_early_payment_cents: int
    penalty_from_late_payment_cents: int
    final_payable_cents: int

    @classmethod
    def from_quote(cls, quote: RepaymentQuote) -> "RepaymentQuoteSchema":
        return cls(
            days_elapsed=quote.days_elapsed,
            tier_applied=quote.tier_applied,
            tier_id=quote.tier.tier_id,
            tier_kind=quote.tier.kind.value,
            discount_rate_bps=quote.discount_rate_bps,
            interest_rate_bps=quote.interest_rate_bps,
            base_amount_cents=quote.base_amount_cents,
            savings_from_early_payment_cents=quote.savings_from_early_payment_cents,
            penalty_from_late_payment_cents=quote.penalty_from_late_payment_cents,
            final_payable_cents=quote.final_payable_cents,
        )


class RepaymentRecordSchema(BaseModel):
    """One posted repayment"""

    repayment_id: str
    cycle_id: str
    vendor_id: str
    sequence: int
    principal_repaid_cents: int
    days_elapsed: int
    tier_id: str
    tier_name: str
    tier_kind: str
    rate_bps: int
    discount_cents: int
    interest_cents: int
    actual_amount_paid_cents: int
    credit_used_before_cents: int
    credit_used_after_cents: int
    repayment_date: datetime
    payment_reference: Optional[str] = None

    @classmethod
    def from_model(cls, record: RepaymentRecord) -> "RepaymentRecordSchema":
        return cls(
            repayment_id=str(record.id),
            cycle_id=str(record.cycle_id),
            vendor_id=record.vendor_id,
            sequence=record.sequence,
            principal_repaid_cents=record.principal_repaid_cents,
            days_elapsed=record.days_elapsed,
            tier_id=record.tier_id,
            tier_name=record.tier_name,
            tier_kind=record.tier_kind,
            rate_bps=record.rate_bps,
            discount_cents=record.discount_cents,
            interest_cents=record.interest_cents,
            actual_amount_paid_cents=record.actual_amount_paid_cents,
            credit_used_before_cents=record.credit_used_before_cents,
            credit_used_after_cents=record.credit_used_after_cents,
            repayment_date=ensure_utc(record.repayment_date),
            payment_reference=record.payment_reference,
        )


class CycleSummary(BaseModel):
    """Balances and status of one credit cycle"""

    cycle_id: str
    cycle_ref: str
    vendor_id: str
    principal_cents: int
    outstanding_cents: int
    total_repaid_cents: int
    total_discount_earned_cents: int
    total_interest_paid_cents: int
    cycle_start_date: datetime
    days_elapsed: Optional[int] = None
    cycle_status: str
    repayment_status: str
    last_repayment_date: Optional[datetime] = None
    cycle_closed_date: Optional[datetime] = None

    @property
    def is_closed(self) -> bool:
        return self.cycle_status == "closed"

    @classmethod
    def from_model(cls, cycle: CreditCycle, days_elapsed: Optional[int] = None) -> "CycleSummary":
        return cls(
            cycle_id=str(cycle.id),
            cycle_ref=cycle.cycle_ref,
            vendor_id=cycle.vendor_id,
            principal_cents=cycle.principal_cents,
            outstanding_cents=cycle.outstanding_cents,
            total_repaid_cents=cycle.total_repaid_cents,
            total_discount_earned_cents=cycle.total_discount_earned_cents,
            total_interest_paid_cents=cycle.total_interest_paid_cents,
            cycle_start_date=ensure_utc(cycle.cycle_start_date),
            days_elapsed=days_elapsed,
            cycle_status=cycle.cycle_status,
            repayment_status=cycle.repayment_status,
            last_repayment_date=_utc(cycle.last_repayment_date),
            cycle_closed_date=_utc(cycle.cycle_closed_date),
        )


class VendorAccountSchema(BaseModel):
    """Vendor credit position"""

    vendor_id: str
    name: str
    credit_limit_cents: int
    credit_used_cents: int
    available_credit_cents: int
    credit_score: int
    performance_tier: str
    is_active: bool

    @classmethod
    def from_model(cls, account: VendorCreditAccount) -> "VendorAccountSchema":
        return cls(
            vendor_id=account.id,
            name=account.name,
            credit_limit_cents=account.credit_limit_cents,
            credit_used_cents=account.credit_used_cents,
            available_credit_cents=account.available_credit_cents,
            credit_score=account.credit_score,
            performance_tier=account.performance_tier,
            is_active=account.is_active,
        )


class CycleDetails(CycleSummary):
    """Cycle with its vendor and full repayment history"""

    vendor: VendorAccountSchema
    repayments: List[RepaymentRecordSchema]
    current_quote: Optional[RepaymentQuoteSchema] = None


class RepaymentResult(BaseModel):
    """Outcome of applying one partial repayment"""

    repayment: RepaymentRecordSchema
    cycle: CycleSummary
    vendor: VendorAccountSchema


class CreditHistorySchema(BaseModel):
    credit_score: int
    total_repayment_count: int
    on_time_repayment_count: int
    on_time_rate: Optional[float] = None
    avg_repayment_days: float
    total_discounts_earned_cents: int
    total_interest_paid_cents: int
    last_repayment_date: Optional[datetime] = None

    @classmethod
    def from_history(cls, history: CreditHistory) -> "CreditHistorySchema":
        return cls(
            credit_score=history.credit_score,
            total_repayment_count=history.total_repayment_count,
            on_time_repayment_count=history.on_time_repayment_count,
            on_time_rate=history.on_time_rate,
            avg_repayment_days=history.avg_repayment_days,
            total_discounts_earned_cents=history.total_discounts_earned_cents,
            total_interest_paid_cents=history.total_interest_paid_cents,
            last_repayment_date=history.last_repayment_date,
        )


class VendorCreditSummary(BaseModel):
    """Vendor dashboard: position, open cycles and history"""

    vendor: VendorAccountSchema
    active_cycles: List[CycleSummary]
    active_count: int
    closed_count: int
    total_outstanding_cents: int
    credit_history: CreditHistorySchema


class PerformanceAnalysisSchema(BaseModel):
    """Credit-limit recommendation for admin review"""

    vendor_id: str
    current_limit_cents: int
    current_used_cents: int
    available_credit_cents: int
    credit_score: int
    performance_tier: str
    recommendation: str
    suggested_new_limit_cents: int
    suggested_delta_cents: int
    risk_level: str
    reasoning: List[str]

    @classmethod
    def from_analysis(cls, analysis: PerformanceAnalysis) -> "PerformanceAnalysisSchema":
        return cls(
            vendor_id=analysis.vendor_id,
            current_limit_cents=analysis.current_limit_cents,
            current_used_cents=analysis.current_used_cents,
            available_credit_cents=analysis.available_credit_cents,
            credit_score=analysis.credit_score,
            performance_tier=analysis.performance_tier.value,
            recommendation=analysis.recommendation.value,
            suggested_new_limit_cents=analysis.suggested_new_limit_cents,
            suggested_delta_cents=analysis.suggested_delta_cents,
            risk_level=analysis.risk_level.value,
            reasoning=list(analysis.reasoning),
        )


class BulkAnalysisResult(BaseModel):
    total_analyzed: int
    increase: List[PerformanceAnalysisSchema]
    maintain: List[PerformanceAnalysisSchema]
    decrease: List[PerformanceAnalysisSchema]


class VendorPerformanceMetrics(BaseModel):
    """Row of the admin vendor performance listing"""

    vendor_id: str
    name: str
    credit_limit_cents: int
    credit_used_cents: int
    available_credit_cents: int
    utilization_rate: float
    credit_score: int
    performance_tier: str
    total_repayments: int
    avg_repayment_days: float
    on_time_rate: Optional[float] = None
    total_discounts_earned_cents: int
    total_interest_paid_cents: int
    last_repayment_date: Optional[datetime] = None


class AccountChange(BaseModel):
    """Result of an authorized credit-limit or tier change"""

    vendor_id: str
    adjustment_type: str
    old_value: str
    new_value: str
    actor: str
    reason: str
    available_credit_cents: int


class NotificationEnvelope(BaseModel):
    """Hand-off unit for the external notification transport"""

    vendor_id: str
    type: str
    title: str
    message: str
    priority: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SweepFailure(BaseModel):
    entity_id: str
    code: str
    message: str


class SweepResult(BaseModel):
    """Outcome of one scheduler sweep"""

    sweep: str
    as_of: datetime
    scanned: int = 0
    created: int = 0
    skipped_duplicates: int = 0
    skipped_overlap: bool = False
    cancelled: bool = False
    removed: int = 0
    failures: List[SweepFailure] = Field(default_factory=list)
