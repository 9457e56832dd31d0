"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class TierKind(str, Enum):
    DISCOUNT = "discount"
    NEUTRAL = "neutral"
    INTEREST = "interest"


class CycleStatus(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    PARTIALLY_PAID = "partially_paid"
    FULLY_PAID = "fully_paid"
    CLOSED = "closed"


class RepaymentStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class PerformanceTier(str, Enum):
    NOT_RATED = "not_rated"
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class Recommendation(str, Enum):
    INCREASE = "increase"
    MAINTAIN = "maintain"
    DECREASE = "decrease"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationPriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


# Cycle states that still accept repayments
OPEN_CYCLE_STATUSES = (CycleStatus.ACTIVE, CycleStatus.PARTIALLY_PAID)


@dataclass(frozen=True)
class Tier:
    """Named rate bracket selected by days elapsed since cycle start"""

    tier_id: str
    name: str
    kind: TierKind
    start_day: int
    end_day: Optional[int]  # inclusive; None = open-ended
    rate_bps: int = 0

    def contains(self, days_elapsed: int) -> bool:
        if days_elapsed < self.start_day:
            return False
        return self.end_day is None or days_elapsed <= self.end_day

    @property
    def rate_percent(self) -> float:
        return self.rate_bps / 100


@dataclass
class CycleSnapshot:
    """Read-only view of a credit cycle used by the pure calculators"""

    cycle_id: str
    vendor_id: str
    principal_cents: int
    outstanding_cents: int
    total_repaid_cents: int
    cycle_start_date: datetime
    cycle_status: CycleStatus


@dataclass
class RepaymentQuote:
    """What the vendor would owe on the current outstanding balance at a point in time"""

    days_elapsed: int
    tier: Tier
    base_amount_cents: int
    discount_rate_bps: int
    interest_rate_bps: int
    savings_from_early_payment_cents: int
    penalty_from_late_payment_cents: int
    final_payable_cents: int

    @property
    def tier_applied(self) -> str:
        return self.tier.name


@dataclass
class RepaymentPricing:
    """Pricing of a single repayment transaction at the rate in force when it is made"""

    principal_cents: int
    days_elapsed: int
    tier: Tier
    discount_cents: int
    interest_cents: int

    @property
    def actual_amount_paid_cents(self) -> int:
        return self.principal_cents - self.discount_cents + self.interest_cents


@dataclass
class CreditHistory:
    """Vendor-level rolling repayment statistics across all cycles"""

    credit_score: int = 100
    total_repayment_count: int = 0
    on_time_repayment_count: int = 0
    avg_repayment_days: float = 0.0
    total_discounts_earned_cents: int = 0
    total_interest_paid_cents: int = 0
    last_repayment_date: Optional[datetime] = None

    @property
    def on_time_rate(self) -> Optional[float]:
        """On-time share as a percentage, None before the first repayment"""
        if self.total_repayment_count == 0:
            return None
        return self.on_time_repayment_count / self.total_repayment_count * 100


@dataclass
class ReminderDescriptor:
    """What to tell a vendor about one cycle on a given day"""

    reminder_type: str
    title: str
    priority: NotificationPriority
    template: str
    severe: bool = False


@dataclass
class PerformanceAnalysis:
    """Credit-limit recommendation derived from a vendor's credit history"""

    vendor_id: str
    current_limit_cents: int
    current_used_cents: int
    credit_score: int
    performance_tier: PerformanceTier
    recommendation: Recommendation = Recommendation.MAINTAIN
    suggested_new_limit_cents: int = 0
    risk_level: RiskLevel = RiskLevel.LOW
    reasoning: List[str] = field(default_factory=list)

    @property
    def available_credit_cents(self) -> int:
        return self.current_limit_cents - self.current_used_cents

    @property
    def suggested_delta_cents(self) -> int:
        return self.suggested_new_limit_cents - self.current_limit_cents
