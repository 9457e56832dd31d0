"""SQLAlchemy ORM models for vendor credit accounts, cycles, repayments and notifications"""

import uuid
from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from vendor_credit.domain.exceptions import InvariantViolationError
from vendor_credit.domain.models import (
    CreditHistory,
    CycleSnapshot,
    CycleStatus,
    PerformanceTier,
    RepaymentStatus,
)
from vendor_credit.utils.date_utils import ensure_utc

Base = declarative_base()


class VendorCreditAccount(Base):
    """Aggregate credit limit/usage and rolling credit history for one vendor"""

    __tablename__ = "vendor_credit_account"

    id = Column(Text, primary_key=True)  # external vendor id
    name = Column(Text, nullable=False)
    credit_limit_cents = Column(BigInteger, nullable=False)
    credit_used_cents = Column(BigInteger, nullable=False, default=0)

    # Credit history
    credit_score = Column(Integer, nullable=False, default=100)
    total_repayment_count = Column(Integer, nullable=False, default=0)
    on_time_repayment_count = Column(Integer, nullable=False, default=0)
    avg_repayment_days = Column(Float, nullable=False, default=0.0)
    total_discounts_earned_cents = Column(BigInteger, nullable=False, default=0)
    total_interest_paid_cents = Column(BigInteger, nullable=False, default=0)
    last_repayment_date = Column(DateTime(timezone=True), nullable=True)

    performance_tier = Column(Text, nullable=False, default=PerformanceTier.NOT_RATED.value)
    performance_tier_locked = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    cycles = relationship("CreditCycle", back_populates="vendor")

    __mapper_args__ = {"version_id_col": version}

    @property
    def available_credit_cents(self) -> int:
        return self.credit_limit_cents - self.credit_used_cents

    def credit_history(self) -> CreditHistory:
        return CreditHistory(
            credit_score=self.credit_score,
            total_repayment_count=self.total_repayment_count,
            on_time_repayment_count=self.on_time_repayment_count,
            avg_repayment_days=self.avg_repayment_days,
            total_discounts_earned_cents=self.total_discounts_earned_cents,
            total_interest_paid_cents=self.total_interest_paid_cents,
            last_repayment_date=ensure_utc(self.last_repayment_date) if self.last_repayment_date else None,
        )

    def apply_credit_history(self, history: CreditHistory) -> None:
        self.credit_score = history.credit_score
        self.total_repayment_count = history.total_repayment_count
        self.on_time_repayment_count = history.on_time_repayment_count
        self.avg_repayment_days = history.avg_repayment_days
        self.total_discounts_earned_cents = history.total_discounts_earned_cents
        self.total_interest_paid_cents = history.total_interest_paid_cents
        self.last_repayment_date = history.last_repayment_date


class CreditCycle(Base):
    """One approved credit draw and its isolated repayment lifecycle"""

    __tablename__ = "credit_cycle"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    cycle_ref = Column(Text, nullable=False, unique=True)
    vendor_id = Column(Text, ForeignKey("vendor_credit_account.id"), nullable=False, index=True)

    principal_cents = Column(BigInteger, nullable=False)
    outstanding_cents = Column(BigInteger, nullable=False)
    total_repaid_cents = Column(BigInteger, nullable=False, default=0)
    total_discount_earned_cents = Column(BigInteger, nullable=False, default=0)
    total_interest_paid_cents = Column(BigInteger, nullable=False, default=0)

    cycle_start_date = Column(DateTime(timezone=True), nullable=False)
    cycle_status = Column(Text, nullable=False, default=CycleStatus.INACTIVE.value, index=True)
    repayment_status = Column(Text, nullable=False, default=RepaymentStatus.NOT_STARTED.value)
    last_repayment_date = Column(DateTime(timezone=True), nullable=True)
    cycle_closed_date = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    vendor = relationship("VendorCreditAccount", back_populates="cycles")
    repayments = relationship(
        "RepaymentRecord",
        back_populates="cycle",
        order_by="RepaymentRecord.sequence",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_snapshot(self) -> CycleSnapshot:
        return CycleSnapshot(
            cycle_id=str(self.id),
            vendor_id=self.vendor_id,
            principal_cents=self.principal_cents,
            outstanding_cents=self.outstanding_cents,
            total_repaid_cents=self.total_repaid_cents,
            cycle_start_date=ensure_utc(self.cycle_start_date),
            cycle_status=CycleStatus(self.cycle_status),
        )


class RepaymentRecord(Base):
    """Immutable record of one repayment transaction against a cycle"""

    __tablename__ = "repayment_record"
    __table_args__ = (UniqueConstraint("cycle_id", "sequence", name="uq_repayment_cycle_sequence"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    cycle_id = Column(Uuid, ForeignKey("credit_cycle.id"), nullable=False, index=True)
    vendor_id = Column(Text, ForeignKey("vendor_credit_account.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # insertion order within the cycle

    principal_repaid_cents = Column(BigInteger, nullable=False)
    days_elapsed = Column(Integer, nullable=False)
    tier_id = Column(Text, nullable=False)
    tier_name = Column(Text, nullable=False)
    tier_kind = Column(Text, nullable=False)
    rate_bps = Column(Integer, nullable=False)
    discount_cents = Column(BigInteger, nullable=False, default=0)
    interest_cents = Column(BigInteger, nullable=False, default=0)
    actual_amount_paid_cents = Column(BigInteger, nullable=False)

    credit_used_before_cents = Column(BigInteger, nullable=False)
    credit_used_after_cents = Column(BigInteger, nullable=False)

    repayment_date = Column(DateTime(timezone=True), nullable=False)
    payment_reference = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    cycle = relationship("CreditCycle", back_populates="repayments")


class VendorNotification(Base):
    """Notification decided by this service, kept for dedup and hand-off tracking"""

    __tablename__ = "vendor_notification"
    __table_args__ = (
        # At most one reminder of a type per cycle per day, even across processes
        UniqueConstraint("cycle_id", "notification_type", "notification_day", name="uq_notification_cycle_type_day"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    vendor_id = Column(Text, ForeignKey("vendor_credit_account.id"), nullable=False, index=True)
    cycle_id = Column(Uuid, ForeignKey("credit_cycle.id"), nullable=True, index=True)
    notification_type = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(Text, nullable=False, default="normal")
    payload = Column("metadata", JSON, nullable=True)

    notification_day = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    delivery_status = Column(Text, nullable=False, default="pending")
    delivery_attempts = Column(Integer, nullable=False, default=0)
    delivered_at = Column(DateTime(timezone=True), nullable=True)


class AccountAdjustment(Base):
    """Audit trail of authorized credit-limit and performance-tier changes"""

    __tablename__ = "account_adjustment"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    vendor_id = Column(Text, ForeignKey("vendor_credit_account.id"), nullable=False, index=True)
    adjustment_type = Column(Text, nullable=False)  # credit_limit | performance_tier
    old_value = Column(Text, nullable=False)
    new_value = Column(Text, nullable=False)
    actor = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    source = Column(Text, nullable=False, default="manual")  # manual | recommendation
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


@event.listens_for(RepaymentRecord, "before_update")
def _reject_repayment_update(mapper, connection, target):
    raise InvariantViolationError(
        f"Repayment record {target.id} is immutable; post a compensating record instead",
        {"repayment_id": str(target.id)},
    )


@event.listens_for(RepaymentRecord, "before_delete")
def _reject_repayment_delete(mapper, connection, target):
    raise InvariantViolationError(
        f"Repayment record {target.id} cannot be deleted",
        {"repayment_id": str(target.id)},
    )
