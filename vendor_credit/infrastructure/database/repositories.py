"""Data access layer for vendor credit entities"""

import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Union
from sqlalchemy import func
from sqlalchemy.orm import Session

from vendor_credit.domain.models import OPEN_CYCLE_STATUSES, CycleStatus, RepaymentPricing
from vendor_credit.infrastructure.database.models import (
    AccountAdjustment,
    CreditCycle,
    RepaymentRecord,
    VendorCreditAccount,
    VendorNotification,
)

OPEN_STATUS_VALUES = [s.value for s in OPEN_CYCLE_STATUSES]


def _as_uuid(value: Union[str, uuid.UUID]) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class VendorAccountRepository:
    """Repository for vendor credit accounts"""

    def __init__(self, db: Session):
        self.db = db

    def create_account(self, vendor_id: str, name: str, credit_limit_cents: int) -> VendorCreditAccount:
        account = VendorCreditAccount(
            id=vendor_id,
            name=name,
            credit_limit_cents=credit_limit_cents,
            credit_used_cents=0,
        )
        self.db.add(account)
        self.db.flush()
        return account

    def get(self, vendor_id: str, for_update: bool = False) -> Optional[VendorCreditAccount]:
        """Fetch an account; for_update takes a row lock and refreshes stale identity-map state"""
        query = self.db.query(VendorCreditAccount).filter(VendorCreditAccount.id == vendor_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def list_active(self, min_repayments: int = 0) -> List[VendorCreditAccount]:
        return (
            self.db.query(VendorCreditAccount)
            .filter(VendorCreditAccount.is_active.is_(True))
            .filter(VendorCreditAccount.total_repayment_count >= min_repayments)
            .order_by(VendorCreditAccount.id)
            .all()
        )

    def list_with_usage(self) -> List[VendorCreditAccount]:
        """Active vendors currently drawing credit"""
        return (
            self.db.query(VendorCreditAccount)
            .filter(VendorCreditAccount.is_active.is_(True))
            .filter(VendorCreditAccount.credit_used_cents > 0)
            .order_by(VendorCreditAccount.id)
            .all()
        )

    def record_adjustment(
        self,
        vendor_id: str,
        adjustment_type: str,
        old_value: Any,
        new_value: Any,
        actor: str,
        reason: str,
        source: str = "manual",
    ) -> AccountAdjustment:
        adjustment = AccountAdjustment(
            vendor_id=vendor_id,
            adjustment_type=adjustment_type,
            old_value=str(old_value),
            new_value=str(new_value),
            actor=actor,
            reason=reason,
            source=source,
        )
        self.db.add(adjustment)
        return adjustment

    def get_adjustments(self, vendor_id: str) -> List[AccountAdjustment]:
        return (
            self.db.query(AccountAdjustment)
            .filter(AccountAdjustment.vendor_id == vendor_id)
            .order_by(AccountAdjustment.created_at)
            .all()
        )


class CycleRepository:
    """Repository for credit cycles"""

    def __init__(self, db: Session):
        self.db = db

    def create_cycle(
        self,
        vendor_id: str,
        principal_cents: int,
        cycle_start_date: datetime,
        cycle_ref: Optional[str] = None,
    ) -> CreditCycle:
        cycle_id = uuid.uuid4()
        cycle = CreditCycle(
            id=cycle_id,
            cycle_ref=cycle_ref or f"CYC-{cycle_id.hex[:10].upper()}",
            vendor_id=vendor_id,
            principal_cents=principal_cents,
            outstanding_cents=principal_cents,
            total_repaid_cents=0,
            total_discount_earned_cents=0,
            total_interest_paid_cents=0,
            cycle_start_date=cycle_start_date,
            cycle_status=CycleStatus.INACTIVE.value,
        )
        self.db.add(cycle)
        return cycle

    def get(self, cycle_id: Union[str, uuid.UUID], for_update: bool = False) -> Optional[CreditCycle]:
        cycle_uuid = _as_uuid(cycle_id)
        if cycle_uuid is None:
            return None
        query = self.db.query(CreditCycle).filter(CreditCycle.id == cycle_uuid)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_open_cycles_for_vendor(self, vendor_id: str) -> List[CreditCycle]:
        """Active and partially paid cycles, oldest first"""
        return (
            self.db.query(CreditCycle)
            .filter(CreditCycle.vendor_id == vendor_id)
            .filter(CreditCycle.cycle_status.in_(OPEN_STATUS_VALUES))
            .order_by(CreditCycle.cycle_start_date.asc())
            .all()
        )

    def count_closed_for_vendor(self, vendor_id: str) -> int:
        return (
            self.db.query(func.count(CreditCycle.id))
            .filter(CreditCycle.vendor_id == vendor_id)
            .filter(CreditCycle.cycle_status == CycleStatus.CLOSED.value)
            .scalar()
        )

    def get_open_cycle_ids(self) -> List[uuid.UUID]:
        """Ids of every cycle a reminder sweep should look at"""
        rows = (
            self.db.query(CreditCycle.id)
            .filter(CreditCycle.cycle_status.in_(OPEN_STATUS_VALUES))
            .filter(CreditCycle.outstanding_cents > 0)
            .order_by(CreditCycle.cycle_start_date.asc())
            .all()
        )
        return [row[0] for row in rows]


class RepaymentRepository:
    """Repository for repayment records (insert-only)"""

    def __init__(self, db: Session):
        self.db = db

    def create_record(
        self,
        cycle: CreditCycle,
        pricing: RepaymentPricing,
        repayment_date: datetime,
        credit_used_before_cents: int,
        credit_used_after_cents: int,
        payment_reference: Optional[str] = None,
    ) -> RepaymentRecord:
        sequence = (
            self.db.query(func.count(RepaymentRecord.id))
            .filter(RepaymentRecord.cycle_id == cycle.id)
            .scalar()
        ) + 1
        record = RepaymentRecord(
            cycle_id=cycle.id,
            vendor_id=cycle.vendor_id,
            sequence=sequence,
            principal_repaid_cents=pricing.principal_cents,
            days_elapsed=pricing.days_elapsed,
            tier_id=pricing.tier.tier_id,
            tier_name=pricing.tier.name,
            tier_kind=pricing.tier.kind.value,
            rate_bps=pricing.tier.rate_bps,
            discount_cents=pricing.discount_cents,
            interest_cents=pricing.interest_cents,
            actual_amount_paid_cents=pricing.actual_amount_paid_cents,
            credit_used_before_cents=credit_used_before_cents,
            credit_used_after_cents=credit_used_after_cents,
            repayment_date=repayment_date,
            payment_reference=payment_reference,
        )
        self.db.add(record)
        return record

    def get(self, repayment_id: Union[str, uuid.UUID]) -> Optional[RepaymentRecord]:
        repayment_uuid = _as_uuid(repayment_id)
        if repayment_uuid is None:
            return None
        return self.db.query(RepaymentRecord).filter(RepaymentRecord.id == repayment_uuid).first()

    def get_by_vendor(self, vendor_id: str, limit: int = 50) -> List[RepaymentRecord]:
        """Most recent repayments first"""
        return (
            self.db.query(RepaymentRecord)
            .filter(RepaymentRecord.vendor_id == vendor_id)
            .order_by(RepaymentRecord.repayment_date.desc(), RepaymentRecord.sequence.desc())
            .limit(limit)
            .all()
        )


class NotificationRepository:
    """Repository for stored vendor notifications"""

    def __init__(self, db: Session):
        self.db = db

    def exists(
        self,
        vendor_id: str,
        notification_type: str,
        since: datetime,
        until: Optional[datetime] = None,
        cycle_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """Whether a matching notification was recorded in [since, until)"""
        query = (
            self.db.query(VendorNotification.id)
            .filter(VendorNotification.vendor_id == vendor_id)
            .filter(VendorNotification.notification_type == notification_type)
            .filter(VendorNotification.created_at >= since)
        )
        if until is not None:
            query = query.filter(VendorNotification.created_at < until)
        if cycle_id is not None:
            query = query.filter(VendorNotification.cycle_id == cycle_id)
        return query.first() is not None

    def create_notification(
        self,
        vendor_id: str,
        notification_type: str,
        title: str,
        message: str,
        priority: str,
        payload: Dict[str, Any],
        created_at: datetime,
        notification_day: date,
        expires_at: Optional[datetime] = None,
        cycle_id: Optional[uuid.UUID] = None,
    ) -> VendorNotification:
        notification = VendorNotification(
            vendor_id=vendor_id,
            cycle_id=cycle_id,
            notification_type=notification_type,
            title=title,
            message=message,
            priority=priority,
            payload=payload,
            created_at=created_at,
            notification_day=notification_day,
            expires_at=expires_at,
        )
        self.db.add(notification)
        self.db.flush()
        return notification

    def get_by_ids(self, notification_ids: Sequence[uuid.UUID]) -> List[VendorNotification]:
        if not notification_ids:
            return []
        return self.db.query(VendorNotification).filter(VendorNotification.id.in_(list(notification_ids))).all()

    def get_undelivered(self, max_attempts: int) -> List[VendorNotification]:
        return (
            self.db.query(VendorNotification)
            .filter(VendorNotification.delivery_status != "delivered")
            .filter(VendorNotification.delivery_attempts < max_attempts)
            .order_by(VendorNotification.created_at)
            .all()
        )

    def delete_expired(self, as_of: datetime) -> int:
        return (
            self.db.query(VendorNotification)
            .filter(VendorNotification.expires_at.is_not(None))
            .filter(VendorNotification.expires_at < as_of)
            .delete(synchronize_session=False)
        )
