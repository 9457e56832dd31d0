"""Vendor credit accounts - admission checks, summaries and authorized admin changes"""

import logging
from datetime import datetime
from typing import List, Optional

from vendor_credit.domain.cycle_state import check_account_invariants
from vendor_credit.domain.exceptions import (
    AuthorizationError,
    InvalidAmountError,
    NotFoundError,
    ValidationError,
)
from vendor_credit.domain.models import PerformanceTier
from vendor_credit.infrastructure.database.models import VendorCreditAccount
from vendor_credit.infrastructure.database.repositories import CycleRepository, VendorAccountRepository
from vendor_credit.infrastructure.database.session import SessionFactory, SessionLocal, session_scope
from vendor_credit.infrastructure.locks import KeyedLockRegistry, lock_registry, version_conflict_guard
from vendor_credit.infrastructure.observability.metrics import (
    purchase_validation_counter,
    record_credit_limit_change,
)
from vendor_credit.schemas import (
    AccountChange,
    CreditHistorySchema,
    CycleSummary,
    PurchaseValidation,
    VendorAccountSchema,
    VendorCreditSummary,
    VendorPerformanceMetrics,
)
from vendor_credit.services.ledger import VENDOR_LOCK
from vendor_credit.services.notifications import NotificationService
from vendor_credit.utils.date_utils import days_between

logger = logging.getLogger(__name__)

MIN_REASON_LENGTH = 10

SORTABLE_METRICS = {
    "credit_score",
    "utilization_rate",
    "total_repayments",
    "avg_repayment_days",
    "on_time_rate",
    "credit_limit_cents",
    "available_credit_cents",
}


def require_authorization(actor: Optional[str], reason: Optional[str]) -> None:
    """Privileged changes must name who made them and why"""
    if not actor or not actor.strip():
        raise AuthorizationError("An actor is required for this change")
    if not reason or len(reason.strip()) < MIN_REASON_LENGTH:
        raise AuthorizationError(
            f"Reason must be at least {MIN_REASON_LENGTH} characters",
            {"min_length": MIN_REASON_LENGTH},
        )


class VendorAccountService:
    """Reads and authorized edits of vendor credit accounts"""

    def __init__(
        self,
        session_factory: SessionFactory = SessionLocal,
        locks: Optional[KeyedLockRegistry] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.session_factory = session_factory
        self.locks = locks if locks is not None else lock_registry
        self.notifications = notifications if notifications is not None else NotificationService(session_factory)

    def create_vendor_account(self, vendor_id: str, name: str, credit_limit_cents: int) -> VendorAccountSchema:
        if not vendor_id or not name:
            raise ValidationError("Vendor id and name are required")
        if not isinstance(credit_limit_cents, int) or isinstance(credit_limit_cents, bool) or credit_limit_cents < 0:
            raise InvalidAmountError(credit_limit_cents)

        with session_scope(self.session_factory) as db:
            repo = VendorAccountRepository(db)
            if repo.get(vendor_id) is not None:
                raise ValidationError(f"Vendor {vendor_id} already has a credit account", {"vendor_id": vendor_id})
            account = repo.create_account(vendor_id, name, credit_limit_cents)
            result = VendorAccountSchema.from_model(account)

        logger.info("Vendor credit account created", extra={"vendor_id": vendor_id, "credit_limit_cents": credit_limit_cents})
        return result

    def deactivate_vendor_account(self, vendor_id: str, actor: str, reason: str) -> AccountChange:
        """Accounts are never deleted; deactivation blocks new cycles but keeps repayments open"""
        require_authorization(actor, reason)
        with self.locks.hold(VENDOR_LOCK, vendor_id):
            with version_conflict_guard(VENDOR_LOCK, vendor_id), session_scope(self.session_factory) as db:
                repo = VendorAccountRepository(db)
                account = self._get_account(repo, vendor_id, for_update=True)
                account.is_active = False
                repo.record_adjustment(vendor_id, "is_active", True, False, actor, reason)
                db.flush()
                return self._change(account, "is_active", "True", "False", actor, reason)

    def validate_new_purchase(self, vendor_id: str, purchase_amount_cents: int) -> PurchaseValidation:
        """
        Read-only admission check for a new purchase on credit.

        Never mutates state: opening the cycle is a separate step that repeats
        the check under the vendor lock.
        """
        if not isinstance(purchase_amount_cents, int) or isinstance(purchase_amount_cents, bool) or purchase_amount_cents <= 0:
            raise InvalidAmountError(purchase_amount_cents)

        with session_scope(self.session_factory) as db:
            account = self._get_account(VendorAccountRepository(db), vendor_id)
            available = account.available_credit_cents
            is_active = account.is_active
            result = PurchaseValidation(
                allowed=is_active and purchase_amount_cents <= available,
                vendor_id=vendor_id,
                credit_limit_cents=account.credit_limit_cents,
                credit_used_cents=account.credit_used_cents,
                available_credit_cents=available,
                requested_cents=purchase_amount_cents,
            )

        if not is_active:
            result.reason = "vendor_inactive"
        elif purchase_amount_cents > available:
            result.shortfall_cents = purchase_amount_cents - available
            result.reason = "insufficient_credit"
        else:
            result.remaining_after_purchase_cents = available - purchase_amount_cents

        purchase_validation_counter.labels(outcome="allowed" if result.allowed else result.reason).inc()
        return result

    def get_vendor_credit_summary(self, vendor_id: str, as_of: Optional[datetime] = None) -> VendorCreditSummary:
        with session_scope(self.session_factory) as db:
            account = self._get_account(VendorAccountRepository(db), vendor_id)
            cycle_repo = CycleRepository(db)
            open_cycles = cycle_repo.get_open_cycles_for_vendor(vendor_id)

            active_cycles = []
            for cycle in open_cycles:
                days = max(days_between(cycle.cycle_start_date, as_of), 0) if as_of is not None else None
                active_cycles.append(CycleSummary.from_model(cycle, days_elapsed=days))

            return VendorCreditSummary(
                vendor=VendorAccountSchema.from_model(account),
                active_cycles=active_cycles,
                active_count=len(active_cycles),
                closed_count=cycle_repo.count_closed_for_vendor(vendor_id),
                total_outstanding_cents=sum(c.outstanding_cents for c in active_cycles),
                credit_history=CreditHistorySchema.from_history(account.credit_history()),
            )

    def adjust_credit_limit(
        self,
        vendor_id: str,
        new_limit_cents: int,
        actor: str,
        reason: str,
        as_of: datetime,
        source: str = "manual",
    ) -> AccountChange:
        """
        Authorized credit-limit edit.

        Requirements:
        - actor and a reason of at least 10 characters
        - the new limit may not drop below the credit already in use
        - every change leaves an audit row; increases notify the vendor
        """
        require_authorization(actor, reason)
        if not isinstance(new_limit_cents, int) or isinstance(new_limit_cents, bool) or new_limit_cents < 0:
            raise InvalidAmountError(new_limit_cents)

        with self.locks.hold(VENDOR_LOCK, vendor_id):
            with version_conflict_guard(VENDOR_LOCK, vendor_id), session_scope(self.session_factory) as db:
                repo = VendorAccountRepository(db)
                account = self._get_account(repo, vendor_id, for_update=True)
                old_limit = account.credit_limit_cents
                if new_limit_cents < account.credit_used_cents:
                    raise ValidationError(
                        f"New limit {new_limit_cents} is below credit in use {account.credit_used_cents}",
                        {
                            "vendor_id": vendor_id,
                            "new_limit_cents": new_limit_cents,
                            "credit_used_cents": account.credit_used_cents,
                        },
                    )

                account.credit_limit_cents = new_limit_cents
                check_account_invariants(vendor_id, account.credit_limit_cents, account.credit_used_cents)
                repo.record_adjustment(vendor_id, "credit_limit", old_limit, new_limit_cents, actor, reason, source)
                if new_limit_cents > old_limit:
                    self.notifications.record_credit_limit_increase(db, account, old_limit, new_limit_cents, as_of)
                db.flush()
                change = self._change(account, "credit_limit", str(old_limit), str(new_limit_cents), actor, reason)

        record_credit_limit_change(old_limit, new_limit_cents)
        logger.info(
            "Credit limit adjusted",
            extra={
                "vendor_id": vendor_id,
                "old_limit_cents": old_limit,
                "new_limit_cents": new_limit_cents,
                "actor": actor,
                "source": source,
            },
        )
        return change

    def update_performance_tier(self, vendor_id: str, tier: str, actor: str, reason: str) -> AccountChange:
        """Manual tier override; pins the tier so automatic scoring stops changing it"""
        require_authorization(actor, reason)
        try:
            new_tier = PerformanceTier(tier)
        except ValueError:
            raise ValidationError(
                f"Unknown performance tier {tier!r}",
                {"allowed": [t.value for t in PerformanceTier]},
            )

        with self.locks.hold(VENDOR_LOCK, vendor_id):
            with version_conflict_guard(VENDOR_LOCK, vendor_id), session_scope(self.session_factory) as db:
                repo = VendorAccountRepository(db)
                account = self._get_account(repo, vendor_id, for_update=True)
                old_tier = account.performance_tier
                account.performance_tier = new_tier.value
                account.performance_tier_locked = True
                repo.record_adjustment(vendor_id, "performance_tier", old_tier, new_tier.value, actor, reason)
                db.flush()
                return self._change(account, "performance_tier", old_tier, new_tier.value, actor, reason)

    def list_vendor_performance_metrics(
        self,
        sort_by: str = "credit_score",
        descending: bool = True,
        tier: Optional[str] = None,
        min_score: Optional[int] = None,
        max_score: Optional[int] = None,
    ) -> List[VendorPerformanceMetrics]:
        """Active vendors with their credit metrics, filtered and sorted for admin review"""
        if sort_by not in SORTABLE_METRICS:
            raise ValidationError(f"Cannot sort by {sort_by!r}", {"allowed": sorted(SORTABLE_METRICS)})

        with session_scope(self.session_factory) as db:
            accounts = VendorAccountRepository(db).list_active()
            metrics = [self._metrics(a) for a in accounts]

        if tier is not None:
            metrics = [m for m in metrics if m.performance_tier == tier]
        if min_score is not None:
            metrics = [m for m in metrics if m.credit_score >= min_score]
        if max_score is not None:
            metrics = [m for m in metrics if m.credit_score <= max_score]

        # Vendors without a value for the key always sort last
        with_value = [m for m in metrics if getattr(m, sort_by) is not None]
        without_value = [m for m in metrics if getattr(m, sort_by) is None]
        with_value.sort(key=lambda m: (getattr(m, sort_by), m.vendor_id), reverse=descending)
        return with_value + without_value

    @staticmethod
    def _metrics(account: VendorCreditAccount) -> VendorPerformanceMetrics:
        history = account.credit_history()
        utilization = (
            account.credit_used_cents / account.credit_limit_cents * 100 if account.credit_limit_cents > 0 else 0.0
        )
        return VendorPerformanceMetrics(
            vendor_id=account.id,
            name=account.name,
            credit_limit_cents=account.credit_limit_cents,
            credit_used_cents=account.credit_used_cents,
            available_credit_cents=account.available_credit_cents,
            utilization_rate=round(utilization, 2),
            credit_score=history.credit_score,
            performance_tier=account.performance_tier,
            total_repayments=history.total_repayment_count,
            avg_repayment_days=history.avg_repayment_days,
            on_time_rate=round(history.on_time_rate, 2) if history.on_time_rate is not None else None,
            total_discounts_earned_cents=history.total_discounts_earned_cents,
            total_interest_paid_cents=history.total_interest_paid_cents,
            last_repayment_date=history.last_repayment_date,
        )

    @staticmethod
    def _change(
        account: VendorCreditAccount,
        adjustment_type: str,
        old_value: str,
        new_value: str,
        actor: str,
        reason: str,
    ) -> AccountChange:
        return AccountChange(
            vendor_id=account.id,
            adjustment_type=adjustment_type,
            old_value=old_value,
            new_value=new_value,
            actor=actor,
            reason=reason,
            available_credit_cents=account.available_credit_cents,
        )

    @staticmethod
    def _get_account(repo: VendorAccountRepository, vendor_id: str, for_update: bool = False) -> VendorCreditAccount:
        account = repo.get(vendor_id, for_update=for_update)
        if account is None:
            raise NotFoundError("vendor_credit_account", vendor_id)
        return account
