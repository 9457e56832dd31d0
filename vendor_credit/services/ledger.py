"""Credit cycle ledger - opens cycles and applies partial repayments atomically"""

import time
import logging
from datetime import datetime
from typing import List, Optional, Union
from uuid import UUID
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from vendor_credit.config import settings
from vendor_credit.domain.credit_history import on_time_threshold, tier_for_score, update_credit_history
from vendor_credit.domain.cycle_state import (
    check_account_invariants,
    check_cycle_invariants,
    derive_cycle_status,
    derive_repayment_status,
)
from vendor_credit.domain.exceptions import (
    ConcurrencyConflictError,
    CreditError,
    CycleClosedError,
    InsufficientCreditError,
    InvalidAmountError,
    NotFoundError,
    OverpaymentError,
    ValidationError,
)
from vendor_credit.domain.models import OPEN_CYCLE_STATUSES, CycleStatus
from vendor_credit.domain.pricing import (
    calculate_repayment_amount,
    days_elapsed,
    price_repayment,
    project_repayment_schedule,
)
from vendor_credit.domain.tiers import TierPolicy
from vendor_credit.infrastructure.database.models import CreditCycle, VendorCreditAccount
from vendor_credit.infrastructure.database.repositories import (
    CycleRepository,
    RepaymentRepository,
    VendorAccountRepository,
)
from vendor_credit.infrastructure.database.session import SessionFactory, SessionLocal, session_scope
from vendor_credit.infrastructure.locks import KeyedLockRegistry, lock_registry, version_conflict_guard
from vendor_credit.infrastructure.observability.logging import log_cycle_opened, log_repayment
from vendor_credit.infrastructure.observability.metrics import (
    concurrency_conflict_counter,
    cycle_counter,
    purchase_validation_counter,
    record_repayment,
    repayment_rejection_counter,
)
from vendor_credit.schemas import (
    CycleDetails,
    CycleSummary,
    RepaymentQuoteSchema,
    RepaymentRecordSchema,
    RepaymentResult,
    TierSchema,
    VendorAccountSchema,
)
from vendor_credit.utils.date_utils import days_between, ensure_utc

logger = logging.getLogger(__name__)

CYCLE_LOCK = "credit_cycle"
VENDOR_LOCK = "vendor_credit_account"


def _require_amount(amount_cents) -> int:
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise InvalidAmountError(amount_cents)
    return amount_cents


class CreditCycleService:
    """
    Owns the lifecycle of credit cycles.

    Every mutation runs under the per-cycle lock; the vendor account update is
    additionally serialized by the per-vendor lock, always taken after the
    cycle lock. Row locks and version columns cover writers in other processes.
    """

    def __init__(
        self,
        session_factory: SessionFactory = SessionLocal,
        policy: Optional[TierPolicy] = None,
        locks: Optional[KeyedLockRegistry] = None,
        on_time_threshold_days: Optional[int] = None,
        max_retries: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.policy = policy if policy is not None else TierPolicy.from_settings(settings.repayment_tiers)
        self.locks = locks if locks is not None else lock_registry
        self.threshold_days = on_time_threshold(
            self.policy,
            on_time_threshold_days if on_time_threshold_days is not None else settings.on_time_threshold_days,
        )
        self.max_retries = max_retries if max_retries is not None else settings.repayment_max_retries

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def open_cycle(
        self,
        vendor_id: str,
        principal_cents: int,
        cycle_start: datetime,
        cycle_ref: Optional[str] = None,
    ) -> CycleSummary:
        """
        Open a new credit cycle for an approved purchase.

        The admission check is repeated under the vendor lock so two approvals
        racing for the same headroom cannot both pass.

        Raises:
            InvalidAmountError: principal is not a positive number of cents
            NotFoundError: unknown vendor
            ValidationError: vendor is deactivated
            InsufficientCreditError: principal exceeds available credit
        """
        _require_amount(principal_cents)
        cycle_start = ensure_utc(cycle_start)

        with self.locks.hold(VENDOR_LOCK, vendor_id):
            with version_conflict_guard(VENDOR_LOCK, vendor_id), session_scope(self.session_factory) as db:
                account = self._get_account(db, vendor_id, for_update=True)
                if not account.is_active:
                    raise ValidationError(f"Vendor {vendor_id} is deactivated", {"vendor_id": vendor_id})

                available = account.available_credit_cents
                if principal_cents > available:
                    purchase_validation_counter.labels(outcome="insufficient_credit").inc()
                    raise InsufficientCreditError(vendor_id, principal_cents, available)

                # Created inactive, started once credit is committed
                cycle = CycleRepository(db).create_cycle(vendor_id, principal_cents, cycle_start, cycle_ref)
                account.credit_used_cents += principal_cents
                check_account_invariants(vendor_id, account.credit_limit_cents, account.credit_used_cents)
                cycle.cycle_status = derive_cycle_status(
                    principal_cents, principal_cents, CycleStatus.INACTIVE
                ).value
                db.flush()

                summary = CycleSummary.from_model(cycle, days_elapsed=0)
                available_after = account.available_credit_cents

        cycle_counter.labels(event="opened").inc()
        purchase_validation_counter.labels(outcome="allowed").inc()
        log_cycle_opened(vendor_id, summary.cycle_id, principal_cents, available_after)
        return summary

    def apply_partial_repayment(
        self,
        cycle_id: Union[str, UUID],
        repayment_amount_cents: int,
        as_of: datetime,
        payment_reference: Optional[str] = None,
    ) -> RepaymentResult:
        """
        Apply one repayment to a cycle and credit the vendor account back.

        Flow:
        1. Lock the cycle and re-read it (status, overpayment checks)
        2. Price the repayment at the tier in force on `as_of`
        3. Update cycle balances, derive status, close at zero outstanding
        4. Lock the vendor, append the repayment record, restore principal to credit
        5. Fold the repayment into the vendor's credit history
        All of it commits as one unit. A version conflict with another process
        is retried from step 1 up to the configured number of times.

        Raises:
            InvalidAmountError, NotFoundError, CycleClosedError, OverpaymentError,
            ValidationError (as_of before cycle start), ConcurrencyConflictError
        """
        start_time = time.time()
        as_of = ensure_utc(as_of)

        try:
            _require_amount(repayment_amount_cents)
            attempt = 0
            while True:
                try:
                    result = self._apply_once(cycle_id, repayment_amount_cents, as_of, payment_reference)
                    break
                except StaleDataError as e:
                    attempt += 1
                    concurrency_conflict_counter.labels(entity_type=CYCLE_LOCK).inc()
                    if attempt >= self.max_retries:
                        raise ConcurrencyConflictError(
                            CYCLE_LOCK, cycle_id, f"version conflict after {attempt} attempts"
                        ) from e
                    logger.warning(
                        "Repayment version conflict, retrying",
                        extra={"cycle_id": str(cycle_id), "attempt": attempt},
                    )
        except CreditError as e:
            repayment_rejection_counter.labels(code=e.code).inc()
            logger.warning(f"Repayment rejected: {e.message}", extra={"cycle_id": str(cycle_id), "code": e.code})
            raise

        duration_ms = (time.time() - start_time) * 1000
        repayment = result.repayment
        record_repayment(repayment.tier_kind, repayment.discount_cents, repayment.interest_cents)
        if result.cycle.is_closed:
            cycle_counter.labels(event="closed").inc()
        log_repayment(
            repayment.vendor_id,
            repayment.cycle_id,
            repayment.principal_repaid_cents,
            repayment.actual_amount_paid_cents,
            repayment.tier_id,
            result.cycle.outstanding_cents,
            result.cycle.cycle_status,
            duration_ms,
        )
        return result

    def _apply_once(
        self,
        cycle_id: Union[str, UUID],
        amount_cents: int,
        as_of: datetime,
        payment_reference: Optional[str],
    ) -> RepaymentResult:
        with self.locks.hold(CYCLE_LOCK, cycle_id):
            db = self.session_factory()
            try:
                # 1. Load and validate under exclusivity
                cycle = CycleRepository(db).get(cycle_id, for_update=True)
                if cycle is None:
                    raise NotFoundError("credit_cycle", cycle_id)
                check_cycle_invariants(cycle.id, cycle.principal_cents, cycle.outstanding_cents, cycle.total_repaid_cents)

                status = CycleStatus(cycle.cycle_status)
                if status not in OPEN_CYCLE_STATUSES:
                    raise CycleClosedError(cycle.id, status.value)
                if amount_cents > cycle.outstanding_cents:
                    raise OverpaymentError(cycle.id, amount_cents, cycle.outstanding_cents)

                # 2. Price at the current point in time
                days = days_elapsed(ensure_utc(cycle.cycle_start_date), as_of)
                pricing = price_repayment(amount_cents, days, self.policy)

                # 3. Cycle balances and derived status
                cycle.outstanding_cents -= amount_cents
                cycle.total_repaid_cents += amount_cents
                cycle.total_discount_earned_cents += pricing.discount_cents
                cycle.total_interest_paid_cents += pricing.interest_cents
                cycle.last_repayment_date = as_of

                new_status = derive_cycle_status(cycle.principal_cents, cycle.outstanding_cents, status)
                if new_status == CycleStatus.FULLY_PAID:
                    new_status = CycleStatus.CLOSED
                    cycle.cycle_closed_date = as_of
                cycle.cycle_status = new_status.value
                cycle.repayment_status = derive_repayment_status(
                    cycle.principal_cents, cycle.total_repaid_cents
                ).value
                check_cycle_invariants(cycle.id, cycle.principal_cents, cycle.outstanding_cents, cycle.total_repaid_cents)
                db.flush()

                # 4-5. Vendor account, serialized across the vendor's cycles
                with self.locks.hold(VENDOR_LOCK, cycle.vendor_id):
                    account = self._get_account(db, cycle.vendor_id, for_update=True)
                    used_before = account.credit_used_cents
                    used_after = used_before - amount_cents
                    check_account_invariants(account.id, account.credit_limit_cents, used_after)

                    record = RepaymentRepository(db).create_record(
                        cycle, pricing, as_of, used_before, used_after, payment_reference
                    )
                    account.credit_used_cents = used_after

                    history = update_credit_history(account.credit_history(), pricing, as_of, self.threshold_days)
                    account.apply_credit_history(history)
                    if not account.performance_tier_locked:
                        account.performance_tier = tier_for_score(history.credit_score).value
                    db.flush()

                    result = RepaymentResult(
                        repayment=RepaymentRecordSchema.from_model(record),
                        cycle=CycleSummary.from_model(cycle, days_elapsed=days),
                        vendor=VendorAccountSchema.from_model(account),
                    )
                    db.commit()
                return result
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def calculate_repayment_amount(self, cycle_id: Union[str, UUID], as_of: datetime) -> RepaymentQuoteSchema:
        """Preview the cost of settling the cycle's outstanding balance at `as_of`"""
        with session_scope(self.session_factory) as db:
            cycle = self._get_cycle(db, cycle_id)
            quote = calculate_repayment_amount(cycle.to_snapshot(), ensure_utc(as_of), self.policy)
        return RepaymentQuoteSchema.from_quote(quote)

    def project_repayment_schedule(self, cycle_id: Union[str, UUID], as_of: datetime) -> List[RepaymentQuoteSchema]:
        with session_scope(self.session_factory) as db:
            cycle = self._get_cycle(db, cycle_id)
            quotes = project_repayment_schedule(cycle.to_snapshot(), ensure_utc(as_of), self.policy)
        return [RepaymentQuoteSchema.from_quote(q) for q in quotes]

    def get_active_cycles_for_vendor(self, vendor_id: str, as_of: Optional[datetime] = None) -> List[CycleSummary]:
        """Active and partially paid cycles, oldest first"""
        with session_scope(self.session_factory) as db:
            self._get_account(db, vendor_id)
            cycles = CycleRepository(db).get_open_cycles_for_vendor(vendor_id)
            return [self._summary(cycle, as_of) for cycle in cycles]

    def get_cycle_details(self, cycle_id: Union[str, UUID], as_of: Optional[datetime] = None) -> CycleDetails:
        """Cycle, vendor and ordered repayments; includes a live quote for open cycles when as_of is given"""
        with session_scope(self.session_factory) as db:
            cycle = self._get_cycle(db, cycle_id)
            summary = self._summary(cycle, as_of)

            current_quote = None
            if as_of is not None and CycleStatus(cycle.cycle_status) in OPEN_CYCLE_STATUSES:
                quote = calculate_repayment_amount(cycle.to_snapshot(), ensure_utc(as_of), self.policy)
                current_quote = RepaymentQuoteSchema.from_quote(quote)

            return CycleDetails(
                **summary.model_dump(),
                vendor=VendorAccountSchema.from_model(cycle.vendor),
                repayments=[RepaymentRecordSchema.from_model(r) for r in cycle.repayments],
                current_quote=current_quote,
            )

    def get_repayment_history(self, vendor_id: str, limit: int = 50) -> List[RepaymentRecordSchema]:
        """Vendor's repayments across all cycles, most recent first"""
        with session_scope(self.session_factory) as db:
            self._get_account(db, vendor_id)
            records = RepaymentRepository(db).get_by_vendor(vendor_id, limit=limit)
            return [RepaymentRecordSchema.from_model(r) for r in records]

    def get_repayment_details(self, repayment_id: Union[str, UUID]) -> RepaymentRecordSchema:
        with session_scope(self.session_factory) as db:
            record = RepaymentRepository(db).get(repayment_id)
            if record is None:
                raise NotFoundError("repayment_record", repayment_id)
            return RepaymentRecordSchema.from_model(record)

    def get_repayment_rules(self) -> List[TierSchema]:
        return [TierSchema.from_tier(tier) for tier in self.policy.tiers]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _summary(self, cycle: CreditCycle, as_of: Optional[datetime]) -> CycleSummary:
        days = None
        if as_of is not None:
            days = max(days_between(cycle.cycle_start_date, as_of), 0)
        return CycleSummary.from_model(cycle, days_elapsed=days)

    @staticmethod
    def _get_cycle(db: Session, cycle_id: Union[str, UUID]) -> CreditCycle:
        cycle = CycleRepository(db).get(cycle_id)
        if cycle is None:
            raise NotFoundError("credit_cycle", cycle_id)
        return cycle

    @staticmethod
    def _get_account(db: Session, vendor_id: str, for_update: bool = False) -> VendorCreditAccount:
        account = VendorAccountRepository(db).get(vendor_id, for_update=for_update)
        if account is None:
            raise NotFoundError("vendor_credit_account", vendor_id)
        return account
