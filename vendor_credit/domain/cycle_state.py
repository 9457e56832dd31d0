"""Credit cycle state machine and accounting invariants

Statuses are never written by callers: they are recomputed from the balances
inside the same mutation that changes those balances.
"""

from vendor_credit.domain.exceptions import InvariantViolationError
from vendor_credit.domain.models import CycleStatus, RepaymentStatus


def derive_cycle_status(principal_cents: int, outstanding_cents: int, current: CycleStatus) -> CycleStatus:
    """
    Map balances to a cycle status.

    - closed is terminal
    - outstanding == principal -> active
    - 0 < outstanding < principal -> partially_paid
    - outstanding == 0 -> fully_paid (closing is a separate, explicit step)
    """
    if current == CycleStatus.CLOSED:
        return CycleStatus.CLOSED
    if outstanding_cents == 0:
        return CycleStatus.FULLY_PAID
    if outstanding_cents == principal_cents:
        return CycleStatus.ACTIVE
    return CycleStatus.PARTIALLY_PAID


def derive_repayment_status(principal_cents: int, total_repaid_cents: int) -> RepaymentStatus:
    if total_repaid_cents == 0:
        return RepaymentStatus.NOT_STARTED
    if total_repaid_cents < principal_cents:
        return RepaymentStatus.IN_PROGRESS
    return RepaymentStatus.COMPLETED


def check_cycle_invariants(cycle_id, principal_cents: int, outstanding_cents: int, total_repaid_cents: int) -> None:
    """Raise loudly instead of coercing a broken cycle back into range"""
    if principal_cents <= 0:
        raise InvariantViolationError(
            f"Cycle {cycle_id} has non-positive principal {principal_cents}",
            {"cycle_id": str(cycle_id), "principal_cents": principal_cents},
        )
    if not 0 <= outstanding_cents <= principal_cents:
        raise InvariantViolationError(
            f"Cycle {cycle_id} outstanding {outstanding_cents} outside [0, {principal_cents}]",
            {"cycle_id": str(cycle_id), "outstanding_cents": outstanding_cents, "principal_cents": principal_cents},
        )
    if total_repaid_cents + outstanding_cents != principal_cents:
        raise InvariantViolationError(
            f"Cycle {cycle_id}: repaid {total_repaid_cents} + outstanding {outstanding_cents} "
            f"!= principal {principal_cents}",
            {
                "cycle_id": str(cycle_id),
                "total_repaid_cents": total_repaid_cents,
                "outstanding_cents": outstanding_cents,
                "principal_cents": principal_cents,
            },
        )


def check_account_invariants(vendor_id: str, credit_limit_cents: int, credit_used_cents: int) -> None:
    if not 0 <= credit_used_cents <= credit_limit_cents:
        raise InvariantViolationError(
            f"Vendor {vendor_id} credit used {credit_used_cents} outside [0, {credit_limit_cents}]",
            {"vendor_id": vendor_id, "credit_used_cents": credit_used_cents, "credit_limit_cents": credit_limit_cents},
        )
