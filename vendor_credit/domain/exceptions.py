"""Domain-specific exceptions

Every expected business-rule violation carries a machine-readable ``code``
and a ``details`` dict so callers can decide whether to retry, adjust the
amount, or abort without parsing the message.
"""

from typing import Any, Dict, Optional


class CreditError(Exception):
    """Base exception for the credit domain"""

    code: str = "CREDIT_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": dict(self.details)}


class ValidationError(CreditError):
    """Malformed or missing input"""

    code = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Amount is zero, negative, or not an integer number of cents"""

    code = "INVALID_AMOUNT"

    def __init__(self, amount_cents: Any):
        self.amount_cents = amount_cents
        super().__init__(
            f"Amount must be a positive number of cents, got {amount_cents!r}",
            {"amount_cents": amount_cents},
        )


class NotFoundError(CreditError):
    """Unknown vendor, cycle or repayment id"""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} {entity_id} not found",
            {"entity_type": entity_type, "entity_id": str(entity_id)},
        )


class OverpaymentError(CreditError):
    """Repayment exceeds the cycle's outstanding balance"""

    code = "OVERPAYMENT"

    def __init__(self, cycle_id: Any, requested_cents: int, max_allowed_cents: int):
        self.cycle_id = cycle_id
        self.requested_cents = requested_cents
        self.max_allowed_cents = max_allowed_cents
        super().__init__(
            f"Repayment of {requested_cents} exceeds outstanding {max_allowed_cents} "
            f"on cycle {cycle_id}; maximum allowed is {max_allowed_cents}",
            {
                "cycle_id": str(cycle_id),
                "requested_cents": requested_cents,
                "max_allowed_cents": max_allowed_cents,
            },
        )


class CycleClosedError(CreditError):
    """Cycle no longer accepts repayments"""

    code = "CYCLE_CLOSED"

    def __init__(self, cycle_id: Any, cycle_status: str):
        self.cycle_id = cycle_id
        self.cycle_status = cycle_status
        super().__init__(
            f"Cycle {cycle_id} cannot accept repayments (status: {cycle_status})",
            {"cycle_id": str(cycle_id), "cycle_status": cycle_status},
        )


class InsufficientCreditError(CreditError):
    """New purchase exceeds the vendor's available credit"""

    code = "INSUFFICIENT_CREDIT"

    def __init__(self, vendor_id: str, requested_cents: int, available_cents: int):
        self.vendor_id = vendor_id
        self.requested_cents = requested_cents
        self.available_cents = available_cents
        self.shortfall_cents = requested_cents - available_cents
        super().__init__(
            f"Purchase of {requested_cents} exceeds available credit {available_cents} "
            f"for vendor {vendor_id} (shortfall {self.shortfall_cents})",
            {
                "vendor_id": vendor_id,
                "requested_cents": requested_cents,
                "available_cents": available_cents,
                "shortfall_cents": self.shortfall_cents,
            },
        )


class ConcurrencyConflictError(CreditError):
    """Lost a race for a per-cycle or per-vendor lock or version; safe to retry"""

    code = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: Any, reason: str = "modified concurrently"):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrency conflict on {entity_type} {entity_id}: {reason}",
            {"entity_type": entity_type, "entity_id": str(entity_id), "retryable": True},
        )


class AuthorizationError(CreditError):
    """Privileged action arrived without an actor or a sufficient reason"""

    code = "AUTHORIZATION_REQUIRED"


class InvariantViolationError(CreditError):
    """Stored state breaks an accounting invariant; fatal for the operation"""

    code = "INVARIANT_VIOLATION"


class NotificationDeliveryError(CreditError):
    """Notification transport rejected the envelope or was unreachable"""

    code = "NOTIFICATION_DELIVERY_FAILED"
