"""Reminder policy - decides which repayment notice (if any) a cycle gets on a given day"""

from dataclasses import dataclass
from typing import Optional
from vendor_credit.domain.models import (
    CycleSnapshot,
    NotificationPriority,
    ReminderDescriptor,
    RepaymentQuote,
)
from vendor_credit.domain.tiers import TierPolicy

DUE_REMINDER = "repayment_due_reminder"
OVERDUE_ALERT = "repayment_overdue_alert"


@dataclass(frozen=True)
class ReminderSchedule:
    """
    Day thresholds for reminders, anchored on the tier table boundaries.

    Defaults (built-in table): 60, 85, 100, 104, then 105/110/115/120 and 130/140/...
    """

    early_notice_day: Optional[int]
    neutral_notice_day: Optional[int]
    urgent_notice_day: Optional[int]
    last_day: Optional[int]
    overdue_start_day: Optional[int]
    severe_start_day: Optional[int]
    overdue_interval_days: int = 5
    severe_interval_days: int = 10

    @classmethod
    def from_tier_policy(cls, policy: TierPolicy) -> "ReminderSchedule":
        interest_start = policy.first_interest_day
        neutral_start = policy.first_neutral_day
        return cls(
            early_notice_day=policy.top_discount_end_day,
            neutral_notice_day=neutral_start - 5 if neutral_start is not None else None,
            urgent_notice_day=interest_start - 5 if interest_start is not None else None,
            last_day=interest_start - 1 if interest_start is not None else None,
            overdue_start_day=interest_start,
            severe_start_day=policy.second_interest_day,
        )


def reminder_for(days_elapsed: int, schedule: ReminderSchedule) -> Optional[ReminderDescriptor]:
    """
    Pure decision: the reminder for a cycle `days_elapsed` days old, or None.

    Exact-day notices take precedence over the recurring overdue cadence.
    """
    if days_elapsed == schedule.early_notice_day:
        return ReminderDescriptor(
            reminder_type=DUE_REMINDER,
            title="Credit Repayment - Still Time to Save!",
            priority=NotificationPriority.NORMAL,
            template=(
                "You have a pending credit payment of {outstanding} (Cycle: {cycle_id}). "
                "Pay now and enjoy a {discount_rate}% discount ({savings} potential savings). "
                "You have {days_left} days left before interest charges apply."
            ),
        )

    if days_elapsed == schedule.neutral_notice_day:
        return ReminderDescriptor(
            reminder_type=DUE_REMINDER,
            title="Credit Reminder - Discount Ending Soon",
            priority=NotificationPriority.HIGH,
            template=(
                "Your credit payment of {outstanding} (Cycle: {cycle_id}) is approaching the neutral zone. "
                "Current discount: {discount_rate}% (save {savings}). "
                "Pay within {days_left} days to avoid interest charges."
            ),
        )

    if days_elapsed == schedule.urgent_notice_day:
        return ReminderDescriptor(
            reminder_type=DUE_REMINDER,
            title="Urgent: Credit Payment Deadline Approaching",
            priority=NotificationPriority.URGENT,
            template=(
                "IMPORTANT: Your credit payment of {outstanding} (Cycle: {cycle_id}) is due in {days_left} days. "
                "Pay before Day {interest_start_day} to avoid interest charges."
            ),
        )

    if days_elapsed == schedule.last_day:
        return ReminderDescriptor(
            reminder_type=DUE_REMINDER,
            title="LAST DAY - Interest Starts Tomorrow!",
            priority=NotificationPriority.URGENT,
            template=(
                "FINAL REMINDER: This is the last day to repay {outstanding} (Cycle: {cycle_id}) "
                "without interest charges. Starting tomorrow (Day {interest_start_day}) interest will be applied."
            ),
        )

    if schedule.overdue_start_day is None or days_elapsed < schedule.overdue_start_day:
        return None

    in_severe_zone = schedule.severe_start_day is not None and days_elapsed >= schedule.severe_start_day

    if not in_severe_zone:
        if (days_elapsed - schedule.overdue_start_day) % schedule.overdue_interval_days == 0:
            return ReminderDescriptor(
                reminder_type=OVERDUE_ALERT,
                title="Overdue Payment - Interest Applied",
                priority=NotificationPriority.URGENT,
                template=(
                    "Your credit payment is now {days_overdue} days overdue (Cycle: {cycle_id}). "
                    "Outstanding: {outstanding}. Amount payable: {final_payable} "
                    "(Base: {outstanding} + Interest: {penalty} at {interest_rate}%). "
                    "Pay soon to prevent further interest accumulation."
                ),
            )
        return None

    if (days_elapsed - schedule.severe_start_day + 1) % schedule.severe_interval_days == 0:
        return ReminderDescriptor(
            reminder_type=OVERDUE_ALERT,
            title="CRITICAL: Severe Payment Delay",
            priority=NotificationPriority.URGENT,
            severe=True,
            template=(
                "CRITICAL: Your credit payment is {days_overdue} days overdue (Cycle: {cycle_id}). "
                "Outstanding: {outstanding}. Total payable: {final_payable} "
                "(Interest: {penalty} at {interest_rate}%). "
                "Immediate payment required to avoid credit suspension."
            ),
        )
    return None


def format_money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


def render_reminder_message(
    descriptor: ReminderDescriptor,
    cycle: CycleSnapshot,
    quote: RepaymentQuote,
    schedule: ReminderSchedule,
    cycle_ref: Optional[str] = None,
) -> str:
    """Fill a descriptor's template from the cycle and its current quote"""
    interest_start = schedule.overdue_start_day
    last_day = schedule.last_day
    return descriptor.template.format(
        cycle_id=cycle_ref or cycle.cycle_id,
        outstanding=format_money(cycle.outstanding_cents),
        final_payable=format_money(quote.final_payable_cents),
        savings=format_money(quote.savings_from_early_payment_cents),
        penalty=format_money(quote.penalty_from_late_payment_cents),
        discount_rate=quote.discount_rate_bps / 100,
        interest_rate=quote.interest_rate_bps / 100,
        days_left=max(last_day - quote.days_elapsed, 0) if last_day is not None else 0,
        days_overdue=max(quote.days_elapsed - last_day, 0) if last_day is not None else 0,
        interest_start_day=interest_start if interest_start is not None else "-",
    )
