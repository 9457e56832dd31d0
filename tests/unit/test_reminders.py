"""Unit tests for the reminder policy"""

import pytest
from datetime import datetime, timedelta, timezone
from vendor_credit.domain.models import CycleSnapshot, CycleStatus, NotificationPriority, Tier, TierKind
from vendor_credit.domain.pricing import calculate_repayment_amount
from vendor_credit.domain.reminders import (
    DUE_REMINDER,
    OVERDUE_ALERT,
    ReminderSchedule,
    format_money,
    reminder_for,
    render_reminder_message,
)
from vendor_credit.domain.tiers import TierPolicy

SCHEDULE = ReminderSchedule.from_tier_policy(TierPolicy.default())
START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_schedule_from_default_table():
    assert SCHEDULE.early_notice_day == 60
    assert SCHEDULE.neutral_notice_day == 85
    assert SCHEDULE.urgent_notice_day == 100
    assert SCHEDULE.last_day == 104
    assert SCHEDULE.overdue_start_day == 105
    assert SCHEDULE.severe_start_day == 121


def test_reminder_days_over_first_150_days():
    """Test the full set of days that produce a reminder"""
    days = [d for d in range(0, 151) if reminder_for(d, SCHEDULE) is not None]
    assert days == [60, 85, 100, 104, 105, 110, 115, 120, 130, 140, 150]


@pytest.mark.parametrize(
    "days,reminder_type,priority,severe",
    [
        (60, DUE_REMINDER, NotificationPriority.NORMAL, False),
        (85, DUE_REMINDER, NotificationPriority.HIGH, False),
        (100, DUE_REMINDER, NotificationPriority.URGENT, False),
        (104, DUE_REMINDER, NotificationPriority.URGENT, False),
        (105, OVERDUE_ALERT, NotificationPriority.URGENT, False),
        (120, OVERDUE_ALERT, NotificationPriority.URGENT, False),
        (130, OVERDUE_ALERT, NotificationPriority.URGENT, True),
    ],
)
def test_reminder_descriptors(days, reminder_type, priority, severe):
    descriptor = reminder_for(days, SCHEDULE)
    assert descriptor.reminder_type == reminder_type
    assert descriptor.priority == priority
    assert descriptor.severe is severe


def test_no_reminder_between_thresholds():
    for days in (0, 30, 59, 61, 84, 99, 103, 106, 121, 125, 129):
        assert reminder_for(days, SCHEDULE) is None


def test_schedule_follows_reconfigured_table():
    policy = TierPolicy(
        [
            Tier("quick", "2% Quick Pay", TierKind.DISCOUNT, 0, 29, 200),
            Tier("flat", "Flat", TierKind.NEUTRAL, 30, 44, 0),
            Tier("late", "4% Late", TierKind.INTEREST, 45, None, 400),
        ]
    )
    schedule = ReminderSchedule.from_tier_policy(policy)
    days = [d for d in range(0, 80) if reminder_for(d, schedule) is not None]

    # No second interest tier: the 5-day overdue cadence never turns severe
    assert days == [25, 29, 40, 44, 45, 50, 55, 60, 65, 70, 75]


def test_schedule_without_interest_tiers():
    policy = TierPolicy([Tier("flat", "Flat", TierKind.NEUTRAL, 0, None, 0)])
    schedule = ReminderSchedule.from_tier_policy(policy)
    assert all(reminder_for(d, schedule) is None for d in range(0, 400))


def test_format_money():
    assert format_money(6_000_000) == "60,000.00"
    assert format_money(5) == "0.05"


def test_render_early_reminder():
    cycle = CycleSnapshot("cycle_1", "vendor_1", 10_000_000, 6_000_000, 4_000_000, START, CycleStatus.PARTIALLY_PAID)
    as_of = START + timedelta(days=60)
    quote = calculate_repayment_amount(cycle, as_of)
    message = render_reminder_message(reminder_for(60, SCHEDULE), cycle, quote, SCHEDULE, cycle_ref="CYC-ABC")

    assert "60,000.00" in message
    assert "CYC-ABC" in message
    assert "3.0% discount" in message
    assert "1,800.00 potential savings" in message
    assert "44 days left" in message


def test_render_overdue_alert():
    cycle = CycleSnapshot("cycle_1", "vendor_1", 10_000_000, 6_000_000, 4_000_000, START, CycleStatus.PARTIALLY_PAID)
    quote = calculate_repayment_amount(cycle, START + timedelta(days=110))
    message = render_reminder_message(reminder_for(110, SCHEDULE), cycle, quote, SCHEDULE)

    assert "6 days overdue" in message
    assert "63,000.00" in message
    assert "Interest: 3,000.00 at 5.0%" in message
