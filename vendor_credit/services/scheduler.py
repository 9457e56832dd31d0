"""Cycle scheduler - daily reminder, utilization and cleanup sweeps

APScheduler-based async scheduler. Runs in the configured timezone:
- REMINDER_HOUR (10:00): repayment reminders for every open cycle
- UTILIZATION_CHECK_HOUR (18:00): high credit utilization warnings
- CLEANUP_HOUR (02:00): removes expired notifications
"""

import asyncio
import time
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from pytz import timezone as pytz_timezone
from sqlalchemy.exc import IntegrityError

from vendor_credit.config import settings
from vendor_credit.domain.exceptions import CreditError
from vendor_credit.domain.models import OPEN_CYCLE_STATUSES, CycleStatus
from vendor_credit.domain.pricing import calculate_repayment_amount, days_elapsed
from vendor_credit.domain.reminders import ReminderSchedule, reminder_for, render_reminder_message
from vendor_credit.domain.tiers import TierPolicy
from vendor_credit.infrastructure.database.repositories import CycleRepository, VendorAccountRepository
from vendor_credit.infrastructure.database.session import SessionFactory, SessionLocal, session_scope
from vendor_credit.infrastructure.observability.logging import log_sweep_completed
from vendor_credit.infrastructure.observability.metrics import sweep_duration_histogram, sweep_failure_counter
from vendor_credit.schemas import SweepFailure, SweepResult
from vendor_credit.services.notifications import NotificationService
from vendor_credit.utils.date_utils import ensure_utc

logger = logging.getLogger(__name__)

REMINDER_SWEEP = "reminders"
UTILIZATION_SWEEP = "utilization"
CLEANUP_SWEEP = "cleanup"

CREATED = "created"
DUPLICATE = "duplicate"
NOTHING_DUE = "nothing_due"


def _failure(entity_id: Any, error: Exception) -> SweepFailure:
    code = error.code if isinstance(error, CreditError) else type(error).__name__
    return SweepFailure(entity_id=str(entity_id), code=code, message=str(error))


class CycleScheduler:
    """
    Singleton driver around the pure reminder policy.

    Each sweep kind is non-overlapping: a trigger that fires while the previous
    run is still going is skipped. One failing cycle or vendor never aborts the
    sweep; failures are collected into the returned SweepResult.
    Each cycle or vendor is handled in its own transaction on a worker thread.
    """

    def __init__(
        self,
        session_factory: SessionFactory = SessionLocal,
        notifications: Optional[NotificationService] = None,
        policy: Optional[TierPolicy] = None,
        timezone_name: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.notifications = notifications if notifications is not None else NotificationService(session_factory)
        self.policy = policy if policy is not None else TierPolicy.from_settings(settings.repayment_tiers)
        self.schedule = ReminderSchedule.from_tier_policy(self.policy)
        self.tz = pytz_timezone(timezone_name or settings.scheduler_timezone)

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False
        self._stop_requested = False
        self._sweep_locks: Dict[str, asyncio.Lock] = {
            REMINDER_SWEEP: asyncio.Lock(),
            UTILIZATION_SWEEP: asyncio.Lock(),
            CLEANUP_SWEEP: asyncio.Lock(),
        }

    async def start(self) -> None:
        """Start the scheduler."""
        if self._is_running:
            logger.warning("CycleScheduler already running")
            return

        self._stop_requested = False
        scheduler = AsyncIOScheduler(timezone=self.tz)
        self._scheduler = scheduler

        jobs = [
            (REMINDER_SWEEP, settings.reminder_hour, "Daily Repayment Reminders"),
            (UTILIZATION_SWEEP, settings.utilization_check_hour, "High Credit Utilization Check"),
            (CLEANUP_SWEEP, settings.cleanup_hour, "Expired Notification Cleanup"),
        ]
        for sweep, hour, name in jobs:
            scheduler.add_job(
                self._run_job,
                CronTrigger(hour=hour, minute=0, timezone=self.tz),
                args=[sweep],
                id=f"{sweep}_sweep",
                name=name,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )

        scheduler.start()
        self._is_running = True
        logger.info(
            f"CycleScheduler started with timezone {self.tz} "
            f"(reminders={settings.reminder_hour}:00, utilization={settings.utilization_check_hour}:00, "
            f"cleanup={settings.cleanup_hour}:00)"
        )

    def request_stop(self) -> None:
        """Ask running sweeps to exit before their next cycle"""
        self._stop_requested = True

    async def stop(self) -> None:
        """Stop the scheduler; a running sweep finishes its current cycle and exits."""
        self.request_stop()
        if self._scheduler and self._is_running:
            self._scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("CycleScheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def get_jobs_info(self) -> List[Dict[str, Any]]:
        if not self._scheduler:
            return []
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in self._scheduler.get_jobs()
        ]

    async def _run_job(self, sweep: str) -> None:
        """Cron entry point: the wall clock is read here and nowhere below"""
        as_of = datetime.now(timezone.utc)
        try:
            if sweep == REMINDER_SWEEP:
                await self.run_reminder_sweep(as_of)
            elif sweep == UTILIZATION_SWEEP:
                await self.run_utilization_sweep(as_of)
            else:
                await self.run_cleanup(as_of)
        except Exception as e:
            logger.error(f"Error running {sweep} sweep: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def run_reminder_sweep(self, as_of: datetime) -> SweepResult:
        """
        Ask the reminder policy about every open cycle and store at most one
        notification per (cycle, reminder type, day). Safe to run repeatedly.
        """
        as_of = ensure_utc(as_of)
        lock = self._sweep_locks[REMINDER_SWEEP]
        if lock.locked():
            return self._skipped(REMINDER_SWEEP, as_of)

        async with lock:
            start_time = time.time()
            result = SweepResult(sweep=REMINDER_SWEEP, as_of=as_of)

            cycle_ids = await asyncio.to_thread(self._open_cycle_ids)

            created_ids: List[UUID] = []
            for cycle_id in cycle_ids:
                if self._stop_requested:
                    result.cancelled = True
                    break
                result.scanned += 1
                try:
                    outcome, notification_id = await asyncio.to_thread(self._remind_cycle, cycle_id, as_of)
                except Exception as e:
                    # Isolate per-cycle failures
                    result.failures.append(_failure(cycle_id, e))
                    logger.error(f"Reminder failed for cycle {cycle_id}: {e}", extra={"cycle_id": str(cycle_id)})
                    continue

                if outcome == CREATED:
                    result.created += 1
                    created_ids.append(notification_id)
                elif outcome == DUPLICATE:
                    result.skipped_duplicates += 1

            result.failures.extend(await self.notifications.dispatch(created_ids))
            return self._finish(result, start_time)

    async def run_utilization_sweep(self, as_of: datetime) -> SweepResult:
        """Warn vendors using at least the configured share of their limit, once per cooldown window"""
        as_of = ensure_utc(as_of)
        lock = self._sweep_locks[UTILIZATION_SWEEP]
        if lock.locked():
            return self._skipped(UTILIZATION_SWEEP, as_of)

        async with lock:
            start_time = time.time()
            result = SweepResult(sweep=UTILIZATION_SWEEP, as_of=as_of)

            vendor_ids = await asyncio.to_thread(self._vendors_with_usage)

            created_ids: List[UUID] = []
            for vendor_id in vendor_ids:
                if self._stop_requested:
                    result.cancelled = True
                    break
                result.scanned += 1
                try:
                    notification_id = await asyncio.to_thread(self._check_utilization, vendor_id, as_of)
                except Exception as e:
                    result.failures.append(_failure(vendor_id, e))
                    logger.error(f"Utilization check failed for vendor {vendor_id}: {e}", extra={"vendor_id": vendor_id})
                    continue

                if notification_id is not None:
                    result.created += 1
                    created_ids.append(notification_id)

            result.failures.extend(await self.notifications.dispatch(created_ids))
            return self._finish(result, start_time)

    async def run_cleanup(self, as_of: datetime) -> SweepResult:
        """Delete expired notifications, then retry deliveries still pending"""
        as_of = ensure_utc(as_of)
        lock = self._sweep_locks[CLEANUP_SWEEP]
        if lock.locked():
            return self._skipped(CLEANUP_SWEEP, as_of)

        async with lock:
            start_time = time.time()
            result = SweepResult(sweep=CLEANUP_SWEEP, as_of=as_of)
            try:
                result.removed = await asyncio.to_thread(self.notifications.cleanup_expired, as_of)
            except Exception as e:
                result.failures.append(_failure("vendor_notification", e))
                logger.error(f"Notification cleanup failed: {e}")
            if not self._stop_requested:
                result.failures.extend(await self.notifications.dispatch_pending())
            return self._finish(result, start_time)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _open_cycle_ids(self) -> List[UUID]:
        with session_scope(self.session_factory) as db:
            return CycleRepository(db).get_open_cycle_ids()

    def _vendors_with_usage(self) -> List[str]:
        with session_scope(self.session_factory) as db:
            return [a.id for a in VendorAccountRepository(db).list_with_usage()]

    def _check_utilization(self, vendor_id: str, as_of: datetime) -> Optional[UUID]:
        """Record a high-utilization alert for one vendor in its own transaction"""
        with session_scope(self.session_factory) as db:
            account = VendorAccountRepository(db).get(vendor_id)
            if account is None:
                return None
            notification = self.notifications.record_high_utilization(db, account, as_of)
            return notification.id if notification is not None else None

    def _remind_cycle(self, cycle_id: UUID, as_of: datetime) -> Tuple[str, Optional[UUID]]:
        """Decide and store one cycle's reminder in its own transaction"""
        try:
            with session_scope(self.session_factory) as db:
                cycle = CycleRepository(db).get(cycle_id)
                # The cycle may have been repaid since the sweep listed it
                if (
                    cycle is None
                    or CycleStatus(cycle.cycle_status) not in OPEN_CYCLE_STATUSES
                    or cycle.outstanding_cents <= 0
                ):
                    return NOTHING_DUE, None

                snapshot = cycle.to_snapshot()
                days = days_elapsed(snapshot.cycle_start_date, as_of)
                descriptor = reminder_for(days, self.schedule)
                if descriptor is None:
                    return NOTHING_DUE, None

                quote = calculate_repayment_amount(snapshot, as_of, self.policy)
                message = render_reminder_message(descriptor, snapshot, quote, self.schedule, cycle.cycle_ref)
                notification = self.notifications.record(
                    db,
                    vendor_id=cycle.vendor_id,
                    notification_type=descriptor.reminder_type,
                    title=descriptor.title,
                    message=message,
                    priority=descriptor.priority,
                    metadata={
                        "cycle_id": str(cycle.id),
                        "cycle_ref": cycle.cycle_ref,
                        "days_elapsed": days,
                        "tier_id": quote.tier.tier_id,
                        "outstanding_cents": snapshot.outstanding_cents,
                        "final_payable_cents": quote.final_payable_cents,
                        "severe": descriptor.severe,
                    },
                    as_of=as_of,
                    cycle_id=cycle.id,
                )
                if notification is None:
                    return DUPLICATE, None
                return CREATED, notification.id
        except IntegrityError:
            # Another process stored the same (cycle, type, day) first
            return DUPLICATE, None

    def _skipped(self, sweep: str, as_of: datetime) -> SweepResult:
        logger.warning(f"{sweep} sweep already running, skipping overlapping trigger", extra={"sweep": sweep})
        return SweepResult(sweep=sweep, as_of=as_of, skipped_overlap=True)

    def _finish(self, result: SweepResult, start_time: float) -> SweepResult:
        duration = time.time() - start_time
        sweep_duration_histogram.labels(sweep=result.sweep).observe(duration)
        if result.failures:
            sweep_failure_counter.labels(sweep=result.sweep).inc(len(result.failures))
        log_sweep_completed(
            result.sweep,
            result.scanned,
            result.created,
            [f.model_dump() for f in result.failures],
            result.cancelled,
            duration * 1000,
        )
        return result
