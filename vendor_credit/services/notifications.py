"""Vendor notifications - stores what to tell vendors and hands it to the delivery webhook"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID
from sqlalchemy.orm import Session

from vendor_credit.config import settings
from vendor_credit.domain.exceptions import NotificationDeliveryError
from vendor_credit.domain.models import NotificationPriority
from vendor_credit.domain.reminders import format_money
from vendor_credit.infrastructure.clients.notifications import NotificationClient
from vendor_credit.infrastructure.database.models import VendorCreditAccount, VendorNotification
from vendor_credit.infrastructure.database.repositories import NotificationRepository
from vendor_credit.infrastructure.database.session import SessionFactory, SessionLocal, session_scope
from vendor_credit.infrastructure.observability.metrics import notification_counter
from vendor_credit.schemas import NotificationEnvelope, SweepFailure
from vendor_credit.utils.date_utils import day_window, ensure_utc, local_date

logger = logging.getLogger(__name__)

CREDIT_LIMIT_INCREASE = "credit_limit_increase"
HIGH_CREDIT_UTILIZATION = "high_credit_utilization"


def to_envelope(notification: VendorNotification) -> NotificationEnvelope:
    return NotificationEnvelope(
        vendor_id=notification.vendor_id,
        type=notification.notification_type,
        title=notification.title,
        message=notification.message,
        priority=notification.priority,
        metadata=notification.payload or {},
    )


class NotificationService:
    """
    Decides, stores and dispatches vendor notifications.

    Storing happens inside the caller's session so the dedup record commits
    together with the decision. Dispatch runs afterwards; a failed delivery
    never removes the stored notification.
    """

    def __init__(
        self,
        session_factory: SessionFactory = SessionLocal,
        client: Optional[NotificationClient] = None,
        timezone_name: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.client = client if client is not None else NotificationClient()
        self.timezone_name = timezone_name or settings.scheduler_timezone
        self.ttl = timedelta(days=settings.notification_ttl_days)

    def record(
        self,
        db: Session,
        vendor_id: str,
        notification_type: str,
        title: str,
        message: str,
        priority: NotificationPriority,
        metadata: Dict[str, Any],
        as_of: datetime,
        cycle_id: Optional[UUID] = None,
        dedup_since: Optional[datetime] = None,
        deduplicate: bool = True,
    ) -> Optional[VendorNotification]:
        """
        Store a notification unless an equivalent one already exists.

        Cycle notifications are unique per (cycle, type, local calendar day);
        pass `dedup_since` to widen the window for vendor-level alerts.
        Returns None for a duplicate.
        """
        as_of = ensure_utc(as_of)
        repo = NotificationRepository(db)

        if dedup_since is not None:
            since, until = dedup_since, None
        else:
            since, until = day_window(as_of, self.timezone_name)

        if deduplicate and repo.exists(vendor_id, notification_type, since, until, cycle_id=cycle_id):
            notification_counter.labels(notification_type=notification_type, outcome="duplicate").inc()
            return None

        notification = repo.create_notification(
            vendor_id=vendor_id,
            notification_type=notification_type,
            title=title,
            message=message,
            priority=priority.value,
            payload=metadata,
            created_at=as_of,
            notification_day=local_date(as_of, self.timezone_name),
            expires_at=as_of + self.ttl,
            cycle_id=cycle_id,
        )
        notification_counter.labels(notification_type=notification_type, outcome="created").inc()
        return notification

    def record_credit_limit_increase(
        self,
        db: Session,
        account: VendorCreditAccount,
        old_limit_cents: int,
        new_limit_cents: int,
        as_of: datetime,
    ) -> Optional[VendorNotification]:
        increase = new_limit_cents - old_limit_cents
        return self.record(
            db,
            vendor_id=account.id,
            notification_type=CREDIT_LIMIT_INCREASE,
            title="Credit Limit Increased!",
            message=(
                f"Congratulations! Your credit limit has been increased from {format_money(old_limit_cents)} "
                f"to {format_money(new_limit_cents)} (+{format_money(increase)}). "
                f"Your available credit is now {format_money(account.available_credit_cents)}."
            ),
            priority=NotificationPriority.HIGH,
            metadata={
                "old_limit_cents": old_limit_cents,
                "new_limit_cents": new_limit_cents,
                "increase_cents": increase,
                "available_credit_cents": account.available_credit_cents,
            },
            as_of=as_of,
            deduplicate=False,
        )

    def record_high_utilization(
        self,
        db: Session,
        account: VendorCreditAccount,
        as_of: datetime,
        threshold_percent: Optional[float] = None,
        cooldown_days: Optional[int] = None,
    ) -> Optional[VendorNotification]:
        """High-utilization warning, at most once per cooldown window per vendor"""
        threshold = threshold_percent if threshold_percent is not None else settings.high_utilization_percent
        cooldown = cooldown_days if cooldown_days is not None else settings.utilization_warning_cooldown_days
        if account.credit_limit_cents <= 0:
            return None
        utilization = account.credit_used_cents / account.credit_limit_cents * 100
        if utilization < threshold:
            return None
        as_of = ensure_utc(as_of)

        return self.record(
            db,
            vendor_id=account.id,
            notification_type=HIGH_CREDIT_UTILIZATION,
            title="High Credit Utilization Alert",
            message=(
                f"You're using {utilization:.1f}% of your credit limit. "
                f"Available credit: {format_money(account.available_credit_cents)}. "
                "Consider making a repayment to maintain purchasing flexibility."
            ),
            priority=NotificationPriority.HIGH if utilization >= 90 else NotificationPriority.NORMAL,
            metadata={
                "utilization_rate": round(utilization, 2),
                "threshold_percent": threshold,
                "credit_limit_cents": account.credit_limit_cents,
                "credit_used_cents": account.credit_used_cents,
                "available_credit_cents": account.available_credit_cents,
            },
            as_of=as_of,
            dedup_since=as_of - timedelta(days=cooldown),
        )

    async def dispatch(self, notification_ids: Sequence[UUID]) -> List[SweepFailure]:
        """
        Hand stored notifications to the webhook and track delivery state.

        Returns one failure entry per notification that could not be delivered.
        """
        if not notification_ids:
            return []

        pending = await asyncio.to_thread(self._load_envelopes, notification_ids)

        failures: List[SweepFailure] = []
        for notification_id, envelope in pending:
            delivered = True
            try:
                await self.client.send(envelope.model_dump())
            except NotificationDeliveryError as e:
                delivered = False
                logger.error(
                    f"Notification delivery failed: {e.message}",
                    extra={"notification_id": str(notification_id), "vendor_id": envelope.vendor_id},
                )
                failures.append(SweepFailure(entity_id=str(notification_id), code=e.code, message=e.message))

            await asyncio.to_thread(self._mark_delivery, notification_id, delivered)
        return failures

    async def dispatch_pending(self, max_attempts: Optional[int] = None) -> List[SweepFailure]:
        """Retry every stored notification that has not been delivered yet"""
        if max_attempts is None:
            max_attempts = settings.webhook_max_retries
        ids = await asyncio.to_thread(self._undelivered_ids, max_attempts)
        return await self.dispatch(ids)

    def cleanup_expired(self, as_of: datetime) -> int:
        """Delete stored notifications whose expiry has passed"""
        with session_scope(self.session_factory) as db:
            removed = NotificationRepository(db).delete_expired(ensure_utc(as_of))
        logger.info("Expired notifications removed", extra={"removed": removed})
        return removed

    def _load_envelopes(self, notification_ids: Sequence[UUID]) -> List[Tuple[UUID, NotificationEnvelope]]:
        with session_scope(self.session_factory) as db:
            return [(n.id, to_envelope(n)) for n in NotificationRepository(db).get_by_ids(notification_ids)]

    def _undelivered_ids(self, max_attempts: int) -> List[UUID]:
        with session_scope(self.session_factory) as db:
            return [n.id for n in NotificationRepository(db).get_undelivered(max_attempts)]

    def _mark_delivery(self, notification_id: UUID, delivered: bool) -> None:
        with session_scope(self.session_factory) as db:
            notification = db.get(VendorNotification, notification_id)
            if notification is None:
                return
            notification.delivery_attempts += 1
            if delivered:
                notification.delivery_status = "delivered"
                notification.delivered_at = datetime.now(timezone.utc)
            else:
                notification.delivery_status = "failed"
