"""Pytest fixtures for testing"""

import os

# Settings are read at import time; keep tests off Postgres and off real backoff delays
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("WEBHOOK_BACKOFF_BASE", "0")
os.environ.setdefault("WEBHOOK_MAX_RETRIES", "3")

import pytest
from datetime import datetime, timedelta, timezone
from typing import Generator
from unittest.mock import AsyncMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from vendor_credit.domain.tiers import TierPolicy
from vendor_credit.infrastructure.clients.notifications import NotificationClient
from vendor_credit.infrastructure.database.models import Base
from vendor_credit.infrastructure.locks import KeyedLockRegistry
from vendor_credit.services.accounts import VendorAccountService
from vendor_credit.services.ledger import CreditCycleService
from vendor_credit.services.notifications import NotificationService
from vendor_credit.services.performance import PerformanceService
from vendor_credit.services.scheduler import CycleScheduler

# 04:30 UTC is 10:00 in Asia/Kolkata, so "day N" never straddles a local midnight
CYCLE_START = datetime(2024, 1, 1, 4, 30, tzinfo=timezone.utc)
SCHEDULER_TZ = "Asia/Kolkata"

# 500,000 currency units
DEFAULT_LIMIT_CENTS = 50_000_000


def day(n: int, hours: int = 0) -> datetime:
    """Moment `n` whole days after CYCLE_START"""
    return CYCLE_START + timedelta(days=n, hours=hours)


@pytest.fixture
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """File-backed SQLite so worker threads share one database"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'vendor_credit.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def policy() -> TierPolicy:
    return TierPolicy.default()


@pytest.fixture
def locks() -> KeyedLockRegistry:
    return KeyedLockRegistry(timeout_seconds=10)


@pytest.fixture
def notification_client() -> AsyncMock:
    client = AsyncMock(spec=NotificationClient)
    client.send.return_value = None
    return client


@pytest.fixture
def notifications(session_factory, notification_client) -> NotificationService:
    return NotificationService(session_factory, client=notification_client, timezone_name=SCHEDULER_TZ)


@pytest.fixture
def ledger(session_factory, policy, locks) -> CreditCycleService:
    return CreditCycleService(session_factory, policy=policy, locks=locks)


@pytest.fixture
def accounts(session_factory, locks, notifications) -> VendorAccountService:
    return VendorAccountService(session_factory, locks=locks, notifications=notifications)


@pytest.fixture
def performance(session_factory, accounts) -> PerformanceService:
    return PerformanceService(session_factory, accounts=accounts)


@pytest.fixture
def scheduler(session_factory, notifications, policy) -> CycleScheduler:
    return CycleScheduler(session_factory, notifications=notifications, policy=policy, timezone_name=SCHEDULER_TZ)


@pytest.fixture
def vendor(accounts):
    """Approved vendor with a 500,000 credit limit"""
    return accounts.create_vendor_account("vendor_1", "Acme Supplies", DEFAULT_LIMIT_CENTS)


@pytest.fixture
def cycle(ledger, vendor):
    """Open cycle with 100,000 principal started at CYCLE_START"""
    return ledger.open_cycle(vendor.vendor_id, 10_000_000, CYCLE_START)
