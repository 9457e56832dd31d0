"""Background worker - runs the cycle scheduler and exposes Prometheus metrics"""

import asyncio
import signal
import logging
from prometheus_client import start_http_server

from vendor_credit.config import settings
from vendor_credit.infrastructure.database.models import Base
from vendor_credit.infrastructure.database.session import engine
from vendor_credit.infrastructure.observability.logging import setup_logging
from vendor_credit.services.scheduler import CycleScheduler

logger = logging.getLogger(__name__)


async def run() -> None:
    scheduler = CycleScheduler()
    await scheduler.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()


def main() -> None:
    setup_logging(settings.log_level)
    start_http_server(settings.metrics_port)

    # Create tables if they don't exist
    Base.metadata.create_all(bind=engine)

    logger.info(f"{settings.service_name} worker starting (metrics on :{settings.metrics_port})")
    asyncio.run(run())


if __name__ == "__main__":
    main()
