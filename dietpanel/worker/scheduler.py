"""
Maintenance scheduler.

Run with ``python -m dietpanel.worker.scheduler`` next to the API process.
"""

import logging
from datetime import timezone

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from dietpanel.core.config import settings
from dietpanel.core.db import engine
from dietpanel.core.redis import create_redis
from dietpanel.worker.tasks import purge_expired

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main() -> None:
    redis_client = create_redis(settings)
    scheduler = BlockingScheduler(timezone=timezone.utc)
    scheduler.add_job(
        purge_expired,
        CronTrigger(minute=15),
        kwargs={"engine": engine, "redis_client": redis_client},
        id="purge_expired",
        replace_existing=True,
    )
    logger.info("Scheduler started. Purge job runs at minute 15 of every hour (UTC).")
    scheduler.start()


if __name__ == "__main__":
    main()
