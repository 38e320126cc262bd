import logging
from datetime import timedelta
from typing import Any

from arq import cron

from recovery.core.config import settings
from recovery.core.database import SessionLocal
from recovery.models.shared import utc_now
from recovery.services.dunning_retry_engine import DunningRetryEngine
from recovery.services.payment_client import get_payment_client
from recovery.services.payment_failure_detector import PaymentFailureDetector
from recovery.tasks import redis_settings

logger = logging.getLogger(__name__)


async def process_dunning_campaigns_task(ctx: dict[str, Any]) -> int:
    """Background task: run the configured actions for every due dunning campaign.

    Runs every 15 minutes. Campaigns not started before the batch time budget
    runs out stay due and are picked up by the next run.
    """
    db = SessionLocal()
    try:
        engine = DunningRetryEngine(db, payment_client=get_payment_client())
        deadline = utc_now() + timedelta(seconds=settings.DUNNING_BATCH_TIME_BUDGET_SECONDS)
        result = await engine.process_due_campaigns(
            limit=settings.DUNNING_BATCH_LIMIT, deadline=deadline
        )
        if result.total > 0:
            logger.info(
                "Processed %d dunning campaigns (%d recovered, %d failed, %d errors)",
                result.total,
                result.recovered,
                result.failed,
                result.errors,
            )
        return result.total - result.deferred
    finally:
        db.close()


async def detect_payment_failures_task(ctx: dict[str, Any]) -> int:
    """Background task: open campaigns for recently failed subscription payments.

    Runs every 10 minutes.
    """
    db = SessionLocal()
    try:
        detector = PaymentFailureDetector(db)
        lookback = timedelta(minutes=settings.DUNNING_DETECTION_LOOKBACK_MINUTES)
        result = detector.detect_and_create_campaigns(lookback)
        if result.campaigns_created > 0:
            logger.info("Created %d dunning campaigns", result.campaigns_created)
        return result.campaigns_created
    finally:
        db.close()


async def monitor_failed_payments_task(ctx: dict[str, Any]) -> int:
    """Background task: open campaigns for failed one-off payments.

    Runs hourly over the last hour plus the detection lookback.
    """
    db = SessionLocal()
    try:
        engine = DunningRetryEngine(db, payment_client=get_payment_client())
        lookback = timedelta(hours=1, minutes=settings.DUNNING_DETECTION_LOOKBACK_MINUTES)
        result = engine.monitor_failed_payments(lookback)
        if result.campaigns_created > 0:
            logger.info("Created %d payment dunning campaigns", result.campaigns_created)
        return result.campaigns_created
    finally:
        db.close()


class WorkerSettings:
    functions = [
        process_dunning_campaigns_task,
        detect_payment_failures_task,
        monitor_failed_payments_task,
    ]
    cron_jobs = [
        cron(process_dunning_campaigns_task, minute={0, 15, 30, 45}),
        cron(detect_payment_failures_task, minute={0, 10, 20, 30, 40, 50}),
        cron(monitor_failed_payments_task, minute={5}),  # hourly
    ]
    redis_settings = redis_settings
