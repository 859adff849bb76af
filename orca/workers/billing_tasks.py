"""Scheduled billing jobs.

Each task opens its own engine on a fresh event loop and walks every active
clinic. A per-clinic Redis lock keeps overlapping beat runs from charging the
same installment twice.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from orca.core.config import settings
from orca.domain.billing.recurring import RecurringBillingService
from orca.domain.billing.service import CreditService
from orca.domain.clinics.repository import ClinicRepository
from orca.infrastructure.payments import get_payment_gateway
from orca.infrastructure.redis import LockService, RedisManager
from orca.workers.celery_app import celery_app

ClinicJob = Callable[[AsyncSession, str], Awaitable[Dict[str, Any]]]


async def run_for_clinics(job_name: str, job: ClinicJob) -> Dict[str, Any]:
    """Run ``job`` once per active clinic, skipping clinics another worker holds"""
    engine = create_async_engine(settings.DATABASE_URL, poolclass=pool.NullPool)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    redis_manager = RedisManager()
    await redis_manager.connect(settings.REDIS_URL)
    locks = LockService(redis_manager.client)

    results: Dict[str, Any] = {}
    try:
        async with session_factory() as db:
            clinic_ids = await ClinicRepository(db).list_active_ids()

        for clinic_id in clinic_ids:
            lock_key = f"{job_name}:{clinic_id}"
            async with locks.hold(lock_key, settings.BILLING_LOCK_TIMEOUT_SECONDS) as acquired:
                if not acquired:
                    logger.warning(f"{job_name}: clinic {clinic_id} is locked by another worker, skipping")
                    results[clinic_id] = {"skipped": True}
                    continue
                async with session_factory() as db:
                    results[clinic_id] = await job(db, clinic_id)
    finally:
        await redis_manager.disconnect()
        await engine.dispose()
    return results


async def _process_due(db: AsyncSession, clinic_id: str) -> Dict[str, Any]:
    summary = await RecurringBillingService(db, get_payment_gateway()).process_due_payments(clinic_id)
    summary.pop("results", None)
    return summary


async def _expire(db: AsyncSession, clinic_id: str) -> Dict[str, Any]:
    return {"expired": await CreditService(db).expire_credits(clinic_id)}


@celery_app.task(bind=True, max_retries=3, name="orca.workers.billing_tasks.process_due_scheduled_payments")
def process_due_scheduled_payments(self):
    """Charge due payment plan installments for every clinic"""
    logger.info("Processing due scheduled payments")
    try:
        results = asyncio.run(run_for_clinics("process-due-payments", _process_due))
    except Exception as exc:
        logger.exception("Recurring billing run failed")
        raise self.retry(exc=exc, countdown=60 * 2 ** self.request.retries)
    logger.info(f"Recurring billing finished for {len(results)} clinics")
    return results


@celery_app.task(bind=True, max_retries=3, name="orca.workers.billing_tasks.expire_credits")
def expire_credits(self):
    """Expire credits whose expiry date has passed"""
    try:
        results = asyncio.run(run_for_clinics("expire-credits", _expire))
    except Exception as exc:
        logger.exception("Credit expiry run failed")
        raise self.retry(exc=exc, countdown=60 * 2 ** self.request.retries)
    logger.info(f"Credit expiry finished: {sum(r.get('expired', 0) for r in results.values())} expired")
    return results
