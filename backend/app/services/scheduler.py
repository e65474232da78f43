"""Scheduler service for background jobs using APScheduler."""
import logging
import os
import multiprocessing
from datetime import datetime, timedelta
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import redis.asyncio as redis

from app.config import settings
from app.database import AsyncSessionLocal
from app.services.payouts import retry_failed_transfers

logger = logging.getLogger(__name__)

# Initialize scheduler
scheduler = AsyncIOScheduler()

# Redis client for distributed locking across instances
redis_client = None


async def get_redis_client():
    """Get or create Redis client."""
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return redis_client


async def acquire_lock(lock_name: str, timeout: int = 300) -> bool:
    """
    Acquire a distributed lock using Redis.

    Args:
        lock_name: Name of the lock
        timeout: Lock timeout in seconds

    Returns:
        True if lock acquired, False otherwise
    """
    try:
        client = await get_redis_client()
        # Use SET with NX (only set if not exists) and EX (expiry)
        result = await client.set(f"creator-payments:lock:{lock_name}", "1", nx=True, ex=timeout)
        return result is not None
    except Exception as e:
        logger.error(f"Failed to acquire lock {lock_name}: {e}")
        return False


async def release_lock(lock_name: str):
    """Release a distributed lock."""
    try:
        client = await get_redis_client()
        await client.delete(f"creator-payments:lock:{lock_name}")
    except Exception as e:
        logger.error(f"Failed to release lock {lock_name}: {e}")


async def retry_failed_transfers_job():
    """Retry failed creator transfers; only one instance runs at a time."""
    lock_name = "retry_failed_transfers"

    if not await acquire_lock(lock_name):
        logger.info(f"Skipping {lock_name} - another instance is running")
        return

    try:
        async with AsyncSessionLocal() as db:
            await retry_failed_transfers(db)
    except Exception as e:
        logger.error(f"Error in retry_failed_transfers_job: {e}")
    finally:
        await release_lock(lock_name)


def start_scheduler():
    """Start the APScheduler with the payout retry job."""
    # With uvicorn --workers only SpawnProcess-1 runs the scheduler
    current_pid = os.getpid()
    current_process_name = multiprocessing.current_process().name

    if current_process_name not in ("SpawnProcess-1", "MainProcess"):
        logger.info(f"Skipping scheduler on {current_process_name} (PID: {current_pid})")
        return

    logger.info(f"Starting scheduler on {current_process_name} (PID: {current_pid})...")

    scheduler.add_job(
        retry_failed_transfers_job,
        trigger=IntervalTrigger(
            minutes=settings.TRANSFER_RETRY_INTERVAL_MINUTES,
            start_date=datetime.utcnow() + timedelta(minutes=1),
        ),
        id="retry_failed_transfers",
        name="Retry failed creator transfers",
        replace_existing=True
    )

    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler():
    """Stop the APScheduler."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
    else:
        logger.info("Scheduler was not running")
