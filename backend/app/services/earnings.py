"""Atomic counter updates on the creator profile."""
import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.creator_profile import CreatorProfile
from app.services.errors import CreatorProfileNotFoundError

logger = logging.getLogger(__name__)


async def add_creator_earnings(db: AsyncSession, creator_id: str, amount: int) -> None:
    """
    Add ``amount`` minor units to the creator's lifetime earnings.

    Issued as a single ``UPDATE ... SET x = x + n`` so concurrent webhook
    deliveries for the same creator cannot lose an update. Does not commit.
    """
    result = await db.execute(
        update(CreatorProfile)
        .where(CreatorProfile.user_id == creator_id)
        .values(lifetime_earnings_cents=CreatorProfile.lifetime_earnings_cents + amount)
    )
    if result.rowcount == 0:
        raise CreatorProfileNotFoundError(creator_id)
    logger.info(f"Creator earnings accrued: creator={creator_id} amount={amount}")


async def increment_subscriber_count(db: AsyncSession, creator_id: str) -> None:
    """Add one subscriber to the creator's denormalized count. Does not commit."""
    result = await db.execute(
        update(CreatorProfile)
        .where(CreatorProfile.user_id == creator_id)
        .values(subscriber_count=CreatorProfile.subscriber_count + 1)
    )
    if result.rowcount == 0:
        raise CreatorProfileNotFoundError(creator_id)


async def decrement_subscriber_count(db: AsyncSession, creator_id: str) -> None:
    """Remove one subscriber, never going below zero. Does not commit."""
    result = await db.execute(
        update(CreatorProfile)
        .where(CreatorProfile.user_id == creator_id, CreatorProfile.subscriber_count > 0)
        .values(subscriber_count=CreatorProfile.subscriber_count - 1)
    )
    if result.rowcount == 0:
        logger.warning(f"Subscriber count for creator {creator_id} not decremented (missing profile or already zero)")
