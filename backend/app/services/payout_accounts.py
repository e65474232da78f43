"""Keep creator payout flags in step with their Stripe Connect account."""
import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.creator_profile import CreatorProfile
from app.schemas.webhooks import AccountPayload

logger = logging.getLogger(__name__)


async def sync_payout_account(db: AsyncSession, account: AccountPayload, state) -> str:
    """Copy ``payouts_enabled`` and ``details_submitted`` onto the creator profile.

    Accounts with no matching profile are acknowledged and ignored.
    """
    result = await db.execute(
        update(CreatorProfile)
        .where(CreatorProfile.stripe_account_id == account.id)
        .values(
            payouts_enabled=account.payouts_enabled,
            onboarding_complete=account.details_submitted,
        )
    )
    if result.rowcount == 0:
        await db.rollback()
        logger.info(f"Connect account {account.id} is not linked to a creator, ignoring")
        return "ignored"

    await db.commit()
    state.mark_committed()
    logger.info(
        f"Creator payout account synced: account={account.id} "
        f"payouts_enabled={account.payouts_enabled} onboarding_complete={account.details_submitted}"
    )
    return "processed"
