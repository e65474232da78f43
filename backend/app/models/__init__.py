"""Database models for the creator payments service."""
from app.models.user import User
from app.models.creator_profile import CreatorProfile
from app.models.subscription import Subscription
from app.models.revenue_ledger import RevenueLedgerEntry
from app.models.failed_transfer import FailedTransfer
from app.models.creator_referral import CreatorReferral, CreatorReferralCommission, CreatorReferralPayout

__all__ = [
    "User",
    "CreatorProfile",
    "Subscription",
    "RevenueLedgerEntry",
    "FailedTransfer",
    "CreatorReferral",
    "CreatorReferralCommission",
    "CreatorReferralPayout",
]
