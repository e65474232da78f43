"""Creator referral program: who referred whom, commissions and payouts."""
from datetime import datetime
from decimal import Decimal
from uuid import uuid4
from sqlalchemy import String, Numeric, BigInteger, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base


REFERRAL_STATUS_PENDING = "pending"
REFERRAL_STATUS_ACTIVE = "active"
REFERRAL_STATUS_EXPIRED = "expired"

PAYOUT_STATUS_PENDING = "pending"


class CreatorReferral(Base):
    """A creator who signed up through another creator's referral code.

    While active and unexpired, the referrer earns ``commission_percentage``
    of the referred creator's earnings.
    """

    __tablename__ = "creator_referrals"

    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    referrer_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.uuid"), nullable=False)
    referred_creator_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.uuid"), nullable=False)
    referral_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    status: Mapped[str] = mapped_column(String(20), default=REFERRAL_STATUS_PENDING, nullable=False)
    commission_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Running totals in minor units
    total_earnings_tracked: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_commission_earned: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    last_commission_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_creator_referral_referred_creator_id", "referred_creator_id"),
        Index("idx_creator_referral_referrer_id", "referrer_id"),
    )

    def __repr__(self) -> str:
        return f"<CreatorReferral(referrer={self.referrer_id}, referred={self.referred_creator_id}, status={self.status})>"


class CreatorReferralPayout(Base):
    """A batch of unpaid commissions owed to one referrer."""

    __tablename__ = "creator_referral_payouts"

    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    referrer_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.uuid"), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=PAYOUT_STATUS_PENDING, nullable=False)
    stripe_transfer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class CreatorReferralCommission(Base):
    """Commission owed on one payment ledger entry.

    ``ledger_entry_id`` is unique, so a payment earns its referrer at most
    one commission however often the invoice is redelivered.
    """

    __tablename__ = "creator_referral_commissions"

    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    creator_referral_id: Mapped[str] = mapped_column(String(36), ForeignKey("creator_referrals.uuid"), nullable=False)
    ledger_entry_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("revenue_ledger.uuid"), nullable=False, unique=True
    )
    stripe_invoice_id: Mapped[str] = mapped_column(String(255), nullable=False)
    subscription_id: Mapped[str] = mapped_column(String(36), ForeignKey("subscriptions.uuid"), nullable=False)
    creator_earnings_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    commission_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    included_in_payout_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("creator_referral_payouts.uuid"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_referral_commission_referral_id", "creator_referral_id"),
    )
