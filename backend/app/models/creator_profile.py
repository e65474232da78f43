"""Creator profile: payout account state and denormalized counters."""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import String, Integer, BigInteger, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.database import Base


class CreatorProfile(Base):
    """Payout-relevant subset of a creator's profile.

    ``subscriber_count`` and ``lifetime_earnings_cents`` are only ever
    changed with single-statement increments, see
    :mod:`app.services.earnings` and :mod:`app.services.subscription_lifecycle`.
    """

    __tablename__ = "creator_profiles"

    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.uuid"), nullable=False, unique=True)

    # Stripe Connect
    stripe_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    payouts_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    onboarding_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Counters
    subscriber_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_earnings_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        CheckConstraint("subscriber_count >= 0", name="ck_creator_profiles_subscriber_count"),
    )

    @property
    def can_receive_transfers(self) -> bool:
        return bool(self.stripe_account_id) and bool(self.payouts_enabled)

    def __repr__(self) -> str:
        return f"<CreatorProfile(user_id={self.user_id}, stripe_account_id={self.stripe_account_id}, payouts_enabled={self.payouts_enabled})>"
