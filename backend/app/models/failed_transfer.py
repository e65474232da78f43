"""Failed transfer model: payouts Stripe rejected, kept for retry."""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import String, Integer, BigInteger, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base


class FailedTransfer(Base):
    """A creator transfer that failed after the revenue was already recorded.

    Written once by the payout initiator; only the retry bookkeeping
    columns change afterwards.
    """

    __tablename__ = "failed_transfers"

    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    creator_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.uuid"), nullable=False)
    subscription_id: Mapped[str] = mapped_column(String(36), ForeignKey("subscriptions.uuid"), nullable=False)
    stripe_invoice_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Transfer request
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # minor units
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    destination_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    transfer_group: Mapped[str] = mapped_column(String(255), nullable=False)

    # Error detail from Stripe
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    error_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Retry bookkeeping
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_retry_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    stripe_transfer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_failed_transfer_creator_id", "creator_id"),
        Index("idx_failed_transfer_resolved_at", "resolved_at"),
    )

    def __repr__(self) -> str:
        return f"<FailedTransfer(uuid={self.uuid}, invoice={self.stripe_invoice_id}, retry_count={self.retry_count})>"
