"""Revenue ledger: one immutable row per captured invoice or refund."""
from datetime import datetime
from uuid import uuid4

from sqlalchemy import String, BigInteger, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


ENTRY_PAYMENT = "payment"
ENTRY_REFUND = "refund"


class RevenueLedgerEntry(Base):
    """Records how a captured amount was split.

    Created by the invoice.payment_succeeded and charge.refunded webhook
    handlers. All amounts are stored in minor currency units and satisfy
    ``gross_amount == processor_fee + platform_commission + creator_earning``.
    Refunds are separate rows with negative amounts; rows are never edited.

    ``idempotency_key`` is the Stripe invoice id for payment entries, which
    makes the invoice id unique among payment postings at the database level.
    """
    __tablename__ = "revenue_ledger"

    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    entry_type: Mapped[str] = mapped_column(String(20), nullable=False, default=ENTRY_PAYMENT)
    subscription_id: Mapped[str] = mapped_column(String(36), ForeignKey("subscriptions.uuid"), nullable=False)
    creator_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.uuid"), nullable=False)
    stripe_invoice_id: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    gross_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    processor_fee: Mapped[int] = mapped_column(BigInteger, nullable=False)
    platform_commission: Mapped[int] = mapped_column(BigInteger, nullable=False)
    creator_earning: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    subscription = relationship("Subscription", foreign_keys=[subscription_id])
    creator = relationship("User", foreign_keys=[creator_id])

    __table_args__ = (
        Index("idx_revenue_ledger_creator_id", "creator_id"),
        Index("idx_revenue_ledger_invoice_id", "stripe_invoice_id"),
    )

    def __repr__(self) -> str:
        return f"<RevenueLedgerEntry(uuid={self.uuid}, invoice={self.stripe_invoice_id}, type={self.entry_type})>"
