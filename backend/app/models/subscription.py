"""Subscription model for creator subscriptions billed through Stripe."""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import String, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.database import Base


# Local status vocabulary
STATUS_INCOMPLETE = "incomplete"
STATUS_ACTIVE = "active"
STATUS_PAST_DUE = "past_due"
STATUS_CANCELLED = "cancelled"


class Subscription(Base):
    """A subscriber's paid subscription to a creator.

    Exactly one row per Stripe subscription id. Rows are never deleted so
    billing history stays intact; cancellation is a terminal status.
    """

    __tablename__ = "subscriptions"

    # Primary key
    uuid: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Subscription info
    status: Mapped[str] = mapped_column(String(50), default=STATUS_ACTIVE, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Stripe info
    stripe_subscription_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    # Foreign keys
    subscriber_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.uuid"), nullable=False)
    creator_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.uuid"), nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    subscriber: Mapped["User"] = relationship("User", foreign_keys=[subscriber_id])
    creator: Mapped["User"] = relationship("User", foreign_keys=[creator_id])

    # Indexes
    __table_args__ = (
        Index("idx_subscription_subscriber_id", "subscriber_id"),
        Index("idx_subscription_creator_id", "creator_id"),
        Index("idx_subscription_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Subscription(uuid={self.uuid}, stripe_subscription_id={self.stripe_subscription_id}, status={self.status})>"
