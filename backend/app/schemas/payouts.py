"""Pydantic schemas for the failed-transfer operator endpoints."""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class FailedTransferResponse(BaseModel):
    """A transfer that failed and may still need paying out."""
    uuid: str
    creator_id: str
    subscription_id: str
    stripe_invoice_id: str
    amount: int = Field(..., description="Amount in minor units")
    currency: str
    destination_account_id: str
    transfer_group: str
    error_message: str
    error_type: Optional[str] = None
    error_code: Optional[str] = None
    retry_count: int
    last_retry_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    stripe_transfer_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class FailedTransferListResponse(BaseModel):
    """Schema for paginated failed transfer list response."""
    items: list[FailedTransferResponse]
    total: int
    skip: int
    limit: int


class RetrySummaryResponse(BaseModel):
    """Result of one retry pass."""
    processed: int
    successful: int
    failed: int
    skipped: int
