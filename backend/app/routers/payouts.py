"""Operator endpoints for inspecting and retrying failed creator transfers."""
from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import require_ops_token
from app.database import get_db
from app.models.failed_transfer import FailedTransfer
from app.schemas.payouts import FailedTransferListResponse, RetrySummaryResponse
from app.services.payouts import retry_failed_transfers

router = APIRouter(dependencies=[Depends(require_ops_token)])


@router.get("/api/ops/failed-transfers", response_model=FailedTransferListResponse)
async def list_failed_transfers(
    include_resolved: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db)
):
    """List failed transfers, oldest first (unresolved only by default)."""
    conditions = []
    if not include_resolved:
        conditions.append(FailedTransfer.resolved_at.is_(None))

    # Count total
    count_result = await db.execute(
        select(func.count(FailedTransfer.uuid)).where(*conditions)
    )
    total = count_result.scalar()

    # Fetch paginated
    result = await db.execute(
        select(FailedTransfer)
        .where(*conditions)
        .order_by(FailedTransfer.created_at)
        .offset(skip)
        .limit(limit)
    )
    items = result.scalars().all()

    return {
        "items": items,
        "total": total,
        "skip": skip,
        "limit": limit
    }


@router.post("/api/ops/failed-transfers/retry", response_model=RetrySummaryResponse)
async def retry_transfers_now(db: AsyncSession = Depends(get_db)):
    """Run one retry pass immediately instead of waiting for the scheduler."""
    summary = await retry_failed_transfers(db)
    return RetrySummaryResponse(**asdict(summary))
