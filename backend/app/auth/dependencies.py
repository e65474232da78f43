"""FastAPI dependencies for authenticating operator requests."""
import hmac
from typing import Optional
from fastapi import Header, HTTPException, status
from app.config import settings


async def require_ops_token(x_ops_token: Optional[str] = Header(None)) -> None:
    """
    FastAPI dependency guarding the operator endpoints.

    Raises 503 when no OPS_API_TOKEN is configured (endpoints disabled)
    and 403 when the X-Ops-Token header is missing or wrong.
    """
    if not settings.OPS_API_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Operator endpoints are disabled"
        )

    if x_ops_token is None or not hmac.compare_digest(x_ops_token, settings.OPS_API_TOKEN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid operator token"
        )
