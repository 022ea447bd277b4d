from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.audit.dependencies.identity import get_identity
from app.features.usage.schemas.usage import Identity
from app.features.usage.services.quota_ledger import QuotaLedger
from app.platform.db.session import get_db
from app.platform.response import api_response

router = APIRouter(prefix="/usage", tags=["usage"])

_ledger: Optional[QuotaLedger] = None


def get_quota_ledger() -> QuotaLedger:
    global _ledger
    if _ledger is None:
        _ledger = QuotaLedger()
    return _ledger


@router.get(
    "",
    response_model=dict,
    status_code=status.HTTP_200_OK,
    summary="Current usage",
    description="Plan, audits used and limit for the caller (guests are metered by IP)",
)
async def get_usage(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    ledger: QuotaLedger = Depends(get_quota_ledger),
):
    usage = await ledger.snapshot(db, identity)
    return api_response(data=usage, message="Usage retrieved successfully")
