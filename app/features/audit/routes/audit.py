from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.audit.dependencies.identity import get_identity, require_user
from app.features.audit.models.audit_record import AuditRecord
from app.features.audit.schemas.audit import (
    AuditDone,
    AuditFailed,
    AuditHistoryItem,
    AuditMode,
    AuditOutcome,
    AuditRejected,
    AuditRequest,
    FailureReason,
    UploadedFile,
)
from app.features.audit.services.dispatcher import AuditDispatcher
from app.features.usage.schemas.usage import Identity
from app.platform.db.session import get_db
from app.platform.logger import get_logger
from app.platform.response import api_response

logger = get_logger(__name__)

router = APIRouter(prefix="/audit", tags=["audit"])

HISTORY_LIMIT = 20

FAILURE_STATUS = {
    FailureReason.no_input: status.HTTP_400_BAD_REQUEST,
    FailureReason.fetch_failed: status.HTTP_400_BAD_REQUEST,
    FailureReason.capture_failed: status.HTTP_502_BAD_GATEWAY,
    FailureReason.inference_failed: status.HTTP_502_BAD_GATEWAY,
    FailureReason.malformed_response: status.HTTP_502_BAD_GATEWAY,
    FailureReason.timeout: status.HTTP_504_GATEWAY_TIMEOUT,
}

_dispatcher: Optional[AuditDispatcher] = None


def get_dispatcher() -> AuditDispatcher:
    # One dispatcher (and one inference client) per process
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = AuditDispatcher()
    return _dispatcher


def outcome_response(outcome: AuditOutcome):
    """Serialize a job outcome into the standard envelope."""
    if not isinstance(outcome, (AuditDone, AuditRejected, AuditFailed)):
        raise TypeError(f"Unknown audit outcome: {type(outcome).__name__}")
    data = outcome.model_dump(mode="json")

    if isinstance(outcome, AuditDone):
        return api_response(data=data, message="Audit completed", status_code=status.HTTP_200_OK)

    if isinstance(outcome, AuditRejected):
        if outcome.plan == "guest":
            message = "Guest audit limit reached. Sign in to run more audits."
        else:
            message = f"Audit limit reached for the {outcome.plan} plan ({outcome.used}/{outcome.limit}). Upgrade to continue."
        return api_response(data=data, message=message, status_code=status.HTTP_403_FORBIDDEN)

    return api_response(
        data=data,
        message=outcome.detail,
        status_code=FAILURE_STATUS.get(outcome.reason, status.HTTP_500_INTERNAL_SERVER_ERROR),
    )


@router.post(
    "",
    response_model=dict,
    summary="Run a UX audit",
    description="Audit uploaded screenshots, a single URL, or a small same-domain crawl",
)
async def run_audit(
    file: Optional[List[UploadFile]] = File(None),
    framework: str = Form("nielsen"),
    mode: AuditMode = Form(AuditMode.upload),
    url: Optional[str] = Form(None),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    dispatcher: AuditDispatcher = Depends(get_dispatcher),
):
    uploads = []
    for upload in file or []:
        uploads.append(UploadedFile(
            filename=upload.filename or "upload",
            content_type=upload.content_type,
            data=await upload.read(),
        ))

    auth_status = "authenticated" if identity.is_authenticated else "guest"
    logger.info(f"Audit request: mode={mode.value}, framework={framework}, files={len(uploads)}, url={url}, auth_status={auth_status}")

    outcome = await dispatcher.dispatch(
        db,
        AuditRequest(identity=identity, mode=mode, framework=framework, url=url, files=uploads),
    )
    return outcome_response(outcome)


@router.get(
    "/history",
    response_model=dict,
    summary="Recent audits",
    description="The authenticated user's most recent audits, newest first",
)
async def audit_history(
    identity: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(AuditRecord)
        .where(AuditRecord.user_id == identity.user_id)
        .order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc())
        .limit(HISTORY_LIMIT)
    )
    records = result.scalars().all()

    return api_response(
        data={"history": [AuditHistoryItem.model_validate(record) for record in records]},
        message="Audit history retrieved successfully",
    )
