import asyncio
import uuid
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.audit.models.audit_record import AuditRecord
from app.features.audit.schemas.audit import (
    AuditDone,
    AuditFailed,
    AuditJob,
    AuditMode,
    AuditOutcome,
    AuditRejected,
    AuditRequest,
    CapturedImage,
    CaptureKind,
    CaptureTarget,
    FailureReason,
    JobState,
    NormalizedResult,
    UsageAfter,
)
from app.features.audit.services.capture_service import CaptureService
from app.features.audit.services.crawler import CrawlerService
from app.features.audit.services.inference import InferenceClient
from app.features.audit.services.result_normalizer import normalize
from app.features.audit.utils.prompts import build_audit_prompt
from app.features.usage.schemas.usage import UsageSnapshot
from app.features.usage.services.quota_ledger import QuotaLedger
from app.platform.config import settings
from app.platform.exceptions import AuditError
from app.platform.logger import get_logger
from app.platform.utils.url_validator import validate_url

logger = get_logger(__name__)

# Crawl captures run side by side; never more than the crawl page cap
MAX_CONCURRENT_CAPTURES = 3


class AuditDispatcher:
    """
    Runs one audit job end to end.

    admitted -> capturing -> inferring -> normalizing -> committing -> done,
    or rejected / failed. Quota is only committed once a usable result
    exists, so failed jobs never cost the caller an audit.
    """

    def __init__(
        self,
        ledger: Optional[QuotaLedger] = None,
        capture_service: Optional[CaptureService] = None,
        crawler: Optional[CrawlerService] = None,
        inference: Optional[InferenceClient] = None,
        job_timeout: Optional[float] = None,
    ):
        self.ledger = ledger or QuotaLedger()
        self.capture_service = capture_service or CaptureService()
        self.crawler = crawler or CrawlerService()
        self.inference = inference or InferenceClient()
        self.job_timeout = job_timeout or settings.AUDIT_JOB_TIMEOUT_SECONDS

    async def dispatch(self, db: AsyncSession, request: AuditRequest) -> AuditOutcome:
        job_id = uuid.uuid4().hex[:12]
        identity = request.identity

        # ── Admission ───────────────────────────
        reservation = await self.ledger.reserve(db, identity)
        if not reservation.allowed:
            self._transition(job_id, JobState.rejected, f"plan={reservation.usage.plan}")
            return AuditRejected(
                plan=reservation.usage.plan,
                limit=reservation.usage.limit,
                used=reservation.usage.used,
            )
        self._transition(job_id, JobState.admitted, f"mode={request.mode.value}, plan={reservation.usage.plan}")

        # ── Capture / inference / normalization, under the wall-clock bound ──
        try:
            job, result = await asyncio.wait_for(
                self._produce(job_id, request, reservation.usage),
                timeout=self.job_timeout,
            )
        except asyncio.TimeoutError:
            self._transition(job_id, JobState.failed, f"timeout after {self.job_timeout}s")
            return AuditFailed(
                reason=FailureReason.timeout,
                detail=f"Audit did not finish within {self.job_timeout:.0f} seconds",
            )
        except AuditError as e:
            self._transition(job_id, JobState.failed, f"{e.reason}: {e.detail}")
            return AuditFailed(reason=FailureReason(e.reason), detail=e.detail)

        # ── Commit + persistence handoff ────────
        self._transition(job_id, JobState.committing)
        usage_after = await self._commit(db, job, reservation.usage)
        audit_id = await self._persist(db, job, result)
        if not identity.is_authenticated:
            # Guests are metered by their stored rows
            usage_after = await self.ledger.snapshot(db, identity)

        self._transition(job_id, JobState.done, f"images={len(job.images)}, audit_id={audit_id}")
        return AuditDone(
            score=result.score,
            strategic=result.strategic,
            granular=result.granular,
            ux_metrics=result.ux_metrics,
            strengths=result.strengths,
            weaknesses=result.weaknesses,
            display_title=result.display_title,
            primary_image_url=job.images[0].public_url,
            usage_after=UsageAfter(plan=usage_after.plan, used=usage_after.used, limit=usage_after.limit),
            audit_id=audit_id,
        )

    async def _produce(self, job_id: str, request: AuditRequest, usage: UsageSnapshot):
        self._transition(job_id, JobState.capturing)
        images = await self._capture_images(request)
        if not images:
            raise AuditError("No content to analyze", reason=FailureReason.no_input.value)

        job = AuditJob(
            identity=request.identity,
            plan=usage.plan,
            images=images,
            framework=request.framework,
            mode=request.mode,
            token_budget=usage.token_limit,
        )

        self._transition(job_id, JobState.inferring, f"images={len(images)}, max_tokens={job.token_budget}")
        instructions = build_audit_prompt(job.mode, job.framework, len(job.images))
        raw = await self.inference.infer(job.images, instructions, job.token_budget)

        self._transition(job_id, JobState.normalizing)
        result = normalize(raw)
        return job, result

    async def _capture_images(self, request: AuditRequest) -> List[CapturedImage]:
        mode = request.mode

        if mode == AuditMode.crawler:
            return await self._capture_crawl(self._require_url(request.url))

        if mode == AuditMode.url or (mode == AuditMode.accessibility and request.url):
            target_url = self._require_url(request.url)
            image = await self.capture_service.capture(CaptureTarget(kind=CaptureKind.url, url=target_url))
            if image is None:
                raise AuditError(f"Failed to capture {target_url}", reason=FailureReason.capture_failed.value)
            return [image]

        if not request.files:
            raise AuditError("No content to analyze", reason=FailureReason.no_input.value)

        images = []
        for upload in request.files:
            image = await self.capture_service.capture(CaptureTarget(kind=CaptureKind.upload, upload=upload))
            if image is None:
                logger.warning(f"Dropping upload {upload.filename!r} from the image set")
                continue
            images.append(image)
        return images

    async def _capture_crawl(self, seed_url: str) -> List[CapturedImage]:
        candidates = await self.crawler.discover(seed_url)
        semaphore = asyncio.Semaphore(MAX_CONCURRENT_CAPTURES)

        async def capture(url: str) -> Optional[CapturedImage]:
            async with semaphore:
                return await self.capture_service.capture(CaptureTarget(kind=CaptureKind.url, url=url))

        results = await asyncio.gather(*(capture(c.absolute_url) for c in candidates))

        if results[0] is None:
            raise AuditError(
                f"Failed to capture the main page {seed_url}",
                reason=FailureReason.capture_failed.value,
            )

        dropped = [c.absolute_url for c, image in zip(candidates, results) if image is None]
        if dropped:
            logger.warning(f"Crawl of {seed_url}: dropping pages that failed to capture: {dropped}")

        return [image for image in results if image is not None]

    @staticmethod
    def _require_url(url: Optional[str]) -> str:
        is_valid, normalized_url, error_message = validate_url(url or "")
        if not is_valid:
            raise AuditError(f"Invalid URL: {error_message}", reason=FailureReason.no_input.value)
        return normalized_url

    async def _commit(self, db: AsyncSession, job: AuditJob, reserved: UsageSnapshot) -> UsageSnapshot:
        if not job.identity.is_authenticated:
            return reserved
        try:
            return await self.ledger.commit(db, job.identity)
        except SQLAlchemyError:
            # The analysis already exists; don't take it away over a counter
            logger.exception(f"Failed to commit quota for user {job.identity.user_id}")
            await db.rollback()
            return reserved

    async def _persist(self, db: AsyncSession, job: AuditJob, result: NormalizedResult) -> Optional[str]:
        """Write the history row. Best effort: failures are logged and swallowed."""
        try:
            record = AuditRecord(
                user_id=job.identity.user_id,
                guest_key=job.identity.guest_key if not job.identity.is_authenticated else None,
                ui_title=result.display_title[:255],
                image_url=job.images[0].public_url or None,
                image_urls=[image.public_url for image in job.images if image.public_url],
                framework=job.framework,
                mode=job.mode.value,
                score=result.score,
                analysis=result.model_dump(mode="json"),
            )
            db.add(record)
            await db.commit()
            return record.id
        except SQLAlchemyError:
            logger.exception(f"DB save failed for {job.identity.key}; returning analysis anyway")
            await db.rollback()
            return None

    @staticmethod
    def _transition(job_id: str, state: JobState, detail: str = "") -> None:
        message = f"[audit {job_id}] -> {state.value}"
        if detail:
            message += f" ({detail})"
        if state == JobState.failed:
            logger.warning(message)
        else:
            logger.info(message)
