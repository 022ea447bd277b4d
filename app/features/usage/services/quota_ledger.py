from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import and_, case, func, null, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.audit.models.audit_record import AuditRecord
from app.features.usage.models.user_usage import UserUsage
from app.features.usage.schemas.usage import Identity, ReserveResult, UsageSnapshot
from app.features.usage.services.authorization import AuthorizationPolicy
from app.features.usage.services.plan_catalog import (
    GUEST_AUDIT_LIMIT,
    PlanTier,
    audit_limit_for,
    resolve_plan,
    token_budget_for,
)
from app.platform.logger import get_logger

logger = get_logger(__name__)


def _utc_now() -> datetime:
    # Naive UTC, matching the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def period_key_for(now: datetime) -> str:
    """Usage period for a moment in time: the UTC calendar month as YYYY-MM."""
    return _naive_utc(now).strftime("%Y-%m")


class QuotaLedger:
    """
    Per-identity audit counter.

    `reserve` only checks, `commit` only increments. Every mutation is a
    single UPDATE/INSERT keyed by user id so two tabs submitting at once
    can't lose an increment or reset a counter twice.
    """

    def __init__(
        self,
        policy: Optional[AuthorizationPolicy] = None,
        time_provider: Optional[Callable[[], datetime]] = None,
    ):
        self.policy = policy or AuthorizationPolicy.from_settings()
        self._time_provider = time_provider or _utc_now

    def _now(self) -> datetime:
        return _naive_utc(self._time_provider())

    async def reserve(self, db: AsyncSession, identity: Identity) -> ReserveResult:
        """
        Check whether the identity may start another audit.

        Applies lazy rollover/downgrade first. Never consumes quota.
        """
        if identity.is_authenticated:
            usage = await self._read_normalized(db, identity.user_id)
        else:
            usage = await self._guest_usage(db, identity.guest_key)

        allowed = usage.limit is None or usage.used < usage.limit
        if not allowed:
            logger.info(
                f"Quota denied for {'user ' + identity.user_id if identity.is_authenticated else 'guest'} "
                f"(plan={usage.plan}, used={usage.used}, limit={usage.limit})"
            )
        return ReserveResult(allowed=allowed, usage=usage)

    async def commit(self, db: AsyncSession, identity: Identity) -> UsageSnapshot:
        """
        Count one delivered audit for the current period.

        Guests are metered by their stored audit rows, so this is a read for them.
        """
        if not identity.is_authenticated:
            return await self._guest_usage(db, identity.guest_key)

        user_id = identity.user_id
        now = self._now()
        period_key = period_key_for(now)

        await self._ensure_record(db, user_id, period_key)
        await self._normalize(db, user_id, now)
        await db.execute(
            update(UserUsage)
            .where(UserUsage.user_id == user_id)
            .values(
                audits_used=case(
                    (UserUsage.period_key == period_key, UserUsage.audits_used + 1),
                    else_=1,
                ),
                period_key=period_key,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        usage = await self._load(db, user_id)
        logger.info(f"Committed audit for user {user_id} (plan={usage.plan}, used={usage.used}/{usage.limit})")
        return usage

    async def snapshot(self, db: AsyncSession, identity: Identity) -> UsageSnapshot:
        """Current usage figures without any admission decision."""
        if identity.is_authenticated:
            return await self._read_normalized(db, identity.user_id)
        return await self._guest_usage(db, identity.guest_key)

    async def set_plan(
        self,
        db: AsyncSession,
        user_id: str,
        plan: PlanTier,
        expires_at: Optional[datetime] = None,
    ) -> UsageSnapshot:
        """Assign a plan (and optional expiry). The monthly count is left untouched."""
        if plan == PlanTier.guest:
            raise ValueError("guest is not an assignable plan")

        now = self._now()
        await self._ensure_record(db, user_id, period_key_for(now))
        await db.execute(
            update(UserUsage)
            .where(UserUsage.user_id == user_id)
            .values(
                plan=plan.value,
                plan_expires_at=_naive_utc(expires_at) if expires_at else None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        logger.info(f"Plan for user {user_id} set to {plan.value} (expires_at={expires_at})")
        return await self._read_normalized(db, user_id)

    async def _read_normalized(self, db: AsyncSession, user_id: str) -> UsageSnapshot:
        now = self._now()
        await self._ensure_record(db, user_id, period_key_for(now))
        await self._normalize(db, user_id, now)
        await db.commit()
        return await self._load(db, user_id)

    async def _ensure_record(self, db: AsyncSession, user_id: str, period_key: str) -> None:
        # Insert-or-ignore: concurrent first requests converge on one row.
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert

        stmt = (
            insert(UserUsage)
            .values(
                user_id=user_id,
                plan=PlanTier.free.value,
                audits_used=0,
                period_key=period_key,
                plan_expires_at=None,
                updated_at=self._now(),
            )
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        await db.execute(stmt)

    async def _normalize(self, db: AsyncSession, user_id: str, now: datetime) -> None:
        """Rollover and expiry downgrade in one conditional UPDATE."""
        period_key = period_key_for(now)
        stale_period = UserUsage.period_key != period_key
        expired = and_(
            UserUsage.plan != PlanTier.free.value,
            UserUsage.plan_expires_at.isnot(None),
            UserUsage.plan_expires_at < now,
        )

        # All SET expressions see the pre-update row, so the two cases
        # don't interfere with each other.
        result = await db.execute(
            update(UserUsage)
            .where(UserUsage.user_id == user_id, or_(stale_period, expired))
            .values(
                audits_used=case((stale_period, 0), else_=UserUsage.audits_used),
                period_key=period_key,
                plan=case((expired, PlanTier.free.value), else_=UserUsage.plan),
                plan_expires_at=case((expired, null()), else_=UserUsage.plan_expires_at),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(f"Normalized usage record for user {user_id} (period={period_key})")

    async def _load(self, db: AsyncSession, user_id: str) -> UsageSnapshot:
        result = await db.execute(
            select(UserUsage)
            .where(UserUsage.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one()
        plan = resolve_plan(record.plan)
        limit = None if self.policy.is_quota_exempt(user_id) else audit_limit_for(plan)

        return UsageSnapshot(
            plan=plan.value,
            used=record.audits_used,
            limit=limit,
            token_limit=token_budget_for(plan),
            period_key=record.period_key,
            plan_expires_at=record.plan_expires_at,
        )

    async def _guest_usage(self, db: AsyncSession, guest_key: str) -> UsageSnapshot:
        result = await db.execute(
            select(func.count())
            .select_from(AuditRecord)
            .where(AuditRecord.guest_key == guest_key, AuditRecord.user_id.is_(None))
        )
        used = result.scalar_one() or 0

        return UsageSnapshot(
            plan=PlanTier.guest.value,
            used=used,
            limit=GUEST_AUDIT_LIMIT,
            token_limit=token_budget_for(PlanTier.guest),
        )
