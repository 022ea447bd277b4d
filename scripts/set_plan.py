import argparse
import asyncio
from datetime import datetime, timedelta, timezone

from app.features.usage.services.plan_catalog import PlanTier
from app.features.usage.services.quota_ledger import QuotaLedger
from app.platform.db.session import SessionLocal, engine


async def set_plan(user_id: str, plan: str, days: int):
    expires_at = datetime.now(timezone.utc) + timedelta(days=days) if days else None
    async with SessionLocal() as db:
        usage = await QuotaLedger().set_plan(db, user_id, PlanTier(plan), expires_at)
    await engine.dispose()
    print(f"✅ {user_id} is on {usage.plan} ({usage.used}/{usage.limit}), expires {usage.plan_expires_at}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Assign a paid plan to a user")
    parser.add_argument("user_id")
    parser.add_argument("plan", choices=[tier.value for tier in PlanTier if tier != PlanTier.guest])
    parser.add_argument("--days", type=int, default=30, help="0 for no expiry")
    args = parser.parse_args()
    asyncio.run(set_plan(args.user_id, args.plan, args.days))
