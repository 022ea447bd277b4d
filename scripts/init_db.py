import asyncio

from app.platform.db.session import engine, init_models


async def main():
    await init_models()
    await engine.dispose()
    print("✅ user_usage and audits tables are ready")

asyncio.run(main())
