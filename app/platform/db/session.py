from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.platform.config import settings

_engine_kwargs = {"echo": False, "future": True, "pool_pre_ping": True}
if settings.DATABASE_URL.startswith("sqlite"):
    # File-backed sqlite (local dev, tests): no pooled connections shared across event loops
    _engine_kwargs["poolclass"] = NullPool
else:
    _engine_kwargs.update(
        pool_recycle=1800,
        pool_size=20,
        max_overflow=30,  # (burst capacity)
        pool_timeout=30,
    )

engine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False, autocommit=False)


async def get_db():
    async with SessionLocal() as session:
        yield session


async def init_models(bind=None):
    """Create the tables owned by this service if they don't exist yet."""
    from app.platform.db.base import Base
    from app.features.usage.models.user_usage import UserUsage  # noqa: F401
    from app.features.audit.models.audit_record import AuditRecord  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
