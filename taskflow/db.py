# taskflow/db.py
import os
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

_engine = None
_SessionLocal = None


def _ensure_engine():
    global _engine, _SessionLocal
    if _engine is None:
        db_url = os.getenv("SUPABASE_DB_URL")
        if not db_url:
            # fail on the first DB-using request, not at import
            raise RuntimeError("SUPABASE_DB_URL is not set")
        if db_url.startswith("postgresql://"):
            db_url = db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        _engine = create_async_engine(db_url, echo=False, pool_size=5, max_overflow=10, pool_pre_ping=True)
        _SessionLocal = async_sessionmaker(_engine, expire_on_commit=False)


async def get_session() -> AsyncSession:
    _ensure_engine()
    async with _SessionLocal() as session:
        yield session
