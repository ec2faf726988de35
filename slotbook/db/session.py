from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from slotbook.core.config import settings


# ── Base ───────────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass


# ── Engine ─────────────────────────────────────────────────────────────────────
engine = create_async_engine(
    str(settings.DATABASE_URL),
    echo=settings.APP_ENV == "development" and settings.LOG_LEVEL.upper() == "DEBUG",
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
)

# ── Session factory ────────────────────────────────────────────────────────────
async_session_maker = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

