from typing import Awaitable, Callable

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.middleware import install_query_counter


def _engine_options(url: str) -> dict:
    """SQLite (aiosqlite) cannot pre-ping and must share its connection across tasks."""
    if make_url(url).get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


# Module-level engine; tests build their own and override get_db.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **_engine_options(settings.DATABASE_URL),
)

# Every statement on this engine counts towards X-Query-Count.
install_query_counter(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


_AFTER_COMMIT = "after_commit"


def after_commit(session: AsyncSession, callback: Callable[[], Awaitable[None]]) -> None:
    """
    Schedule ``await callback()`` for when *session* next commits through
    ``commit_session``.  Pending callbacks are discarded on rollback, so
    side effects such as cache invalidation never run for changes that
    did not persist.
    """
    callbacks = session.info.setdefault(_AFTER_COMMIT, [])
    if callback not in callbacks:
        callbacks.append(callback)


async def commit_session(session: AsyncSession) -> None:
    """Commit *session*, then run the callbacks registered with ``after_commit``."""
    await session.commit()
    for callback in session.info.pop(_AFTER_COMMIT, []):
        await callback()


async def rollback_session(session: AsyncSession) -> None:
    session.info.pop(_AFTER_COMMIT, None)
    await session.rollback()


async def get_db():
    """One session per request: committed on success, rolled back on any error."""
    async with async_session() as session:
        try:
            yield session
            await commit_session(session)
        except Exception:
            await rollback_session(session)
            raise


async def create_tables(drop_first: bool = False) -> None:
    """Create the schema without Alembic (demo seeding, local experiments)."""
    import app.models  # noqa: F401  registers the tables on Base.metadata

    async with engine.begin() as conn:
        if drop_first:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Close every pooled connection.  Called once at application shutdown."""
    await engine.dispose()
