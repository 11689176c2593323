from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.ext.asyncio.session import AsyncSession
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm.session import sessionmaker

Base = declarative_base()


def create_engine(uri: str, **kwargs) -> AsyncEngine:
    return create_async_engine(uri, future=True, pool_pre_ping=True, **kwargs)


def session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def create_all(engine: AsyncEngine) -> None:
    # Registers the tables on Base.metadata
    from slackwire import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_all(engine: AsyncEngine) -> None:
    from slackwire import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
