import datetime as dt
from typing import Callable, Optional

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.future import select

from slackwire import db
from slackwire.exceptions import StoreError
from slackwire.logging import logger
from slackwire.models.installation import InstallationRecord
from slackwire.models.oauth_state import OAuthStateRecord
from slackwire.oauth.models import Installation, OAuthState, installation_key, utcnow
from slackwire.oauth.stores import InstallationStore, StateStore


def _upsert_for(dialect_name: str):
    match dialect_name:
        case "sqlite":
            return sqlite.insert
        case "postgresql":
            return postgresql.insert
        case _:
            raise StoreError(f"Unsupported database dialect: {dialect_name}")


class SQLAlchemyInstallationStore(InstallationStore):
    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.session = db.session_factory(engine)
        self._insert = _upsert_for(engine.dialect.name)

    async def save(self, installation: Installation) -> None:
        values = InstallationRecord.values_from(installation)
        table = InstallationRecord.__table__
        stmt = self._insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["team_id", "enterprise_id"],
            set_={
                key: stmt.excluded[key]
                for key in values
                if key not in ("team_id", "enterprise_id")
            },
        )
        try:
            async with self.session() as s:
                await s.execute(stmt)
                await s.commit()
        except sa.exc.SQLAlchemyError as e:  # pyright: ignore
            raise StoreError(f"Unable to save installation: {e}") from e
        logger.debug(f"Saved {installation}")

    async def find(
        self, team_id: str, enterprise_id: Optional[str] = None
    ) -> Optional[Installation]:
        try:
            async with self.session() as s:
                record = await InstallationRecord.by_key(
                    team_id, enterprise_id, session=s
                )
        except sa.exc.SQLAlchemyError as e:  # pyright: ignore
            raise StoreError(f"Unable to find installation: {e}") from e
        return record.to_installation() if record else None

    async def delete(self, team_id: str, enterprise_id: Optional[str] = None) -> None:
        team_id, enterprise_key = installation_key(team_id, enterprise_id)
        stmt = sa.delete(InstallationRecord).where(
            InstallationRecord.team_id == team_id,
            InstallationRecord.enterprise_id == enterprise_key,
        )
        try:
            async with self.session() as s:
                await s.execute(stmt.execution_options(synchronize_session=False))
                await s.commit()
        except sa.exc.SQLAlchemyError as e:  # pyright: ignore
            raise StoreError(f"Unable to delete installation: {e}") from e


class SQLAlchemyStateStore(StateStore):
    def __init__(
        self, engine: AsyncEngine, *, clock: Callable[[], dt.datetime] = utcnow
    ) -> None:
        self.engine = engine
        self.session = db.session_factory(engine)
        self.clock = clock

    async def put(
        self, state: str, ttl: int, *, redirect_hint: Optional[str] = None
    ) -> OAuthState:
        oauth_state = OAuthState.new(
            ttl, state=state, redirect_hint=redirect_hint, now=self.clock()
        )
        try:
            async with self.session() as s:
                s.add(
                    OAuthStateRecord(
                        state=oauth_state.state,
                        redirect_hint=oauth_state.redirect_hint,
                        created_at=oauth_state.created_at,
                        expires_at=oauth_state.expires_at,
                    )
                )
                await s.commit()
        except sa.exc.SQLAlchemyError as e:  # pyright: ignore
            raise StoreError(f"Unable to store state: {e}") from e
        return oauth_state

    async def consume_state(self, state: str) -> Optional[OAuthState]:
        try:
            async with self.session() as s:
                record = (
                    await s.scalars(
                        select(OAuthStateRecord).where(OAuthStateRecord.state == state)
                    )
                ).one_or_none()
                if record is None:
                    logger.debug("State not found, possibly already consumed")
                    return None

                # Whoever deletes the row owns the state, a concurrent
                # consumer deletes nothing
                result = await s.execute(
                    sa.delete(OAuthStateRecord)
                    .where(OAuthStateRecord.id == record.id)
                    .execution_options(synchronize_session=False)
                )
                await s.commit()
        except sa.exc.SQLAlchemyError as e:  # pyright: ignore
            raise StoreError(f"Unable to consume state: {e}") from e

        if result.rowcount != 1:
            logger.debug("State consumed concurrently")
            return None

        oauth_state = record.to_oauth_state()
        if oauth_state.is_expired(self.clock()):
            logger.debug("State has expired")
            return None
        return oauth_state

    async def purge_expired(self) -> int:
        stmt = sa.delete(OAuthStateRecord).where(
            OAuthStateRecord.expires_at <= self.clock()
        )
        try:
            async with self.session() as s:
                result = await s.execute(
                    stmt.execution_options(synchronize_session=False)
                )
                await s.commit()
        except sa.exc.SQLAlchemyError as e:  # pyright: ignore
            raise StoreError(f"Unable to purge states: {e}") from e
        return result.rowcount
