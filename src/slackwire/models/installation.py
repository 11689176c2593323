from __future__ import annotations

import datetime as dt
from typing import Any, Optional

import pytz
import sqlalchemy as sa
from sqlalchemy.ext.asyncio.session import AsyncSession
from sqlalchemy.future import select

from slackwire.db import Base
from slackwire.oauth.models import Installation


def _join(scopes: tuple[str, ...]) -> str:
    return ",".join(scopes)


def _split(scopes: Optional[str]) -> tuple[str, ...]:
    return tuple(s for s in (scopes or "").split(",") if s)


def _utc(value: dt.datetime) -> dt.datetime:
    # SQLite drops the timezone, everything is stored as UTC
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value


class InstallationRecord(Base):
    __tablename__ = "slackwire_installations"

    id = sa.Column(sa.Integer, primary_key=True)
    team_id = sa.Column(sa.Text, nullable=False)
    # Empty string rather than NULL so the unique constraint holds
    enterprise_id = sa.Column(sa.Text, nullable=False, default="")
    bot_token = sa.Column(sa.Text, nullable=True)
    bot_user_id = sa.Column(sa.Text, nullable=True)
    scopes = sa.Column(sa.Text, nullable=False, default="")
    installed_at = sa.Column(sa.DateTime(timezone=True), nullable=False)
    app_id = sa.Column(sa.Text, nullable=True)
    user_id = sa.Column(sa.Text, nullable=True)
    user_token = sa.Column(sa.Text, nullable=True)
    user_scopes = sa.Column(sa.Text, nullable=False, default="")
    expires_at = sa.Column(sa.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        sa.UniqueConstraint(team_id, enterprise_id, name="installation_key_idx"),
    )

    @classmethod
    async def by_key(
        cls, team_id: str, enterprise_id: Optional[str], /, *, session: AsyncSession
    ) -> Optional[InstallationRecord]:
        return (
            await session.scalars(
                select(cls).where(
                    cls.team_id == team_id, cls.enterprise_id == (enterprise_id or "")
                )
            )
        ).one_or_none()

    @staticmethod
    def values_from(installation: Installation) -> dict[str, Any]:
        team_id, enterprise_id = installation.key
        return {
            "team_id": team_id,
            "enterprise_id": enterprise_id,
            "bot_token": installation.bot_token,
            "bot_user_id": installation.bot_user_id,
            "scopes": _join(installation.scopes),
            "installed_at": installation.installed_at,
            "app_id": installation.app_id,
            "user_id": installation.user_id,
            "user_token": installation.user_token,
            "user_scopes": _join(installation.user_scopes),
            "expires_at": installation.expires_at,
        }

    def to_installation(self) -> Installation:
        return Installation(
            team_id=self.team_id,
            enterprise_id=self.enterprise_id or None,
            bot_token=self.bot_token,
            bot_user_id=self.bot_user_id,
            scopes=_split(self.scopes),
            installed_at=_utc(self.installed_at),
            app_id=self.app_id,
            user_id=self.user_id,
            user_token=self.user_token,
            user_scopes=_split(self.user_scopes),
            expires_at=_utc(self.expires_at) if self.expires_at else None,
        )

    def __repr__(self) -> str:
        return f"<InstallationRecord (team_id={self.team_id}, enterprise_id={self.enterprise_id})>"
