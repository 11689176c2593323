from __future__ import annotations

import datetime as dt

import pytz
import sqlalchemy as sa

from slackwire.db import Base
from slackwire.oauth.models import OAuthState


def _utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value


class OAuthStateRecord(Base):
    __tablename__ = "slackwire_oauth_states"

    id = sa.Column(sa.Integer, primary_key=True)
    state = sa.Column(sa.Text, nullable=False, unique=True)
    redirect_hint = sa.Column(sa.Text, nullable=True)
    created_at = sa.Column(sa.DateTime(timezone=True), nullable=False)
    expires_at = sa.Column(sa.DateTime(timezone=True), nullable=False, index=True)

    def to_oauth_state(self) -> OAuthState:
        return OAuthState(
            state=self.state,
            redirect_hint=self.redirect_hint,
            created_at=_utc(self.created_at),
            expires_at=_utc(self.expires_at),
        )

    def __repr__(self) -> str:
        return f"<OAuthStateRecord (id={self.id})>"
