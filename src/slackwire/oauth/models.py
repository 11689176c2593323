from __future__ import annotations

import dataclasses as dc
import datetime as dt
import secrets
from typing import Any, Optional

import pytz
from dateutil import parser


def utcnow() -> dt.datetime:
    return dt.datetime.now(pytz.utc)


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value.astimezone(pytz.utc)


@dc.dataclass(frozen=True)
class Installation:
    team_id: str
    enterprise_id: Optional[str] = None
    bot_token: Optional[str] = None
    bot_user_id: Optional[str] = None
    scopes: tuple[str, ...] = ()
    installed_at: dt.datetime = dc.field(default_factory=utcnow)
    app_id: Optional[str] = None
    user_id: Optional[str] = None
    user_token: Optional[str] = None
    user_scopes: tuple[str, ...] = ()
    expires_at: Optional[dt.datetime] = None

    def __post_init__(self) -> None:
        if not self.team_id:
            raise ValueError("Installation needs a team_id")
        # An empty enterprise id means no enterprise
        object.__setattr__(self, "enterprise_id", self.enterprise_id or None)
        object.__setattr__(self, "installed_at", _as_utc(self.installed_at))
        if self.expires_at is not None:
            object.__setattr__(self, "expires_at", _as_utc(self.expires_at))
        object.__setattr__(self, "scopes", tuple(self.scopes))
        object.__setattr__(self, "user_scopes", tuple(self.user_scopes))

    def is_expired(self, now: Optional[dt.datetime] = None) -> bool:
        """Whether the tokens have expired, installations without an expiry never do"""
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at

    @property
    def key(self) -> tuple[str, str]:
        return installation_key(self.team_id, self.enterprise_id)

    def to_dict(self) -> dict[str, Any]:
        d = dc.asdict(self)
        d["installed_at"] = self.installed_at.isoformat()
        if self.expires_at is not None:
            d["expires_at"] = self.expires_at.isoformat()
        d["scopes"] = list(self.scopes)
        d["user_scopes"] = list(self.user_scopes)
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Installation:
        values = dict(d)
        for field in ("installed_at", "expires_at"):
            if isinstance(values.get(field), str):
                values[field] = parser.isoparse(values[field])
        return cls(**values)

    def __repr__(self) -> str:
        # Tokens stay out of logs
        return (
            f"<Installation (team_id={self.team_id},"
            f" enterprise_id={self.enterprise_id}, scopes={','.join(self.scopes)})>"
        )


def installation_key(team_id: str, enterprise_id: Optional[str]) -> tuple[str, str]:
    return team_id, enterprise_id or ""


@dc.dataclass(frozen=True)
class OAuthState:
    state: str
    created_at: dt.datetime
    expires_at: dt.datetime
    redirect_hint: Optional[str] = None

    @classmethod
    def new(
        cls,
        ttl: int,
        *,
        state: Optional[str] = None,
        redirect_hint: Optional[str] = None,
        now: Optional[dt.datetime] = None,
    ) -> OAuthState:
        created_at = now or utcnow()
        return cls(
            state=state or mint_state(),
            created_at=created_at,
            expires_at=created_at + dt.timedelta(seconds=ttl),
            redirect_hint=redirect_hint,
        )

    def is_expired(self, now: Optional[dt.datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def __repr__(self) -> str:
        return f"<OAuthState (expires_at={self.expires_at.isoformat()})>"


def mint_state() -> str:
    """A fresh state token, 256 bits from the OS CSPRNG"""
    return secrets.token_urlsafe(32)
