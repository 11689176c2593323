from __future__ import annotations

import asyncio
import dataclasses as dc
from typing import Any, Optional

import aiohttp
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from slackwire.exceptions import ExchangeRejected, TransientExchangeError
from slackwire.logging import logger

DEFAULT_EXCHANGE_TIMEOUT = 10


def _split_scopes(value: Optional[str]) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(scope for scope in value.split(",") if scope)


@dc.dataclass(frozen=True)
class TokenGrant:
    """The useful parts of a successful `oauth.v2.access` response"""

    team_id: str
    access_token: Optional[str] = None
    bot_user_id: Optional[str] = None
    enterprise_id: Optional[str] = None
    scopes: tuple[str, ...] = ()
    app_id: Optional[str] = None
    authed_user_id: Optional[str] = None
    user_token: Optional[str] = None
    user_scopes: tuple[str, ...] = ()
    # Only set when token rotation is enabled for the app
    expires_in: Optional[int] = None

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> TokenGrant:
        team = data.get("team") or {}
        if not team.get("id"):
            raise ExchangeRejected("missing_team")
        enterprise = data.get("enterprise") or {}
        authed_user = data.get("authed_user") or {}
        expires_in = data.get("expires_in")
        return cls(
            team_id=team["id"],
            access_token=data.get("access_token"),
            bot_user_id=data.get("bot_user_id"),
            enterprise_id=enterprise.get("id"),
            scopes=_split_scopes(data.get("scope")),
            app_id=data.get("app_id"),
            authed_user_id=authed_user.get("id"),
            user_token=authed_user.get("access_token"),
            user_scopes=_split_scopes(authed_user.get("scope")),
            expires_in=expires_in if isinstance(expires_in, int) else None,
        )

    def __repr__(self) -> str:
        return f"<TokenGrant (team_id={self.team_id}, enterprise_id={self.enterprise_id})>"


class TokenExchanger:
    """Swaps an authorization code for tokens

    Raises `ExchangeRejected` when the platform refuses the code and
    `TransientExchangeError` when it is worth trying again
    """

    async def exchange(self, code: str, redirect_uri: Optional[str]) -> TokenGrant:
        raise NotImplementedError()


class SlackTokenExchanger(TokenExchanger):
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        timeout: int = DEFAULT_EXCHANGE_TIMEOUT,
        base_url: Optional[str] = None,
        client: Optional[AsyncWebClient] = None,
    ) -> None:
        self.client_id = client_id
        self._client_secret = client_secret
        # Retries belong to the flow, the client makes exactly one attempt
        self.client = client or AsyncWebClient(
            base_url=base_url or AsyncWebClient.BASE_URL,
            timeout=timeout,
            retry_handlers=[],
        )

    async def exchange(self, code: str, redirect_uri: Optional[str]) -> TokenGrant:
        try:
            response = await self.client.oauth_v2_access(
                client_id=self.client_id,
                client_secret=self._client_secret,
                code=code,
                redirect_uri=redirect_uri,
            )
        except SlackApiError as e:
            status_code = e.response.status_code
            error = e.response.get("error") or "unknown_error"
            if status_code == 429 or status_code >= 500:
                raise TransientExchangeError(f"{status_code}: {error}") from e
            logger.info(f"Token exchange rejected: {error}")
            raise ExchangeRejected(error, status_code) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientExchangeError(repr(e)) from e

        return TokenGrant.from_response(response.data)
