from __future__ import annotations

import asyncio
import dataclasses as dc
from typing import Any, Optional, Sequence

from slack_sdk.web.async_client import AsyncWebClient
from slack_sdk.webhook.async_client import AsyncWebhookClient

from slackwire.events import Event
from slackwire.exceptions import AckAlreadySent
from slackwire.logging import logger
from slackwire.request import Response


class Ack:
    """One shot acknowledgment for a single event

    The first call decides the synchronous response, every later call is
    ignored (or raises `AckAlreadySent` when strict)
    """

    def __init__(self, *, strict: bool = False) -> None:
        self.strict = strict
        self._response: asyncio.Future[Response] = (
            asyncio.get_running_loop().create_future()
        )
        self.auto = False

    @property
    def acknowledged(self) -> bool:
        return self._response.done()

    @property
    def response(self) -> Optional[Response]:
        if not self._response.done():
            return None
        return self._response.result()

    @property
    def future(self) -> asyncio.Future[Response]:
        return self._response

    def _set(self, response: Response) -> bool:
        if self._response.done():
            if self.strict:
                raise AckAlreadySent("Event has already been acknowledged")
            logger.warning("Event has already been acknowledged, ignoring ack")
            return False
        self._response.set_result(response)
        return True

    def auto_ack(self) -> bool:
        """Acknowledge with an empty response, unless already acknowledged"""
        if self._response.done():
            return False
        self.auto = True
        self._response.set_result(Response.empty())
        return True

    async def __call__(
        self,
        text: Optional[str] = None,
        *,
        blocks: Optional[Sequence[dict]] = None,
        response_type: Optional[str] = None,
        replace_original: Optional[bool] = None,
        delete_original: Optional[bool] = None,
        body: Optional[dict[str, Any]] = None,
    ) -> None:
        if body is None:
            body = {
                key: value
                for key, value in (
                    ("text", text),
                    ("blocks", list(blocks) if blocks is not None else None),
                    ("response_type", response_type),
                    ("replace_original", replace_original),
                    ("delete_original", delete_original),
                )
                if value is not None
            }
        self._set(Response.json(body) if body else Response.empty())

    async def ephemeral(self, text: str, **kwargs: Any) -> None:
        await self(text, response_type="ephemeral", **kwargs)

    async def in_channel(self, text: str, **kwargs: Any) -> None:
        await self(text, response_type="in_channel", **kwargs)

    def __repr__(self) -> str:
        return f"<Ack (acknowledged={self.acknowledged}, auto={self.auto})>"


@dc.dataclass
class Context:
    """Everything a handler gets to know about the event it is handling

    Built fresh for every dispatch and never shared between them
    """

    event: Event
    ack: Ack
    team_id: Optional[str] = None
    enterprise_id: Optional[str] = None
    user_id: Optional[str] = None
    channel_id: Optional[str] = None
    trigger_id: Optional[str] = None
    response_url: Optional[str] = None
    bot_token: Optional[str] = None
    bot_user_id: Optional[str] = None
    retry_num: Optional[int] = None
    retry_reason: Optional[str] = None
    custom: dict[str, Any] = dc.field(default_factory=dict)

    _client: Optional[AsyncWebClient] = dc.field(default=None, repr=False)
    _propagation_stopped: bool = dc.field(default=False, repr=False)

    @property
    def client(self) -> AsyncWebClient:
        if self._client is None:
            self._client = AsyncWebClient(token=self.bot_token)
        return self._client

    @property
    def propagation_stopped(self) -> bool:
        return self._propagation_stopped

    def stop_propagation(self) -> None:
        """Don't run any more listeners after the current one"""
        self._propagation_stopped = True

    def __getitem__(self, key: str) -> Any:
        return self.custom[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.custom[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self.custom.get(key, default)

    async def say(
        self,
        text: Optional[str] = None,
        *,
        blocks: Optional[Sequence[dict]] = None,
        channel: Optional[str] = None,
        **kwargs: Any,
    ):
        channel = channel or self.channel_id
        if channel is None:
            raise ValueError("say is not available without a channel")
        return await self.client.chat_postMessage(
            channel=channel, text=text, blocks=blocks, **kwargs
        )

    async def respond(
        self,
        text: Optional[str] = None,
        *,
        blocks: Optional[Sequence[dict]] = None,
        response_type: Optional[str] = None,
        **kwargs: Any,
    ):
        if self.response_url is None:
            raise ValueError("respond is not available without a response_url")
        webhook = AsyncWebhookClient(self.response_url)
        return await webhook.send(
            text=text, blocks=blocks, response_type=response_type, **kwargs
        )
