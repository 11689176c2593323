from __future__ import annotations

import dataclasses as dc
import enum
from typing import Any, ClassVar, Optional


class EventKind(enum.Enum):
    MESSAGE = "message"
    APP_MENTION = "app_mention"
    EVENT = "event"
    SLASH_COMMAND = "slash_command"
    BLOCK_ACTION = "block_action"
    SHORTCUT = "shortcut"
    URL_VERIFICATION = "url_verification"


@dc.dataclass(frozen=True, kw_only=True)
class Event:
    """A parsed webhook payload

    `body` is the full decoded payload, `extra` holds the attributes of the
    payload that are not promoted to fields on the event
    """

    kind: ClassVar[EventKind]
    # Whether the platform expects an explicit acknowledgment, events sent
    # through the Events API are fine with an empty 200
    requires_ack: ClassVar[bool] = True

    body: dict[str, Any] = dc.field(repr=False)
    extra: dict[str, Any] = dc.field(default_factory=dict, repr=False)
    team_id: Optional[str] = None
    enterprise_id: Optional[str] = None
    user_id: Optional[str] = None
    channel_id: Optional[str] = None
    trigger_id: Optional[str] = None
    response_url: Optional[str] = None

    @property
    def key(self) -> Optional[str]:
        """The value listener matchers are tested against"""
        return None

    @property
    def payload(self) -> dict[str, Any]:
        """The part of the body handlers mostly care about"""
        return self.body


@dc.dataclass(frozen=True, kw_only=True)
class _CallbackEvent(Event):
    requires_ack: ClassVar[bool] = False

    event_id: Optional[str] = None
    event_time: Optional[int] = None
    text: str = ""
    ts: Optional[str] = None
    thread_ts: Optional[str] = None

    @property
    def payload(self) -> dict[str, Any]:
        return self.body["event"]


@dc.dataclass(frozen=True, kw_only=True)
class Message(_CallbackEvent):
    kind = EventKind.MESSAGE

    subtype: Optional[str] = None
    bot_id: Optional[str] = None

    @property
    def key(self) -> Optional[str]:
        return self.text


@dc.dataclass(frozen=True, kw_only=True)
class AppMention(_CallbackEvent):
    kind = EventKind.APP_MENTION

    @property
    def key(self) -> Optional[str]:
        return self.text


@dc.dataclass(frozen=True, kw_only=True)
class EventCallback(_CallbackEvent):
    """Any other Events API event, `reaction_added`, `team_join` and so on"""

    kind = EventKind.EVENT

    event_type: str

    @property
    def key(self) -> Optional[str]:
        return self.event_type


@dc.dataclass(frozen=True, kw_only=True)
class SlashCommand(Event):
    kind = EventKind.SLASH_COMMAND

    command: str
    text: str = ""
    api_app_id: Optional[str] = None
    team_domain: Optional[str] = None
    channel_name: Optional[str] = None
    user_name: Optional[str] = None

    @property
    def key(self) -> Optional[str]:
        return self.command


@dc.dataclass(frozen=True, kw_only=True)
class BlockAction(Event):
    kind = EventKind.BLOCK_ACTION

    actions: tuple[dict[str, Any], ...]
    container: dict[str, Any] = dc.field(default_factory=dict)

    @property
    def action(self) -> dict[str, Any]:
        return self.actions[0]

    @property
    def action_id(self) -> Optional[str]:
        return self.action.get("action_id")

    @property
    def block_id(self) -> Optional[str]:
        return self.action.get("block_id")

    @property
    def value(self) -> Optional[str]:
        return self.action.get("value")

    @property
    def key(self) -> Optional[str]:
        return self.action_id

    @property
    def payload(self) -> dict[str, Any]:
        return self.action


@dc.dataclass(frozen=True, kw_only=True)
class Shortcut(Event):
    kind = EventKind.SHORTCUT

    callback_id: str
    # Either "shortcut" (global) or "message_action"
    shortcut_type: str = "shortcut"
    message: Optional[dict[str, Any]] = None

    @property
    def is_global(self) -> bool:
        return self.shortcut_type == "shortcut"

    @property
    def key(self) -> Optional[str]:
        return self.callback_id


@dc.dataclass(frozen=True, kw_only=True)
class UrlVerification(Event):
    kind = EventKind.URL_VERIFICATION
    requires_ack = False

    challenge: str
    token: Optional[str] = None
