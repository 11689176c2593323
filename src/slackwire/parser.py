import json
from typing import Any, Iterable, Optional
from urllib.parse import parse_qsl

from slackwire.events import (
    AppMention,
    BlockAction,
    Event,
    EventCallback,
    Message,
    Shortcut,
    SlashCommand,
    UrlVerification,
)
from slackwire.exceptions import MalformedBody, UnknownType

JSON = "application/json"
FORM = "application/x-www-form-urlencoded"


def parse(body: bytes, content_type: str = "") -> Event:
    """Parse a raw request body into one of the known `Event` types

    Raises `MalformedBody` if the body can't be decoded and `UnknownType` if it
    decodes fine but doesn't look like anything we know about
    """
    payload = decode(body, content_type)

    match payload:
        case {"type": "url_verification"}:
            return _url_verification(payload)
        case {"type": "event_callback", "event": {"type": "message"}}:
            return _callback(Message, payload, extra_fields=("subtype", "bot_id"))
        case {"type": "event_callback", "event": {"type": "app_mention"}}:
            return _callback(AppMention, payload)
        case {"type": "event_callback", "event": {"type": str(event_type)}}:
            return _callback(EventCallback, payload, event_type=event_type)
        case {"type": "event_callback"}:
            raise MalformedBody("Event callback without a typed event")
        case {"type": "block_actions"}:
            return _block_action(payload)
        case {"type": "shortcut" | "message_action"}:
            return _shortcut(payload)
        case {"command": str()}:
            return _slash_command(payload)
        case _:
            raise UnknownType(f"Unknown payload type: {payload.get('type')!r}")


def decode(body: bytes, content_type: str = "") -> dict[str, Any]:
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise MalformedBody("Body is not valid utf-8")

    if not text.strip():
        raise MalformedBody("Empty body")

    media_type = content_type.split(";")[0].strip().lower()
    if not media_type:
        media_type = JSON if text.lstrip().startswith("{") else FORM

    match media_type:
        case "application/json":
            return _load_json(text)
        case "application/x-www-form-urlencoded":
            try:
                fields = dict(parse_qsl(text, keep_blank_values=True, strict_parsing=True))
            except ValueError:
                raise MalformedBody("Unable to parse form body")
            # Interactive payloads are sent as a single json encoded form field
            if "payload" in fields:
                return _load_json(fields["payload"])
            return fields
        case _:
            raise MalformedBody(f"Unsupported content type: {media_type}")


def _load_json(text: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        raise MalformedBody("Body is not valid json")
    if not isinstance(data, dict):
        raise MalformedBody("Expected a json object")
    return data


def _str(data: Optional[dict], key: str) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    value = data.get(key)
    return value if isinstance(value, str) else None


def _require_str(data: dict, key: str) -> str:
    if (value := _str(data, key)) is None:
        raise MalformedBody(f"Missing required field: {key}")
    return value


def _extra(data: dict[str, Any], promoted: Iterable[str]) -> dict[str, Any]:
    promoted = set(promoted)
    return {k: v for k, v in data.items() if k not in promoted}


def _url_verification(payload: dict[str, Any]) -> UrlVerification:
    return UrlVerification(
        body=payload,
        challenge=_require_str(payload, "challenge"),
        token=_str(payload, "token"),
        extra=_extra(payload, ("type", "challenge", "token")),
    )


def _callback(
    klass: type[Event],
    payload: dict[str, Any],
    extra_fields: tuple[str, ...] = (),
    **fields: Any,
) -> Event:
    event = payload["event"]

    enterprise_id = _str(payload, "enterprise_id")
    if enterprise_id is None:
        # Org wide installs only carry the enterprise on the authorizations
        authorizations = payload.get("authorizations") or [{}]
        if isinstance(authorizations, list) and authorizations:
            enterprise_id = _str(authorizations[0], "enterprise_id")

    event_time = payload.get("event_time")
    promoted = ("type", "user", "channel", "text", "ts", "thread_ts", *extra_fields)
    return klass(
        body=payload,
        extra=_extra(event, promoted),
        team_id=_str(payload, "team_id") or _str(event, "team"),
        enterprise_id=enterprise_id,
        user_id=_str(event, "user"),
        channel_id=_str(event, "channel"),
        event_id=_str(payload, "event_id"),
        event_time=event_time if isinstance(event_time, int) else None,
        text=_str(event, "text") or "",
        ts=_str(event, "ts"),
        thread_ts=_str(event, "thread_ts"),
        **{field: _str(event, field) for field in extra_fields},
        **fields,
    )


def _slash_command(payload: dict[str, Any]) -> SlashCommand:
    promoted = (
        "command",
        "text",
        "team_id",
        "enterprise_id",
        "user_id",
        "channel_id",
        "trigger_id",
        "response_url",
        "api_app_id",
        "team_domain",
        "channel_name",
        "user_name",
    )
    return SlashCommand(
        body=payload,
        extra=_extra(payload, promoted),
        command=payload["command"],
        text=_str(payload, "text") or "",
        team_id=_str(payload, "team_id"),
        enterprise_id=_str(payload, "enterprise_id") or None,
        user_id=_str(payload, "user_id"),
        channel_id=_str(payload, "channel_id"),
        trigger_id=_str(payload, "trigger_id"),
        response_url=_str(payload, "response_url"),
        api_app_id=_str(payload, "api_app_id"),
        team_domain=_str(payload, "team_domain"),
        channel_name=_str(payload, "channel_name"),
        user_name=_str(payload, "user_name"),
    )


def _interactive_ids(payload: dict[str, Any]) -> dict[str, Optional[str]]:
    """The identifiers shared by every interactive payload"""
    return {
        "team_id": _str(payload.get("team"), "id") or _str(payload.get("user"), "team_id"),
        "enterprise_id": _str(payload.get("enterprise"), "id"),
        "user_id": _str(payload.get("user"), "id"),
        "channel_id": _str(payload.get("channel"), "id"),
        "trigger_id": _str(payload, "trigger_id"),
        "response_url": _str(payload, "response_url"),
    }


def _block_action(payload: dict[str, Any]) -> BlockAction:
    actions = payload.get("actions")
    if not isinstance(actions, list) or not actions:
        raise MalformedBody("Block actions payload without actions")
    if not all(isinstance(action, dict) for action in actions):
        raise MalformedBody("Malformed actions")

    container = payload.get("container")
    promoted = (
        "type",
        "actions",
        "container",
        "team",
        "enterprise",
        "user",
        "channel",
        "trigger_id",
        "response_url",
    )
    return BlockAction(
        body=payload,
        extra=_extra(payload, promoted),
        actions=tuple(actions),
        container=container if isinstance(container, dict) else {},
        **_interactive_ids(payload),
    )


def _shortcut(payload: dict[str, Any]) -> Shortcut:
    message = payload.get("message")
    promoted = (
        "type",
        "callback_id",
        "message",
        "team",
        "enterprise",
        "user",
        "channel",
        "trigger_id",
        "response_url",
    )
    return Shortcut(
        body=payload,
        extra=_extra(payload, promoted),
        callback_id=_require_str(payload, "callback_id"),
        shortcut_type=payload["type"],
        message=message if isinstance(message, dict) else None,
        **_interactive_ids(payload),
    )
