import json
import time
from typing import AsyncIterator, Callable, Optional
from urllib.parse import urlencode

import pytest

from slackwire import db as _db
from slackwire.oauth.memory import MemoryInstallationStore, MemoryStateStore
from slackwire.request import IncomingRequest
from slackwire.signature import compute_signature

SIGNING_SECRET = "8f742231b10e8888abcd99yyyzzz85a5"

SignRequest = Callable[..., IncomingRequest]


@pytest.fixture()
def signing_secret() -> str:
    return SIGNING_SECRET


@pytest.fixture()
def sign_request(signing_secret: str) -> SignRequest:
    """Build a correctly signed request for a json or form body"""

    def _sign(
        body: bytes | dict,
        *,
        form: bool = False,
        timestamp: Optional[int] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> IncomingRequest:
        if isinstance(body, dict):
            if form:
                body = urlencode(body).encode()
            else:
                body = json.dumps(body).encode()
        ts = str(timestamp if timestamp is not None else int(time.time()))
        content_type = "application/x-www-form-urlencoded" if form else "application/json"
        return IncomingRequest(
            headers={
                "Content-Type": content_type,
                "X-Slack-Request-Timestamp": ts,
                "X-Slack-Signature": compute_signature(signing_secret, ts, body),
                **(headers or {}),
            },
            body=body,
        )

    return _sign


@pytest.fixture()
def state_store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture()
def installation_store() -> MemoryInstallationStore:
    return MemoryInstallationStore()


@pytest.fixture()
async def engine(tmp_path) -> AsyncIterator:
    """A fresh SQLite database with all tables created for each test"""
    _engine = _db.create_engine(f"sqlite+aiosqlite:///{tmp_path / 'slackwire.db'}")
    await _db.create_all(_engine)

    yield _engine

    await _db.drop_all(_engine)
    await _engine.dispose()


@pytest.fixture()
def command_body() -> dict:
    return {
        "token": "gIkuvaNzQIHg97ATvDxqgjtO",
        "team_id": "T0001",
        "team_domain": "example",
        "enterprise_id": "E0001",
        "channel_id": "C2147483705",
        "channel_name": "test",
        "user_id": "U2147483697",
        "user_name": "steve",
        "command": "/weather",
        "text": "94070",
        "response_url": "https://hooks.slack.com/commands/1234/5678",
        "trigger_id": "13345224609.738474920.8088930838d88f008e0",
        "api_app_id": "A123456",
    }


@pytest.fixture()
def mention_body() -> dict:
    return {
        "token": "XXYYZZ",
        "team_id": "T0001",
        "api_app_id": "A123456",
        "event": {
            "type": "app_mention",
            "user": "U061F7AUR",
            "text": "<@U0LAN0Z89> is it everything a river should be?",
            "ts": "1515449522.000016",
            "channel": "C0LAN2Q65",
            "event_ts": "1515449522000016",
        },
        "type": "event_callback",
        "event_id": "Ev0LAN670R",
        "event_time": 1515449522,
    }


@pytest.fixture()
def block_action_body() -> dict:
    return {
        "type": "block_actions",
        "team": {"id": "T0001", "domain": "example"},
        "user": {"id": "U2147483697", "username": "steve", "team_id": "T0001"},
        "channel": {"id": "C2147483705", "name": "test"},
        "trigger_id": "12466734323.1395872398",
        "response_url": "https://hooks.slack.com/actions/T0001/1234/abcd",
        "container": {"type": "message", "message_ts": "1548261231.000200"},
        "actions": [
            {
                "action_id": "approve-request",
                "block_id": "request-block",
                "value": "approve_1234",
                "type": "button",
                "action_ts": "1548426417.840180",
            }
        ],
    }
