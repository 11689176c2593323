from __future__ import annotations

import dataclasses as dc
import json
import time
from typing import Any, Mapping, Optional

TIMESTAMP_HEADER = "x-slack-request-timestamp"
SIGNATURE_HEADER = "x-slack-signature"
RETRY_NUM_HEADER = "x-slack-retry-num"
RETRY_REASON_HEADER = "x-slack-retry-reason"


@dc.dataclass(frozen=True)
class IncomingRequest:
    """A raw inbound request

    The body is kept as the exact bytes received, the signature is computed
    over them
    """

    headers: Mapping[str, str]
    body: bytes
    received_at: float = dc.field(default_factory=time.time)
    query: Mapping[str, str] = dc.field(default_factory=dict)

    def __post_init__(self) -> None:
        # Header names are case insensitive
        object.__setattr__(
            self, "headers", {k.lower(): v for k, v in self.headers.items()}
        )

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    @property
    def content_type(self) -> str:
        return self.header("content-type") or ""

    @property
    def timestamp(self) -> Optional[str]:
        return self.header(TIMESTAMP_HEADER)

    @property
    def signature(self) -> Optional[str]:
        return self.header(SIGNATURE_HEADER)

    @property
    def retry_num(self) -> Optional[int]:
        value = self.header(RETRY_NUM_HEADER)
        if value is None or not value.isdigit():
            return None
        return int(value)

    @property
    def retry_reason(self) -> Optional[str]:
        return self.header(RETRY_REASON_HEADER)


@dc.dataclass
class Response:
    status: int = 200
    body: str = ""
    headers: dict[str, str] = dc.field(default_factory=dict)

    @classmethod
    def empty(cls) -> Response:
        return cls()

    @classmethod
    def json(cls, data: Mapping[str, Any], status: int = 200) -> Response:
        return cls(
            status=status,
            body=json.dumps(data),
            headers={"Content-Type": "application/json"},
        )

    @classmethod
    def text(cls, body: str, status: int = 200) -> Response:
        return cls(
            status=status,
            body=body,
            headers={"Content-Type": "text/plain; charset=utf-8"},
        )

    @classmethod
    def challenge(cls, challenge: str) -> Response:
        return cls.json({"challenge": challenge})

    @classmethod
    def redirect(cls, url: str) -> Response:
        return cls(status=302, headers={"Location": url})

    @classmethod
    def unauthorized(cls) -> Response:
        # Never say why, the body must not help anyone forging signatures
        return cls(status=401)

    @classmethod
    def bad_request(cls, message: str = "Bad request") -> Response:
        return cls.text(message, status=400)
