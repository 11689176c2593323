import hashlib
import hmac
import time
from typing import Callable, Optional

from slackwire.exceptions import Malformed, Mismatch, Stale
from slackwire.request import IncomingRequest

# Requests older (or newer) than this many seconds are rejected as replays
MAX_REQUEST_AGE = 60 * 5
VERSION = "v0"


def compute_signature(secret: str, timestamp: str, body: bytes) -> str:
    basestring = f"{VERSION}:{timestamp}:".encode() + body
    digest = hmac.new(secret.encode(), basestring, hashlib.sha256).hexdigest()
    return f"{VERSION}={digest}"


def verify(
    secret: str,
    timestamp: Optional[str],
    body: bytes,
    signature: Optional[str],
    *,
    now: Optional[float] = None,
    max_age: int = MAX_REQUEST_AGE,
) -> None:
    """Verify a signed request, raising an `AuthError` if it isn't valid

    The signature is `v0=` followed by the hex HMAC-SHA256 of
    `v0:{timestamp}:{body}`, keyed with the signing secret
    """
    if not timestamp or not signature:
        raise Malformed("Missing timestamp or signature")
    try:
        request_time = int(timestamp)
    except ValueError:
        raise Malformed("Timestamp is not an integer")

    if now is None:
        now = time.time()
    if abs(now - request_time) > max_age:
        raise Stale("Request timestamp outside of the allowed window")

    expected = compute_signature(secret, timestamp, body)
    if not hmac.compare_digest(expected.encode(), signature.encode()):
        raise Mismatch("Signature mismatch")


class SignatureVerifier:
    def __init__(
        self,
        signing_secret: str,
        *,
        max_age: int = MAX_REQUEST_AGE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._signing_secret = signing_secret
        self.max_age = max_age
        self.clock = clock

    def verify_request(self, request: IncomingRequest) -> None:
        verify(
            self._signing_secret,
            request.timestamp,
            request.body,
            request.signature,
            now=self.clock(),
            max_age=self.max_age,
        )

    def __repr__(self) -> str:
        return f"<SignatureVerifier (max_age={self.max_age})>"
