import pytest

from slackwire.exceptions import AuthError, Malformed, Mismatch, Stale
from slackwire.request import IncomingRequest
from slackwire.signature import SignatureVerifier, compute_signature, verify

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"
TIMESTAMP = "1531420618"
BODY = (
    b"token=xyzz0WbapA4vBCDEFasx0q6G&team_id=T1DC2JH3J&team_domain=testteamnow"
    b"&channel_id=G8PSS9T3V&channel_name=foobar&user_id=U2CERLKJA"
    b"&user_name=roadrunner&command=%2Fwebhook-collect&text="
    b"&response_url=https%3A%2F%2Fhooks.slack.com%2Fcommands%2FT1DC2JH3J"
    b"%2F397700885554%2F96rGlfmibIGlgcZRskXaIFfN"
    b"&trigger_id=398738663015.47445629121.803a0bc887a14d10d2c447fce8b6703c"
)
# Published example signature for the body above
SIGNATURE = "v0=a2114d57b48eac39b9ad189dd8316235a7b4a8d21a10bd27519666489c69b503"
NOW = float(TIMESTAMP) + 10


def test_compute_signature_matches_published_example() -> None:
    assert compute_signature(SECRET, TIMESTAMP, BODY) == SIGNATURE


def test_verify_accepts_valid_signature() -> None:
    verify(SECRET, TIMESTAMP, BODY, SIGNATURE, now=NOW)


def test_verify_rejects_modified_body() -> None:
    with pytest.raises(Mismatch):
        verify(SECRET, TIMESTAMP, BODY + b" ", SIGNATURE, now=NOW)


def _flip(data: bytes, position: int) -> bytes:
    flipped = bytearray(data)
    flipped[position] ^= 0x01
    return bytes(flipped)


@pytest.mark.parametrize("position", range(len(BODY)))
def test_verify_rejects_body_with_one_byte_changed(position) -> None:
    with pytest.raises(Mismatch):
        verify(SECRET, TIMESTAMP, _flip(BODY, position), SIGNATURE, now=NOW)


@pytest.mark.parametrize("position", range(len(SIGNATURE)))
def test_verify_rejects_signature_with_one_byte_changed(position) -> None:
    signature = _flip(SIGNATURE.encode(), position).decode()

    with pytest.raises(Mismatch):
        verify(SECRET, TIMESTAMP, BODY, signature, now=NOW)


def test_verify_rejects_wrong_secret() -> None:
    with pytest.raises(Mismatch):
        verify("not-the-secret", TIMESTAMP, BODY, SIGNATURE, now=NOW)


def test_verify_rejects_stale_timestamp() -> None:
    with pytest.raises(Stale):
        verify(SECRET, TIMESTAMP, BODY, SIGNATURE, now=float(TIMESTAMP) + 301)


def test_verify_rejects_timestamp_from_the_future() -> None:
    with pytest.raises(Stale):
        verify(SECRET, TIMESTAMP, BODY, SIGNATURE, now=float(TIMESTAMP) - 301)


def test_verify_accepts_edge_of_window() -> None:
    verify(SECRET, TIMESTAMP, BODY, SIGNATURE, now=float(TIMESTAMP) + 300)


@pytest.mark.parametrize(
    "timestamp, signature",
    [
        (None, SIGNATURE),
        (TIMESTAMP, None),
        ("", SIGNATURE),
        ("not-a-number", SIGNATURE),
    ],
)
def test_verify_rejects_malformed_headers(timestamp, signature) -> None:
    with pytest.raises(Malformed):
        verify(SECRET, timestamp, BODY, signature, now=NOW)


def test_stale_is_checked_before_the_signature() -> None:
    with pytest.raises(Stale):
        verify(SECRET, TIMESTAMP, BODY, "v0=garbage", now=NOW + 3600)


def test_signature_verifier_uses_request_headers() -> None:
    verifier = SignatureVerifier(SECRET, clock=lambda: NOW)
    request = IncomingRequest(
        headers={
            "X-Slack-Request-Timestamp": TIMESTAMP,
            "X-Slack-Signature": SIGNATURE,
        },
        body=BODY,
    )

    verifier.verify_request(request)


def test_signature_verifier_rejects_unsigned_request() -> None:
    verifier = SignatureVerifier(SECRET, clock=lambda: NOW)

    with pytest.raises(AuthError):
        verifier.verify_request(IncomingRequest(headers={}, body=BODY))


def test_signature_verifier_custom_max_age() -> None:
    verifier = SignatureVerifier(SECRET, max_age=5, clock=lambda: NOW)
    request = IncomingRequest(
        headers={
            "X-Slack-Request-Timestamp": TIMESTAMP,
            "X-Slack-Signature": SIGNATURE,
        },
        body=BODY,
    )

    with pytest.raises(Stale):
        verifier.verify_request(request)


def test_verifier_repr_does_not_leak_secret() -> None:
    assert SECRET not in repr(SignatureVerifier(SECRET))
