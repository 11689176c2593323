import json

from slackwire.request import IncomingRequest, Response


def test_headers_are_case_insensitive() -> None:
    request = IncomingRequest(
        headers={
            "X-Slack-Request-Timestamp": "1531420618",
            "X-SLACK-SIGNATURE": "v0=abc",
            "Content-Type": "application/json",
        },
        body=b"{}",
    )

    assert request.timestamp == "1531420618"
    assert request.signature == "v0=abc"
    assert request.content_type == "application/json"
    assert request.header("x-slack-signature") == "v0=abc"


def test_retry_headers() -> None:
    request = IncomingRequest(
        headers={"X-Slack-Retry-Num": "3", "X-Slack-Retry-Reason": "http_error"},
        body=b"",
    )

    assert request.retry_num == 3
    assert request.retry_reason == "http_error"
    assert IncomingRequest(headers={}, body=b"").retry_num is None
    assert IncomingRequest(headers={"X-Slack-Retry-Num": "x"}, body=b"").retry_num is None


def test_challenge_response() -> None:
    response = Response.challenge("abc")

    assert response.status == 200
    assert json.loads(response.body) == {"challenge": "abc"}


def test_unauthorized_response_has_no_body() -> None:
    response = Response.unauthorized()

    assert response.status == 401
    assert response.body == ""


def test_redirect_response() -> None:
    response = Response.redirect("https://example.com")

    assert response.status == 302
    assert response.headers == {"Location": "https://example.com"}
