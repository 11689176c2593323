from asyncio.events import AbstractEventLoop
from typing import Any, Optional

import sentry_sdk

from slackwire.logging import logger


def exception_handler(loop: AbstractEventLoop, context: dict[str, Any]) -> None:
    exception = context.get("exception")
    logger.error("Global exception handler got exception", exc_info=exception)

    if exception:
        sentry_sdk.capture_exception(exception)
    else:
        sentry_sdk.capture_message("Got unexpected asyncio exception")


def init_exception_handler(loop: AbstractEventLoop):
    loop.set_exception_handler(exception_handler)


class SlackwireException(Exception):
    # HTTP status the error maps to when it reaches a caller
    status: int = 500


class AuthError(SlackwireException):
    status = 401


class Stale(AuthError):
    pass


class Mismatch(AuthError):
    pass


class Malformed(AuthError):
    pass


class ParseError(SlackwireException):
    status = 400


class UnknownType(ParseError):
    pass


class MalformedBody(ParseError):
    pass


class DispatchError(SlackwireException):
    pass


class NoListener(DispatchError):
    pass


class HandlerFailure(DispatchError):
    """A single middleware or listener raised

    The original exception is kept on `error` and chained as `__cause__`
    """

    def __init__(self, listener: str, error: BaseException) -> None:
        super().__init__(f"{listener} failed: {error!r}")
        self.listener = listener
        self.error = error
        self.__cause__ = error


class AckAlreadySent(DispatchError):
    pass


class RegistryFrozen(SlackwireException):
    pass


class OAuthError(SlackwireException):
    status = 400


class InvalidState(OAuthError):
    pass


class AuthorizationDenied(OAuthError):
    pass


class ExchangeFailure(OAuthError):
    pass


class StoreFailure(OAuthError):
    status = 500


class InvalidTransition(OAuthError):
    status = 500


class StoreError(SlackwireException):
    pass


class ExchangeRejected(SlackwireException):
    def __init__(self, error: str, status_code: Optional[int] = None) -> None:
        super().__init__(error)
        self.error = error
        self.status_code = status_code


class TransientExchangeError(SlackwireException):
    pass
