from __future__ import annotations

import asyncio
import dataclasses as dc
from asyncio.exceptions import CancelledError
from typing import Any, Awaitable, Callable, Optional, Sequence

import sentry_sdk

from slackwire.authorize import Authorization, Authorizer
from slackwire.context import Ack, Context
from slackwire.events import Event, EventKind
from slackwire.exceptions import DispatchError, HandlerFailure, NoListener
from slackwire.logging import logger
from slackwire.registry import Arguments, ListenerRegistry, Middleware, build_kwargs
from slackwire.request import IncomingRequest, Response

# The platform gives up on a synchronous response after 3 seconds
DEFAULT_ACK_TIMEOUT = 3.0


@dc.dataclass
class Outcome:
    """What happened while handling a single request"""

    response: Response
    errors: list[DispatchError] = dc.field(default_factory=list)
    listeners: list[str] = dc.field(default_factory=list)
    auto_acked: bool = False
    # Handlers still running after the response was decided
    pending: Optional[asyncio.Task] = dc.field(default=None, repr=False)

    @property
    def failures(self) -> list[HandlerFailure]:
        return [e for e in self.errors if isinstance(e, HandlerFailure)]

    @property
    def no_listener(self) -> bool:
        return any(isinstance(e, NoListener) for e in self.errors)


class DispatchPipeline:
    def __init__(
        self,
        registry: ListenerRegistry,
        authorizer: Optional[Authorizer] = None,
        *,
        ack_timeout: float = DEFAULT_ACK_TIMEOUT,
        process_before_response: bool = False,
        strict_ack: bool = False,
    ) -> None:
        self.registry = registry
        self.authorizer = authorizer
        self.ack_timeout = ack_timeout
        # When set, handlers never outlive the response. Needed where the
        # runtime freezes or kills compute as soon as the response is sent
        self.process_before_response = process_before_response
        self.strict_ack = strict_ack

    async def dispatch(
        self, event: Event, request: Optional[IncomingRequest] = None
    ) -> Outcome:
        ack = Ack(strict=self.strict_ack)
        outcome = Outcome(response=Response.empty())
        run = asyncio.create_task(self._run(event, ack, request, outcome))

        try:
            if self.process_before_response:
                await asyncio.wait({run}, timeout=self.ack_timeout)
            else:
                await asyncio.wait(
                    {run, ack.future},
                    timeout=self.ack_timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )
        except CancelledError:
            run.cancel()
            raise

        if not ack.acknowledged:
            ack.auto_ack()
            outcome.auto_acked = True
            if not run.done():
                logger.warning(
                    f"No ack for {event.kind.value} within {self.ack_timeout}s,"
                    " sending an empty acknowledgment"
                )
            elif event.requires_ack and outcome.listeners:
                logger.warning(
                    f"Listeners for {event.kind.value} finished without an ack,"
                    " sending an empty acknowledgment"
                )

        if not run.done():
            if self.process_before_response:
                logger.warning(
                    f"Abandoning listeners for {event.kind.value} still running"
                    " after the deadline"
                )
                run.cancel()
                try:
                    await run
                except CancelledError:
                    pass
            else:
                outcome.pending = run
        elif not run.cancelled() and (error := run.exception()) is not None:
            self._record_failure(outcome, "dispatch", error)

        outcome.response = ack.response or Response.empty()
        return outcome

    async def _run(
        self,
        event: Event,
        ack: Ack,
        request: Optional[IncomingRequest],
        outcome: Outcome,
    ) -> None:
        with sentry_sdk.start_transaction(
            op="dispatch", name=f"Dispatch {event.kind.value}"
        ):
            context = await self.build_context(event, ack, request)
            listeners = self.registry.listeners_for(event)
            arguments = self._arguments(context)

            async def run_listeners() -> None:
                if not listeners:
                    logger.debug(f"No listener for {event.kind.value} {event.key!r}")
                    outcome.errors.append(
                        NoListener(f"No listener for {event.kind.value} {event.key!r}")
                    )
                    return

                for listener in listeners:
                    outcome.listeners.append(listener.name)
                    try:
                        await listener.handler(
                            **build_kwargs(listener.handler, arguments)
                        )
                    except Exception as e:
                        self._record_failure(outcome, listener.name, e)
                    if context.propagation_stopped:
                        logger.debug(f"{listener.name} stopped propagation")
                        break

            await self._chain(
                self.registry.middleware, context, arguments, outcome, run_listeners
            )

    async def _chain(
        self,
        middleware: Sequence[Middleware],
        context: Context,
        arguments: Arguments,
        outcome: Outcome,
        final: Callable[[], Awaitable[None]],
    ) -> None:
        """Run the middleware in order, each one decides if the rest runs"""
        if not middleware:
            await final()
            return

        current, rest = middleware[0], middleware[1:]
        called = False

        async def next_() -> None:
            nonlocal called
            if called:
                logger.warning(f"{current.name} called next more than once")
                return
            called = True
            await self._chain(rest, context, arguments, outcome, final)

        try:
            await current.handler(
                **build_kwargs(current.handler, arguments.with_value("next", next_))
            )
        except Exception as e:
            self._record_failure(outcome, current.name, e)
            return

        if not called:
            logger.debug(f"{current.name} short-circuited the chain")

    async def build_context(
        self, event: Event, ack: Ack, request: Optional[IncomingRequest] = None
    ) -> Context:
        authorization: Optional[Authorization] = None
        if self.authorizer is not None:
            try:
                authorization = await self.authorizer.authorize(event)
            except Exception as e:
                logger.error("Unable to authorize event", exc_info=e)
                sentry_sdk.capture_exception(e)

        return Context(
            event=event,
            ack=ack,
            team_id=event.team_id,
            enterprise_id=event.enterprise_id,
            user_id=event.user_id,
            channel_id=event.channel_id,
            trigger_id=event.trigger_id,
            response_url=event.response_url,
            bot_token=authorization.bot_token if authorization else None,
            bot_user_id=authorization.bot_user_id if authorization else None,
            retry_num=request.retry_num if request else None,
            retry_reason=request.retry_reason if request else None,
        )

    def _arguments(self, context: Context) -> Arguments:
        event = context.event
        values: dict[str, Any] = {
            "context": context,
            "ack": context.ack,
            "event": event,
            "body": event.body,
            "payload": event.payload,
            "say": context.say,
            "respond": context.respond,
            "logger": logger,
        }
        match event.kind:
            case EventKind.SLASH_COMMAND:
                values["command"] = event.payload
            case EventKind.BLOCK_ACTION:
                values["action"] = event.payload
            case EventKind.SHORTCUT:
                values["shortcut"] = event.payload
            case EventKind.MESSAGE:
                values["message"] = event.payload
        # The web client is only built for handlers that ask for it
        return Arguments(values, lazy={"client": lambda: context.client})

    def _record_failure(self, outcome: Outcome, name: str, error: Exception) -> None:
        logger.error(f"{name} failed", exc_info=error)
        sentry_sdk.capture_exception(error)
        outcome.errors.append(HandlerFailure(name, error))
