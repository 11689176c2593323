import asyncio
import json
from unittest import mock

import pytest

from slackwire.authorize import (
    Authorizer,
    InstallationStoreAuthorizer,
    SingleWorkspaceAuthorizer,
)
from slackwire.dispatch import DispatchPipeline
from slackwire.events import AppMention, BlockAction, SlashCommand
from slackwire.exceptions import AckAlreadySent, HandlerFailure, NoListener
from slackwire.oauth.models import Installation
from slackwire.registry import RegistryBuilder
from slackwire.request import IncomingRequest


def _command(command: str = "/deploy", **kwargs) -> SlashCommand:
    return SlashCommand(
        body={"command": command, "text": "prod"},
        command=command,
        text="prod",
        team_id="T0001",
        user_id="U0001",
        channel_id="C0001",
        **kwargs,
    )


async def test_listeners_run_in_registration_order() -> None:
    builder = RegistryBuilder()
    calls = []

    @builder.command("/deploy")
    async def first(ack):
        calls.append("first")
        await ack("Deploying")

    @builder.command("/deploy")
    async def second():
        calls.append("second")

    outcome = await DispatchPipeline(builder.build()).dispatch(_command())
    if outcome.pending:
        await outcome.pending

    assert calls == ["first", "second"]
    assert outcome.response.status == 200
    assert json.loads(outcome.response.body) == {"text": "Deploying"}
    assert not outcome.auto_acked


async def test_failing_listener_does_not_stop_the_next_one() -> None:
    builder = RegistryBuilder()
    calls = []
    error = RuntimeError("Uh oh")

    @builder.command("/deploy")
    async def broken():
        raise error

    @builder.command("/deploy")
    async def working(ack):
        calls.append("working")
        await ack()

    with mock.patch("slackwire.dispatch.sentry_sdk") as mock_sentry:
        outcome = await DispatchPipeline(builder.build()).dispatch(_command())

    assert calls == ["working"]
    assert len(outcome.failures) == 1
    failure = outcome.failures[0]
    assert isinstance(failure, HandlerFailure)
    assert failure.error is error
    assert failure.listener.endswith("broken")
    mock_sentry.capture_exception.assert_called_once_with(error)
    assert outcome.response.status == 200


async def test_auto_ack_when_nothing_acks_in_time() -> None:
    builder = RegistryBuilder()
    finished = asyncio.Event()

    @builder.command("/deploy")
    async def slow():
        await asyncio.sleep(0.2)
        finished.set()

    outcome = await DispatchPipeline(builder.build(), ack_timeout=0.05).dispatch(
        _command()
    )

    assert outcome.auto_acked
    assert outcome.response.status == 200
    assert outcome.response.body == ""
    # The listener keeps running after the response
    assert outcome.pending is not None
    assert not finished.is_set()
    await outcome.pending
    assert finished.is_set()


async def test_auto_ack_when_listener_finishes_without_ack() -> None:
    builder = RegistryBuilder()

    @builder.command("/deploy")
    async def forgetful():
        pass

    outcome = await DispatchPipeline(builder.build()).dispatch(_command())

    assert outcome.auto_acked
    assert outcome.pending is None
    assert outcome.response.status == 200


async def test_response_returned_as_soon_as_listener_acks() -> None:
    builder = RegistryBuilder()
    release = asyncio.Event()

    @builder.command("/deploy")
    async def ack_then_work(ack):
        await ack("On it")
        await release.wait()

    outcome = await DispatchPipeline(builder.build(), ack_timeout=1).dispatch(
        _command()
    )

    assert json.loads(outcome.response.body) == {"text": "On it"}
    assert outcome.pending is not None
    release.set()
    await outcome.pending


async def test_process_before_response_cancels_late_listeners() -> None:
    builder = RegistryBuilder()
    cancelled = asyncio.Event()

    @builder.command("/deploy")
    async def slow(ack):
        await ack("Started")
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    pipeline = DispatchPipeline(
        builder.build(), ack_timeout=0.05, process_before_response=True
    )
    outcome = await pipeline.dispatch(_command())

    assert cancelled.is_set()
    assert outcome.pending is None
    assert json.loads(outcome.response.body) == {"text": "Started"}


async def test_process_before_response_waits_for_listeners() -> None:
    builder = RegistryBuilder()
    calls = []

    @builder.command("/deploy")
    async def first(ack):
        await ack()
        await asyncio.sleep(0.01)
        calls.append("first")

    @builder.command("/deploy")
    async def second():
        calls.append("second")

    pipeline = DispatchPipeline(builder.build(), process_before_response=True)
    outcome = await pipeline.dispatch(_command())

    assert calls == ["first", "second"]
    assert outcome.pending is None


async def test_second_ack_is_ignored() -> None:
    builder = RegistryBuilder()

    @builder.command("/deploy")
    async def first(ack):
        await ack("first")

    @builder.command("/deploy")
    async def second(ack):
        await ack("second")

    pipeline = DispatchPipeline(builder.build(), process_before_response=True)
    outcome = await pipeline.dispatch(_command())

    assert json.loads(outcome.response.body) == {"text": "first"}
    assert outcome.failures == []


async def test_second_ack_raises_when_strict() -> None:
    builder = RegistryBuilder()

    @builder.command("/deploy")
    async def first(ack):
        await ack("first")

    @builder.command("/deploy")
    async def second(ack):
        await ack("second")

    pipeline = DispatchPipeline(
        builder.build(), process_before_response=True, strict_ack=True
    )
    outcome = await pipeline.dispatch(_command())

    assert json.loads(outcome.response.body) == {"text": "first"}
    assert len(outcome.failures) == 1
    assert isinstance(outcome.failures[0].error, AckAlreadySent)


async def test_stop_propagation() -> None:
    builder = RegistryBuilder()
    calls = []

    @builder.command("/deploy")
    async def first(ack, context):
        calls.append("first")
        await ack()
        context.stop_propagation()

    @builder.command("/deploy")
    async def second():
        calls.append("second")

    pipeline = DispatchPipeline(builder.build(), process_before_response=True)
    outcome = await pipeline.dispatch(_command())

    assert calls == ["first"]
    assert outcome.listeners == [first.__qualname__]


async def test_no_listener() -> None:
    builder = RegistryBuilder()

    @builder.command("/other")
    async def other(ack):
        await ack()

    outcome = await DispatchPipeline(builder.build()).dispatch(_command())

    assert outcome.no_listener
    assert isinstance(outcome.errors[0], NoListener)
    assert outcome.auto_acked
    assert outcome.response.status == 200


async def test_middleware_runs_before_listeners() -> None:
    builder = RegistryBuilder()
    calls = []

    @builder.use
    async def first_middleware(context, next):
        calls.append("first_middleware")
        context["role"] = "admin"
        await next()
        calls.append("first_middleware done")

    @builder.use
    async def second_middleware(next):
        calls.append("second_middleware")
        await next()

    @builder.command("/deploy")
    async def deploy(ack, context):
        calls.append(f"deploy as {context['role']}")
        await ack()

    pipeline = DispatchPipeline(builder.build(), process_before_response=True)
    await pipeline.dispatch(_command())

    assert calls == [
        "first_middleware",
        "second_middleware",
        "deploy as admin",
        "first_middleware done",
    ]


async def test_middleware_can_short_circuit() -> None:
    builder = RegistryBuilder()
    calls = []

    @builder.use
    async def gatekeeper(ack, next):
        await ack("Not allowed")

    @builder.command("/deploy")
    async def deploy(ack):
        calls.append("deploy")

    outcome = await DispatchPipeline(builder.build()).dispatch(_command())
    if outcome.pending:
        await outcome.pending

    assert calls == []
    assert json.loads(outcome.response.body) == {"text": "Not allowed"}
    assert not outcome.no_listener


async def test_failing_middleware_stops_the_chain() -> None:
    builder = RegistryBuilder()
    calls = []

    @builder.use
    async def broken(next):
        raise RuntimeError("Middleware broke")

    @builder.command("/deploy")
    async def deploy(ack):
        calls.append("deploy")

    pipeline = DispatchPipeline(builder.build(), process_before_response=True)
    outcome = await pipeline.dispatch(_command())

    assert calls == []
    assert len(outcome.failures) == 1
    assert outcome.failures[0].listener.endswith("broken")
    assert outcome.auto_acked


async def test_listener_arguments() -> None:
    builder = RegistryBuilder()
    seen = {}

    @builder.command("/deploy")
    async def deploy(ack, command, body, payload, event, context, logger, say, respond):
        seen.update(
            command=command, body=body, payload=payload, event=event, context=context
        )
        await ack()

    event = _command(response_url="https://hooks.slack.com/commands/1/2")
    request = IncomingRequest(
        headers={"X-Slack-Retry-Num": "1", "X-Slack-Retry-Reason": "http_timeout"},
        body=b"",
    )
    await DispatchPipeline(builder.build()).dispatch(event, request)

    assert seen["command"] == {"command": "/deploy", "text": "prod"}
    assert seen["body"] is event.body
    assert seen["event"] is event
    context = seen["context"]
    assert context.team_id == "T0001"
    assert context.user_id == "U0001"
    assert context.channel_id == "C0001"
    assert context.response_url == "https://hooks.slack.com/commands/1/2"
    assert context.retry_num == 1
    assert context.retry_reason == "http_timeout"


async def test_action_argument_is_the_action() -> None:
    builder = RegistryBuilder()
    seen = {}

    @builder.action("approve")
    async def approve(ack, action):
        seen["action"] = action
        await ack()

    event = BlockAction(
        body={"actions": [{"action_id": "approve", "value": "1"}]},
        actions=({"action_id": "approve", "value": "1"},),
    )
    await DispatchPipeline(builder.build()).dispatch(event)

    assert seen["action"] == {"action_id": "approve", "value": "1"}


async def test_single_workspace_authorizer_sets_token() -> None:
    builder = RegistryBuilder()
    tokens = []

    @builder.command("/deploy")
    async def deploy(ack, context):
        tokens.append((context.bot_token, context.bot_user_id))
        await ack()

    pipeline = DispatchPipeline(
        builder.build(), SingleWorkspaceAuthorizer("xoxb-single", "U_BOT")
    )
    await pipeline.dispatch(_command())

    assert tokens == [("xoxb-single", "U_BOT")]


async def test_installation_store_authorizer(installation_store) -> None:
    await installation_store.save(
        Installation(team_id="T0001", bot_token="xoxb-team", bot_user_id="U_BOT")
    )
    builder = RegistryBuilder()
    tokens = []

    @builder.event("app_mention")
    async def mention(context):
        tokens.append(context.bot_token)

    pipeline = DispatchPipeline(
        builder.build(), InstallationStoreAuthorizer(installation_store)
    )
    await pipeline.dispatch(
        AppMention(body={"event": {}}, team_id="T0001", text="hi")
    )
    await pipeline.dispatch(
        AppMention(body={"event": {}}, team_id="T_UNKNOWN", text="hi")
    )

    assert tokens == ["xoxb-team", None]


async def test_failing_authorizer_still_dispatches() -> None:
    class BrokenAuthorizer(Authorizer):
        async def authorize(self, event):
            raise ConnectionError("Store is down")

    builder = RegistryBuilder()
    tokens = []

    @builder.command("/deploy")
    async def deploy(ack, context):
        tokens.append(context.bot_token)
        await ack()

    await DispatchPipeline(builder.build(), BrokenAuthorizer()).dispatch(_command())

    assert tokens == [None]


async def test_contexts_are_not_shared_between_dispatches() -> None:
    builder = RegistryBuilder()
    contexts = []

    @builder.command("/deploy")
    async def deploy(ack, context):
        assert context.get("seen") is None
        context["seen"] = True
        contexts.append(context)
        await ack()

    pipeline = DispatchPipeline(builder.build(), process_before_response=True)
    outcomes = await asyncio.gather(
        pipeline.dispatch(_command()), pipeline.dispatch(_command())
    )

    assert len(contexts) == 2
    assert contexts[0] is not contexts[1]
    assert all(outcome.failures == [] for outcome in outcomes)


@pytest.mark.parametrize("process_before_response", [True, False])
async def test_ack_timeout_is_respected(process_before_response) -> None:
    builder = RegistryBuilder()

    @builder.command("/deploy")
    async def stuck():
        await asyncio.sleep(10)

    pipeline = DispatchPipeline(
        builder.build(),
        ack_timeout=0.05,
        process_before_response=process_before_response,
    )
    loop = asyncio.get_running_loop()
    started = loop.time()
    outcome = await pipeline.dispatch(_command())
    elapsed = loop.time() - started

    assert elapsed < 1
    assert outcome.auto_acked
    if outcome.pending is not None:
        outcome.pending.cancel()
        await asyncio.gather(outcome.pending, return_exceptions=True)


async def test_web_client_is_only_built_when_asked_for() -> None:
    builder = RegistryBuilder()
    clients = []

    @builder.use
    async def passthrough(next):
        await next()

    @builder.command("/deploy")
    async def deploy(ack):
        await ack()

    @builder.command("/post")
    async def post(ack, client):
        clients.append(client)
        await ack()

    pipeline = DispatchPipeline(builder.build(), SingleWorkspaceAuthorizer("xoxb-1"))

    with mock.patch("slackwire.context.AsyncWebClient") as mock_client:
        await pipeline.dispatch(_command("/deploy"))
        mock_client.assert_not_called()

        await pipeline.dispatch(_command("/post"))

    mock_client.assert_called_once_with(token="xoxb-1")
    assert clients == [mock_client.return_value]
