import asyncio
from asyncio.exceptions import CancelledError
from typing import Optional

import sentry_sdk
from aiohttp import web
from sentry_sdk.integrations.aiohttp import AioHttpIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from slackwire import __version__
from slackwire.app import App
from slackwire.config import Config, Server
from slackwire.exceptions import init_exception_handler
from slackwire.logging import configure_logger, logger, web_logger
from slackwire.request import IncomingRequest, Response
from slackwire.tasks import DEFAULT_PURGE_INTERVAL, state_purger

APP = web.AppKey("slackwire_app", App)
PENDING = web.AppKey("pending_listeners", set)
PURGE_TASK = web.AppKey("purge_task", asyncio.Task)
PURGE_INTERVAL = web.AppKey("purge_interval", float)

# How long shutdown waits for listeners still running after their ack
DRAIN_TIMEOUT = 10.0


def to_web_response(response: Response) -> web.Response:
    return web.Response(
        status=response.status,
        body=response.body.encode() if response.body else None,
        headers=response.headers,
    )


async def handle_events(request: web.Request) -> web.Response:
    app = request.app[APP]
    incoming = IncomingRequest(
        headers=dict(request.headers),
        body=await request.read(),
        query=dict(request.query),
    )
    outcome = await app.handle(incoming)

    if outcome.pending is not None:
        pending = request.app[PENDING]
        pending.add(outcome.pending)
        outcome.pending.add_done_callback(pending.discard)

    return to_web_response(outcome.response)


async def handle_install(request: web.Request) -> web.Response:
    app = request.app[APP]
    response = await app.handle_install(request.query.get("redirect"))
    return to_web_response(response)


async def handle_oauth_redirect(request: web.Request) -> web.Response:
    app = request.app[APP]
    response = await app.handle_oauth_redirect(dict(request.query))
    return to_web_response(response)


async def startup_task(web_app: web.Application) -> None:
    app = web_app[APP]
    if app.oauth is None:
        return
    logger.debug("Starting background task")
    web_app[PURGE_TASK] = asyncio.create_task(
        state_purger(app.oauth.state_store, web_app[PURGE_INTERVAL])
    )


async def cleanup_task(web_app: web.Application) -> None:
    if pending := set(web_app[PENDING]):
        logger.debug(f"Waiting for {len(pending)} listeners to finish")
        _, still_running = await asyncio.wait(pending, timeout=DRAIN_TIMEOUT)
        for task in still_running:
            task.cancel()

    if (task := web_app.get(PURGE_TASK)) is None:
        return
    logger.debug("Cleanup background task")
    task.cancel()
    try:
        await task
    except CancelledError:
        pass


def create_web_app(
    app: App,
    server: Optional[Server] = None,
    *,
    purge_interval: float = DEFAULT_PURGE_INTERVAL,
) -> web.Application:
    server = server or Server()

    web_app = web.Application()
    web_app[APP] = app
    web_app[PENDING] = set()
    web_app[PURGE_INTERVAL] = purge_interval

    web_app.router.add_post(server.path, handle_events)
    if app.oauth is not None:
        web_app.router.add_get(server.install_path, handle_install)
        web_app.router.add_get(server.redirect_path, handle_oauth_redirect)

    web_app.on_startup.append(startup_task)
    web_app.on_cleanup.append(cleanup_task)
    return web_app


def init_sentry(config: Config) -> None:
    if not config.sentry.dsn:
        logger.debug("No Sentry DSN configured, skipping")
        return
    sentry_sdk.init(
        dsn=config.sentry.dsn,
        release=f"slackwire@{__version__}",
        environment=config.sentry.env,
        integrations=[AioHttpIntegration(), SqlalchemyIntegration()],
        traces_sample_rate=1.0,
    )


def serve(app: App, config: Config) -> None:
    """Run the app behind an aiohttp server until interrupted"""
    configure_logger(config.logging.log_level, config.logging.web_log_level)
    init_sentry(config)
    loop = asyncio.new_event_loop()
    init_exception_handler(loop)

    web.run_app(
        create_web_app(app, config.server),
        host=config.server.host,
        port=config.server.port,
        access_log=web_logger,
        loop=loop,
    )
