from __future__ import annotations

import asyncio
import dataclasses as dc
import datetime as dt
import enum
from typing import Awaitable, Callable, Optional, Sequence

import sentry_sdk
from slack_sdk.oauth import AuthorizeUrlGenerator

from slackwire.exceptions import (
    AuthorizationDenied,
    ExchangeFailure,
    ExchangeRejected,
    InvalidState,
    InvalidTransition,
    OAuthError,
    StoreError,
    StoreFailure,
    TransientExchangeError,
)
from slackwire.logging import logger
from slackwire.oauth.exchange import TokenExchanger, TokenGrant
from slackwire.oauth.models import Installation, mint_state, utcnow
from slackwire.oauth.stores import InstallationStore, StateStore

AUTHORIZATION_URL = "https://slack.com/oauth/v2/authorize"
DEFAULT_STATE_TTL = 600


class FlowState(enum.Enum):
    IDLE = "idle"
    STATE_ISSUED = "state_issued"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING = "exchanging"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: dict[FlowState, frozenset[FlowState]] = {
    FlowState.IDLE: frozenset({FlowState.STATE_ISSUED, FlowState.FAILED}),
    FlowState.STATE_ISSUED: frozenset({FlowState.AWAITING_CALLBACK, FlowState.FAILED}),
    FlowState.AWAITING_CALLBACK: frozenset({FlowState.EXCHANGING, FlowState.FAILED}),
    FlowState.EXCHANGING: frozenset({FlowState.COMPLETED, FlowState.FAILED}),
    FlowState.COMPLETED: frozenset(),
    FlowState.FAILED: frozenset(),
}


@dc.dataclass
class FlowRun:
    """One step of the install flow, as seen by a single invocation

    The install request and the callback are separate invocations, the state
    token parked in the `StateStore` is the only thing connecting them
    """

    state: FlowState = FlowState.IDLE
    history: list[FlowState] = dc.field(default_factory=list)
    url: Optional[str] = None
    installation: Optional[Installation] = None
    redirect_hint: Optional[str] = None
    error: Optional[OAuthError] = None

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(self.state)

    @classmethod
    def awaiting_callback(cls) -> FlowRun:
        return cls(state=FlowState.AWAITING_CALLBACK)

    @property
    def terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    @property
    def succeeded(self) -> bool:
        return self.state is FlowState.COMPLETED

    def advance(self, to: FlowState) -> None:
        if to not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"Can't go from {self.state.value} to {to.value}")
        logger.debug(f"OAuth flow {self.state.value} -> {to.value}")
        self.state = to
        self.history.append(to)

    def fail(self, error: OAuthError) -> None:
        self.error = error
        self.advance(FlowState.FAILED)


class OAuthFlowController:
    def __init__(
        self,
        *,
        client_id: str,
        scopes: Sequence[str],
        state_store: StateStore,
        installation_store: InstallationStore,
        exchanger: TokenExchanger,
        redirect_uri: Optional[str] = None,
        user_scopes: Sequence[str] = (),
        state_ttl: int = DEFAULT_STATE_TTL,
        authorization_url: str = AUTHORIZATION_URL,
        exchange_retries: int = 2,
        store_retries: int = 1,
        backoff: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client_id = client_id
        self.scopes = tuple(scopes)
        self.user_scopes = tuple(user_scopes)
        self.redirect_uri = redirect_uri
        self.state_store = state_store
        self.installation_store = installation_store
        self.exchanger = exchanger
        self.state_ttl = state_ttl
        self.exchange_retries = exchange_retries
        self.store_retries = store_retries
        self.backoff = backoff
        self._sleep = sleep
        self._url_generator = AuthorizeUrlGenerator(
            client_id=client_id,
            redirect_uri=redirect_uri,
            scopes=list(self.scopes),
            user_scopes=list(self.user_scopes),
            authorization_url=authorization_url,
        )

    async def start(self, redirect_hint: Optional[str] = None) -> FlowRun:
        run = FlowRun()
        state = mint_state()
        try:
            await self.state_store.put(state, self.state_ttl, redirect_hint=redirect_hint)
        except StoreError as e:
            logger.error("Unable to store OAuth state", exc_info=e)
            sentry_sdk.capture_exception(e)
            run.fail(StoreFailure("Unable to store OAuth state"))
            return run

        run.url = self._url_generator.generate(state)
        run.redirect_hint = redirect_hint
        run.advance(FlowState.STATE_ISSUED)
        return run

    async def generate_install_url(self, redirect_hint: Optional[str] = None) -> str:
        run = await self.start(redirect_hint)
        if run.error is not None:
            raise run.error
        if run.url is None:
            raise InvalidTransition(f"No install url in {run.state.value}")
        return run.url

    async def run_callback(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> FlowRun:
        run = FlowRun.awaiting_callback()
        try:
            await self._callback(run, code, state, error)
        except OAuthError as e:
            logger.info(f"OAuth callback failed in {run.state.value}: {e}")
            run.fail(e)
        return run

    async def handle_callback(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> Installation:
        run = await self.run_callback(code, state, error)
        if run.error is not None:
            raise run.error
        if run.installation is None:
            raise InvalidTransition(f"No installation in {run.state.value}")
        return run.installation

    async def _callback(
        self,
        run: FlowRun,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str],
    ) -> None:
        if not state:
            raise InvalidState("Missing state")

        try:
            oauth_state = await self.state_store.consume_state(state)
        except StoreError as e:
            sentry_sdk.capture_exception(e)
            raise StoreFailure("Unable to verify OAuth state") from e
        if oauth_state is None:
            raise InvalidState("Unknown, expired or already used state")
        run.redirect_hint = oauth_state.redirect_hint

        if error:
            raise AuthorizationDenied(f"Authorization failed: {error}")
        if not code:
            raise ExchangeFailure("Missing code")

        run.advance(FlowState.EXCHANGING)
        grant = await self._exchange(code)
        installation = self._installation(grant)
        await self._save(installation)

        run.installation = installation
        run.advance(FlowState.COMPLETED)
        logger.info(f"Completed installation for {installation}")

    async def _exchange(self, code: str) -> TokenGrant:
        for attempt in range(self.exchange_retries + 1):
            try:
                return await self.exchanger.exchange(code, self.redirect_uri)
            except ExchangeRejected as e:
                raise ExchangeFailure(f"Code rejected: {e.error}") from e
            except TransientExchangeError as e:
                if attempt == self.exchange_retries:
                    raise ExchangeFailure("Token exchange unavailable") from e
                logger.warning(
                    f"Token exchange failed ({e}), retry {attempt + 1}"
                    f" of {self.exchange_retries}"
                )
                await self._sleep(self.backoff * 2**attempt)
        raise ExchangeFailure("Token exchange unavailable")

    async def _save(self, installation: Installation) -> None:
        for attempt in range(self.store_retries + 1):
            try:
                await self.installation_store.save(installation)
                return
            except StoreError as e:
                if attempt == self.store_retries:
                    sentry_sdk.capture_exception(e)
                    raise StoreFailure("Unable to save installation") from e
                logger.warning(f"Saving installation failed ({e}), retrying")
                await self._sleep(self.backoff * 2**attempt)

    def _installation(self, grant: TokenGrant) -> Installation:
        installed_at = utcnow()
        expires_at = None
        if grant.expires_in:
            expires_at = installed_at + dt.timedelta(seconds=grant.expires_in)
        return Installation(
            team_id=grant.team_id,
            enterprise_id=grant.enterprise_id,
            bot_token=grant.access_token,
            bot_user_id=grant.bot_user_id,
            scopes=grant.scopes or self.scopes,
            installed_at=installed_at,
            expires_at=expires_at,
            app_id=grant.app_id,
            user_id=grant.authed_user_id,
            user_token=grant.user_token,
            user_scopes=grant.user_scopes,
        )
