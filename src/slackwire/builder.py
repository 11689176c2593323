from __future__ import annotations

from typing import Optional, Sequence

from slackwire import db
from slackwire.app import App
from slackwire.authorize import (
    Authorizer,
    InstallationStoreAuthorizer,
    SingleWorkspaceAuthorizer,
)
from slackwire.config import Config, ConfigError
from slackwire.dispatch import DEFAULT_ACK_TIMEOUT, DispatchPipeline
from slackwire.logging import logger
from slackwire.oauth.exchange import SlackTokenExchanger, TokenExchanger
from slackwire.oauth.flow import DEFAULT_STATE_TTL, OAuthFlowController
from slackwire.oauth.memory import MemoryInstallationStore, MemoryStateStore
from slackwire.oauth.stores import InstallationStore, StateStore
from slackwire.registry import RegistryBuilder, describe
from slackwire.signature import SignatureVerifier


class AppBuilder(RegistryBuilder):
    """Collects settings and listeners, `build()` freezes both into an `App`

        builder = AppBuilder(signing_secret="...", bot_token="xoxb-...")

        @builder.command("/hello")
        async def hello(ack, command):
            await ack(f"Hi <@{command['user_id']}>")

        app = builder.build()
    """

    def __init__(
        self,
        *,
        signing_secret: str,
        bot_token: Optional[str] = None,
        bot_user_id: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        scopes: Sequence[str] = (),
        user_scopes: Sequence[str] = (),
        redirect_uri: Optional[str] = None,
        installation_store: Optional[InstallationStore] = None,
        state_store: Optional[StateStore] = None,
        exchanger: Optional[TokenExchanger] = None,
        state_ttl: int = DEFAULT_STATE_TTL,
        ack_timeout: float = DEFAULT_ACK_TIMEOUT,
        process_before_response: bool = False,
        strict_ack: bool = False,
        success_url: Optional[str] = None,
        failure_url: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.signing_secret = signing_secret
        self.bot_token = bot_token
        self.bot_user_id = bot_user_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = tuple(scopes)
        self.user_scopes = tuple(user_scopes)
        self.redirect_uri = redirect_uri
        self.installation_store = installation_store
        self.state_store = state_store
        self.exchanger = exchanger
        self.state_ttl = state_ttl
        self.ack_timeout = ack_timeout
        self.process_before_response = process_before_response
        self.strict_ack = strict_ack
        self.success_url = success_url
        self.failure_url = failure_url

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        installation_store: Optional[InstallationStore] = None,
        state_store: Optional[StateStore] = None,
    ) -> AppBuilder:
        slack = config.slack
        if not slack.bot_token and slack.client_id:
            if installation_store is None or state_store is None:
                installation_store, state_store = _stores_for(
                    config.database.uri, installation_store, state_store
                )

        return cls(
            signing_secret=slack.signing_secret,
            bot_token=slack.bot_token or None,
            client_id=slack.client_id or None,
            client_secret=slack.client_secret or None,
            scopes=slack.scopes,
            user_scopes=slack.user_scopes,
            redirect_uri=slack.redirect_uri or None,
            installation_store=installation_store,
            state_store=state_store,
            state_ttl=slack.state_expiration_seconds,
            ack_timeout=config.dispatch.ack_timeout,
            process_before_response=config.dispatch.process_before_response,
            strict_ack=config.dispatch.strict_ack,
            success_url=slack.success_url or None,
            failure_url=slack.failure_url or None,
        )

    @property
    def oauth_enabled(self) -> bool:
        return not self.bot_token and bool(self.client_id)

    def validate(self) -> None:
        if not self.signing_secret:
            raise ConfigError("A signing secret is required")
        if not self.bot_token and not self.client_id:
            raise ConfigError("Either a bot token or an OAuth client id is required")
        if self.client_id and not self.client_secret:
            raise ConfigError("A client secret is required with a client id")
        if self.ack_timeout <= 0:
            raise ConfigError("The ack timeout has to be positive")

    def build(self) -> App:
        self.validate()
        registry = super().build()

        authorizer: Authorizer
        oauth: Optional[OAuthFlowController] = None
        if not self.oauth_enabled:
            logger.debug("Single workspace mode")
            authorizer = SingleWorkspaceAuthorizer(self.bot_token, self.bot_user_id)
        else:
            installation_store = self.installation_store
            state_store = self.state_store
            if installation_store is None or state_store is None:
                logger.warning(
                    "No stores configured, installs are kept in memory and "
                    "lost on restart"
                )
                installation_store = installation_store or MemoryInstallationStore()
                state_store = state_store or MemoryStateStore()
            authorizer = InstallationStoreAuthorizer(installation_store)
            oauth = OAuthFlowController(
                client_id=self.client_id or "",
                scopes=self.scopes,
                user_scopes=self.user_scopes,
                redirect_uri=self.redirect_uri,
                state_store=state_store,
                installation_store=installation_store,
                exchanger=self.exchanger
                or SlackTokenExchanger(self.client_id or "", self.client_secret or ""),
                state_ttl=self.state_ttl,
            )

        pipeline = DispatchPipeline(
            registry,
            authorizer,
            ack_timeout=self.ack_timeout,
            process_before_response=self.process_before_response,
            strict_ack=self.strict_ack,
        )
        for line in describe(registry):
            logger.debug(line)

        return App(
            verifier=SignatureVerifier(self.signing_secret),
            pipeline=pipeline,
            oauth=oauth,
            success_url=self.success_url,
            failure_url=self.failure_url,
        )


def _stores_for(
    uri: str,
    installation_store: Optional[InstallationStore],
    state_store: Optional[StateStore],
) -> tuple[Optional[InstallationStore], Optional[StateStore]]:
    if not uri:
        return installation_store, state_store

    # Imported here so single workspace apps don't need a database driver
    from slackwire.models.stores import (
        SQLAlchemyInstallationStore,
        SQLAlchemyStateStore,
    )

    engine = db.create_engine(uri)
    return (
        installation_store or SQLAlchemyInstallationStore(engine),
        state_store or SQLAlchemyStateStore(engine),
    )
