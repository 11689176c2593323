import dataclasses as dc
from typing import Optional

from slackwire.events import Event
from slackwire.logging import logger
from slackwire.oauth.stores import InstallationStore


@dc.dataclass(frozen=True)
class Authorization:
    bot_token: Optional[str]
    bot_user_id: Optional[str] = None


class Authorizer:
    """Resolves the bot token to use for an event"""

    async def authorize(self, event: Event) -> Optional[Authorization]:
        raise NotImplementedError()


class SingleWorkspaceAuthorizer(Authorizer):
    def __init__(self, bot_token: str, bot_user_id: Optional[str] = None) -> None:
        self._authorization = Authorization(bot_token=bot_token, bot_user_id=bot_user_id)

    async def authorize(self, event: Event) -> Optional[Authorization]:
        return self._authorization


class InstallationStoreAuthorizer(Authorizer):
    def __init__(self, installation_store: InstallationStore) -> None:
        self.installation_store = installation_store

    async def authorize(self, event: Event) -> Optional[Authorization]:
        if event.team_id is None:
            logger.debug(f"No team on {event.kind.value} event, skipping lookup")
            return None

        installation = await self.installation_store.find(
            event.team_id, event.enterprise_id
        )
        if installation is None:
            logger.warning(
                f"No installation found for team_id={event.team_id}"
                f" enterprise_id={event.enterprise_id}"
            )
            return None

        return Authorization(
            bot_token=installation.bot_token,
            bot_user_id=installation.bot_user_id,
        )
