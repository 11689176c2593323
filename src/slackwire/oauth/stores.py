from typing import Optional

from slackwire.oauth.models import Installation, OAuthState


class StateStore:
    """Where OAuth state tokens live between the install and the callback

    Implementations raise `StoreError` when the backend is unavailable
    """

    async def put(
        self, state: str, ttl: int, *, redirect_hint: Optional[str] = None
    ) -> OAuthState:
        """Park a fresh state for `ttl` seconds

        A state that is already stored is never replaced, putting it again
        raises `StoreError`, expired or not
        """
        raise NotImplementedError()

    async def consume_state(self, state: str) -> Optional[OAuthState]:
        """Atomically check and delete a state

        Returns the stored state only if it existed, hadn't expired and nobody
        consumed it before. Concurrent callers for the same state get at most
        one non-None result
        """
        raise NotImplementedError()

    async def consume(self, state: str) -> bool:
        return await self.consume_state(state) is not None

    async def purge_expired(self) -> int:
        """Remove expired states, returning how many were removed"""
        return 0


class InstallationStore:
    """Installations keyed by (team_id, enterprise_id or "")"""

    async def save(self, installation: Installation) -> None:
        """Insert or replace the installation for its key"""
        raise NotImplementedError()

    async def find(
        self, team_id: str, enterprise_id: Optional[str] = None
    ) -> Optional[Installation]:
        raise NotImplementedError()

    async def delete(self, team_id: str, enterprise_id: Optional[str] = None) -> None:
        raise NotImplementedError()

    async def find_bot_token(
        self, team_id: str, enterprise_id: Optional[str] = None
    ) -> Optional[str]:
        installation = await self.find(team_id, enterprise_id)
        return installation.bot_token if installation else None

    async def find_user_token(
        self, team_id: str, user_id: str, enterprise_id: Optional[str] = None
    ) -> Optional[str]:
        """The user token, only for the user who installed the app"""
        installation = await self.find(team_id, enterprise_id)
        if installation is None or installation.user_id != user_id:
            return None
        return installation.user_token
