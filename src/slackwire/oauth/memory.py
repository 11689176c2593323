import datetime as dt
import threading
from typing import Any, Callable, Optional

from slackwire.exceptions import StoreError
from slackwire.logging import logger
from slackwire.oauth.models import (
    Installation,
    OAuthState,
    installation_key,
    utcnow,
)
from slackwire.oauth.stores import InstallationStore, StateStore


class MemoryStateStore(StateStore):
    """Process local state store, for tests and single process deployments

    Every check and mutation happens under one lock with no await in between,
    so consume is atomic for concurrent tasks and threads alike
    """

    def __init__(self, clock: Callable[[], dt.datetime] = utcnow) -> None:
        self.clock = clock
        self._states: dict[str, OAuthState] = {}
        self._lock = threading.Lock()

    async def put(
        self, state: str, ttl: int, *, redirect_hint: Optional[str] = None
    ) -> OAuthState:
        oauth_state = OAuthState.new(
            ttl, state=state, redirect_hint=redirect_hint, now=self.clock()
        )
        with self._lock:
            if state in self._states:
                raise StoreError("State already exists")
            self._states[state] = oauth_state
        return oauth_state

    async def consume_state(self, state: str) -> Optional[OAuthState]:
        with self._lock:
            oauth_state = self._states.pop(state, None)
        if oauth_state is None:
            logger.debug("State not found, possibly already consumed")
            return None
        if oauth_state.is_expired(self.clock()):
            logger.debug("State has expired")
            return None
        return oauth_state

    async def purge_expired(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [k for k, v in self._states.items() if v.is_expired(now)]
            for key in expired:
                del self._states[key]
        return len(expired)

    @property
    def size(self) -> int:
        return len(self._states)


class MemoryInstallationStore(InstallationStore):
    """Process local installation store

    Installations are kept as plain dict snapshots, nothing a caller holds on
    to can change what is stored
    """

    def __init__(self) -> None:
        self._installations: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    async def save(self, installation: Installation) -> None:
        snapshot = installation.to_dict()
        with self._lock:
            self._installations[installation.key] = snapshot
        logger.debug(f"Saved {installation}")

    async def find(
        self, team_id: str, enterprise_id: Optional[str] = None
    ) -> Optional[Installation]:
        with self._lock:
            snapshot = self._installations.get(installation_key(team_id, enterprise_id))
        if snapshot is None:
            return None
        return Installation.from_dict(snapshot)

    async def delete(self, team_id: str, enterprise_id: Optional[str] = None) -> None:
        with self._lock:
            self._installations.pop(installation_key(team_id, enterprise_id), None)

    @property
    def size(self) -> int:
        return len(self._installations)
