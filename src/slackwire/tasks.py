import asyncio

import sentry_sdk

from slackwire.exceptions import StoreError
from slackwire.logging import logger
from slackwire.oauth.stores import StateStore

DEFAULT_PURGE_INTERVAL = 60 * 10


async def purge_expired_states(state_store: StateStore) -> int:
    with sentry_sdk.start_transaction(op="task", name="Purge expired OAuth states"):
        try:
            removed = await state_store.purge_expired()
        except StoreError as e:
            logger.error("Unable to purge expired OAuth states", exc_info=e)
            sentry_sdk.capture_exception(e)
            return 0
        logger.debug(f"Purged {removed} expired OAuth states")
        return removed


async def state_purger(
    state_store: StateStore, interval: float = DEFAULT_PURGE_INTERVAL
) -> None:
    """Periodic purge of expired OAuth states

    Stores with a native TTL don't need this, it's a no-op for them unless
    they implement `purge_expired`
    """
    while True:
        try:
            logger.debug(f"State purger sleeping for {interval:.0f} seconds")
            await asyncio.sleep(interval)
            await purge_expired_states(state_store)
        except Exception as e:
            logger.error("Got exception in state purge task", exc_info=e)
            sentry_sdk.capture_exception(e)
