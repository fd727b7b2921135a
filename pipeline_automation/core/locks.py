import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import AsyncContextManager, AsyncIterator, Callable, Dict, Optional
from uuid import UUID

from redis.asyncio import Redis
from redis.asyncio.lock import Lock
from redis.exceptions import LockError, RedisError

from pipeline_automation.core.constants import COOLDOWN_LOCK_KEY_PREFIX
from pipeline_automation.core.exceptions import CooldownLockUnavailableError

logger = logging.getLogger(__name__)

# (key, wait_seconds) -> exclusive section shared by every process using
# the same database; raises CooldownLockUnavailableError on timeout
StoreLock = Callable[[str, float], AsyncContextManager[None]]


class KeyedLockManager:
    """Fine-grained mutual exclusion per ``(rule_id, deal_id)`` key.

    Inside one process every key gets its own ``asyncio.Lock``; locks
    are reference-counted and dropped as soon as nobody holds or waits
    on them, so different keys never contend and memory does not grow
    with the number of deals seen.

    Across processes the key is serialised by a Redis lock when a client
    is supplied.  Its lease is renewed while the section runs, so a slow
    store cannot let it lapse under a live holder.  When Redis is absent
    or errors out, ``store_lock`` (a database advisory lock) takes over;
    only when neither is configured does locking stay process-local.
    """

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        lease_seconds: float = 60,
        wait_seconds: float = 30.0,
        store_lock: Optional[StoreLock] = None,
    ) -> None:
        self._redis: Optional[Redis] = redis_client
        self._lease_seconds = lease_seconds
        self._wait_seconds = wait_seconds
        self._store_lock = store_lock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @staticmethod
    def key_for(rule_id: UUID, deal_id: Optional[UUID]) -> str:
        return f"{rule_id}:{deal_id}"

    @asynccontextmanager
    async def hold(self, rule_id: UUID, deal_id: Optional[UUID]) -> AsyncIterator[None]:
        """Hold the lock for *rule_id* / *deal_id* for the ``async with`` body.

        Raises ``CooldownLockUnavailableError`` if the lock cannot be
        acquired within ``wait_seconds``.
        """
        key = self.key_for(rule_id, deal_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._wait_seconds)
            except asyncio.TimeoutError:
                logger.warning("Timed out waiting for cooldown lock %s", key)
                raise CooldownLockUnavailableError()
            try:
                async with self._cross_process(key):
                    yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    @asynccontextmanager
    async def _cross_process(self, key: str) -> AsyncIterator[None]:
        if self._redis is None:
            async with self._fallback(key):
                yield
            return

        redis_lock = self._redis.lock(
            f"{COOLDOWN_LOCK_KEY_PREFIX}:{key}",
            timeout=self._lease_seconds,
            blocking_timeout=self._wait_seconds,
        )
        try:
            acquired = await redis_lock.acquire()
        except RedisError:
            logger.warning("Redis lock failed for key %s", key)
            acquired = None

        if acquired is None:
            async with self._fallback(key):
                yield
            return
        if not acquired:
            logger.warning("Timed out waiting for distributed cooldown lock %s", key)
            raise CooldownLockUnavailableError()

        renewal = asyncio.create_task(self._renew_lease(redis_lock, key))
        try:
            yield
        finally:
            renewal.cancel()
            with suppress(asyncio.CancelledError):
                await renewal
            try:
                await redis_lock.release()
            except LockError:
                logger.warning("Redis lock %s expired before release", key)
            except RedisError:
                logger.warning("Redis lock release failed for key %s", key)

    @asynccontextmanager
    async def _fallback(self, key: str) -> AsyncIterator[None]:
        if self._store_lock is None:
            logger.warning(
                "No cross-process lock for key %s; using in-process lock only", key
            )
            yield
            return
        async with self._store_lock(key, self._wait_seconds):
            yield

    async def _renew_lease(self, redis_lock: Lock, key: str) -> None:
        """Reset the lease TTL every third of the lease until cancelled."""
        interval = self._lease_seconds / 3
        while True:
            await asyncio.sleep(interval)
            try:
                await redis_lock.reacquire()
            except (LockError, RedisError):
                logger.warning("Could not renew Redis lock %s", key, exc_info=True)
                return

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_distributed(self) -> bool:
        """Return ``True`` if any cross-process lock is configured."""
        return self._redis is not None or self._store_lock is not None

    @property
    def active_keys(self) -> int:
        """Number of keys currently held or waited on in this process."""
        return len(self._locks)
