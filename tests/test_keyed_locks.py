import asyncio
from contextlib import asynccontextmanager
from uuid import uuid4

import pytest
from redis.exceptions import LockError, RedisError

from pipeline_automation.core.exceptions import CooldownLockUnavailableError
from pipeline_automation.core.locks import KeyedLockManager


async def _hold_until(manager, rule_id, deal_id, acquired, release):
    async with manager.hold(rule_id, deal_id):
        acquired.set()
        await release.wait()


class TestInProcessLocking:
    @pytest.mark.asyncio
    async def test_different_keys_do_not_contend(self):
        manager = KeyedLockManager()
        rule_id = uuid4()
        order = []

        async def worker(deal_id, name):
            async with manager.hold(rule_id, deal_id):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker(uuid4(), "a"), worker(uuid4(), "b"))

        assert sorted(order[:2]) == ["a-in", "b-in"]

    @pytest.mark.asyncio
    async def test_idle_keys_are_dropped(self):
        manager = KeyedLockManager()
        async with manager.hold(uuid4(), uuid4()):
            assert manager.active_keys == 1
        assert manager.active_keys == 0

    @pytest.mark.asyncio
    async def test_released_when_body_raises(self):
        manager = KeyedLockManager()
        rule_id, deal_id = uuid4(), uuid4()

        with pytest.raises(ValueError):
            async with manager.hold(rule_id, deal_id):
                raise ValueError("boom")

        async with manager.hold(rule_id, deal_id):
            pass
        assert manager.active_keys == 0

    @pytest.mark.asyncio
    async def test_wait_timeout_raises(self):
        manager = KeyedLockManager(wait_seconds=0.01)
        rule_id, deal_id = uuid4(), uuid4()
        acquired, release = asyncio.Event(), asyncio.Event()
        holder = asyncio.create_task(
            _hold_until(manager, rule_id, deal_id, acquired, release)
        )
        await acquired.wait()

        with pytest.raises(CooldownLockUnavailableError):
            async with manager.hold(rule_id, deal_id):
                pass

        release.set()
        await holder
        assert manager.active_keys == 0

    def test_not_distributed_without_redis(self):
        assert not KeyedLockManager().is_distributed


class TestDistributedLocking:
    @pytest.mark.asyncio
    async def test_redis_lock_taken_and_released(self, mock_redis):
        manager = KeyedLockManager(
            redis_client=mock_redis, lease_seconds=60, wait_seconds=30.0
        )
        rule_id, deal_id = uuid4(), uuid4()

        async with manager.hold(rule_id, deal_id):
            pass

        mock_redis.lock.assert_called_once_with(
            f"automation:cooldown:{rule_id}:{deal_id}",
            timeout=60,
            blocking_timeout=30.0,
        )
        redis_lock = mock_redis.lock.return_value
        redis_lock.acquire.assert_awaited_once()
        redis_lock.release.assert_awaited_once()
        assert manager.is_distributed

    @pytest.mark.asyncio
    async def test_redis_lock_not_acquired_raises(self, mock_redis):
        mock_redis.lock.return_value.acquire.return_value = False
        manager = KeyedLockManager(redis_client=mock_redis)

        with pytest.raises(CooldownLockUnavailableError):
            async with manager.hold(uuid4(), uuid4()):
                pass

        mock_redis.lock.return_value.release.assert_not_awaited()
        assert manager.active_keys == 0

    @pytest.mark.asyncio
    async def test_redis_error_without_store_lock_stays_local(self, mock_redis):
        """An unreachable Redis must not stop rules from running."""
        mock_redis.lock.return_value.acquire.side_effect = RedisError("down")
        manager = KeyedLockManager(redis_client=mock_redis)
        ran = False

        async with manager.hold(uuid4(), uuid4()):
            ran = True

        assert ran
        mock_redis.lock.return_value.release.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_lease_on_release_is_tolerated(self, mock_redis):
        mock_redis.lock.return_value.release.side_effect = LockError("expired")
        manager = KeyedLockManager(redis_client=mock_redis)

        async with manager.hold(uuid4(), uuid4()):
            pass

        assert manager.active_keys == 0


class _RecordingStoreLock:
    def __init__(self):
        self.keys = []

    @asynccontextmanager
    async def __call__(self, key, wait_seconds):
        self.keys.append((key, wait_seconds))
        yield


class TestStoreLockFallback:
    @pytest.mark.asyncio
    async def test_store_lock_used_without_redis(self):
        store_lock = _RecordingStoreLock()
        manager = KeyedLockManager(wait_seconds=5.0, store_lock=store_lock)
        rule_id, deal_id = uuid4(), uuid4()

        async with manager.hold(rule_id, deal_id):
            pass

        assert store_lock.keys == [(f"{rule_id}:{deal_id}", 5.0)]
        assert manager.is_distributed

    @pytest.mark.asyncio
    async def test_store_lock_used_when_redis_errors(self, mock_redis):
        mock_redis.lock.return_value.acquire.side_effect = RedisError("down")
        store_lock = _RecordingStoreLock()
        manager = KeyedLockManager(redis_client=mock_redis, store_lock=store_lock)

        async with manager.hold(uuid4(), uuid4()):
            pass

        assert len(store_lock.keys) == 1

    @pytest.mark.asyncio
    async def test_store_lock_skipped_when_redis_lock_held(self, mock_redis):
        store_lock = _RecordingStoreLock()
        manager = KeyedLockManager(redis_client=mock_redis, store_lock=store_lock)

        async with manager.hold(uuid4(), uuid4()):
            pass

        assert store_lock.keys == []

    @pytest.mark.asyncio
    async def test_store_lock_timeout_propagates(self):
        @asynccontextmanager
        async def unavailable(key, wait_seconds):
            raise CooldownLockUnavailableError()
            yield

        manager = KeyedLockManager(store_lock=unavailable)

        with pytest.raises(CooldownLockUnavailableError):
            async with manager.hold(uuid4(), uuid4()):
                pass
        assert manager.active_keys == 0


class TestLeaseRenewal:
    @pytest.mark.asyncio
    async def test_lease_renewed_while_held(self, mock_redis):
        manager = KeyedLockManager(redis_client=mock_redis, lease_seconds=0.03)

        async with manager.hold(uuid4(), uuid4()):
            await asyncio.sleep(0.05)

        redis_lock = mock_redis.lock.return_value
        assert redis_lock.reacquire.await_count >= 1
        redis_lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_short_section_does_not_renew(self, mock_redis):
        manager = KeyedLockManager(redis_client=mock_redis, lease_seconds=60)

        async with manager.hold(uuid4(), uuid4()):
            pass

        mock_redis.lock.return_value.reacquire.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_renewal_does_not_break_the_section(self, mock_redis):
        redis_lock = mock_redis.lock.return_value
        redis_lock.reacquire.side_effect = LockError("lost")
        manager = KeyedLockManager(redis_client=mock_redis, lease_seconds=0.03)
        ran = False

        async with manager.hold(uuid4(), uuid4()):
            await asyncio.sleep(0.05)
            ran = True

        assert ran
        assert redis_lock.reacquire.await_count == 1
        redis_lock.release.assert_awaited_once()
