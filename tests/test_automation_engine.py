import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest
from redis.exceptions import RedisError

from helpers import DEAL_ID, T0, FakeDealMutator, make_rule, make_signal
from pipeline_automation.core.exceptions import LogWriteError
from pipeline_automation.core.locks import KeyedLockManager
from pipeline_automation.schemas.common import (
    ActionType,
    ExecutionStatus,
    TriggerType,
)
from pipeline_automation.services.action_dispatcher import ActionDispatcher
from pipeline_automation.services.automation_engine import AutomationEngine
from pipeline_automation.services.capabilities import StageAdvanceResult


class TestCooldownScenario:
    @pytest.mark.asyncio
    async def test_advance_then_cooldown_then_advance_again(
        self, engine, store, clock, deal_mutator
    ):
        """Verbal commitment at t0, t0+1h and t0+25h with a 24h cooldown."""
        rule = make_rule(
            trigger_type=TriggerType.verbal_commitment,
            min_confidence=0.7,
            cooldown_hours=24,
        )
        store.rules.append(rule)

        def signal():
            return make_signal(trigger_type=TriggerType.verbal_commitment, confidence=0.9)

        first = await engine.process_signal(signal())
        clock.advance(hours=1)
        second = await engine.process_signal(signal())
        clock.advance(hours=24)
        third = await engine.process_signal(signal())

        assert [e.status for e in first] == [ExecutionStatus.success]
        assert [e.status for e in second] == [ExecutionStatus.skipped]
        assert second[0].error_message == "cooldown active"
        assert second[0].action_result is None
        assert [e.status for e in third] == [ExecutionStatus.success]
        assert len(deal_mutator.calls) == 2
        assert len(store.entries) == 3

    @pytest.mark.asyncio
    async def test_zero_cooldown_fires_every_time(self, engine, store, deal_mutator):
        store.rules.append(make_rule(cooldown_hours=0))

        await engine.process_signal(make_signal())
        entries = await engine.process_signal(make_signal())

        assert entries[0].status == ExecutionStatus.success
        assert len(deal_mutator.calls) == 2

    @pytest.mark.asyncio
    async def test_cooldown_is_per_deal(self, engine, store, deal_mutator):
        store.rules.append(make_rule())

        await engine.process_signal(make_signal())
        entries = await engine.process_signal(make_signal(deal_id=uuid4()))

        assert entries[0].status == ExecutionStatus.success
        assert len(deal_mutator.calls) == 2

    @pytest.mark.asyncio
    async def test_failed_run_claims_no_cooldown(self, engine, store, deal_mutator):
        store.rules.append(make_rule())
        deal_mutator.error = RuntimeError("crm unavailable")

        failed = await engine.process_signal(make_signal())
        deal_mutator.error = None
        retried = await engine.process_signal(make_signal())

        assert failed[0].status == ExecutionStatus.failed
        assert retried[0].status == ExecutionStatus.success

    @pytest.mark.asyncio
    async def test_skipped_run_claims_no_cooldown(self, engine, store, deal_mutator):
        store.rules.append(make_rule())
        deal_mutator.result = StageAdvanceResult(advanced=False, terminal=True)

        await engine.process_signal(make_signal())
        entries = await engine.process_signal(make_signal())

        assert entries[0].error_message == "deal already at final stage"
        assert len(deal_mutator.calls) == 2


class TestMatchingAndLogging:
    @pytest.mark.asyncio
    async def test_unmatched_signal_writes_nothing(self, engine, store):
        store.rules.append(make_rule(min_confidence=0.7))

        entries = await engine.process_signal(make_signal(confidence=0.5))

        assert entries == []
        assert store.entries == []

    @pytest.mark.asyncio
    async def test_other_orgs_rules_are_ignored(self, engine, store):
        store.rules.append(make_rule(org_id=uuid4()))

        assert await engine.process_signal(make_signal()) == []

    @pytest.mark.asyncio
    async def test_one_entry_per_candidate_in_creation_order(
        self, engine, store, task_creator
    ):
        older = make_rule(name="advance", created_at=T0 - timedelta(days=5))
        newer = make_rule(
            name="task",
            action_type=ActionType.create_task,
            action_config={"title_template": "Follow up {{deal_name}}"},
            created_at=T0 - timedelta(days=1),
        )
        unrelated = make_rule(trigger_type=TriggerType.pricing_discussed)
        store.rules.extend([newer, unrelated, older])

        entries = await engine.process_signal(make_signal())

        assert [e.rule_id for e in entries] == [older.rule_id, newer.rule_id]
        assert [e.action_type for e in entries] == [
            ActionType.advance_stage,
            ActionType.create_task,
        ]
        assert store.entries == entries

    @pytest.mark.asyncio
    async def test_entry_snapshots_the_signal(self, engine, store, clock):
        store.rules.append(make_rule())
        clock.advance(minutes=5)
        signal = make_signal(call_type_id="discovery")

        [entry] = await engine.process_signal(signal)

        assert entry.org_id == signal.org_id
        assert entry.deal_id == DEAL_ID
        assert entry.meeting_id == signal.meeting_id
        assert entry.trigger_type == TriggerType.forward_movement_detected
        assert entry.trigger_signal["confidence"] == 0.85
        assert entry.trigger_signal["call_type_id"] == "discovery"
        assert entry.created_at == T0 + timedelta(minutes=5)

    @pytest.mark.asyncio
    async def test_failed_candidate_does_not_abort_the_next(
        self, engine, store, notifier, task_creator
    ):
        notifier.outcomes["slack"] = False
        store.rules.extend(
            [
                make_rule(
                    action_type=ActionType.send_notification,
                    action_config={"channels": ["slack"], "message_template": "hi"},
                    created_at=T0 - timedelta(days=2),
                ),
                make_rule(
                    action_type=ActionType.create_task,
                    action_config={"title_template": "Follow up"},
                    created_at=T0 - timedelta(days=1),
                ),
            ]
        )

        entries = await engine.process_signal(make_signal())

        assert [e.status for e in entries] == [
            ExecutionStatus.failed,
            ExecutionStatus.success,
        ]
        assert len(task_creator.calls) == 1


class TestInvalidConfigRules:
    @pytest.mark.asyncio
    async def test_invalid_config_is_logged_failed_every_time(
        self, engine, store, task_creator
    ):
        store.rules.append(
            make_rule(action_type=ActionType.create_task, action_config={"due_days": 1})
        )

        first = await engine.process_signal(make_signal())
        second = await engine.process_signal(make_signal())

        for entries in (first, second):
            assert entries[0].status == ExecutionStatus.failed
            assert entries[0].error_message == "invalid action config"
        assert task_creator.calls == []


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_duplicate_signals_fire_once(self, engine, store, deal_mutator):
        """Two concurrent deliveries of one signal yield one success."""
        deal_mutator.delay = 0.01
        store.rules.append(make_rule())

        results = await asyncio.gather(
            engine.process_signal(make_signal()),
            engine.process_signal(make_signal()),
        )

        statuses = sorted(e.status.value for entries in results for e in entries)
        assert statuses == ["skipped", "success"]
        assert len(deal_mutator.calls) == 1

    @pytest.mark.asyncio
    async def test_batch_processes_independent_deals(
        self, engine, store, deal_mutator
    ):
        store.rules.append(make_rule())
        signals = [make_signal(deal_id=uuid4()) for _ in range(5)]

        entries = await engine.process_signals(signals)

        assert len(entries) == 5
        assert {e.status for e in entries} == {ExecutionStatus.success}
        assert len(deal_mutator.calls) == 5

    @pytest.mark.asyncio
    async def test_lock_timeout_is_logged_failed(self, store, dispatcher, clock):
        lock_manager = KeyedLockManager(wait_seconds=0.01)
        engine = AutomationEngine(
            store=store, dispatcher=dispatcher, lock_manager=lock_manager, clock=clock
        )
        rule = make_rule()
        store.rules.append(rule)

        async with lock_manager.hold(rule.rule_id, DEAL_ID):
            entries = await engine.process_signal(make_signal())

        assert entries[0].status == ExecutionStatus.failed
        assert entries[0].error_message == "cooldown lock unavailable"


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_rule_load_failure_propagates(self, engine, store):
        store.fail_loads = True

        with pytest.raises(RuntimeError):
            await engine.process_signal(make_signal())

    @pytest.mark.asyncio
    async def test_batch_survives_rule_load_failure(self, engine, store):
        store.fail_loads = True

        assert await engine.process_signals([make_signal(), make_signal()]) == []

    @pytest.mark.asyncio
    async def test_transient_log_failure_still_claims_cooldown(
        self, engine, store, clock, deal_mutator
    ):
        store.rules.append(make_rule(cooldown_hours=24))
        store.failing_appends = 1

        first = await engine.process_signal(make_signal())
        clock.advance(hours=1)
        second = await engine.process_signal(make_signal())

        assert [e.status for e in first] == [ExecutionStatus.success]
        assert [e.status for e in second] == [ExecutionStatus.skipped]
        assert len(deal_mutator.calls) == 1
        assert len(store.entries) == 2

    @pytest.mark.asyncio
    async def test_persistent_log_failure_raises(self, engine, store, deal_mutator):
        store.rules.append(make_rule())
        store.fail_appends = True

        with pytest.raises(LogWriteError):
            await engine.process_signal(make_signal())

        assert len(deal_mutator.calls) == 1
        assert store.entries == []

    @pytest.mark.asyncio
    async def test_log_failure_stops_later_candidates(
        self, engine, store, deal_mutator
    ):
        store.rules.extend(
            [
                make_rule(created_at=T0 - timedelta(days=2)),
                make_rule(created_at=T0 - timedelta(days=1)),
            ]
        )
        store.fail_appends = True

        with pytest.raises(LogWriteError):
            await engine.process_signal(make_signal())

        assert len(deal_mutator.calls) == 1

    @pytest.mark.asyncio
    async def test_batch_reports_log_failure_without_entries(
        self, engine, store, deal_mutator
    ):
        store.rules.append(make_rule())
        store.fail_appends = True

        assert await engine.process_signals([make_signal()]) == []
        assert len(deal_mutator.calls) == 1


class TestCrossProcessSerialization:
    @pytest.mark.asyncio
    async def test_store_lock_serializes_workers_when_redis_fails(
        self, store, clock, mock_redis, task_creator, notifier, field_updater
    ):
        """Two workers with their own lock managers must not both fire."""
        mock_redis.lock.return_value.acquire.side_effect = RedisError("down")
        deal_mutator = FakeDealMutator(delay=0.05)
        dispatcher = ActionDispatcher(
            deal_mutator=deal_mutator,
            task_creator=task_creator,
            notifier=notifier,
            field_updater=field_updater,
            timeout_seconds=1.0,
        )

        def worker() -> AutomationEngine:
            return AutomationEngine(
                store=store,
                dispatcher=dispatcher,
                lock_manager=KeyedLockManager(
                    redis_client=mock_redis,
                    wait_seconds=1.0,
                    store_lock=store.advisory_lock,
                ),
                clock=clock,
            )

        rule = make_rule(cooldown_hours=24)
        store.rules.append(rule)

        first, second = await asyncio.gather(
            worker().process_signal(make_signal()),
            worker().process_signal(make_signal()),
        )

        statuses = sorted(e.status.value for e in first + second)
        assert statuses == ["skipped", "success"]
        assert len(deal_mutator.calls) == 1
        assert store.advisory_keys == [f"{rule.rule_id}:{DEAL_ID}"] * 2


class TestCreateTaskScenario:
    @pytest.mark.asyncio
    async def test_follow_up_task_for_acme(self, engine, store, task_creator):
        store.rules.append(
            make_rule(
                trigger_type=TriggerType.next_meeting_scheduled,
                action_type=ActionType.create_task,
                action_config={
                    "title_template": "Follow up on {{deal_name}}",
                    "due_days": 3,
                },
            )
        )
        signal = make_signal(
            trigger_type=TriggerType.next_meeting_scheduled,
            context={"deal_name": "Acme Corp"},
        )

        [entry] = await engine.process_signal(signal)

        assert entry.status == ExecutionStatus.success
        assert task_creator.calls[0]["title"] == "Follow up on Acme Corp"
        assert task_creator.calls[0]["due_date"] == T0 + timedelta(days=3)
        assert entry.action_result["title"] == "Follow up on Acme Corp"
