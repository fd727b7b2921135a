"""Factories and in-memory collaborators shared by the test modules."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Union
from uuid import UUID, uuid4

from pipeline_automation.core.exceptions import (
    CooldownLockUnavailableError,
    InvalidActionConfigError,
)
from pipeline_automation.schemas.action_config import parse_action_config
from pipeline_automation.schemas.common import (
    ActionType,
    ExecutionStatus,
    TriggerType,
)
from pipeline_automation.schemas.execution_log import ExecutionLogEntry
from pipeline_automation.schemas.rule import RuleDefinition
from pipeline_automation.schemas.signal import Signal
from pipeline_automation.services.capabilities import StageAdvanceResult

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
ORG_ID = UUID("8d0c5f2e-4b1a-4c57-9a0e-1f6b2d3c4e5f")
DEAL_ID = UUID("2f7e9a10-6c3d-4e8b-b1a2-93c4d5e6f708")
MEETING_ID = UUID("b3a1c2d4-5e6f-4a7b-8c9d-0e1f2a3b4c5d")


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_rule(**overrides) -> RuleDefinition:
    """Build a rule definition, parsing its action config like the store does."""
    action_type = overrides.pop("action_type", ActionType.advance_stage)
    action_config = overrides.pop("action_config", {"advance_to_next": True})
    try:
        action = parse_action_config(action_type, action_config)
        config_error = None
    except InvalidActionConfigError as exc:
        action = None
        config_error = exc.detail

    data = dict(
        rule_id=uuid4(),
        org_id=ORG_ID,
        name="Advance on forward movement",
        trigger_type=TriggerType.forward_movement_detected,
        action_type=action_type,
        action_config=action_config,
        action=action,
        config_error=config_error,
        min_confidence=0.7,
        cooldown_hours=24,
        created_at=T0 - timedelta(days=7),
    )
    data.update(overrides)
    return RuleDefinition(**data)


def make_signal(**overrides) -> Signal:
    data = dict(
        trigger_type=TriggerType.forward_movement_detected,
        confidence=0.85,
        deal_id=DEAL_ID,
        meeting_id=MEETING_ID,
        org_id=ORG_ID,
        context={"deal_name": "Acme Renewal", "meeting_title": "QBR"},
        observed_at=T0,
    )
    data.update(overrides)
    return Signal(**data)


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------


class MutableClock:
    """Callable clock the tests move forward explicitly."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class InMemoryStore:
    """Rule/log store keeping everything in lists."""

    def __init__(self, rules: Optional[List[RuleDefinition]] = None) -> None:
        self.rules: List[RuleDefinition] = list(rules or [])
        self.entries: List[ExecutionLogEntry] = []
        self.fail_appends = False
        # number of upcoming appends that fail before writes succeed again
        self.failing_appends = 0
        self.fail_loads = False
        self.advisory_keys: List[str] = []
        self._advisory_locks: Dict[str, asyncio.Lock] = {}

    async def list_active_rules(self, org_id: UUID) -> List[RuleDefinition]:
        if self.fail_loads:
            raise RuntimeError("rule store unavailable")
        return [r for r in self.rules if r.org_id == org_id and r.is_active]

    async def last_successful_execution(
        self, rule_id: UUID, deal_id: Optional[UUID]
    ) -> Optional[datetime]:
        await asyncio.sleep(0)
        times = [
            e.created_at
            for e in self.entries
            if e.rule_id == rule_id
            and e.deal_id == deal_id
            and e.status == ExecutionStatus.success
        ]
        return max(times) if times else None

    async def append_log_entry(self, entry: ExecutionLogEntry) -> None:
        await asyncio.sleep(0)
        if self.failing_appends > 0:
            self.failing_appends -= 1
            raise RuntimeError("log store unavailable")
        if self.fail_appends:
            raise RuntimeError("log store unavailable")
        self.entries.append(entry)

    @asynccontextmanager
    async def advisory_lock(self, key: str, wait_seconds: float):
        """Stand-in for the database advisory lock shared by all processes."""
        lock = self._advisory_locks.setdefault(key, asyncio.Lock())
        try:
            await asyncio.wait_for(lock.acquire(), timeout=wait_seconds)
        except asyncio.TimeoutError:
            raise CooldownLockUnavailableError()
        self.advisory_keys.append(key)
        try:
            yield
        finally:
            lock.release()


class FakeDealMutator:
    def __init__(
        self,
        result: Optional[StageAdvanceResult] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ) -> None:
        self.result = result or StageAdvanceResult(
            advanced=True, terminal=False, from_stage_id=uuid4(), to_stage_id=uuid4()
        )
        self.delay = delay
        self.error = error
        self.calls: List[UUID] = []

    async def advance_to_next_stage(self, deal_id: UUID) -> StageAdvanceResult:
        self.calls.append(deal_id)
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class FakeTaskCreator:
    def __init__(self, task_id: Optional[UUID] = None) -> None:
        self.task_id = task_id or uuid4()
        self.calls: List[dict] = []

    async def create_task(self, title, due_date, priority, deal_id):
        self.calls.append(
            {"title": title, "due_date": due_date, "priority": priority, "deal_id": deal_id}
        )
        return self.task_id


class FakeNotifier:
    """Per-channel outcome: ``True``/``False`` or an exception to raise."""

    def __init__(self, outcomes: Optional[Dict[str, Union[bool, Exception]]] = None):
        self.outcomes = outcomes or {}
        self.sent: List[tuple] = []

    async def send(self, channel, message, org_id, deal_id) -> bool:
        outcome = self.outcomes.get(channel, True)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome:
            self.sent.append((channel, message))
        return outcome


class FakeFieldUpdater:
    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.calls: List[tuple] = []

    async def update_field(self, deal_id, field, value) -> bool:
        self.calls.append((deal_id, field, value))
        return self.accept


