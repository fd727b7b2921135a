"""Capability interfaces the engine depends on.

The engine only talks to the outside world through these protocols; the
default SQL/HTTP implementations live in :mod:`sql_capabilities` and
:mod:`notifier`, and tests substitute in-memory fakes.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol
from uuid import UUID

from pipeline_automation.schemas.execution_log import ExecutionLogEntry
from pipeline_automation.schemas.rule import RuleDefinition


@dataclass(frozen=True)
class StageAdvanceResult:
    advanced: bool
    terminal: bool
    from_stage_id: Optional[UUID] = None
    to_stage_id: Optional[UUID] = None


class RuleLogStore(Protocol):
    """Durable storage for rule definitions and execution log entries."""

    async def list_active_rules(self, org_id: UUID) -> List[RuleDefinition]: ...

    async def last_successful_execution(
        self, rule_id: UUID, deal_id: Optional[UUID]
    ) -> Optional[datetime]: ...

    async def append_log_entry(self, entry: ExecutionLogEntry) -> None: ...


class DealPipelineMutator(Protocol):
    async def advance_to_next_stage(self, deal_id: UUID) -> StageAdvanceResult: ...


class TaskCreator(Protocol):
    async def create_task(
        self, title: str, due_date: datetime, priority: str, deal_id: UUID
    ) -> UUID: ...


class Notifier(Protocol):
    async def send(
        self, channel: str, message: str, org_id: UUID, deal_id: Optional[UUID]
    ) -> bool: ...


class DealFieldUpdater(Protocol):
    async def update_field(self, deal_id: UUID, field: str, value: str) -> bool: ...
