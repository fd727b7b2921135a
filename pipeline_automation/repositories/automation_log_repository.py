from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func

from pipeline_automation.models.automation_log import AutomationLogEntry
from pipeline_automation.repositories.base import BaseRepository
from pipeline_automation.schemas.common import ExecutionStatus
from pipeline_automation.schemas.execution_log import ExecutionLogEntry


class AutomationLogRepository(BaseRepository):
    """Encapsulates queries against the ``pipeline_automation_log`` table."""

    async def get_last_success_at(
        self, rule_id: UUID, deal_id: Optional[UUID]
    ) -> Optional[datetime]:
        """Return when *rule_id* last succeeded for *deal_id*, or ``None``.

        Served by ``idx_automation_log_cooldown``.
        """
        query = select(func.max(AutomationLogEntry.created_at)).where(
            AutomationLogEntry.rule_id == rule_id,
            AutomationLogEntry.status == ExecutionStatus.success.value,
        )
        if deal_id is None:
            query = query.where(AutomationLogEntry.deal_id.is_(None))
        else:
            query = query.where(AutomationLogEntry.deal_id == deal_id)
        result = await self._db.execute(query)
        return result.scalar_one_or_none()

    async def create(self, entry: ExecutionLogEntry) -> AutomationLogEntry:
        """Insert one log entry built by the engine."""
        row = AutomationLogEntry(
            log_id=entry.log_id,
            org_id=entry.org_id,
            rule_id=entry.rule_id,
            meeting_id=entry.meeting_id,
            deal_id=entry.deal_id,
            trigger_type=entry.trigger_type.value,
            trigger_signal=entry.trigger_signal,
            action_type=entry.action_type.value,
            action_result=entry.action_result,
            status=entry.status.value,
            error_message=entry.error_message,
            created_at=entry.created_at,
        )
        self._db.add(row)
        return row

    async def list_recent(
        self,
        org_id: UUID,
        status: Optional[str] = None,
        trigger_type: Optional[str] = None,
        rule_id: Optional[UUID] = None,
        limit: int = 50,
    ) -> List[AutomationLogEntry]:
        """Return an org's most recent log entries, newest first."""
        query = select(AutomationLogEntry).where(AutomationLogEntry.org_id == org_id)
        if status:
            query = query.where(AutomationLogEntry.status == status)
        if trigger_type:
            query = query.where(AutomationLogEntry.trigger_type == trigger_type)
        if rule_id:
            query = query.where(AutomationLogEntry.rule_id == rule_id)
        query = query.order_by(AutomationLogEntry.created_at.desc()).limit(limit)

        result = await self._db.execute(query)
        return list(result.scalars().all())

    async def try_advisory_xact_lock(self, lock_id: int) -> bool:
        """Try to take a transaction-scoped advisory lock on *lock_id*.

        The lock is released when the session's transaction ends.
        """
        result = await self._db.execute(select(func.pg_try_advisory_xact_lock(lock_id)))
        return bool(result.scalar())
