from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from pipeline_automation.api.deps import get_log_repo
from pipeline_automation.core.config import settings
from pipeline_automation.repositories.automation_log_repository import (
    AutomationLogRepository,
)
from pipeline_automation.schemas.common import ExecutionStatus, TriggerType
from pipeline_automation.schemas.execution_log import ExecutionLogEntry

router = APIRouter(prefix="/automation/logs", tags=["Automation Log"])


@router.get("", response_model=List[ExecutionLogEntry])
async def list_logs(
    org_id: UUID,
    status: Optional[ExecutionStatus] = Query(None),
    trigger_type: Optional[TriggerType] = Query(None),
    rule_id: Optional[UUID] = Query(None),
    limit: int = Query(settings.AUTOMATION_LOG_PAGE_SIZE, ge=1, le=500),
    log_repo: AutomationLogRepository = Depends(get_log_repo),
) -> List[ExecutionLogEntry]:
    """Return the organisation's most recent automation outcomes."""
    rows = await log_repo.list_recent(
        org_id,
        status=status.value if status else None,
        trigger_type=trigger_type.value if trigger_type else None,
        rule_id=rule_id,
        limit=limit,
    )
    return [ExecutionLogEntry.model_validate(row) for row in rows]
