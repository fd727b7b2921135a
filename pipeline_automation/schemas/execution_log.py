from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from pipeline_automation.schemas.common import (
    ActionType,
    ExecutionStatus,
    SuccessResponse,
    TriggerType,
)


class ExecutionLogEntry(BaseModel):
    """Terminal outcome of one candidate rule for one signal.

    Built by the engine and handed to the store exactly once; also used
    as the response shape of the log endpoints.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    log_id: UUID = Field(default_factory=uuid4)
    org_id: UUID
    rule_id: Optional[UUID] = None
    meeting_id: Optional[UUID] = None
    deal_id: Optional[UUID] = None
    trigger_type: TriggerType
    trigger_signal: Optional[Dict[str, Any]] = None
    action_type: ActionType
    action_result: Optional[Dict[str, Any]] = None
    status: ExecutionStatus
    error_message: Optional[str] = None
    created_at: datetime


class SignalProcessingResponse(SuccessResponse):
    """Response body for POST /api/v1/automation/signals."""

    matched_rules: int
    entries: List[ExecutionLogEntry] = Field(default_factory=list)


class BatchProcessingResponse(SuccessResponse):
    """Response body for POST /api/v1/automation/signals/batch."""

    processed_signals: int
    entries: List[ExecutionLogEntry] = Field(default_factory=list)
