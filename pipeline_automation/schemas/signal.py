from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from pipeline_automation.schemas.common import TriggerType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Signal(BaseModel):
    """AI-derived event detected during call analysis.

    Signals are immutable inputs; the engine never persists them except
    as the ``trigger_signal`` snapshot inside a log entry.
    """

    model_config = ConfigDict(frozen=True)

    trigger_type: TriggerType
    confidence: float = Field(..., ge=0, le=1)
    call_type_id: Optional[str] = None
    deal_id: UUID
    meeting_id: Optional[UUID] = None
    org_id: UUID
    context: Dict[str, Any] = Field(default_factory=dict)
    observed_at: datetime = Field(default_factory=_utcnow)

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready copy stored as ``trigger_signal``."""
        return self.model_dump(mode="json")


class SignalBatch(BaseModel):
    """Request body for POST /api/v1/automation/signals/batch."""

    signals: List[Signal] = Field(..., min_length=1, max_length=500)
