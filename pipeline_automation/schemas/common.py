from enum import Enum
from pydantic import BaseModel


class TriggerType(str, Enum):
    forward_movement_detected = "forward_movement_detected"
    proposal_requested = "proposal_requested"
    pricing_discussed = "pricing_discussed"
    verbal_commitment = "verbal_commitment"
    next_meeting_scheduled = "next_meeting_scheduled"
    decision_maker_engaged = "decision_maker_engaged"
    timeline_confirmed = "timeline_confirmed"
    checklist_incomplete = "checklist_incomplete"


class ActionType(str, Enum):
    advance_stage = "advance_stage"
    create_task = "create_task"
    send_notification = "send_notification"
    update_deal_field = "update_deal_field"


class ExecutionStatus(str, Enum):
    success = "success"
    failed = "failed"
    skipped = "skipped"


class NotificationChannel(str, Enum):
    in_app = "in_app"
    email = "email"
    slack = "slack"


class TaskPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class DealField(str, Enum):
    next_step = "next_step"
    notes = "notes"


class SuccessResponse(BaseModel):
    """Generic success response base."""

    success: bool = True
