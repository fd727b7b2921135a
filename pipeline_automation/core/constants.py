from typing import FrozenSet, Tuple

from pipeline_automation.schemas.common import (
    ActionType,
    DealField,
    ExecutionStatus,
    NotificationChannel,
    TaskPriority,
    TriggerType,
)

TRIGGER_TYPES: FrozenSet[str] = frozenset(t.value for t in TriggerType)
ACTION_TYPES: FrozenSet[str] = frozenset(a.value for a in ActionType)
EXECUTION_STATUSES: FrozenSet[str] = frozenset(s.value for s in ExecutionStatus)
TASK_PRIORITIES: FrozenSet[str] = frozenset(p.value for p in TaskPriority)
DEAL_FIELDS: FrozenSet[str] = frozenset(f.value for f in DealField)


def _in_clause(column: str, values: FrozenSet[str]) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in sorted(values))})"


TRIGGER_TYPE_CHECK_CLAUSE: str = _in_clause("trigger_type", TRIGGER_TYPES)
ACTION_TYPE_CHECK_CLAUSE: str = _in_clause("action_type", ACTION_TYPES)
EXECUTION_STATUS_CHECK_CLAUSE: str = _in_clause("status", EXECUTION_STATUSES)

# Notification fan-out order; action_result lists channels in this order
CHANNEL_ORDER: Tuple[NotificationChannel, ...] = (
    NotificationChannel.in_app,
    NotificationChannel.email,
    NotificationChannel.slack,
)

# Log messages written for non-success outcomes
COOLDOWN_ACTIVE_MESSAGE: str = "cooldown active"
INVALID_ACTION_CONFIG_MESSAGE: str = "invalid action config"
LOCK_UNAVAILABLE_MESSAGE: str = "cooldown lock unavailable"
TERMINAL_STAGE_MESSAGE: str = "deal already at final stage"

# Redis key prefix for per-(rule, deal) cooldown locks
COOLDOWN_LOCK_KEY_PREFIX: str = "automation:cooldown"

# Prefix format for appended deal notes
NOTES_TIMESTAMP_FORMAT: str = "%Y-%m-%d %H:%M UTC"
