"""Pydantic schemas package – re-exports for convenience."""

# Common enums
from pipeline_automation.schemas.common import (
    TriggerType as TriggerType,
    ActionType as ActionType,
    ExecutionStatus as ExecutionStatus,
    NotificationChannel as NotificationChannel,
    TaskPriority as TaskPriority,
    DealField as DealField,
    SuccessResponse as SuccessResponse,
)

# Action config variants
from pipeline_automation.schemas.action_config import (
    ActionConfig as ActionConfig,
    AdvanceStageConfig as AdvanceStageConfig,
    CreateTaskConfig as CreateTaskConfig,
    SendNotificationConfig as SendNotificationConfig,
    UpdateDealFieldConfig as UpdateDealFieldConfig,
    parse_action_config as parse_action_config,
)

# Signal schemas
from pipeline_automation.schemas.signal import (
    Signal as Signal,
    SignalBatch as SignalBatch,
)

# Rule schemas
from pipeline_automation.schemas.rule import (
    RuleDefinition as RuleDefinition,
    RuleCreate as RuleCreate,
    RuleUpdate as RuleUpdate,
    RuleOut as RuleOut,
)

# Execution log schemas
from pipeline_automation.schemas.execution_log import (
    ExecutionLogEntry as ExecutionLogEntry,
    SignalProcessingResponse as SignalProcessingResponse,
    BatchProcessingResponse as BatchProcessingResponse,
)
