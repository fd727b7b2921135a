from pipeline_automation.models.base import Base
from pipeline_automation.models.automation_rule import AutomationRule
from pipeline_automation.models.automation_log import AutomationLogEntry
from pipeline_automation.models.deal import Deal, DealStage
from pipeline_automation.models.task import Task
from pipeline_automation.models.notification import Notification

__all__ = [
    "Base",
    "AutomationRule",
    "AutomationLogEntry",
    "Deal",
    "DealStage",
    "Task",
    "Notification",
]
