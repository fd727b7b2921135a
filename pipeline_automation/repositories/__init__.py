"""Repository layer – all database access goes through here.

Repositories encapsulate SQLAlchemy queries so that the service layer
only contains business logic.
"""

from pipeline_automation.repositories.automation_rule_repository import (
    AutomationRuleRepository,
)
from pipeline_automation.repositories.automation_log_repository import (
    AutomationLogRepository,
)
from pipeline_automation.repositories.deal_repository import DealRepository
from pipeline_automation.repositories.task_repository import TaskRepository
from pipeline_automation.repositories.notification_repository import (
    NotificationRepository,
)

__all__ = [
    "AutomationRuleRepository",
    "AutomationLogRepository",
    "DealRepository",
    "TaskRepository",
    "NotificationRepository",
]
