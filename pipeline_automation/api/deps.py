"""API-layer dependency functions.

Re-exports all dependency factories from ``pipeline_automation.dependencies``
so that endpoint modules only need to import from
``pipeline_automation.api.deps``.
"""

from pipeline_automation.dependencies import (
    # Repository factories
    get_rule_repo,
    get_log_repo,
    # Service factories
    get_rule_service,
    get_automation_engine,
    # Redis
    get_redis_client,
)

__all__ = [
    "get_rule_repo",
    "get_log_repo",
    "get_rule_service",
    "get_automation_engine",
    "get_redis_client",
]
