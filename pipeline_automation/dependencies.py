import logging
from typing import Callable, Optional

from fastapi import Depends, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from pipeline_automation.core.config import settings
from pipeline_automation.core.database import get_db
from pipeline_automation.core.locks import KeyedLockManager
from pipeline_automation.services.automation_engine import AutomationEngine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Redis client factory
# ---------------------------------------------------------------------------


async def get_redis_client() -> Optional[Redis]:
    """Get an async Redis client instance, or ``None`` if Redis is down."""
    try:
        client = Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
        await client.ping()
        return client
    except Exception:
        logger.warning("Redis unavailable – cooldown locks use PostgreSQL advisory locks")
        return None


# ---------------------------------------------------------------------------
# Engine assembly (once per process, see main.lifespan)
# ---------------------------------------------------------------------------


def build_automation_engine(
    session_factory: Callable[..., AsyncSession],
    redis_client: Optional[Redis] = None,
) -> AutomationEngine:
    """Wire the engine with the SQL store and default capabilities.

    The returned engine owns the process-wide lock manager, so callers
    must share one instance rather than build one per request.
    """
    from pipeline_automation.services.action_dispatcher import ActionDispatcher
    from pipeline_automation.services.automation_store import SqlAutomationStore
    from pipeline_automation.services.notifier import ChannelNotifier
    from pipeline_automation.services.sql_capabilities import (
        SqlDealFieldUpdater,
        SqlDealPipelineMutator,
        SqlTaskCreator,
    )

    dispatcher = ActionDispatcher(
        deal_mutator=SqlDealPipelineMutator(session_factory),
        task_creator=SqlTaskCreator(session_factory),
        notifier=ChannelNotifier(session_factory),
        field_updater=SqlDealFieldUpdater(session_factory),
        timeout_seconds=settings.AUTOMATION_ACTION_TIMEOUT_SECONDS,
    )
    store = SqlAutomationStore(session_factory)
    lock_manager = KeyedLockManager(
        redis_client=redis_client,
        lease_seconds=settings.AUTOMATION_LOCK_TIMEOUT_SECONDS,
        wait_seconds=settings.AUTOMATION_LOCK_WAIT_SECONDS,
        store_lock=store.advisory_lock,
    )
    return AutomationEngine(
        store=store,
        dispatcher=dispatcher,
        lock_manager=lock_manager,
        max_concurrent_signals=settings.AUTOMATION_MAX_CONCURRENT_SIGNALS,
        log_append_attempts=settings.AUTOMATION_LOG_APPEND_ATTEMPTS,
        log_append_backoff_seconds=settings.AUTOMATION_LOG_APPEND_BACKOFF_SECONDS,
    )


async def get_automation_engine(request: Request) -> AutomationEngine:
    """Return the process-wide engine built at startup."""
    return request.app.state.automation_engine


# ---------------------------------------------------------------------------
# Repository factory functions (one per repository, each gets the shared db)
# ---------------------------------------------------------------------------


async def get_rule_repo(
    db: AsyncSession = Depends(get_db),
):
    from pipeline_automation.repositories.automation_rule_repository import (
        AutomationRuleRepository,
    )

    return AutomationRuleRepository(db)


async def get_log_repo(
    db: AsyncSession = Depends(get_db),
):
    from pipeline_automation.repositories.automation_log_repository import (
        AutomationLogRepository,
    )

    return AutomationLogRepository(db)


# ---------------------------------------------------------------------------
# Service factory functions
# ---------------------------------------------------------------------------


async def get_rule_service(
    rule_repo=Depends(get_rule_repo),
):
    """Build a :class:`RuleService` with injected repository."""
    from pipeline_automation.services.rule_service import RuleService

    return RuleService(rule_repo=rule_repo)
