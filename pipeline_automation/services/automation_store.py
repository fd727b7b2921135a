import asyncio
import hashlib
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from pipeline_automation.core.exceptions import CooldownLockUnavailableError
from pipeline_automation.repositories.automation_log_repository import (
    AutomationLogRepository,
)
from pipeline_automation.repositories.automation_rule_repository import (
    AutomationRuleRepository,
)
from pipeline_automation.schemas.execution_log import ExecutionLogEntry
from pipeline_automation.schemas.rule import RuleDefinition

logger = logging.getLogger(__name__)

# Delay between pg_try_advisory_xact_lock attempts while waiting
_ADVISORY_POLL_SECONDS: float = 0.05


def advisory_lock_id(key: str) -> int:
    """Map a lock key onto PostgreSQL's signed 64-bit advisory lock space."""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class SqlAutomationStore:
    """Rule & log store backed by PostgreSQL.

    Each operation runs in its own short-lived session.  ``append_log_entry``
    commits before returning: the cooldown lock is released only after
    the entry it guards is durable.

    :meth:`advisory_lock` is the cross-process lock used when Redis is
    unavailable.  It holds one connection, with its transaction open,
    for as long as the locked section runs.

    Parameters:
        session_factory: An async context-manager callable that yields
            an ``AsyncSession`` (e.g. ``AsyncSessionLocal``).
    """

    def __init__(self, session_factory: Callable[..., AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_active_rules(self, org_id: UUID) -> List[RuleDefinition]:
        async with self._session_factory() as session:
            rows = await AutomationRuleRepository(session).get_active_rules(org_id)

        definitions = []
        for row in rows:
            definition = RuleDefinition.from_row(row)
            if definition.config_error:
                logger.warning(
                    "Loaded rule %s with invalid action config: %s",
                    definition.rule_id,
                    definition.config_error,
                )
            definitions.append(definition)
        return definitions

    async def last_successful_execution(
        self, rule_id: UUID, deal_id: Optional[UUID]
    ) -> Optional[datetime]:
        async with self._session_factory() as session:
            return await AutomationLogRepository(session).get_last_success_at(
                rule_id, deal_id
            )

    async def append_log_entry(self, entry: ExecutionLogEntry) -> None:
        async with self._session_factory() as session:
            repo = AutomationLogRepository(session)
            await repo.create(entry)
            await repo.commit()

    @asynccontextmanager
    async def advisory_lock(self, key: str, wait_seconds: float) -> AsyncIterator[None]:
        """Hold a transaction-scoped advisory lock on *key*.

        Polls ``pg_try_advisory_xact_lock`` until it succeeds or
        *wait_seconds* elapse, then raises ``CooldownLockUnavailableError``.
        Ending the transaction releases the lock, including when the
        connection is lost mid-section.
        """
        lock_id = advisory_lock_id(key)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_seconds

        async with self._session_factory() as session:
            repo = AutomationLogRepository(session)
            while not await repo.try_advisory_xact_lock(lock_id):
                if loop.time() >= deadline:
                    logger.warning("Timed out waiting for advisory lock %s", key)
                    raise CooldownLockUnavailableError()
                await asyncio.sleep(_ADVISORY_POLL_SECONDS)
            try:
                yield
            finally:
                await repo.rollback()
