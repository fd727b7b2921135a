import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncContextManager, Optional
from uuid import UUID

from pipeline_automation.core.locks import KeyedLockManager
from pipeline_automation.schemas.rule import RuleDefinition
from pipeline_automation.services.capabilities import RuleLogStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CooldownDecision:
    eligible: bool
    last_success_at: Optional[datetime] = None
    available_at: Optional[datetime] = None


class CooldownTracker:
    """Decide whether a rule may fire again for a deal.

    Eligibility is derived from the execution log: the most recent
    ``success`` entry for ``(rule_id, deal_id)`` is compared with the
    rule's ``cooldown_hours``.  There is no separate "last fired"
    counter that could drift from the audit trail.

    The check is only race-free when made inside :meth:`serialize`,
    held until the terminal log entry for the candidate is written.
    """

    def __init__(self, store: RuleLogStore, lock_manager: KeyedLockManager) -> None:
        self._store = store
        self._locks = lock_manager

    def serialize(
        self, rule: RuleDefinition, deal_id: Optional[UUID]
    ) -> AsyncContextManager[None]:
        """Exclusive section for *rule* on *deal_id*; other keys are unaffected."""
        return self._locks.hold(rule.rule_id, deal_id)

    @staticmethod
    def is_cooling_down(
        last_success_at: Optional[datetime], cooldown_hours: int, now: datetime
    ) -> bool:
        if last_success_at is None or cooldown_hours <= 0:
            return False
        return now - last_success_at < timedelta(hours=cooldown_hours)

    async def check(
        self, rule: RuleDefinition, deal_id: Optional[UUID], now: datetime
    ) -> CooldownDecision:
        last_success_at = await self._store.last_successful_execution(
            rule.rule_id, deal_id
        )
        if self.is_cooling_down(last_success_at, rule.cooldown_hours, now):
            available_at = last_success_at + timedelta(hours=rule.cooldown_hours)
            logger.info(
                "Rule %s is cooling down for deal %s until %s",
                rule.rule_id,
                deal_id,
                available_at.isoformat(),
            )
            return CooldownDecision(
                eligible=False,
                last_success_at=last_success_at,
                available_at=available_at,
            )
        return CooldownDecision(eligible=True, last_success_at=last_success_at)
