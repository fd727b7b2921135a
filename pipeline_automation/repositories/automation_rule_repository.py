from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import select

from pipeline_automation.models.automation_rule import AutomationRule
from pipeline_automation.repositories.base import BaseRepository


class AutomationRuleRepository(BaseRepository):
    """Encapsulates queries against the ``pipeline_automation_rules`` table."""

    async def get_active_rules(self, org_id: UUID) -> List[AutomationRule]:
        """Return an org's active rules, oldest first.

        Creation order (ties broken by id) is the evaluation order, which
        keeps the log ordering deterministic.
        """
        result = await self._db.execute(
            select(AutomationRule)
            .where(
                AutomationRule.org_id == org_id,
                AutomationRule.is_active.is_(True),
            )
            .order_by(AutomationRule.created_at.asc(), AutomationRule.rule_id.asc())
        )
        return list(result.scalars().all())

    async def list_for_org(
        self,
        org_id: UUID,
        trigger_type: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> List[AutomationRule]:
        """Return an org's rules, newest first, optionally filtered."""
        query = select(AutomationRule).where(AutomationRule.org_id == org_id)
        if trigger_type:
            query = query.where(AutomationRule.trigger_type == trigger_type)
        if is_active is not None:
            query = query.where(AutomationRule.is_active.is_(is_active))
        query = query.order_by(AutomationRule.created_at.desc())

        result = await self._db.execute(query)
        return list(result.scalars().all())

    async def get_by_id(
        self, rule_id: UUID, org_id: Optional[UUID] = None
    ) -> Optional[AutomationRule]:
        """Return a single rule by primary key (scoped to *org_id* if given)."""
        query = select(AutomationRule).where(AutomationRule.rule_id == rule_id)
        if org_id is not None:
            query = query.where(AutomationRule.org_id == org_id)
        result = await self._db.execute(query)
        return result.scalar_one_or_none()

    async def create(self, **kwargs: Any) -> AutomationRule:
        """Insert a new rule and return the model instance."""
        rule = AutomationRule(**kwargs)
        self._db.add(rule)
        return rule

    async def update(self, rule: AutomationRule, **changes: Any) -> AutomationRule:
        """Apply *changes* to an existing rule instance."""
        for column, value in changes.items():
            setattr(rule, column, value)
        return rule

    async def delete(self, rule: AutomationRule) -> None:
        """Delete a rule; its log entries keep a NULL ``rule_id``."""
        await self._db.delete(rule)
