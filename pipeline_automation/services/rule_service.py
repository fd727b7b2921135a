import logging
from typing import List, Optional
from uuid import UUID

from pipeline_automation.core.default_action_configs import DEFAULT_ACTION_CONFIGS
from pipeline_automation.core.exceptions import RuleNotFoundError
from pipeline_automation.models.automation_rule import AutomationRule
from pipeline_automation.repositories.automation_rule_repository import (
    AutomationRuleRepository,
)
from pipeline_automation.schemas.action_config import parse_action_config
from pipeline_automation.schemas.rule import RuleCreate, RuleUpdate

logger = logging.getLogger(__name__)

# PATCH may explicitly clear these; other columns ignore an explicit null
_NULLABLE_COLUMNS = frozenset({"description", "call_type_filter"})


class RuleService:
    """Operator-facing rule management.

    Every write re-validates ``action_config`` against ``action_type``
    so a malformed rule is rejected at authoring time.  The engine
    still fails closed on rules that reach the table some other way.
    """

    def __init__(self, rule_repo: AutomationRuleRepository) -> None:
        self._rules = rule_repo

    async def list_rules(
        self,
        org_id: UUID,
        trigger_type: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> List[AutomationRule]:
        return await self._rules.list_for_org(
            org_id, trigger_type=trigger_type, is_active=is_active
        )

    async def get_rule(self, rule_id: UUID, org_id: UUID) -> AutomationRule:
        rule = await self._rules.get_by_id(rule_id, org_id=org_id)
        if not rule:
            raise RuleNotFoundError(f"Automation rule {rule_id} not found")
        return rule

    async def create_rule(self, payload: RuleCreate) -> AutomationRule:
        rule = await self._rules.create(
            org_id=payload.org_id,
            name=payload.name,
            description=payload.description,
            is_active=payload.is_active,
            trigger_type=payload.trigger_type.value,
            call_type_filter=payload.call_type_filter,
            action_type=payload.action_type.value,
            action_config=payload.action_config,
            min_confidence=payload.min_confidence,
            cooldown_hours=payload.cooldown_hours,
            created_by=payload.created_by,
        )
        await self._rules.flush()
        await self._rules.commit()
        await self._rules.refresh(rule)
        logger.info(
            "Created automation rule %s (%s -> %s) for org %s",
            rule.rule_id,
            rule.trigger_type,
            rule.action_type,
            rule.org_id,
        )
        return rule

    async def update_rule(
        self, rule_id: UUID, org_id: UUID, payload: RuleUpdate
    ) -> AutomationRule:
        """Apply a partial update.

        Switching ``action_type`` without a new ``action_config`` resets
        the config to the new action's defaults.  Raises
        ``InvalidActionConfigError`` when the resulting pair is invalid.
        """
        rule = await self.get_rule(rule_id, org_id)
        changes = {
            column: value
            for column, value in payload.model_dump(exclude_unset=True).items()
            if value is not None or column in _NULLABLE_COLUMNS
        }

        action_type = changes.get("action_type") or rule.action_type
        action_type = getattr(action_type, "value", action_type)
        if "action_config" in changes:
            raw_config = changes["action_config"]
        elif action_type != rule.action_type:
            raw_config = DEFAULT_ACTION_CONFIGS[action_type]
        else:
            raw_config = rule.action_config

        if "action_type" in changes or "action_config" in changes:
            changes["action_type"] = action_type
            changes["action_config"] = parse_action_config(
                action_type, raw_config
            ).to_storage()

        if "trigger_type" in changes:
            changes["trigger_type"] = changes["trigger_type"].value
        if "call_type_filter" in changes and not changes["call_type_filter"]:
            changes["call_type_filter"] = None

        await self._rules.update(rule, **changes)
        await self._rules.commit()
        await self._rules.refresh(rule)
        return rule

    async def toggle_rule(self, rule_id: UUID, org_id: UUID) -> AutomationRule:
        rule = await self.get_rule(rule_id, org_id)
        await self._rules.update(rule, is_active=not rule.is_active)
        await self._rules.commit()
        await self._rules.refresh(rule)
        logger.info(
            "Automation rule %s %s",
            rule.rule_id,
            "activated" if rule.is_active else "deactivated",
        )
        return rule

    async def delete_rule(self, rule_id: UUID, org_id: UUID) -> None:
        rule = await self.get_rule(rule_id, org_id)
        await self._rules.delete(rule)
        await self._rules.commit()
        logger.info("Deleted automation rule %s", rule_id)
