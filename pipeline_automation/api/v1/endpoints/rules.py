from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response

from pipeline_automation.api.deps import get_rule_service
from pipeline_automation.schemas.common import TriggerType
from pipeline_automation.schemas.rule import RuleCreate, RuleOut, RuleUpdate
from pipeline_automation.services.rule_service import RuleService

router = APIRouter(prefix="/automation/rules", tags=["Automation Rules"])


@router.get("", response_model=List[RuleOut])
async def list_rules(
    org_id: UUID,
    trigger_type: Optional[TriggerType] = Query(None),
    is_active: Optional[bool] = Query(None),
    service: RuleService = Depends(get_rule_service),
) -> List[RuleOut]:
    """List an organisation's rules, newest first."""
    rules = await service.list_rules(
        org_id,
        trigger_type=trigger_type.value if trigger_type else None,
        is_active=is_active,
    )
    return [RuleOut.model_validate(rule) for rule in rules]


@router.post("", response_model=RuleOut, status_code=201)
async def create_rule(
    payload: RuleCreate,
    service: RuleService = Depends(get_rule_service),
) -> RuleOut:
    rule = await service.create_rule(payload)
    return RuleOut.model_validate(rule)


@router.get("/{rule_id}", response_model=RuleOut)
async def get_rule(
    rule_id: UUID,
    org_id: UUID,
    service: RuleService = Depends(get_rule_service),
) -> RuleOut:
    rule = await service.get_rule(rule_id, org_id)
    return RuleOut.model_validate(rule)


@router.patch("/{rule_id}", response_model=RuleOut)
async def update_rule(
    rule_id: UUID,
    org_id: UUID,
    payload: RuleUpdate,
    service: RuleService = Depends(get_rule_service),
) -> RuleOut:
    """Partially update a rule.

    Business logic is delegated to :class:`RuleService`.
    """
    rule = await service.update_rule(rule_id, org_id, payload)
    return RuleOut.model_validate(rule)


@router.post("/{rule_id}/toggle", response_model=RuleOut)
async def toggle_rule(
    rule_id: UUID,
    org_id: UUID,
    service: RuleService = Depends(get_rule_service),
) -> RuleOut:
    rule = await service.toggle_rule(rule_id, org_id)
    return RuleOut.model_validate(rule)


@router.delete("/{rule_id}", status_code=204)
async def delete_rule(
    rule_id: UUID,
    org_id: UUID,
    service: RuleService = Depends(get_rule_service),
) -> Response:
    await service.delete_rule(rule_id, org_id)
    return Response(status_code=204)
