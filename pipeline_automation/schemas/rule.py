"""Rule schemas: the evaluated rule definition and the API payloads."""

from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing_extensions import Self

from pipeline_automation.core.default_action_configs import (
    DEFAULT_ACTION_CONFIGS,
    DEFAULT_COOLDOWN_HOURS,
    DEFAULT_MIN_CONFIDENCE,
)
from pipeline_automation.core.exceptions import InvalidActionConfigError
from pipeline_automation.schemas.action_config import ActionConfig, parse_action_config
from pipeline_automation.schemas.common import ActionType, TriggerType


# ---------------------------------------------------------------------------
# Rule as seen by the engine
# ---------------------------------------------------------------------------


class RuleDefinition(BaseModel):
    """An automation rule loaded for evaluation.

    ``action`` holds the parsed config variant.  It is ``None`` when the
    stored ``action_config`` does not match ``action_type``; such a rule
    still matches signals but fails closed at dispatch with
    ``"invalid action config"``.
    """

    model_config = ConfigDict(frozen=True)

    rule_id: UUID
    org_id: UUID
    name: str
    description: Optional[str] = None
    is_active: bool = True
    trigger_type: TriggerType
    call_type_filter: Optional[FrozenSet[str]] = None
    action_type: ActionType
    action_config: Dict[str, Any] = Field(default_factory=dict)
    action: Optional[ActionConfig] = None
    config_error: Optional[str] = None
    min_confidence: float = Field(DEFAULT_MIN_CONFIDENCE, ge=0, le=1)
    cooldown_hours: int = Field(DEFAULT_COOLDOWN_HOURS, ge=0)
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Any) -> "RuleDefinition":
        """Build a definition from an ORM row, parsing its action config."""
        action = None
        config_error = None
        try:
            action = parse_action_config(row.action_type, row.action_config)
        except InvalidActionConfigError as exc:
            config_error = exc.detail

        call_type_filter = (
            frozenset(row.call_type_filter) if row.call_type_filter else None
        )
        return cls(
            rule_id=row.rule_id,
            org_id=row.org_id,
            name=row.name,
            description=row.description,
            is_active=row.is_active,
            trigger_type=row.trigger_type,
            call_type_filter=call_type_filter,
            action_type=row.action_type,
            action_config=row.action_config if isinstance(row.action_config, dict) else {},
            action=action,
            config_error=config_error,
            min_confidence=row.min_confidence,
            cooldown_hours=row.cooldown_hours,
            created_by=row.created_by,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class RuleCreate(BaseModel):
    """Request body for POST /api/v1/automation/rules."""

    org_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    is_active: bool = True
    trigger_type: TriggerType
    call_type_filter: Optional[List[str]] = None
    action_type: ActionType
    action_config: Optional[Dict[str, Any]] = None
    min_confidence: float = Field(DEFAULT_MIN_CONFIDENCE, ge=0, le=1)
    cooldown_hours: int = Field(DEFAULT_COOLDOWN_HOURS, ge=0)
    created_by: Optional[UUID] = None

    @model_validator(mode="after")
    def validate_action_config(self) -> Self:
        """Fill in the per-action default config and normalise it.

        Raises ``ValueError`` (HTTP 422) when the config does not match
        ``action_type``.
        """
        raw = self.action_config
        if raw is None:
            raw = DEFAULT_ACTION_CONFIGS[self.action_type.value]
        try:
            parsed = parse_action_config(self.action_type, raw)
        except InvalidActionConfigError as exc:
            raise ValueError(exc.detail) from exc
        self.action_config = parsed.to_storage()
        if not self.call_type_filter:
            self.call_type_filter = None
        return self


class RuleUpdate(BaseModel):
    """Request body for PATCH /api/v1/automation/rules/{rule_id}.

    Cross-field validation of ``action_type`` / ``action_config`` needs
    the stored rule and happens in :class:`RuleService`.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    trigger_type: Optional[TriggerType] = None
    call_type_filter: Optional[List[str]] = None
    action_type: Optional[ActionType] = None
    action_config: Optional[Dict[str, Any]] = None
    min_confidence: Optional[float] = Field(None, ge=0, le=1)
    cooldown_hours: Optional[int] = Field(None, ge=0)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class RuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rule_id: UUID
    org_id: UUID
    name: str
    description: Optional[str] = None
    is_active: bool
    trigger_type: TriggerType
    call_type_filter: Optional[List[str]] = None
    action_type: ActionType
    action_config: Dict[str, Any]
    min_confidence: float
    cooldown_hours: int
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
