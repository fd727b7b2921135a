"""Typed ``action_config`` variants, one per ``action_type``.

The store keeps ``action_config`` as untyped JSON next to its
``action_type``.  :func:`parse_action_config` folds the two into a
single tagged union so malformed rules are rejected when they are
loaded (or authored) rather than half-way through dispatch.
"""

from typing import Any, Dict, FrozenSet, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)
from typing_extensions import Annotated

from pipeline_automation.core.exceptions import InvalidActionConfigError
from pipeline_automation.schemas.common import (
    ActionType,
    DealField,
    NotificationChannel,
    TaskPriority,
)


class _ActionConfigBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    def to_storage(self) -> Dict[str, Any]:
        """Return the JSON-ready dict stored in ``action_config``."""
        return self.model_dump(mode="json", exclude={"action_type"})


class AdvanceStageConfig(_ActionConfigBase):
    action_type: Literal["advance_stage"] = "advance_stage"
    advance_to_next: bool

    @field_validator("advance_to_next")
    @classmethod
    def only_next_stage(cls, value: bool) -> bool:
        # Jumping to an arbitrary stage is not part of the action vocabulary
        if not value:
            raise ValueError("advance_to_next must be true")
        return value


class CreateTaskConfig(_ActionConfigBase):
    action_type: Literal["create_task"] = "create_task"
    title_template: str = Field(..., min_length=1)
    due_days: int = Field(3, ge=0, le=365)
    priority: TaskPriority = TaskPriority.medium


class SendNotificationConfig(_ActionConfigBase):
    action_type: Literal["send_notification"] = "send_notification"
    channels: FrozenSet[NotificationChannel] = Field(..., min_length=1)
    message_template: str = Field(..., min_length=1)

    def to_storage(self) -> Dict[str, Any]:
        data = super().to_storage()
        data["channels"] = sorted(data["channels"])
        return data


class UpdateDealFieldConfig(_ActionConfigBase):
    action_type: Literal["update_deal_field"] = "update_deal_field"
    field: DealField
    value_template: str = Field(..., min_length=1)


ActionConfig = Annotated[
    Union[
        AdvanceStageConfig,
        CreateTaskConfig,
        SendNotificationConfig,
        UpdateDealFieldConfig,
    ],
    Field(discriminator="action_type"),
]

_ACTION_CONFIG_ADAPTER: TypeAdapter = TypeAdapter(ActionConfig)


def parse_action_config(
    action_type: Union[ActionType, str], raw: Any
) -> "ActionConfig":
    """Validate *raw* against the schema dictated by *action_type*.

    Raises ``InvalidActionConfigError`` when *raw* is not a mapping,
    *action_type* is unknown, or any field fails validation.
    """
    if not isinstance(raw, dict):
        raise InvalidActionConfigError("invalid action config: expected an object")
    tag = action_type.value if isinstance(action_type, ActionType) else action_type
    try:
        return _ACTION_CONFIG_ADAPTER.validate_python({**raw, "action_type": tag})
    except ValidationError as exc:
        raise InvalidActionConfigError(
            f"invalid action config for {tag}: {exc.error_count()} error(s)"
        ) from exc
