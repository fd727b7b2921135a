import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from pipeline_automation.core.constants import (
    CHANNEL_ORDER,
    INVALID_ACTION_CONFIG_MESSAGE,
    NOTES_TIMESTAMP_FORMAT,
    TERMINAL_STAGE_MESSAGE,
)
from pipeline_automation.core.exceptions import (
    ActionTimeoutError,
    ExecutorError,
    PartialChannelFailureError,
)
from pipeline_automation.schemas.action_config import (
    AdvanceStageConfig,
    CreateTaskConfig,
    SendNotificationConfig,
    UpdateDealFieldConfig,
)
from pipeline_automation.schemas.common import (
    ActionType,
    DealField,
    ExecutionStatus,
    NotificationChannel,
)
from pipeline_automation.schemas.rule import RuleDefinition
from pipeline_automation.schemas.signal import Signal
from pipeline_automation.services.capabilities import (
    DealFieldUpdater,
    DealPipelineMutator,
    Notifier,
    TaskCreator,
)
from pipeline_automation.services.template_renderer import (
    build_template_context,
    render_action_config,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ActionOutcome:
    """What an executor reports back: a terminal status plus detail."""

    status: ExecutionStatus
    action_result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None

    @classmethod
    def failed(
        cls, error_message: str, action_result: Optional[Dict[str, Any]] = None
    ) -> "ActionOutcome":
        return cls(
            status=ExecutionStatus.failed,
            action_result=action_result,
            error_message=error_message,
        )


class ActionDispatcher:
    """Render a rule's action config and run the matching executor.

    Four executors exist, one per ``action_type``:

    - ``advance_stage``     move the deal one stage forward; a deal
      already at its final stage is ``skipped``
    - ``create_task``       create a follow-up task due ``due_days`` after
      the signal was observed
    - ``send_notification`` fan out one message to every requested
      channel; any failed channel makes the whole action ``failed``
      without undoing the channels that succeeded
    - ``update_deal_field`` overwrite ``next_step`` or append a
      timestamped line to ``notes``

    Every capability call is bounded by ``timeout_seconds``; a timeout
    is reported exactly like a capability failure.  The dispatcher never
    raises for executor problems, it returns a ``failed`` outcome.
    """

    def __init__(
        self,
        deal_mutator: DealPipelineMutator,
        task_creator: TaskCreator,
        notifier: Notifier,
        field_updater: DealFieldUpdater,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._deal_mutator = deal_mutator
        self._task_creator = task_creator
        self._notifier = notifier
        self._field_updater = field_updater
        self._timeout = timeout_seconds
        self._executors: Dict[
            ActionType, Callable[[Any, Signal, datetime], Awaitable[ActionOutcome]]
        ] = {
            ActionType.advance_stage: self._advance_stage,
            ActionType.create_task: self._create_task,
            ActionType.send_notification: self._send_notification,
            ActionType.update_deal_field: self._update_deal_field,
        }

    async def dispatch(
        self, rule: RuleDefinition, signal: Signal, now: datetime
    ) -> ActionOutcome:
        if rule.action is None:
            return ActionOutcome.failed(
                INVALID_ACTION_CONFIG_MESSAGE,
                {"error": rule.config_error or INVALID_ACTION_CONFIG_MESSAGE},
            )

        config = render_action_config(rule.action, build_template_context(signal))
        executor = self._executors[rule.action_type]
        try:
            return await executor(config, signal, now)
        except ExecutorError as exc:
            logger.warning(
                "%s failed for rule %s on deal %s: %s",
                rule.action_type.value,
                rule.rule_id,
                signal.deal_id,
                exc.detail,
            )
            return ActionOutcome.failed(
                exc.detail, exc.action_result or {"error": exc.detail}
            )
        except Exception as exc:
            logger.warning(
                "%s raised unexpectedly for rule %s on deal %s",
                rule.action_type.value,
                rule.rule_id,
                signal.deal_id,
                exc_info=True,
            )
            message = str(exc) or exc.__class__.__name__
            return ActionOutcome.failed(message, {"error": message})

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await a capability call under the configured timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError:
            raise ActionTimeoutError(operation, self._timeout)

    # ------------------------------------------------------------------
    # Executors
    # ------------------------------------------------------------------

    async def _advance_stage(
        self, config: AdvanceStageConfig, signal: Signal, now: datetime
    ) -> ActionOutcome:
        result = await self._call(
            "advance_stage", self._deal_mutator.advance_to_next_stage(signal.deal_id)
        )
        action_result = {
            "deal_id": str(signal.deal_id),
            "advanced": result.advanced,
            "terminal": result.terminal,
            "from_stage_id": str(result.from_stage_id) if result.from_stage_id else None,
            "to_stage_id": str(result.to_stage_id) if result.to_stage_id else None,
        }
        if result.advanced:
            return ActionOutcome(ExecutionStatus.success, action_result)
        if result.terminal:
            return ActionOutcome(
                ExecutionStatus.skipped, action_result, TERMINAL_STAGE_MESSAGE
            )
        raise ExecutorError("stage advancement rejected", action_result)

    async def _create_task(
        self, config: CreateTaskConfig, signal: Signal, now: datetime
    ) -> ActionOutcome:
        due_date = signal.observed_at + timedelta(days=config.due_days)
        task_id = await self._call(
            "create_task",
            self._task_creator.create_task(
                title=config.title_template,
                due_date=due_date,
                priority=config.priority.value,
                deal_id=signal.deal_id,
            ),
        )
        if task_id is None:
            raise ExecutorError("task creation rejected")
        return ActionOutcome(
            ExecutionStatus.success,
            {
                "task_id": str(task_id),
                "title": config.title_template,
                "due_date": due_date.isoformat(),
                "priority": config.priority.value,
            },
        )

    async def _send_notification(
        self, config: SendNotificationConfig, signal: Signal, now: datetime
    ) -> ActionOutcome:
        message = config.message_template
        channels = [c for c in CHANNEL_ORDER if c in config.channels]

        deliveries = await asyncio.gather(
            *(self._deliver(channel, message, signal) for channel in channels)
        )
        channel_results = dict(deliveries)
        action_result = {"message": message, "channels": channel_results}

        failed = [name for name, state in deliveries if state != "sent"]
        if failed:
            raise PartialChannelFailureError(failed, action_result)
        return ActionOutcome(ExecutionStatus.success, action_result)

    async def _deliver(
        self, channel: NotificationChannel, message: str, signal: Signal
    ) -> Tuple[str, str]:
        """Send on one channel; never raises so sibling channels still run."""
        try:
            delivered = await self._call(
                f"{channel.value} notification",
                self._notifier.send(
                    channel.value, message, signal.org_id, signal.deal_id
                ),
            )
        except ExecutorError as exc:
            return channel.value, f"failed: {exc.detail}"
        except Exception as exc:
            logger.warning(
                "Notifier raised on channel %s for deal %s",
                channel.value,
                signal.deal_id,
                exc_info=True,
            )
            return channel.value, f"failed: {str(exc) or exc.__class__.__name__}"
        return channel.value, "sent" if delivered else "failed: delivery rejected"

    async def _update_deal_field(
        self, config: UpdateDealFieldConfig, signal: Signal, now: datetime
    ) -> ActionOutcome:
        value = config.value_template
        if config.field == DealField.notes:
            value = f"[{now.strftime(NOTES_TIMESTAMP_FORMAT)}] {value}"

        updated = await self._call(
            "update_deal_field",
            self._field_updater.update_field(signal.deal_id, config.field.value, value),
        )
        action_result = {"field": config.field.value, "value": value}
        if not updated:
            raise ExecutorError(
                f"update of {config.field.value} rejected", action_result
            )
        return ActionOutcome(ExecutionStatus.success, action_result)
