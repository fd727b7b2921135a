"""Default deal/task capabilities backed by the service's own tables."""

import logging
from datetime import datetime
from typing import Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pipeline_automation.core.exceptions import DealNotFoundError, ExecutorError
from pipeline_automation.repositories.deal_repository import DealRepository
from pipeline_automation.repositories.task_repository import TaskRepository
from pipeline_automation.schemas.common import DealField
from pipeline_automation.services.capabilities import StageAdvanceResult

logger = logging.getLogger(__name__)


class SqlDealPipelineMutator:
    """Move a deal to the next stage of its pipeline.

    The deal row is locked ``FOR UPDATE`` so two rules advancing the
    same deal at once cannot both read the same current stage.
    """

    def __init__(self, session_factory: Callable[..., AsyncSession]) -> None:
        self._session_factory = session_factory

    async def advance_to_next_stage(self, deal_id: UUID) -> StageAdvanceResult:
        async with self._session_factory() as session:
            deals = DealRepository(session)
            deal = await deals.get_for_update(deal_id)
            if deal is None:
                raise DealNotFoundError(f"Deal {deal_id} not found")

            stage = await deals.get_stage(deal.stage_id)
            next_stage = await deals.get_next_stage(stage)
            if next_stage is None:
                await deals.rollback()
                return StageAdvanceResult(
                    advanced=False, terminal=True, from_stage_id=stage.stage_id
                )

            await deals.set_stage(deal, next_stage.stage_id)
            following = await deals.get_next_stage(next_stage)
            await deals.commit()

        logger.info(
            "Advanced deal %s from stage %s to %s",
            deal_id,
            stage.name,
            next_stage.name,
        )
        return StageAdvanceResult(
            advanced=True,
            terminal=following is None,
            from_stage_id=stage.stage_id,
            to_stage_id=next_stage.stage_id,
        )


class SqlTaskCreator:
    def __init__(self, session_factory: Callable[..., AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_task(
        self, title: str, due_date: datetime, priority: str, deal_id: UUID
    ) -> UUID:
        async with self._session_factory() as session:
            tasks = TaskRepository(session)
            try:
                task = await tasks.create(
                    deal_id=deal_id,
                    title=title,
                    due_date=due_date,
                    priority=priority,
                    status="pending",
                )
                await tasks.flush()
                task_id = task.task_id
                await tasks.commit()
            except SQLAlchemyError as exc:
                await tasks.rollback()
                raise ExecutorError(
                    f"task creation rejected: {exc.__class__.__name__}"
                ) from exc
        return task_id


class SqlDealFieldUpdater:
    """Write ``next_step`` (overwrite) or ``notes`` (append a line)."""

    def __init__(self, session_factory: Callable[..., AsyncSession]) -> None:
        self._session_factory = session_factory

    async def update_field(self, deal_id: UUID, field: str, value: str) -> bool:
        async with self._session_factory() as session:
            deals = DealRepository(session)
            deal = await deals.get_for_update(deal_id)
            if deal is None:
                raise DealNotFoundError(f"Deal {deal_id} not found")

            if field == DealField.next_step.value:
                await deals.set_next_step(deal, value)
            elif field == DealField.notes.value:
                await deals.append_note(deal, value)
            else:
                await deals.rollback()
                return False
            await deals.commit()
        return True
