from typing import Optional
from uuid import UUID

from sqlalchemy import select

from pipeline_automation.models.deal import Deal, DealStage
from pipeline_automation.repositories.base import BaseRepository


class DealRepository(BaseRepository):
    """Encapsulates every SQL query that touches ``deals`` and ``deal_stages``."""

    async def get_for_update(self, deal_id: UUID) -> Optional[Deal]:
        """Return a deal row-locked until the end of the transaction."""
        result = await self._db.execute(
            select(Deal).where(Deal.deal_id == deal_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def get_stage(self, stage_id: UUID) -> Optional[DealStage]:
        result = await self._db.execute(
            select(DealStage).where(DealStage.stage_id == stage_id)
        )
        return result.scalar_one_or_none()

    async def get_next_stage(self, stage: DealStage) -> Optional[DealStage]:
        """Return the stage after *stage* in its pipeline, or ``None`` if last."""
        result = await self._db.execute(
            select(DealStage)
            .where(
                DealStage.pipeline_id == stage.pipeline_id,
                DealStage.order_position > stage.order_position,
            )
            .order_by(DealStage.order_position.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def set_stage(self, deal: Deal, stage_id: UUID) -> None:
        deal.stage_id = stage_id

    async def set_next_step(self, deal: Deal, value: str) -> None:
        deal.next_step = value

    async def append_note(self, deal: Deal, entry: str) -> None:
        """Append *entry* on its own line to the deal's notes."""
        deal.notes = f"{deal.notes}\n{entry}" if deal.notes else entry
