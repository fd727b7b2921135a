from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy import text

from pipeline_automation.models.base import Base


class DealStage(Base):
    """One step of a sales pipeline, ordered by ``order_position``."""

    __tablename__ = "deal_stages"
    stage_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    org_id = Column(UUID(as_uuid=True), nullable=False)
    pipeline_id = Column(UUID(as_uuid=True), nullable=False)
    name = Column(String(100), nullable=False)
    order_position = Column(Integer, nullable=False, server_default=text("0"))

    __table_args__ = (
        UniqueConstraint(
            "pipeline_id", "order_position", name="uq_stage_pipeline_position"
        ),
    )


class Deal(Base):
    __tablename__ = "deals"
    deal_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    org_id = Column(UUID(as_uuid=True), nullable=False)
    name = Column(String(255), nullable=False)
    stage_id = Column(
        UUID(as_uuid=True),
        ForeignKey("deal_stages.stage_id", ondelete="RESTRICT"),
        nullable=False,
    )
    next_step = Column(Text)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    stage = relationship("DealStage")
