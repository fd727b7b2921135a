from sqlalchemy import Column, String, DateTime, CheckConstraint, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from pipeline_automation.models.base import Base


class Task(Base):
    __tablename__ = "tasks"
    task_id = Column(UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid())
    deal_id = Column(UUID(as_uuid=True), ForeignKey("deals.deal_id", ondelete="CASCADE"), nullable=False)
    title = Column(String(500), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=False)
    priority = Column(String(20), nullable=False, server_default="medium")
    status = Column(String(20), nullable=False, server_default="pending")
    source = Column(String(50), nullable=False, server_default="pipeline_automation")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    deal = relationship("Deal")

    __table_args__ = (
        CheckConstraint("priority IN ('high', 'medium', 'low')", name="ck_task_priority"),
        CheckConstraint("status IN ('pending', 'completed')", name="ck_task_status"),
    )
