from sqlalchemy import Column, String, Text, DateTime, CheckConstraint, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from pipeline_automation.core.constants import EXECUTION_STATUS_CHECK_CLAUSE
from pipeline_automation.models.base import Base


class AutomationLogEntry(Base):
    """One terminal outcome of one rule evaluated against one signal.

    Rows are append-only.  The most recent ``success`` row per
    ``(rule_id, deal_id)`` is the source of truth for cooldowns, hence
    the composite index.  ``rule_id`` survives rule deletion as NULL.
    """

    __tablename__ = "pipeline_automation_log"
    log_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    org_id = Column(UUID(as_uuid=True), nullable=False)
    rule_id = Column(
        UUID(as_uuid=True),
        ForeignKey("pipeline_automation_rules.rule_id", ondelete="SET NULL"),
    )
    meeting_id = Column(UUID(as_uuid=True))
    deal_id = Column(UUID(as_uuid=True))
    trigger_type = Column(String(50), nullable=False)
    trigger_signal = Column(JSONB)
    action_type = Column(String(50), nullable=False)
    action_result = Column(JSONB)
    status = Column(String(20), nullable=False)
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    rule = relationship("AutomationRule", back_populates="log_entries")

    __table_args__ = (
        Index(
            "idx_automation_log_cooldown",
            "rule_id",
            "deal_id",
            "status",
            "created_at",
        ),
        Index("idx_automation_log_org_created", "org_id", "created_at"),
        CheckConstraint(EXECUTION_STATUS_CHECK_CLAUSE, name="ck_log_status"),
    )
