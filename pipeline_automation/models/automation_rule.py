from sqlalchemy import (
    Column,
    String,
    Text,
    Boolean,
    Integer,
    Float,
    DateTime,
    CheckConstraint,
    Index,
    ARRAY,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy import text

from pipeline_automation.core.constants import (
    ACTION_TYPE_CHECK_CLAUSE,
    TRIGGER_TYPE_CHECK_CLAUSE,
)
from pipeline_automation.models.base import Base


class AutomationRule(Base):
    """Operator-authored binding of a call-signal filter to one action.

    ``action_config`` is stored as untyped JSONB; its shape is dictated
    by ``action_type`` and validated into a typed config when rules are
    loaded for evaluation.  ``call_type_filter`` NULL means "any call
    type".
    """

    __tablename__ = "pipeline_automation_rules"
    rule_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    org_id = Column(UUID(as_uuid=True), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    trigger_type = Column(String(50), nullable=False)
    call_type_filter = Column(ARRAY(String))
    action_type = Column(String(50), nullable=False)
    action_config = Column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))
    min_confidence = Column(Float, nullable=False, server_default=text("0.7"))
    cooldown_hours = Column(Integer, nullable=False, server_default=text("24"))
    created_by = Column(UUID(as_uuid=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    log_entries = relationship("AutomationLogEntry", back_populates="rule")

    __table_args__ = (
        Index("idx_automation_rules_org_active", "org_id", "is_active"),
        CheckConstraint(TRIGGER_TYPE_CHECK_CLAUSE, name="ck_rule_trigger_type"),
        CheckConstraint(ACTION_TYPE_CHECK_CLAUSE, name="ck_rule_action_type"),
        CheckConstraint(
            "min_confidence BETWEEN 0 AND 1", name="ck_rule_min_confidence_range"
        ),
        CheckConstraint("cooldown_hours >= 0", name="ck_rule_cooldown_nonneg"),
    )
