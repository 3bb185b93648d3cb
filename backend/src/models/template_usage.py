"""
Template usage model.

One row per application of a template to a medical record. Rows are
append-only: the ORM refuses to update or delete a persisted usage record.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Integer, String, TIMESTAMP, ForeignKey, Index, CheckConstraint, event, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import MAX_TENANT_ID_LENGTH
from core.database import Base
from models.medical_record_template import JSONDocument


class ImmutableUsageRecordError(Exception):
    """Raised when code tries to modify or delete a persisted usage record."""
    pass


class TemplateUsage(Base):
    """Immutable record of a template being applied to a medical record."""

    __tablename__ = "medical_record_template_usage"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    tenant_id: Mapped[str] = mapped_column(String(MAX_TENANT_ID_LENGTH), nullable=False)
    template_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("medical_record_templates.id", ondelete="RESTRICT"), nullable=False
    )
    # Medical records live outside this engine; the id is an opaque reference
    medical_record_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    used_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    customizations: Mapped[Dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    completion_time_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    template = relationship("MedicalRecordTemplate")

    __table_args__ = (
        Index("idx_template_usage_tenant_template", "tenant_id", "template_id"),
        Index("idx_template_usage_tenant_user", "tenant_id", "user_id"),
        CheckConstraint(
            "completion_time_seconds IS NULL OR completion_time_seconds >= 0",
            name="check_completion_time_non_negative",
        ),
    )


@event.listens_for(TemplateUsage, "before_update")
def _reject_usage_update(mapper, connection, target):  # type: ignore
    raise ImmutableUsageRecordError(f"Template usage record {target.id} is immutable")


@event.listens_for(TemplateUsage, "before_delete")
def _reject_usage_delete(mapper, connection, target):  # type: ignore
    raise ImmutableUsageRecordError(f"Template usage record {target.id} cannot be deleted")
