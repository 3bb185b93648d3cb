"""
Medical Record Template model.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy import (
    JSON, String, Integer, Text, Boolean, TIMESTAMP, ForeignKey, Index, CheckConstraint,
    and_, false, func, true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import MAX_SPECIALTY_LENGTH, MAX_STRING_LENGTH, MAX_TENANT_ID_LENGTH, TEMPLATE_TYPES
from core.database import Base

JSONDocument = JSON().with_variant(JSONB(), "postgresql")

_TEMPLATE_TYPE_LIST = ", ".join(f"'{t}'" for t in TEMPLATE_TYPES)


class MedicalRecordTemplate(Base):
    """
    Structured, versionable template for medical records.

    `fields` maps field name to a field spec (see shared_types.templates.FieldSpec).
    Rows are never deleted: `is_active=False` is a soft delete so historical
    usage records keep resolving.
    """
    __tablename__ = "medical_record_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    tenant_id: Mapped[str] = mapped_column(String(MAX_TENANT_ID_LENGTH), nullable=False)
    name: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    template_type: Mapped[str] = mapped_column(String(30), nullable=False)
    specialty: Mapped[Optional[str]] = mapped_column(String(MAX_SPECIALTY_LENGTH), nullable=True)

    # Plain JSON (not JSONB): JSONB does not keep object key order and field order matters
    fields: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    default_values: Mapped[Dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    validation_rules: Mapped[Dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    # Caller-managed; never auto-incremented
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default='1')

    parent_template_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("medical_record_templates.id", ondelete="SET NULL"), nullable=True
    )

    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    # Lineage is a back-reference, not containment
    parent_template = relationship("MedicalRecordTemplate", remote_side=[id])

    __table_args__ = (
        Index("idx_medical_record_templates_tenant", "tenant_id"),
        Index("idx_medical_record_templates_bucket", "tenant_id", "template_type", "specialty"),
        CheckConstraint(f"template_type IN ({_TEMPLATE_TYPE_LIST})", name="check_template_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<MedicalRecordTemplate(id={self.id}, tenant_id='{self.tenant_id}', name='{self.name}', "
            f"type='{self.template_type}', specialty={self.specialty!r}, is_default={self.is_default})>"
        )


# At most one active default per (tenant, type, specialty) bucket; NULL specialty is its own bucket.
_default_bucket_predicate = and_(
    MedicalRecordTemplate.is_default == True,  # noqa: E712
    MedicalRecordTemplate.is_active == True,  # noqa: E712
)

Index(
    "uq_medical_record_templates_default_bucket",
    MedicalRecordTemplate.tenant_id,
    MedicalRecordTemplate.template_type,
    func.coalesce(MedicalRecordTemplate.specialty, ""),
    unique=True,
    postgresql_where=_default_bucket_predicate,
    sqlite_where=_default_bucket_predicate,
)
