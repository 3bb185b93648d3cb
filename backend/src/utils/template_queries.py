"""
Utility functions for medical record template queries.

This module holds the reusable tenant-scoped queries the template services
rely on: NULL-safe default-bucket filtering, the "how many active defaults
are in this bucket" existence check, and the grouped usage aggregation that
feeds statistics and recommendations.
"""

from typing import Dict, List, Optional
from sqlalchemy import and_, distinct, func
from sqlalchemy.orm import Session, Query

from models import MedicalRecordTemplate, TemplateUsage
from shared_types.templates import TemplateStatistics
from utils.datetime_utils import ensure_utc


def filter_template_bucket(
    query: Query[MedicalRecordTemplate],
    tenant_id: str,
    template_type: str,
    specialty: Optional[str],
) -> Query[MedicalRecordTemplate]:
    """
    Restrict a template query to one (tenant, type, specialty) bucket.

    Specialty matching is NULL-safe: a NULL specialty only matches NULL.
    """
    query = query.filter(
        MedicalRecordTemplate.tenant_id == tenant_id,
        MedicalRecordTemplate.template_type == template_type,
    )
    if specialty is None:
        return query.filter(MedicalRecordTemplate.specialty.is_(None))
    return query.filter(MedicalRecordTemplate.specialty == specialty)


def filter_active_defaults(query: Query[MedicalRecordTemplate]) -> Query[MedicalRecordTemplate]:
    """Keep only active templates flagged as default."""
    return query.filter(
        MedicalRecordTemplate.is_default == True,
        MedicalRecordTemplate.is_active == True,
    )


def count_active_defaults(
    db: Session,
    tenant_id: str,
    template_type: str,
    specialty: Optional[str],
    exclude_template_id: Optional[int] = None,
) -> int:
    """
    Count active default templates in a bucket.

    Args:
        db: Database session
        tenant_id: Tenant owning the templates
        template_type: Template type of the bucket
        specialty: Specialty of the bucket (None is its own bucket)
        exclude_template_id: Optional template to leave out of the count

    Returns:
        Number of active templates with is_default=True in the bucket
    """
    query = filter_template_bucket(db.query(MedicalRecordTemplate), tenant_id, template_type, specialty)
    query = filter_active_defaults(query)
    if exclude_template_id is not None:
        query = query.filter(MedicalRecordTemplate.id != exclude_template_id)
    return query.count()


def get_template_usage_aggregates(db: Session, tenant_id: str) -> List[TemplateStatistics]:
    """
    Aggregate usage per template for a tenant.

    Every template of the tenant is returned, including soft-deleted ones and
    ones that were never used (usage_count=0).

    Returns:
        List of TemplateStatistics ordered by usage_count desc, then name
    """
    usage_count = func.count(TemplateUsage.id).label("usage_count")
    rows = (
        db.query(
            MedicalRecordTemplate.id,
            MedicalRecordTemplate.name,
            MedicalRecordTemplate.template_type,
            MedicalRecordTemplate.specialty,
            MedicalRecordTemplate.is_default,
            usage_count,
            func.count(distinct(TemplateUsage.user_id)).label("unique_users"),
            func.avg(TemplateUsage.completion_time_seconds).label("avg_completion_time"),
            func.max(TemplateUsage.used_at).label("last_used"),
        )
        .outerjoin(
            TemplateUsage,
            and_(
                TemplateUsage.template_id == MedicalRecordTemplate.id,
                TemplateUsage.tenant_id == tenant_id,
            ),
        )
        .filter(MedicalRecordTemplate.tenant_id == tenant_id)
        .group_by(
            MedicalRecordTemplate.id,
            MedicalRecordTemplate.name,
            MedicalRecordTemplate.template_type,
            MedicalRecordTemplate.specialty,
            MedicalRecordTemplate.is_default,
        )
        .order_by(usage_count.desc(), MedicalRecordTemplate.name.asc(), MedicalRecordTemplate.id.asc())
        .all()
    )

    return [
        TemplateStatistics(
            template_id=row.id,
            template_name=row.name,
            template_type=row.template_type,
            specialty=row.specialty,
            is_default=bool(row.is_default),
            usage_count=int(row.usage_count or 0),
            unique_users=int(row.unique_users or 0),
            avg_completion_time=float(row.avg_completion_time) if row.avg_completion_time is not None else None,
            last_used=ensure_utc(row.last_used),
        )
        for row in rows
    ]


def get_user_usage_counts(db: Session, tenant_id: str, user_id: int) -> Dict[int, int]:
    """
    Count how many times a user applied each template.

    Returns:
        Mapping of template_id -> usage count for that user (unused templates absent)
    """
    rows = (
        db.query(TemplateUsage.template_id, func.count(TemplateUsage.id))
        .filter(TemplateUsage.tenant_id == tenant_id, TemplateUsage.user_id == user_id)
        .group_by(TemplateUsage.template_id)
        .all()
    )
    return {template_id: int(count) for template_id, count in rows}
