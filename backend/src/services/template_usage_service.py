"""
Service for recording template usage and reporting usage statistics.

Usage records are append-only: one row per application of a template to a
medical record, never modified afterwards.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import TemplateUsage
from services.template_exceptions import TemplatePersistenceError
from shared_types.templates import TemplateStatistics
from utils.datetime_utils import utc_now
from utils.template_queries import get_template_usage_aggregates

logger = logging.getLogger(__name__)


class TemplateUsageService:
    @staticmethod
    def record_usage(
        db: Session,
        tenant_id: str,
        user_id: int,
        template_id: int,
        medical_record_id: int,
        customizations: Optional[Dict[str, Any]] = None,
        completion_time_seconds: Optional[int] = None,
    ) -> TemplateUsage:
        """
        Persist one template application.

        Whether template_id and medical_record_id point at real rows is left
        to the database constraints; storage failures surface as
        TemplatePersistenceError with the original error attached.

        Raises:
            ValueError: completion_time_seconds is negative
            TemplatePersistenceError: the insert failed
        """
        if completion_time_seconds is not None and completion_time_seconds < 0:
            raise ValueError("completion_time_seconds must not be negative")

        usage = TemplateUsage(
            tenant_id=tenant_id,
            template_id=template_id,
            medical_record_id=medical_record_id,
            user_id=user_id,
            used_at=utc_now(),
            customizations=customizations or {},
            completion_time_seconds=completion_time_seconds,
        )
        try:
            db.add(usage)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to record usage of template {template_id} for tenant {tenant_id}: {e}")
            raise TemplatePersistenceError("Failed to record template usage", e) from e
        db.refresh(usage)

        logger.info(
            f"Recorded usage {usage.id} of template {template_id} by user {user_id} "
            f"on medical record {medical_record_id} (tenant {tenant_id})"
        )
        return usage

    @staticmethod
    def get_statistics(db: Session, tenant_id: str) -> List[TemplateStatistics]:
        """Per-template usage aggregates for a tenant, most used first."""
        try:
            return get_template_usage_aggregates(db, tenant_id)
        except SQLAlchemyError as e:
            logger.exception(f"Failed to load template statistics for tenant {tenant_id}: {e}")
            raise TemplatePersistenceError("Failed to load template statistics", e) from e
