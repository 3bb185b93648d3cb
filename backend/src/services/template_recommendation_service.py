"""
Template recommendations.

Usage aggregates come from the statistics queries; this module only owns the
scoring policy. The score combines global popularity, the requesting user's
own usage of the template, a specialty affinity boost and a small boost for
the bucket default:

    score = usage_weight * log1p(usage_count)
          + user_weight * log1p(user_usage_count)
          + specialty_boost * [template specialty == requested specialty]
          + default_boost * [template is the bucket default]

With non-negative weights the score never decreases when usage_count or
user_usage_count grows.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import (
    TEMPLATE_RECOMMENDATION_DEFAULT_BOOST,
    TEMPLATE_RECOMMENDATION_SPECIALTY_BOOST,
    TEMPLATE_RECOMMENDATION_USAGE_WEIGHT,
    TEMPLATE_RECOMMENDATION_USER_WEIGHT,
)
from core.constants import TEMPLATE_RECOMMENDATION_DEFAULT_LIMIT
from models import MedicalRecordTemplate
from services.template_exceptions import TemplatePersistenceError
from shared_types.templates import RecommendationEntry, TemplateStatistics
from utils.template_queries import get_template_usage_aggregates, get_user_usage_counts

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecommendationWeights:
    """Weights of the recommendation scoring policy. All must be non-negative."""
    usage_weight: float = TEMPLATE_RECOMMENDATION_USAGE_WEIGHT
    user_weight: float = TEMPLATE_RECOMMENDATION_USER_WEIGHT
    specialty_boost: float = TEMPLATE_RECOMMENDATION_SPECIALTY_BOOST
    default_boost: float = TEMPLATE_RECOMMENDATION_DEFAULT_BOOST

    def __post_init__(self) -> None:
        for name in ("usage_weight", "user_weight", "specialty_boost", "default_boost"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"Recommendation weight {name} must be a non-negative number, got {value}")


def score_template(
    usage_count: int,
    user_usage_count: int,
    specialty_match: bool,
    is_default: bool,
    weights: RecommendationWeights,
) -> float:
    """Recommendation score for one template. Counts below zero are treated as zero."""
    score = weights.usage_weight * math.log1p(max(usage_count, 0))
    score += weights.user_weight * math.log1p(max(user_usage_count, 0))
    if specialty_match:
        score += weights.specialty_boost
    if is_default:
        score += weights.default_boost
    return score


def rank_recommendations(
    statistics: List[TemplateStatistics],
    user_usage_counts: dict,
    specialty: Optional[str],
    weights: RecommendationWeights,
    limit: int = TEMPLATE_RECOMMENDATION_DEFAULT_LIMIT,
) -> List[RecommendationEntry]:
    """
    Score candidate templates and sort them best first.

    Ties are broken by global usage, then template name, then id so the
    ordering is stable.
    """
    entries: List[RecommendationEntry] = []
    for stats in statistics:
        user_usage_count = int(user_usage_counts.get(stats.template_id, 0))
        specialty_match = specialty is not None and stats.specialty == specialty
        entries.append(RecommendationEntry(
            template_id=stats.template_id,
            template_name=stats.template_name,
            template_type=stats.template_type,
            specialty=stats.specialty,
            usage_count=stats.usage_count,
            user_usage_count=user_usage_count,
            avg_completion_time=stats.avg_completion_time,
            recommendation_score=score_template(
                stats.usage_count, user_usage_count, specialty_match, stats.is_default, weights
            ),
        ))

    entries.sort(key=lambda e: (-e.recommendation_score, -e.usage_count, e.template_name, e.template_id))
    return entries[:limit]


class TemplateRecommendationService:
    @staticmethod
    def get_recommendations(
        db: Session,
        tenant_id: str,
        user_id: int,
        specialty: Optional[str] = None,
        template_type: Optional[str] = None,
        limit: int = TEMPLATE_RECOMMENDATION_DEFAULT_LIMIT,
        weights: Optional[RecommendationWeights] = None,
    ) -> List[RecommendationEntry]:
        """
        Ranked template recommendations for a user.

        Candidates are the tenant's active templates, restricted to
        `template_type` when given. When `specialty` is given, templates of
        that specialty and generic (no specialty) templates are candidates,
        and the former get the specialty boost.
        """
        weights = weights or RecommendationWeights()
        try:
            query = db.query(MedicalRecordTemplate.id).filter(
                MedicalRecordTemplate.tenant_id == tenant_id,
                MedicalRecordTemplate.is_active == True,
            )
            if template_type is not None:
                query = query.filter(MedicalRecordTemplate.template_type == template_type)
            if specialty is not None:
                query = query.filter(or_(
                    MedicalRecordTemplate.specialty == specialty,
                    MedicalRecordTemplate.specialty.is_(None),
                ))
            candidate_ids = {row.id for row in query.all()}

            statistics = [s for s in get_template_usage_aggregates(db, tenant_id) if s.template_id in candidate_ids]
            user_usage_counts = get_user_usage_counts(db, tenant_id, user_id)
        except SQLAlchemyError as e:
            logger.exception(f"Failed to load recommendation data for tenant {tenant_id}: {e}")
            raise TemplatePersistenceError("Failed to load template recommendations", e) from e

        return rank_recommendations(statistics, user_usage_counts, specialty, weights, limit)
