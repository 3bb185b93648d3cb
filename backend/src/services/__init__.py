"""
Services package for the medical record template engine.

This package contains service classes that encapsulate the template business
logic shared across the API endpoints and scripts.
"""

from .medical_record_template_service import MedicalRecordTemplateService
from .template_default_service import TemplateDefaultService
from .template_usage_service import TemplateUsageService
from .template_recommendation_service import RecommendationWeights, TemplateRecommendationService

__all__ = [
    "MedicalRecordTemplateService",
    "TemplateDefaultService",
    "TemplateUsageService",
    "TemplateRecommendationService",
    "RecommendationWeights",
]
