"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
multiple API endpoints to ensure consistency and reduce duplication.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from shared_types.templates import RecommendationEntry, TemplateStatistics


class MedicalRecordTemplateResponse(BaseModel):
    """Response model for a medical record template."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: str
    name: str
    description: Optional[str] = None
    template_type: str
    specialty: Optional[str] = None
    fields: Dict[str, Any]
    default_values: Dict[str, Any]
    validation_rules: Dict[str, Any]
    is_default: bool
    is_active: bool
    version: int
    parent_template_id: Optional[int] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class PaginationInfo(BaseModel):
    total: int
    limit: int
    offset: int
    pages: int


class MedicalRecordTemplateListResponse(BaseModel):
    """Response model for a page of templates."""
    templates: List[MedicalRecordTemplateResponse]
    pagination: PaginationInfo


class ApplyTemplateResponse(BaseModel):
    """Response model for applying a template."""
    template: MedicalRecordTemplateResponse
    populated_fields: Dict[str, Any]
    validation_errors: Optional[Dict[str, List[str]]] = None
    validation_warnings: Optional[Dict[str, List[str]]] = None


class ValidationResponse(BaseModel):
    """Response model for validating record data against a template."""
    is_valid: bool
    errors: Dict[str, List[str]]
    warnings: Dict[str, List[str]]


class TemplateUsageResponse(BaseModel):
    """Response model for a recorded template usage."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    template_id: int
    medical_record_id: int
    user_id: int
    used_at: datetime
    customizations: Dict[str, Any]
    completion_time_seconds: Optional[int] = None


class TemplateStatisticsResponse(BaseModel):
    """Response model for per-template usage statistics."""
    statistics: List[TemplateStatistics]


class TemplateRecommendationsResponse(BaseModel):
    """Response model for template recommendations."""
    recommendations: List[RecommendationEntry]


class CopyDefaultTemplatesResponse(BaseModel):
    copied: int


class MessageResponse(BaseModel):
    message: str
