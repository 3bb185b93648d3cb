"""
Shared type definitions for the medical record template engine.

This module contains the value types that are used across multiple services.
"""

from shared_types.templates import (
    AppliedTemplate,
    ConditionOperator,
    FieldSpec,
    FieldType,
    RecommendationEntry,
    TemplateDefinition,
    TemplateStatistics,
    TemplateType,
    ValidationResult,
)

__all__ = [
    "AppliedTemplate",
    "ConditionOperator",
    "FieldSpec",
    "FieldType",
    "RecommendationEntry",
    "TemplateDefinition",
    "TemplateStatistics",
    "TemplateType",
    "ValidationResult",
]
