"""Request bodies for the medical record template endpoints."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.constants import MAX_SPECIALTY_LENGTH, MAX_STRING_LENGTH
from shared_types.templates import FieldSpec, TemplateType


class MedicalRecordTemplateCreate(BaseModel):
    """Create a template, optionally derived from `parent_template_id`."""
    name: str = Field(..., min_length=1, max_length=MAX_STRING_LENGTH)
    description: Optional[str] = None
    template_type: Optional[TemplateType] = None  # inherited from the parent when omitted
    specialty: Optional[str] = Field(None, max_length=MAX_SPECIALTY_LENGTH)
    fields: Optional[Dict[str, FieldSpec]] = None
    default_values: Optional[Dict[str, Any]] = None
    validation_rules: Optional[Dict[str, Dict[str, Any]]] = None
    is_default: bool = False
    parent_template_id: Optional[int] = None
    version: int = Field(1, ge=1)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class MedicalRecordTemplateUpdate(BaseModel):
    """Partial update. Only fields present in the request body are changed."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=MAX_STRING_LENGTH)
    description: Optional[str] = None
    template_type: Optional[TemplateType] = None
    specialty: Optional[str] = Field(None, max_length=MAX_SPECIALTY_LENGTH)
    fields: Optional[Dict[str, FieldSpec]] = None
    default_values: Optional[Dict[str, Any]] = None
    validation_rules: Optional[Dict[str, Dict[str, Any]]] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None
    version: Optional[int] = Field(None, ge=1)


class ApplyTemplateRequest(BaseModel):
    custom_values: Dict[str, Any] = Field(default_factory=dict)


class ValidateTemplateDataRequest(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)


class RecordTemplateUsageRequest(BaseModel):
    template_id: int
    medical_record_id: int
    customizations: Dict[str, Any] = Field(default_factory=dict)
    completion_time_seconds: Optional[int] = Field(None, ge=0)
