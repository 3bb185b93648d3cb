"""
Shared types for the medical record template engine.

These are plain value types (no behavior) describing a template's field
schema and the results produced by validation, statistics and
recommendations. Services, the validation utilities and the API layer all
exchange data through them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# Runtime field values are loosely typed, possibly nested JSON-like data.
FieldValue = Union[None, bool, int, float, str, List["FieldValue"], Dict[str, "FieldValue"]]


class TemplateType(str, Enum):
    CONSULTATION = "consultation"
    FOLLOW_UP = "follow_up"
    EMERGENCY = "emergency"
    PROCEDURE = "procedure"
    DISCHARGE = "discharge"
    ADMISSION = "admission"
    PROGRESS_NOTE = "progress_note"
    OPERATIVE_NOTE = "operative_note"


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    SELECT = "select"
    MULTISELECT = "multiselect"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    OBJECT = "object"
    ARRAY = "array"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class FieldValidation(BaseModel):
    """Constraint block of a field. Which keys apply depends on the field type."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    min_length: Optional[int] = Field(default=None, alias="minLength")
    max_length: Optional[int] = Field(default=None, alias="maxLength")
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    custom: Optional[Any] = None


class FieldCondition(BaseModel):
    """
    A single `{field, operator, value}` condition.

    `operator` is kept as a plain string so templates saved with an operator
    this engine does not know still load; the evaluator treats those as
    "condition not met".
    """
    field: str
    operator: str
    value: Any = None


class FieldConditional(BaseModel):
    show_if: Optional[FieldCondition] = None  # presentation only, never validated
    required_if: Optional[FieldCondition] = None


class FieldSpec(BaseModel):
    """Declared shape and constraints of one template field."""
    model_config = ConfigDict(extra="ignore")

    type: FieldType
    label: Optional[str] = None
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    section: Optional[str] = None
    required: bool = False
    default: Any = None
    options: Optional[List[Any]] = None
    fields: Optional[Dict[str, "FieldSpec"]] = None  # type=object
    items: Optional["FieldSpec"] = None  # type=array
    validation: Optional[FieldValidation] = None
    conditional: Optional[FieldConditional] = None


FieldSpec.model_rebuild()


class TemplateDefinition(BaseModel):
    """
    Schema of a medical record template.

    `fields` keeps insertion order; validation walks fields in that order.
    `version` is caller-owned metadata and is never incremented here.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    tenant_id: str
    name: str
    description: Optional[str] = None
    template_type: TemplateType
    specialty: Optional[str] = None
    fields: Dict[str, FieldSpec] = Field(default_factory=dict)
    default_values: Dict[str, Any] = Field(default_factory=dict)
    validation_rules: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    is_default: bool = False
    is_active: bool = True
    version: int = 1
    parent_template_id: Optional[int] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ValidationResult(BaseModel):
    """Advisory validation outcome. `is_valid` is true exactly when `errors` is empty."""
    is_valid: bool
    errors: Dict[str, List[str]] = Field(default_factory=dict)
    warnings: Dict[str, List[str]] = Field(default_factory=dict)


class AppliedTemplate(BaseModel):
    """Result of applying a template: populated data plus advisory errors."""
    template: TemplateDefinition
    populated_fields: Dict[str, Any]
    validation_errors: Optional[Dict[str, List[str]]] = None
    validation_warnings: Optional[Dict[str, List[str]]] = None


class TemplateStatistics(BaseModel):
    """Per-template usage aggregates."""
    template_id: int
    template_name: str
    template_type: str
    specialty: Optional[str] = None
    is_default: bool = False
    usage_count: int = 0
    unique_users: int = 0
    avg_completion_time: Optional[float] = None
    last_used: Optional[datetime] = None


class RecommendationEntry(BaseModel):
    template_id: int
    template_name: str
    template_type: str
    specialty: Optional[str] = None
    usage_count: int = 0
    user_usage_count: int = 0
    avg_completion_time: Optional[float] = None
    recommendation_score: float = 0.0
