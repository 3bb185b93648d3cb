# Package initialization
# Import all models to ensure relationships are properly established
from .medical_record_template import MedicalRecordTemplate
from .template_usage import TemplateUsage, ImmutableUsageRecordError

__all__ = [
    "MedicalRecordTemplate",
    "TemplateUsage",
    "ImmutableUsageRecordError",
]
