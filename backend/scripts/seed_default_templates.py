"""
Seed the default medical record template library.

Templates are created in the seed tenant ("default") and copied into other
tenants through the copy-defaults endpoint. Templates that already exist in
the seed tenant (matched by name) are left untouched, so the script can be
re-run safely.

Usage:
    python backend/scripts/seed_default_templates.py
"""

import os
import sys
import logging

# Add src to path
sys.path.append(os.path.join(os.getcwd(), 'backend', 'src'))

from core.constants import DEFAULT_TEMPLATE_TENANT_ID, RECOMMENDED_SPECIALTIES
from core.database import get_db_context
from models import MedicalRecordTemplate
from services import MedicalRecordTemplateService

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES = [
    {
        "name": "General Consultation",
        "description": "Standard outpatient consultation note",
        "template_type": "consultation",
        "specialty": None,
        "is_default": True,
        "fields": {
            "chief_complaint": {"type": "textarea", "label": "Chief Complaint", "required": True,
                                "validation": {"minLength": 3, "maxLength": 1000}},
            "history_of_present_illness": {"type": "textarea", "label": "History of Present Illness"},
            "temperature": {"type": "number", "label": "Temperature (°C)",
                            "validation": {"min": 30, "max": 45}},
            "blood_pressure": {"type": "text", "label": "Blood Pressure",
                               "validation": {"pattern": r"^\d{2,3}/\d{2,3}$"}},
            "diagnosis": {"type": "textarea", "label": "Diagnosis", "required": True},
            "treatment_plan": {"type": "textarea", "label": "Treatment Plan"},
            "follow_up_required": {"type": "checkbox", "label": "Follow-up Required", "default": False},
            "follow_up_date": {"type": "date", "label": "Follow-up Date",
                               "conditional": {"required_if": {"field": "follow_up_required",
                                                               "operator": "equals", "value": True}}},
        },
        "default_values": {"follow_up_required": False},
    },
    {
        "name": "Follow-up Visit",
        "description": "Progress review for a returning patient",
        "template_type": "follow_up",
        "specialty": None,
        "is_default": True,
        "fields": {
            "progress": {"type": "select", "label": "Progress", "required": True,
                         "options": ["improved", "unchanged", "worse"]},
            "current_symptoms": {"type": "textarea", "label": "Current Symptoms"},
            "medication_adherence": {"type": "radio", "label": "Medication Adherence",
                                     "options": ["full", "partial", "none"]},
            "plan_changes": {"type": "textarea", "label": "Plan Changes"},
        },
        "default_values": {},
    },
    {
        "name": "Emergency Assessment",
        "description": "Triage and initial emergency assessment",
        "template_type": "emergency",
        "specialty": "emergency_medicine",
        "is_default": True,
        "fields": {
            "triage_level": {"type": "select", "label": "Triage Level", "required": True,
                             "options": ["1", "2", "3", "4", "5"]},
            "arrival_time": {"type": "datetime", "label": "Arrival Time", "required": True},
            "presenting_problem": {"type": "textarea", "label": "Presenting Problem", "required": True},
            "pain_score": {"type": "number", "label": "Pain Score", "validation": {"min": 0, "max": 10}},
            "interventions": {"type": "multiselect", "label": "Interventions",
                              "options": ["iv_access", "oxygen", "ecg", "imaging", "labs"]},
        },
        "default_values": {"interventions": []},
    },
    {
        "name": "Procedure Note",
        "description": "Documentation of a bedside or minor procedure",
        "template_type": "procedure",
        "specialty": None,
        "is_default": True,
        "fields": {
            "procedure_name": {"type": "text", "label": "Procedure", "required": True},
            "indication": {"type": "textarea", "label": "Indication", "required": True},
            "consent_obtained": {"type": "checkbox", "label": "Consent Obtained", "required": True},
            "anesthesia": {"type": "select", "label": "Anesthesia",
                           "options": ["none", "local", "regional", "general"]},
            "complications": {"type": "textarea", "label": "Complications"},
        },
        "default_values": {"anesthesia": "local"},
    },
]


def seed_default_templates() -> int:
    """Create the default library in the seed tenant. Returns how many templates were created."""
    created = 0
    with get_db_context() as db:
        existing = {
            name for (name,) in db.query(MedicalRecordTemplate.name).filter(
                MedicalRecordTemplate.tenant_id == DEFAULT_TEMPLATE_TENANT_ID
            ).all()
        }
        for template in DEFAULT_TEMPLATES:
            if template["name"] in existing:
                logger.info(f"Skipping existing default template '{template['name']}'")
                continue
            if template["specialty"] and template["specialty"] not in RECOMMENDED_SPECIALTIES:
                logger.warning(f"Default template '{template['name']}' uses non-standard specialty '{template['specialty']}'")
            MedicalRecordTemplateService.create_template(
                db,
                tenant_id=DEFAULT_TEMPLATE_TENANT_ID,
                user_id=None,
                **template,
            )
            created += 1

    logger.info(f"Seeded {created} default template(s) into tenant '{DEFAULT_TEMPLATE_TENANT_ID}'")
    return created


if __name__ == "__main__":
    seed_default_templates()
