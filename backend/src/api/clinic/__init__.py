"""
Clinic API modules.

This package contains the clinic-facing API endpoints organized by domain.
"""

from fastapi import APIRouter

from api.clinic.medical_record_templates import router as medical_record_templates_router

router = APIRouter()
router.include_router(medical_record_templates_router, tags=["medical-record-templates"])

__all__ = [
    'router',
    'medical_record_templates_router',
]
