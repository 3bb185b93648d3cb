"""
Medical record template endpoints.

Templates are scoped to the tenant of the authenticated user. Reads are open
to any tenant user; anything that changes templates requires the admin role.
Recording usage is allowed for any tenant user since it happens whenever a
practitioner fills a record from a template.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from api.clinic.medical_record_schemas import (
    ApplyTemplateRequest,
    MedicalRecordTemplateCreate,
    MedicalRecordTemplateUpdate,
    RecordTemplateUsageRequest,
    ValidateTemplateDataRequest,
)
from api.responses import (
    ApplyTemplateResponse,
    CopyDefaultTemplatesResponse,
    MedicalRecordTemplateListResponse,
    MedicalRecordTemplateResponse,
    MessageResponse,
    PaginationInfo,
    TemplateRecommendationsResponse,
    TemplateStatisticsResponse,
    TemplateUsageResponse,
    ValidationResponse,
)
from auth.dependencies import UserContext, ensure_tenant_access, require_admin_role, require_read_access
from core.constants import (
    TEMPLATE_LIST_DEFAULT_LIMIT,
    TEMPLATE_LIST_MAX_LIMIT,
    TEMPLATE_RECOMMENDATION_DEFAULT_LIMIT,
)
from core.database import get_db
from services import MedicalRecordTemplateService, TemplateRecommendationService, TemplateUsageService
from shared_types.templates import TemplateDefinition, TemplateType


router = APIRouter()


def _definition_response(definition: TemplateDefinition) -> MedicalRecordTemplateResponse:
    return MedicalRecordTemplateResponse.model_validate(
        definition.model_dump(mode="json", by_alias=True, exclude_none=True)
    )


@router.get("/medical-record-templates", response_model=MedicalRecordTemplateListResponse, summary="List medical record templates")
async def list_templates(
    template_type: Optional[TemplateType] = None,
    specialty: Optional[str] = None,
    is_active: Optional[bool] = None,
    include_inactive: bool = False,
    is_default: Optional[bool] = None,
    search: Optional[str] = None,
    created_by: Optional[int] = None,
    limit: int = Query(TEMPLATE_LIST_DEFAULT_LIMIT, ge=1, le=TEMPLATE_LIST_MAX_LIMIT),
    offset: int = Query(0, ge=0),
    current_user: UserContext = Depends(require_read_access),
    db: Session = Depends(get_db)
):
    """
    List the tenant's templates, defaults first.

    Only active templates are returned unless `is_active` is given
    explicitly or `include_inactive=true` asks for both.
    """
    tenant_id = ensure_tenant_access(current_user)
    if is_active is None and not include_inactive:
        is_active = True
    templates, total = MedicalRecordTemplateService.list_templates(
        db,
        tenant_id,
        template_type=template_type.value if template_type else None,
        specialty=specialty,
        is_active=is_active,
        is_default=is_default,
        search=search,
        created_by=created_by,
        limit=limit,
        offset=offset,
    )
    return MedicalRecordTemplateListResponse(
        templates=[MedicalRecordTemplateResponse.model_validate(t) for t in templates],
        pagination=PaginationInfo(
            total=total,
            limit=limit,
            offset=offset,
            pages=MedicalRecordTemplateService.page_count(total, limit),
        ),
    )


@router.post("/medical-record-templates", response_model=MedicalRecordTemplateResponse, status_code=status.HTTP_201_CREATED, summary="Create a medical record template")
async def create_template(
    template_data: MedicalRecordTemplateCreate,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
):
    """Create a new template. Only admins can create templates."""
    tenant_id = ensure_tenant_access(current_user)
    provided = template_data.model_fields_set

    optional_kwargs = {}
    if "description" in provided:
        optional_kwargs["description"] = template_data.description
    if "specialty" in provided:
        optional_kwargs["specialty"] = template_data.specialty

    return MedicalRecordTemplateService.create_template(
        db=db,
        tenant_id=tenant_id,
        user_id=current_user.user_id,
        name=template_data.name,
        template_type=template_data.template_type.value if template_data.template_type else None,
        fields=template_data.fields,
        default_values=template_data.default_values,
        validation_rules=template_data.validation_rules,
        is_default=template_data.is_default,
        parent_template_id=template_data.parent_template_id,
        version=template_data.version,
        **optional_kwargs,
    )


@router.get("/medical-record-templates/statistics", response_model=TemplateStatisticsResponse, summary="Template usage statistics")
async def get_template_statistics(
    current_user: UserContext = Depends(require_read_access),
    db: Session = Depends(get_db)
):
    """Usage aggregates for every template of the tenant, most used first."""
    tenant_id = ensure_tenant_access(current_user)
    return TemplateStatisticsResponse(statistics=TemplateUsageService.get_statistics(db, tenant_id))


@router.get("/medical-record-templates/recommendations", response_model=TemplateRecommendationsResponse, summary="Recommended templates")
async def get_template_recommendations(
    specialty: Optional[str] = None,
    template_type: Optional[TemplateType] = None,
    limit: int = Query(TEMPLATE_RECOMMENDATION_DEFAULT_LIMIT, ge=1, le=TEMPLATE_LIST_MAX_LIMIT),
    current_user: UserContext = Depends(require_read_access),
    db: Session = Depends(get_db)
):
    """Templates ranked for the current user by usage and specialty affinity."""
    tenant_id = ensure_tenant_access(current_user)
    recommendations = TemplateRecommendationService.get_recommendations(
        db,
        tenant_id,
        current_user.user_id,
        specialty=specialty,
        template_type=template_type.value if template_type else None,
        limit=limit,
    )
    return TemplateRecommendationsResponse(recommendations=recommendations)


@router.post("/medical-record-templates/usage", response_model=TemplateUsageResponse, status_code=status.HTTP_201_CREATED, summary="Record template usage")
async def record_template_usage(
    usage_data: RecordTemplateUsageRequest,
    current_user: UserContext = Depends(require_read_access),
    db: Session = Depends(get_db)
):
    """Record that a template was used to fill a medical record."""
    tenant_id = ensure_tenant_access(current_user)
    # Usage must reference a template the tenant can see
    MedicalRecordTemplateService.get_template(db, tenant_id, usage_data.template_id)
    return TemplateUsageService.record_usage(
        db,
        tenant_id=tenant_id,
        user_id=current_user.user_id,
        template_id=usage_data.template_id,
        medical_record_id=usage_data.medical_record_id,
        customizations=usage_data.customizations,
        completion_time_seconds=usage_data.completion_time_seconds,
    )


@router.post("/medical-record-templates/copy-defaults", response_model=CopyDefaultTemplatesResponse, summary="Copy the default template library")
async def copy_default_templates(
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
):
    """Copy the seed template library into the tenant. Only admins can do this."""
    tenant_id = ensure_tenant_access(current_user)
    copied = MedicalRecordTemplateService.copy_default_templates_to_tenant(db, tenant_id, current_user.user_id)
    return CopyDefaultTemplatesResponse(copied=copied)


@router.get("/medical-record-templates/{template_id}", response_model=MedicalRecordTemplateResponse, summary="Get a medical record template")
async def get_template(
    template_id: int,
    current_user: UserContext = Depends(require_read_access),
    db: Session = Depends(get_db)
):
    """Get a specific template by ID."""
    tenant_id = ensure_tenant_access(current_user)
    return MedicalRecordTemplateService.get_template(db, tenant_id, template_id)


@router.put("/medical-record-templates/{template_id}", response_model=MedicalRecordTemplateResponse, summary="Update a medical record template")
async def update_template(
    template_id: int,
    template_data: MedicalRecordTemplateUpdate,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
):
    """Partially update a template. Only admins can update templates."""
    tenant_id = ensure_tenant_access(current_user)

    update_dict = template_data.model_dump(exclude_unset=True)
    if template_data.template_type is not None:
        update_dict["template_type"] = template_data.template_type.value
    if "fields" in update_dict and template_data.fields is not None:
        update_dict["fields"] = template_data.fields

    return MedicalRecordTemplateService.update_template(
        db, tenant_id, template_id, current_user.user_id, update_dict
    )


@router.delete("/medical-record-templates/{template_id}", response_model=MessageResponse, summary="Delete a medical record template")
async def delete_template(
    template_id: int,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
):
    """
    Soft-delete a template by setting is_active=False.
    Only admins can delete templates.
    """
    tenant_id = ensure_tenant_access(current_user)
    MedicalRecordTemplateService.deactivate_template(db, tenant_id, template_id, current_user.user_id)
    return MessageResponse(message="Template deactivated")


@router.post("/medical-record-templates/{template_id}/apply", response_model=ApplyTemplateResponse, summary="Apply a medical record template")
async def apply_template(
    template_id: int,
    request: ApplyTemplateRequest,
    current_user: UserContext = Depends(require_read_access),
    db: Session = Depends(get_db)
):
    """
    Build pre-populated record data from a template.

    Validation problems are reported in `validation_errors` without blocking.
    """
    tenant_id = ensure_tenant_access(current_user)
    applied = MedicalRecordTemplateService.apply_template(db, tenant_id, template_id, request.custom_values)
    return ApplyTemplateResponse(
        template=_definition_response(applied.template),
        populated_fields=applied.populated_fields,
        validation_errors=applied.validation_errors,
        validation_warnings=applied.validation_warnings,
    )


@router.post("/medical-record-templates/{template_id}/validate", response_model=ValidationResponse, summary="Validate record data")
async def validate_template_data(
    template_id: int,
    request: ValidateTemplateDataRequest,
    current_user: UserContext = Depends(require_read_access),
    db: Session = Depends(get_db)
):
    """Validate record data against a template without applying defaults."""
    tenant_id = ensure_tenant_access(current_user)
    result = MedicalRecordTemplateService.validate_values(db, tenant_id, template_id, request.data)
    return ValidationResponse(is_valid=result.is_valid, errors=result.errors, warnings=result.warnings)
