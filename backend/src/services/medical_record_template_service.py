"""
Service for managing medical record templates.

Covers listing, creation (optionally derived from a parent template),
partial updates, soft deletion, applying a template to produce pre-populated
record data, and copying the seed template library into a tenant. Anything
that leaves a template active and default is routed through
TemplateDefaultService.promote.
"""

import copy
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError
from sqlalchemy import inspect, or_
from sqlalchemy.orm import Session

from core.constants import DEFAULT_TEMPLATE_TENANT_ID, TEMPLATE_LIST_DEFAULT_LIMIT, TEMPLATE_LIST_MAX_LIMIT
from core.sentinels import MISSING, MissingType
from models import MedicalRecordTemplate
from services.template_default_service import (
    TemplateDefaultService,
    retry_on_default_conflict,
    template_transaction,
)
from services.template_exceptions import TemplateInactiveError, TemplateNotFoundError
from shared_types.templates import (
    AppliedTemplate,
    FieldSpec,
    TemplateDefinition,
    TemplateType,
    ValidationResult,
)
from utils.dict_utils import shallow_merge
from utils.template_validation import validate_template_data

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "name",
    "description",
    "template_type",
    "specialty",
    "fields",
    "default_values",
    "validation_rules",
    "is_default",
    "is_active",
    "version",
}

# Columns an update may change but never clear
NON_NULLABLE_FIELDS = {"name", "template_type", "is_default", "is_active", "version"}


def _serialize_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Normalize field specs to their stored JSON shape, keeping order."""
    return {
        name: FieldSpec.model_validate(spec).model_dump(mode="json", by_alias=True, exclude_none=True)
        for name, spec in fields.items()
    }


def _field_defaults(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Top-level `default` values declared on the field specs."""
    defaults: Dict[str, Any] = {}
    for name, spec in fields.items():
        default = spec.get("default") if isinstance(spec, Mapping) else getattr(spec, "default", None)
        if default is not None:
            defaults[name] = default
    return defaults


def _validated_template_type(template_type: Any) -> str:
    return TemplateType(template_type).value


def _checked_validation_rules(validation_rules: Mapping[str, Any]) -> Dict[str, Any]:
    """Each validation_rules entry must be a constraint mapping keyed by field name."""
    malformed = sorted(key for key, rules in validation_rules.items() if not isinstance(rules, Mapping))
    if malformed:
        raise ValueError(f"Validation rules must be objects: {', '.join(malformed)}")
    return dict(validation_rules)


def _definition_from_row(template: MedicalRecordTemplate) -> TemplateDefinition:
    """
    Snapshot a stored template as a TemplateDefinition.

    Field specs and validation_rules entries that do not parse are left out
    of the snapshot; validation reports them as warnings instead.
    """
    values = {attr.key: getattr(template, attr.key) for attr in inspect(template).mapper.column_attrs}

    fields: Dict[str, FieldSpec] = {}
    for name, raw in (template.fields or {}).items():
        try:
            fields[name] = FieldSpec.model_validate(raw)
        except ValidationError:
            continue
    values["fields"] = fields
    values["validation_rules"] = {
        key: dict(rules) for key, rules in (template.validation_rules or {}).items() if isinstance(rules, Mapping)
    }
    return TemplateDefinition.model_validate(values)


class MedicalRecordTemplateService:
    @staticmethod
    def list_templates(
        db: Session,
        tenant_id: str,
        template_type: Optional[str] = None,
        specialty: Optional[str] = None,
        is_active: Optional[bool] = None,
        is_default: Optional[bool] = None,
        search: Optional[str] = None,
        created_by: Optional[int] = None,
        limit: int = TEMPLATE_LIST_DEFAULT_LIMIT,
        offset: int = 0,
    ) -> Tuple[List[MedicalRecordTemplate], int]:
        """
        List templates for a tenant, defaults first and then by name.

        Returns:
            Tuple of (page of templates, total matching count)
        """
        query = db.query(MedicalRecordTemplate).filter(MedicalRecordTemplate.tenant_id == tenant_id)

        if template_type is not None:
            query = query.filter(MedicalRecordTemplate.template_type == template_type)
        if specialty is not None:
            query = query.filter(MedicalRecordTemplate.specialty == specialty)
        if is_active is not None:
            query = query.filter(MedicalRecordTemplate.is_active == is_active)
        if is_default is not None:
            query = query.filter(MedicalRecordTemplate.is_default == is_default)
        if created_by is not None:
            query = query.filter(MedicalRecordTemplate.created_by == created_by)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    MedicalRecordTemplate.name.ilike(pattern),
                    MedicalRecordTemplate.description.ilike(pattern),
                )
            )

        total = query.count()

        limit = max(1, min(limit, TEMPLATE_LIST_MAX_LIMIT))
        offset = max(0, offset)
        templates = (
            query.order_by(
                MedicalRecordTemplate.is_default.desc(),
                MedicalRecordTemplate.name.asc(),
                MedicalRecordTemplate.id.asc(),
            )
            .offset(offset)
            .limit(limit)
            .all()
        )
        return templates, total

    @staticmethod
    def page_count(total: int, limit: int) -> int:
        return math.ceil(total / limit) if limit > 0 else 0

    @staticmethod
    def get_template(db: Session, tenant_id: str, template_id: int) -> MedicalRecordTemplate:
        """Get a template by ID, ensuring it belongs to the tenant."""
        template = db.query(MedicalRecordTemplate).filter(
            MedicalRecordTemplate.id == template_id,
            MedicalRecordTemplate.tenant_id == tenant_id,
        ).first()
        if not template:
            raise TemplateNotFoundError(template_id, tenant_id)
        return template

    @staticmethod
    @retry_on_default_conflict()
    def create_template(
        db: Session,
        tenant_id: str,
        user_id: Optional[int],
        name: str,
        template_type: Optional[str] = None,
        fields: Optional[Mapping[str, Any]] = None,
        description: Union[Optional[str], MissingType] = MISSING,
        specialty: Union[Optional[str], MissingType] = MISSING,
        default_values: Optional[Dict[str, Any]] = None,
        validation_rules: Optional[Dict[str, Any]] = None,
        is_default: bool = False,
        parent_template_id: Optional[int] = None,
        version: int = 1,
    ) -> MedicalRecordTemplate:
        """
        Create a new template.

        When parent_template_id is given the parent must exist in the same
        tenant; anything not supplied here (type, specialty, description,
        fields, default values, validation rules) is inherited from it.

        Raises:
            TemplateNotFoundError: parent template does not resolve
            ValueError: template_type missing (and no parent) or not a known type
        """
        parent: Optional[MedicalRecordTemplate] = None
        if parent_template_id is not None:
            parent = MedicalRecordTemplateService.get_template(db, tenant_id, parent_template_id)

        if template_type is None:
            if parent is None:
                raise ValueError("template_type is required")
            template_type = parent.template_type
        if isinstance(specialty, MissingType):
            specialty = parent.specialty if parent else None
        if isinstance(description, MissingType):
            description = parent.description if parent else None
        if fields is None:
            fields = parent.fields if parent else {}
        if default_values is None:
            default_values = copy.deepcopy(parent.default_values) if parent else {}
        if validation_rules is None:
            validation_rules = copy.deepcopy(parent.validation_rules) if parent else {}

        template = MedicalRecordTemplate(
            tenant_id=tenant_id,
            name=name,
            description=description,
            template_type=_validated_template_type(template_type),
            specialty=specialty,
            fields=_serialize_fields(fields),
            default_values=default_values,
            validation_rules=_checked_validation_rules(validation_rules),
            is_default=False,
            is_active=True,
            version=version,
            parent_template_id=parent.id if parent else None,
            created_by=user_id,
            updated_by=user_id,
        )

        with template_transaction(db, "create template"):
            if is_default:
                TemplateDefaultService.promote(db, template, updated_by=user_id)
            else:
                db.add(template)
        db.refresh(template)

        logger.info(
            f"Created template {template.id} '{template.name}' for tenant {tenant_id} "
            f"(type={template.template_type}, specialty={template.specialty}, default={template.is_default})"
        )
        return template

    @staticmethod
    @retry_on_default_conflict()
    def update_template(
        db: Session,
        tenant_id: str,
        template_id: int,
        user_id: Optional[int],
        update_data: Dict[str, Any],
    ) -> MedicalRecordTemplate:
        """
        Partially update a template.

        Only keys present in update_data are changed, so `specialty: None`
        clears the specialty while a missing key leaves it alone. A
        soft-deleted template can only be updated by an update that
        reactivates it. If the template ends up active and default it is
        promoted within the same transaction.

        Raises:
            TemplateNotFoundError: template does not resolve in the tenant
            TemplateInactiveError: template is inactive and stays inactive
        """
        unknown = set(update_data) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported template fields: {', '.join(sorted(unknown))}")
        cleared = sorted(key for key in NON_NULLABLE_FIELDS if key in update_data and update_data[key] is None)
        if cleared:
            raise ValueError(f"Template fields cannot be null: {', '.join(cleared)}")

        template = MedicalRecordTemplateService.get_template(db, tenant_id, template_id)
        if not template.is_active and update_data.get("is_active") is not True:
            raise TemplateInactiveError(template.id)

        changes: Dict[str, Any] = {}
        for key, value in update_data.items():
            if key == "template_type":
                value = _validated_template_type(value)
            elif key == "fields":
                value = _serialize_fields(value or {})
            elif key == "validation_rules":
                value = _checked_validation_rules(value or {})
            elif key == "default_values":
                value = value or {}
            changes[key] = value
        changes["updated_by"] = user_id

        is_default = changes.get("is_default", template.is_default)
        is_active = changes.get("is_active", template.is_active)

        with template_transaction(db, "update template"):
            if is_default and is_active:
                TemplateDefaultService.promote(db, template, updated_by=user_id, changes=changes)
            else:
                for key, value in changes.items():
                    setattr(template, key, value)
                db.flush()
        db.refresh(template)

        logger.info(f"Updated template {template.id} for tenant {tenant_id}: {sorted(update_data)}")
        return template

    @staticmethod
    def deactivate_template(
        db: Session,
        tenant_id: str,
        template_id: int,
        user_id: Optional[int],
    ) -> MedicalRecordTemplate:
        """
        Soft-delete a template by setting is_active=False.

        The row is kept so usage records keep resolving. Deactivating an
        already inactive template is a no-op.
        """
        template = MedicalRecordTemplateService.get_template(db, tenant_id, template_id)
        if not template.is_active:
            return template

        with template_transaction(db, "deactivate template"):
            template.is_active = False
            template.updated_by = user_id
            db.flush()

        logger.info(f"Deactivated template {template.id} for tenant {tenant_id}")
        return template

    @staticmethod
    def populate_fields(template: Any, custom_values: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Build the initial record data for a template.

        Field-level `default`s are the base layer, the template's
        default_values go on top, and caller custom_values win over both.
        The merge is shallow: a nested object or list supplied by the caller
        replaces the default one entirely.
        """
        return shallow_merge(
            _field_defaults(template.fields or {}),
            template.default_values or {},
            custom_values or {},
        )

    @staticmethod
    def apply_template(
        db: Session,
        tenant_id: str,
        template_id: int,
        custom_values: Optional[Mapping[str, Any]] = None,
    ) -> AppliedTemplate:
        """
        Apply a template to produce pre-populated record data.

        Validation is advisory: errors and warnings are attached to the result
        but the populated data is always returned, even when some stored field
        specs or validation rules no longer parse.

        Raises:
            TemplateNotFoundError: template does not resolve in the tenant
            TemplateInactiveError: template is soft-deleted
        """
        template = MedicalRecordTemplateService.get_template(db, tenant_id, template_id)
        if not template.is_active:
            raise TemplateInactiveError(template.id)

        populated_fields = MedicalRecordTemplateService.populate_fields(template, custom_values)
        validation = validate_template_data(template, populated_fields)

        return AppliedTemplate(
            template=_definition_from_row(template),
            populated_fields=populated_fields,
            validation_errors=None if validation.is_valid else validation.errors,
            validation_warnings=validation.warnings or None,
        )

    @staticmethod
    def validate_values(
        db: Session,
        tenant_id: str,
        template_id: int,
        values: Optional[Mapping[str, Any]],
    ) -> ValidationResult:
        """Validate record values against a stored template without applying defaults."""
        template = MedicalRecordTemplateService.get_template(db, tenant_id, template_id)
        return validate_template_data(template, values)

    @staticmethod
    def copy_default_templates_to_tenant(
        db: Session,
        tenant_id: str,
        user_id: Optional[int],
    ) -> int:
        """
        Copy the active templates of the seed tenant into `tenant_id`.

        A copy keeps is_default only if the target bucket has no active
        default yet, so existing tenant defaults are never displaced.

        Returns:
            Number of templates copied
        """
        if tenant_id == DEFAULT_TEMPLATE_TENANT_ID:
            raise ValueError("Cannot copy default templates into the seed tenant")

        seeds = (
            db.query(MedicalRecordTemplate)
            .filter(
                MedicalRecordTemplate.tenant_id == DEFAULT_TEMPLATE_TENANT_ID,
                MedicalRecordTemplate.is_active == True,
            )
            .order_by(MedicalRecordTemplate.is_default.desc(), MedicalRecordTemplate.id.asc())
            .all()
        )

        copied = 0
        with template_transaction(db, "copy default templates"):
            for seed in seeds:
                keep_default = seed.is_default and not TemplateDefaultService.bucket_has_default(
                    db, tenant_id, seed.template_type, seed.specialty
                )
                db.add(MedicalRecordTemplate(
                    tenant_id=tenant_id,
                    name=seed.name,
                    description=seed.description,
                    template_type=seed.template_type,
                    specialty=seed.specialty,
                    fields=copy.deepcopy(seed.fields or {}),
                    default_values=copy.deepcopy(seed.default_values or {}),
                    validation_rules=copy.deepcopy(seed.validation_rules or {}),
                    is_default=keep_default,
                    is_active=True,
                    version=seed.version,
                    parent_template_id=seed.id,
                    created_by=user_id,
                    updated_by=user_id,
                ))
                # Later seeds in the same bucket must see this copy's default flag
                db.flush()
                copied += 1

        logger.info(f"Copied {copied} default template(s) into tenant {tenant_id}")
        return copied
