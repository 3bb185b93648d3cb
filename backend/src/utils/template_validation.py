"""
Validation of structured record data against a template's field schema.

Validation here is structural and typed only (required fields, lengths,
ranges, patterns, option membership, date shapes, nested objects/arrays and
conditional requirements). It never raises for bad data: every problem is
reported in the returned ValidationResult, and callers decide whether to
proceed.
"""

import logging
import math
import re
from datetime import date, datetime, time
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from shared_types.templates import (
    ConditionOperator,
    FieldSpec,
    FieldType,
    FieldValidation,
    FieldValue,
    ValidationResult,
)

logger = logging.getLogger(__name__)

_TEXT_TYPES = {FieldType.TEXT, FieldType.TEXTAREA}
_SINGLE_CHOICE_TYPES = {FieldType.SELECT, FieldType.RADIO}


def is_empty_value(value: FieldValue) -> bool:
    """A value counts as absent when it is missing/None or an empty string."""
    return value is None or value == ""


def to_number(value: FieldValue) -> Optional[float]:
    """
    Coerce a loosely typed value to a finite number.

    Numbers and numeric strings are accepted. Booleans, NaN, infinities and
    everything else return None.
    """
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _strict_equals(left: FieldValue, right: FieldValue) -> bool:
    # True must not equal 1
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def evaluate_condition(actual: FieldValue, operator: str, expected: FieldValue) -> bool:
    """
    Evaluate `actual <operator> expected`.

    Unknown operators evaluate to False (condition not met).
    """
    try:
        op = ConditionOperator(operator)
    except ValueError:
        logger.warning(f"Unknown conditional operator {operator!r}; treating condition as not met")
        return False

    if op is ConditionOperator.EQUALS:
        return _strict_equals(actual, expected)
    if op is ConditionOperator.NOT_EQUALS:
        return not _strict_equals(actual, expected)
    if op is ConditionOperator.CONTAINS:
        if isinstance(actual, str):
            return expected is not None and str(expected) in actual
        if isinstance(actual, list):
            return any(_strict_equals(item, expected) for item in actual)
        return False

    left = to_number(actual)
    right = to_number(expected)
    if left is None or right is None:
        return False
    if op is ConditionOperator.GREATER_THAN:
        return left > right
    return left < right


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _parse_field_specs(raw_fields: Any, prefix: str, warnings: Dict[str, List[str]]) -> Dict[str, FieldSpec]:
    """Turn stored field definitions into FieldSpecs, skipping ones that don't parse."""
    if not isinstance(raw_fields, Mapping):
        return {}
    specs: Dict[str, FieldSpec] = {}
    for name, raw in raw_fields.items():
        if isinstance(raw, FieldSpec):
            specs[name] = raw
            continue
        try:
            specs[name] = FieldSpec.model_validate(raw)
        except ValidationError:
            warnings.setdefault(f"{prefix}{name}", []).append(
                f"{name} has an unsupported field definition and was not validated"
            )
    return specs


def _effective_validation(
    spec: FieldSpec,
    key: str,
    validation_rules: Mapping[str, Any],
    warnings: Dict[str, List[str]],
) -> FieldValidation:
    """Field-level validation with the template's validation_rules entry layered on top."""
    merged: Dict[str, Any] = {}
    if spec.validation is not None:
        merged.update(spec.validation.model_dump(by_alias=True, exclude_none=True))

    override = validation_rules.get(key)
    if override is None:
        return FieldValidation.model_validate(merged)
    if not isinstance(override, Mapping):
        warnings.setdefault(key, []).append(f"Validation rules for {key} are malformed and were ignored")
        return FieldValidation.model_validate(merged)

    try:
        return FieldValidation.model_validate({**merged, **override})
    except ValidationError:
        warnings.setdefault(key, []).append(f"Validation rules for {key} are malformed and were ignored")
        return FieldValidation.model_validate(merged)


def _check_text(label: str, value: FieldValue, rules: FieldValidation, key: str,
                warnings: Dict[str, List[str]]) -> List[str]:
    if not isinstance(value, str):
        return []
    errors: List[str] = []
    if rules.min_length is not None and len(value) < rules.min_length:
        errors.append(f"{label} must be at least {rules.min_length} characters")
    if rules.max_length is not None and len(value) > rules.max_length:
        errors.append(f"{label} must be no more than {rules.max_length} characters")
    if rules.pattern:
        try:
            if not re.search(rules.pattern, value):
                errors.append(f"{label} format is invalid")
        except re.error:
            warnings.setdefault(key, []).append(f"{label} has an invalid pattern and was not checked")
    return errors


def _check_number(label: str, value: FieldValue, rules: FieldValidation) -> List[str]:
    number = to_number(value)
    if number is None:
        return [f"{label} must be a valid number"]
    errors: List[str] = []
    if rules.min is not None and number < rules.min:
        errors.append(f"{label} must be at least {_format_value(rules.min)}")
    if rules.max is not None and number > rules.max:
        errors.append(f"{label} must be no more than {_format_value(rules.max)}")
    return errors


def _check_temporal(label: str, field_type: FieldType, value: FieldValue) -> List[str]:
    if not isinstance(value, str):
        return [f"{label} must be a valid {field_type.value}"]
    try:
        if field_type is FieldType.DATE:
            date.fromisoformat(value)
        elif field_type is FieldType.DATETIME:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
        else:
            time.fromisoformat(value)
    except ValueError:
        return [f"{label} must be a valid {field_type.value}"]
    return []


def _validate_value(
    key: str,
    label: str,
    spec: FieldSpec,
    value: FieldValue,
    validation_rules: Mapping[str, Any],
    errors: Dict[str, List[str]],
    warnings: Dict[str, List[str]],
) -> List[str]:
    """Type-specific checks for a present value. Nested errors are written to `errors` directly."""
    field_type = spec.type
    if field_type in _TEXT_TYPES:
        rules = _effective_validation(spec, key, validation_rules, warnings)
        return _check_text(label, value, rules, key, warnings)

    if field_type is FieldType.NUMBER:
        rules = _effective_validation(spec, key, validation_rules, warnings)
        return _check_number(label, value, rules)

    if field_type in _SINGLE_CHOICE_TYPES:
        if spec.options and value not in spec.options:
            return [f"{label} must be one of the allowed options"]
        return []

    if field_type is FieldType.MULTISELECT:
        if not isinstance(value, list):
            return [f"{label} must be a list of options"]
        if spec.options and any(item not in spec.options for item in value):
            return [f"{label} must be one of the allowed options"]
        return []

    if field_type in (FieldType.DATE, FieldType.DATETIME, FieldType.TIME):
        return _check_temporal(label, field_type, value)

    if field_type is FieldType.OBJECT:
        if not isinstance(value, Mapping):
            return [f"{label} must be an object"]
        nested = _parse_field_specs(spec.fields or {}, f"{key}.", warnings)
        _validate_fields(nested, value, validation_rules, f"{key}.", errors, warnings)
        return []

    if field_type is FieldType.ARRAY:
        if not isinstance(value, list):
            return [f"{label} must be a list"]
        if spec.items is not None:
            for index, item in enumerate(value):
                item_key = f"{key}[{index}]"
                item_errors = _check_present_or_required(
                    item_key, f"{label}[{index}]", spec.items, item, validation_rules, errors, warnings
                )
                if item_errors:
                    errors.setdefault(item_key, []).extend(item_errors)
        return []

    # checkbox: any value is acceptable
    return []


def _check_present_or_required(
    key: str,
    label: str,
    spec: FieldSpec,
    value: FieldValue,
    validation_rules: Mapping[str, Any],
    errors: Dict[str, List[str]],
    warnings: Dict[str, List[str]],
) -> List[str]:
    if is_empty_value(value):
        return [f"{label} is required"] if spec.required else []
    return _validate_value(key, label, spec, value, validation_rules, errors, warnings)


def _validate_fields(
    specs: Mapping[str, FieldSpec],
    scope: Mapping[str, Any],
    validation_rules: Mapping[str, Any],
    prefix: str,
    errors: Dict[str, List[str]],
    warnings: Dict[str, List[str]],
) -> None:
    for name, spec in specs.items():
        key = f"{prefix}{name}"
        label = spec.label or name
        value = scope.get(name)
        field_errors: List[str] = []

        if is_empty_value(value):
            if spec.required:
                field_errors.append(f"{label} is required")
            else:
                # Conditions reference a sibling field's current value
                condition = spec.conditional.required_if if spec.conditional else None
                if condition is not None and evaluate_condition(
                    scope.get(condition.field), condition.operator, condition.value
                ):
                    field_errors.append(
                        f"{label} is required when {condition.field} is {_format_value(condition.value)}"
                    )
        else:
            field_errors.extend(_validate_value(key, label, spec, value, validation_rules, errors, warnings))

        if field_errors:
            errors.setdefault(key, []).extend(field_errors)


def validate_template_data(template: Any, data: Optional[Mapping[str, Any]]) -> ValidationResult:
    """
    Validate a data object against a template's field schema.

    Args:
        template: Anything exposing `fields` (field name -> FieldSpec or raw
            dict) and optionally `validation_rules` (field name -> constraint
            overrides), e.g. a TemplateDefinition or a MedicalRecordTemplate row.
        data: Field values keyed by field name. Nested object values are
            validated against the nested field specs.

    Returns:
        ValidationResult whose `errors` maps a field key (dotted for nested
        fields, indexed for array items) to one or more messages.

    Example:
        >>> t = TemplateDefinition(tenant_id="a", name="n", template_type="consultation",
        ...                        fields={"diagnosis": {"type": "text", "required": True}})
        >>> validate_template_data(t, {}).errors
        {'diagnosis': ['diagnosis is required']}
    """
    errors: Dict[str, List[str]] = {}
    warnings: Dict[str, List[str]] = {}

    validation_rules = getattr(template, "validation_rules", None) or {}
    if not isinstance(validation_rules, Mapping):
        validation_rules = {}

    specs = _parse_field_specs(getattr(template, "fields", None) or {}, "", warnings)
    _validate_fields(specs, data or {}, validation_rules, "", errors, warnings)

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
