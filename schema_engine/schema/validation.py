"""
Payload Validation

Checks create/update payloads against field constraints before any SQL is
built. The first failing field is reported on the raised ValidationError;
every failing field is collected in ``errors``.
"""

import re
from datetime import date, datetime
from typing import Any, Mapping, Optional

from ..errors import ValidationError
from .definition import EntitySchema
from .fields import FieldDescriptor, FieldType, STRING_TYPES

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_URL_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_iso_date(value: str, with_time: bool) -> bool:
    try:
        if with_time:
            datetime.fromisoformat(value)
        else:
            date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _check_type(f: FieldDescriptor, value: Any) -> Optional[str]:
    """Return an error message if ``value`` does not match the field type."""
    label = f.display_name
    if f.type in STRING_TYPES:
        if not isinstance(value, str):
            return f"{label} must be a string"
        if f.type == FieldType.EMAIL and not _EMAIL_RE.match(value):
            return f"{label} must be a valid email address"
        if f.type == FieldType.URL and not _URL_RE.match(value):
            return f"{label} must be a valid URL"
        return None
    if f.type == FieldType.INTEGER:
        if isinstance(value, bool) or not isinstance(value, int):
            return f"{label} must be an integer"
        return None
    if f.type == FieldType.NUMBER:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return f"{label} must be a number"
        return None
    if f.type == FieldType.BOOLEAN:
        return None if isinstance(value, bool) else f"{label} must be true or false"
    if f.type == FieldType.DATE:
        if isinstance(value, date) or (isinstance(value, str) and _is_iso_date(value, False)):
            return None
        return f"{label} must be a date (YYYY-MM-DD)"
    if f.type == FieldType.DATETIME:
        if isinstance(value, datetime) or (isinstance(value, str) and _is_iso_date(value, True)):
            return None
        return f"{label} must be an ISO 8601 datetime"
    if f.type == FieldType.ARRAY:
        return None if isinstance(value, (list, tuple)) else f"{label} must be a list"
    if f.type in (FieldType.JSON, FieldType.OBJECT):
        return None if isinstance(value, (dict, list)) else f"{label} must be an object"
    return None


def validate_field(f: FieldDescriptor, value: Any, data: Mapping[str, Any]) -> Optional[tuple[str, str]]:
    """
    Validate one value. Returns (rule, message) for the first violated rule,
    or None when the value is acceptable.
    """
    label = f.display_name
    if _is_blank(value):
        if f.required:
            return "required", f"{label} is required"
        return None

    message = _check_type(f, value)
    if message:
        return "type", message

    if isinstance(value, (str, list, tuple)):
        if f.min_length is not None and len(value) < f.min_length:
            return "minLength", f"{label} must be at least {f.min_length} characters"
        if f.max_length is not None and len(value) > f.max_length:
            return "maxLength", f"{label} must be at most {f.max_length} characters"

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if f.min is not None and value < f.min:
            return "min", f"{label} must be at least {f.min}"
        if f.max is not None and value > f.max:
            return "max", f"{label} must be at most {f.max}"

    if f.pattern is not None and isinstance(value, str) and not re.search(f.pattern, value):
        return "pattern", f"{label} has an invalid format"

    if f.enum_values is not None and value not in f.enum_values:
        allowed = ", ".join(str(v) for v in f.enum_values)
        return "enum", f"{label} must be one of: {allowed}"

    if f.validate is not None:
        message = f.validate(value, dict(data))
        if message:
            return "custom", message

    return None


def validate_payload(schema: EntitySchema, data: Mapping[str, Any], partial: bool = False,
                     current: Optional[Mapping[str, Any]] = None) -> None:
    """
    Validate a payload against the writable fields of ``schema``.

    Args:
        schema: Target entity schema
        data: API-keyed payload (unknown keys are ignored here and dropped by the builder)
        partial: Update mode; only keys present in ``data`` are checked
        current: Existing values of the instance being updated, merged under
            ``data`` for custom and entity-level validators

    Raises:
        ValidationError: naming the first failing field and rule
    """
    writable = schema.writable_fields()
    if partial and not any(f.api_name in data for f in writable):
        # Nothing to write; the builder reports NoUpdatableFieldsError
        return

    errors: dict[str, dict[str, str]] = {}
    merged = {**(current or {}), **data}

    for f in writable:
        if partial and f.api_name not in data:
            continue
        failure = validate_field(f, data.get(f.api_name), merged)
        if failure:
            rule, message = failure
            errors[f.api_name] = {"rule": rule, "message": message}

    if not errors:
        for validator in schema.validators:
            for field_name, message in (validator(dict(merged)) or {}).items():
                errors.setdefault(field_name, {"rule": "custom", "message": message})

    if errors:
        field_name, first = next(iter(errors.items()))
        raise ValidationError(
            first["message"],
            field=field_name,
            rule=first["rule"],
            errors=errors,
            entity=schema.entity_name,
        )
