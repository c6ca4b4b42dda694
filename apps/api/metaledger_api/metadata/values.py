"""Type-driven validation and normalization of field values."""

import hashlib
import json
import math
from datetime import date, datetime
from typing import Any

from metaledger_api.metadata.enums import FieldType
from metaledger_api.metadata.errors import InvalidValue
from metaledger_api.models import MetadataField

MAX_CANONICAL_KEY_LENGTH = 255


def _invalid(field: MetadataField, reason: str) -> InvalidValue:
    return InvalidValue(
        f"Invalid value for field '{field.key}': {reason}",
        field_id=field.id,
        field_key=field.key,
    )


def _coerce_number(field: MetadataField, value: Any):
    if isinstance(value, bool):
        raise _invalid(field, "expected a number")
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            number = int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                raise _invalid(field, "expected a number") from None
    else:
        raise _invalid(field, "expected a number")
    if isinstance(number, float) and not math.isfinite(number):
        raise _invalid(field, "number must be finite")
    return number


def _coerce_date(field: MetadataField, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise _invalid(field, "expected an ISO-8601 date")
    text = value.strip()
    try:
        date.fromisoformat(text)
    except ValueError:
        try:
            datetime.fromisoformat(text)
        except ValueError:
            raise _invalid(field, "expected an ISO-8601 date") from None
    return text


def _coerce_multiselect(field: MetadataField, value: Any) -> list:
    if not isinstance(value, (list, tuple)) or not value:
        raise _invalid(field, "expected a non-empty list")
    items = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise _invalid(field, "list items must be non-empty strings")
        item = item.strip()
        if item not in items:
            items.append(item)
    options = field.allowed_options
    if options:
        unknown = [item for item in items if item not in options]
        if unknown:
            raise _invalid(field, f"unknown options {unknown}")
    return items


def validate_value(field: MetadataField, value: Any) -> Any:
    """Validate a user or producer value and return its normalized form.

    Raises InvalidValue when the value does not fit the field's declared type.
    The clear marker (None) is never accepted here; only bulk clear writes it.
    """
    if value is None:
        raise _invalid(field, "a value is required")

    field_type = field.field_type
    if field_type == FieldType.TEXT:
        if not isinstance(value, str) or not value.strip():
            raise _invalid(field, "expected a non-empty string")
        return value.strip()
    if field_type == FieldType.NUMBER:
        return _coerce_number(field, value)
    if field_type == FieldType.BOOLEAN:
        if not isinstance(value, bool):
            raise _invalid(field, "expected a boolean")
        return value
    if field_type == FieldType.DATE:
        return _coerce_date(field, value)
    if field_type == FieldType.SELECT:
        if value == "" or isinstance(value, (list, dict)):
            raise _invalid(field, "expected a single option")
        options = field.allowed_options
        if options and value not in options:
            raise _invalid(field, f"'{value}' is not one of {options}")
        return value
    if field_type == FieldType.MULTISELECT:
        return _coerce_multiselect(field, value)
    raise _invalid(field, f"unsupported field type {field_type}")


def values_equal(field: MetadataField, left: Any, right: Any) -> bool:
    """Compare two stored values; multiselect order is not significant."""
    if field.is_multiselect and isinstance(left, list) and isinstance(right, list):
        return set(left) == set(right)
    return left == right


def is_clear_marker(value: Any) -> bool:
    return value is None or value == []


def canonical_key(value: Any) -> str:
    """Stable identity for a value, used to match duplicate candidates."""
    if isinstance(value, str):
        key = value
    else:
        if isinstance(value, list):
            value = sorted(value, key=str)
        key = json.dumps(value, sort_keys=True)
    if len(key) > MAX_CANONICAL_KEY_LENGTH:
        key = "sha256:" + hashlib.sha256(key.encode()).hexdigest()
    return key
