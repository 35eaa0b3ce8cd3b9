"""Input validation for create_one().

A record is a generic string-keyed map, so validation is an explicit list of
required fields checked against it, not a schema class.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from redis_record.models import ValidationResult


def validate_record(data: Mapping[str, Any], required: Iterable[str]) -> ValidationResult:
    """Check that every required field is a non-blank string and every value is a string.

    Required values are trimmed in the result; other fields pass through unchanged.
    """
    if not isinstance(data, Mapping):
        return ValidationResult(valid=False, errors=["<record>"])

    errors: list[str] = []
    validated: dict[str, str] = {}

    for field, value in data.items():
        if not isinstance(field, str) or not isinstance(value, str):
            errors.append(str(field))
            continue
        validated[field] = value

    # dict.fromkeys keeps declared order and drops fields listed twice
    for field in dict.fromkeys(required):
        value = validated.get(field)
        if value is None or not value.strip():
            if field not in errors:
                errors.append(field)
            continue
        validated[field] = value.strip()

    if errors:
        return ValidationResult(valid=False, errors=errors)
    return ValidationResult(valid=True, data=validated)
