"""
Input Validators for Change Requests.

Provides validation functions for gateway and service input parameters.

Design:
- Pure functions, no side effects
- Raise ValueError (or ValidationError) with descriptive messages
- Status values are checked against the kind by the transition engine;
  here only their shape is checked
"""

import re
import uuid
from typing import Any, Dict, Optional

from statusflow.domain.models.change_request import ChangeRequest


# ═══════════════════════════════════════════════════════════════════════════════
# Identifier Validators
# ═══════════════════════════════════════════════════════════════════════════════


RESOURCE_ID_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_\-:.@]{0,127}$')


def validate_uuid(value: str, field_name: str = "id", strict: bool = False) -> str:
    """
    Validate that a value is a valid ID string.

    Args:
        value: Value to validate
        field_name: Name of the field for error messages
        strict: If True, require UUID format. If False, accept any non-empty string.

    Returns:
        The validated ID string

    Raises:
        ValueError: If value is empty or invalid
    """
    if not value:
        raise ValueError(f"{field_name} is required")

    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")

    normalized = value.strip()

    if not normalized:
        raise ValueError(f"{field_name} cannot be empty")

    if strict:
        try:
            parsed = uuid.UUID(normalized)
            return str(parsed)
        except (ValueError, AttributeError):
            raise ValueError(f"Invalid {field_name}: '{value}' is not a valid UUID format")

    return normalized


def validate_resource_id(resource_id: str) -> str:
    """
    Validate resource ID.

    Resource ids are opaque but must be URL-path safe: alphanumerics plus
    ``_ - : . @``, at most 128 characters.
    """
    normalized = validate_uuid(resource_id, "resource_id")
    if not RESOURCE_ID_PATTERN.match(normalized):
        raise ValueError(
            f"Invalid resource_id '{resource_id}': use letters, digits, '_', '-', ':', '.', '@' "
            f"(max 128 characters)"
        )
    return normalized


def validate_operation_id(operation_id: str) -> str:
    """Validate operation ID (always a UUID)."""
    return validate_uuid(operation_id, "operation_id", strict=True)


# ═══════════════════════════════════════════════════════════════════════════════
# String Validators
# ═══════════════════════════════════════════════════════════════════════════════


def validate_string(
    value: str,
    field_name: str,
    min_length: int = 0,
    max_length: int = 10000,
    required: bool = True,
) -> Optional[str]:
    """
    Validate a string value.

    Returns:
        The validated string or None if not required and empty

    Raises:
        ValueError: If validation fails
    """
    if value is None:
        if required:
            raise ValueError(f"{field_name} is required")
        return None

    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")

    stripped = value.strip()

    if not stripped and required:
        raise ValueError(f"{field_name} cannot be empty")

    if len(stripped) < min_length:
        raise ValueError(f"{field_name} must be at least {min_length} characters")

    if len(stripped) > max_length:
        raise ValueError(f"{field_name} exceeds maximum length of {max_length} characters")

    return stripped if stripped else None


def validate_status_value(status: str, field_name: str = "status", required: bool = True) -> Optional[str]:
    """Validate the shape of a status value (not its membership in a kind)."""
    return validate_string(status, field_name, min_length=1, max_length=64, required=required)


def validate_status_detail(detail: Optional[str]) -> Optional[str]:
    """Validate status detail string."""
    return validate_string(detail, "statusDetail", max_length=1000, required=False)


def validate_limit(limit: int, max_limit: int = 1000) -> int:
    """
    Validate pagination limit.

    Raises:
        ValueError: If limit is invalid
    """
    if not isinstance(limit, int):
        raise ValueError("limit must be an integer")

    if limit < 1:
        raise ValueError("limit must be at least 1")

    if limit > max_limit:
        raise ValueError(f"limit cannot exceed {max_limit}")

    return limit


# ═══════════════════════════════════════════════════════════════════════════════
# Parameter Validators
# ═══════════════════════════════════════════════════════════════════════════════


def validate_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Validate kind-specific change request parameters.

    Raises:
        ValueError: If params are invalid
    """
    if params is None:
        return {}

    if not isinstance(params, dict):
        raise ValueError("params must be a dictionary")

    for key in params.keys():
        if not isinstance(key, str):
            raise ValueError(f"Parameter name must be a string, got {type(key).__name__}")
        if not key.strip():
            raise ValueError("Parameter names cannot be empty")
        if len(key) > 256:
            raise ValueError(f"Parameter name '{key[:50]}...' exceeds maximum length")

    if "duration" in params:
        params = dict(params)
        params["duration"] = validate_duration(params["duration"])

    return params


def validate_duration(duration: Any, max_seconds: int = 366 * 24 * 3600) -> int:
    """Validate a duration in whole seconds."""
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise ValueError("duration must be an integer number of seconds")

    if duration <= 0:
        raise ValueError("duration must be positive")

    if duration > max_seconds:
        raise ValueError(f"duration cannot exceed {max_seconds} seconds")

    return duration


# ═══════════════════════════════════════════════════════════════════════════════
# Composite Validators
# ═══════════════════════════════════════════════════════════════════════════════


class ValidationError(ValueError):
    """
    Custom validation error with field information.

    Attributes:
        field: The field that failed validation
        message: Error message
        value: The invalid value (optional)
    """

    def __init__(self, message: str, field: str = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.message = message
        self.value = value


def validate_change_request(
    resource_id: str,
    status: str,
    expected_status: Optional[str] = None,
    status_detail: Optional[str] = None,
    params: Optional[Dict[str, Any]] = None,
) -> ChangeRequest:
    """
    Validate and assemble a ChangeRequest.

    Raises:
        ValidationError: If any parameter is invalid
    """
    try:
        return ChangeRequest(
            resource_id=validate_resource_id(resource_id),
            status=validate_status_value(status),
            expected_status=validate_status_value(expected_status, "expectedStatus", required=False),
            status_detail=validate_status_detail(status_detail),
            params=validate_params(params),
        )
    except ValidationError:
        raise
    except ValueError as e:
        raise ValidationError(str(e))


__all__ = [
    # Identifier validators
    "validate_uuid",
    "validate_resource_id",
    "validate_operation_id",
    # String validators
    "validate_string",
    "validate_status_value",
    "validate_status_detail",
    # Pagination validators
    "validate_limit",
    # Parameter validators
    "validate_params",
    "validate_duration",
    # Composite validators
    "ValidationError",
    "validate_change_request",
]
