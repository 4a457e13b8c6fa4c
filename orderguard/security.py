"""
Security module for OrderGuard.

Provides input validation and sanitization for order fields and
envelope contents.
"""

import base64
import binascii
import re
from typing import Any, Dict, List, Optional


# ============================================================
# Input Validation
# ============================================================

# Regex patterns for validation
STOCK_ID_PATTERN = re.compile(r'^[A-Z0-9]{1,32}$')
AMOUNT_PATTERN = re.compile(r'^[0-9]{1,32}$')
BASE64_PATTERN = re.compile(r'^[A-Za-z0-9+/]*={0,2}$')


class ValidationError(Exception):
    """Raised when input validation fails."""
    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


def validate_stock_id(value: Any, field_name: str = "stockId") -> str:
    """
    Validate a stock symbol.

    Symbols are 1-32 characters of uppercase letters and digits.

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(value, str):
        raise ValidationError(field_name, "must be a string")

    if not STOCK_ID_PATTERN.match(value):
        raise ValidationError(field_name, "must be 1-32 uppercase letters or digits")

    return value


def validate_amount(value: Any, field_name: str = "amount") -> str:
    """
    Validate a stock amount.

    Amounts are decimal digit strings. Leading zeros are significant and
    kept as-is; the value is never converted to a number.

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(value, str):
        raise ValidationError(field_name, "must be a string")

    if not AMOUNT_PATTERN.match(value):
        raise ValidationError(field_name, "must be 1-32 decimal digits")

    return value


def validate_base64(value: Any, field_name: str) -> str:
    """
    Validate that a string is valid base64.

    Args:
        value: The string to validate
        field_name: Name of the field (for error messages)

    Returns:
        The validated base64 string

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(value, str):
        raise ValidationError(field_name, "must be a string")

    value = value.strip()

    if not value:
        raise ValidationError(field_name, "cannot be empty")

    if not BASE64_PATTERN.match(value):
        raise ValidationError(field_name, "must be valid base64")

    try:
        base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(field_name, "must be valid base64")

    return value


# ============================================================
# Audit Logging Helpers
# ============================================================

def sanitize_for_logging(data: Dict[str, Any], sensitive_fields: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Sanitize data for logging by masking sensitive fields.

    Args:
        data: The data to sanitize
        sensitive_fields: List of field names to mask

    Returns:
        Sanitized copy of the data
    """
    if sensitive_fields is None:
        sensitive_fields = ["signature", "private_key", "public_key", "master_key", "content"]

    result = {}
    for key, value in data.items():
        if key in sensitive_fields:
            if isinstance(value, str) and len(value) > 8:
                result[key] = value[:4] + "..." + value[-4:]
            else:
                result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = sanitize_for_logging(value, sensitive_fields)
        elif isinstance(value, list):
            result[key] = [
                sanitize_for_logging(item, sensitive_fields) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result
