"""Validation of raw form input.

The presentation layer hands over whatever the administrator typed. These
helpers normalize it and raise ``ValidationError`` naming the offending field.
"""

import re

from rolekeeper.domain.exceptions import ValidationError

# Basic address syntax: something@something.tld, no whitespace
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

FIELD_LABELS = {
    "username": "Username",
    "full_name": "Full name",
    "email": "Email",
    "role": "Role",
    "department": "Department",
    "password": "Password",
    "name": "Role name",
    "description": "Description",
}


def require_non_empty(field: str, value: object) -> str:
    """Strip ``value`` and reject it if nothing is left.

    Args:
        field: Field name used in the error.
        value: Raw input.

    Returns:
        The stripped value.

    Raises:
        ValidationError: If the value is missing, blank or not text.
    """
    label = FIELD_LABELS.get(field, field)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{label} must be text", field=field)
    if value is None or not value.strip():
        raise ValidationError(f"{label} is required", field=field)
    return value.strip()


def validate_email(value: str | None) -> str:
    """Validate basic email address syntax.

    Raises:
        ValidationError: If the address is blank or malformed.
    """
    email = require_non_empty("email", value)
    if not EMAIL_PATTERN.match(email):
        raise ValidationError(f"Invalid email address: '{email}'", field="email")
    return email


def validate_choice(field: str, value: str | None, choices: tuple[str, ...]) -> str:
    """Validate that ``value`` is one of ``choices``.

    Raises:
        ValidationError: If the value is blank or not an allowed choice.
    """
    choice = require_non_empty(field, value)
    if choice not in choices:
        label = FIELD_LABELS.get(field, field)
        raise ValidationError(
            f"{label} must be one of: {', '.join(choices)}",
            field=field,
        )
    return choice
