"""Form-level validation for person input.

The store accepts any well-typed ``Person``; these checks are what an edit
form runs before building one from raw text input.
"""

import re
from dataclasses import dataclass, field

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

FORM_ERROR_MESSAGE = "Please fill in all required fields with valid data."


@dataclass(frozen=True)
class ValidationReport:
    """Outcome of validating raw person form input."""

    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def message(self) -> str | None:
        return None if self.ok else FORM_ERROR_MESSAGE


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def validate_person_fields(
    first_name: str,
    last_name: str,
    email: str,
    phone: str,
    age: str,
    salary: str,
) -> ValidationReport:
    """Validate the text fields of a person form.

    Args:
        first_name: Raw first name input
        last_name: Raw last name input
        email: Raw email input
        phone: Raw phone input
        age: Raw age input, must parse to a positive integer
        salary: Raw salary input, must parse to a non-negative number

    Returns:
        ValidationReport with one message per invalid field
    """
    errors: dict[str, str] = {}

    if not first_name.strip():
        errors["first_name"] = "First name is required"
    if not last_name.strip():
        errors["last_name"] = "Last name is required"
    if not email.strip():
        errors["email"] = "Email is required"
    elif not is_valid_email(email.strip()):
        errors["email"] = "Email is not valid"
    if not phone.strip():
        errors["phone"] = "Phone is required"

    try:
        if int(age.strip()) <= 0:
            errors["age"] = "Age must be a positive number"
    except ValueError:
        errors["age"] = "Age must be a whole number"

    try:
        if float(salary.strip()) < 0:
            errors["salary"] = "Salary cannot be negative"
    except ValueError:
        errors["salary"] = "Salary must be a number"

    return ValidationReport(errors=errors)
