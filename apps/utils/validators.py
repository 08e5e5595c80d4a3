import re
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email as django_validate_email


# Pakistani mobile prefixes 300-349 (Jazz/Warid, Zong, Ufone, Telenor)
PK_INTERNATIONAL = re.compile(r"^923[0-4]\d{8}$")
PK_LOCAL = re.compile(r"^03[0-4]\d{8}$")
PK_NO_TRUNK = re.compile(r"^3[0-4]\d{8}$")
INTERNATIONAL = re.compile(r"^\+?[1-9]\d{6,14}$")

PHONE_SEPARATORS = re.compile(r"[\s\-().]")


def _digits(value):
    return re.sub(r"\D", "", str(value))


def _looks_pakistani(digits):
    return (
        digits.startswith("92")
        or digits.startswith("03")
        or (digits.startswith("3") and len(digits) <= 10)
    )


def phone_error(value):
    """
    Returns a human readable problem with `value`, or None when it is a
    usable phone number. Regional (Pakistan) patterns are tried first,
    then the generic international format.
    """
    if not str(value or "").strip():
        return "Phone number is required"

    digits = _digits(value)

    if _looks_pakistani(digits):
        if PK_INTERNATIONAL.match(digits) or PK_LOCAL.match(digits) or PK_NO_TRUNK.match(digits):
            return None
        if digits.startswith("92"):
            return "Pakistani international number must be exactly 12 digits (e.g., +92-300-1234567)"
        if digits.startswith("03"):
            return "Pakistani mobile number must be exactly 11 digits (e.g., 0300-1234567)"
        return "Please enter a valid Pakistani mobile number (e.g., 0300-1234567)"

    if len(digits) < 7:
        return "Phone number too short (minimum 7 digits)"
    if len(digits) > 15:
        return "Phone number too long (maximum 15 digits)"
    if not INTERNATIONAL.match(PHONE_SEPARATORS.sub("", str(value))):
        return "Please enter a valid phone number (e.g., 0300-1234567 or +1-555-123-4567)"
    return None


def email_error(value):
    if not str(value or "").strip():
        return "Customer email is required"
    try:
        django_validate_email(str(value).strip())
    except DjangoValidationError:
        return "Invalid email format"
    return None
