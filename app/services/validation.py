"""
Request shape checks for booking submissions and payment intents.

Every check runs and every problem is reported, so the client can fix the whole
form in one round trip. Nothing here raises or touches I/O.
"""
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[\d\s\-\(\)\+]+$")
CURRENCY_RE = re.compile(r"^[A-Za-z]{3}$")
MIN_PHONE_DIGITS = 10
MIN_NAME_LENGTH = 2
OPTIONAL_TEXT_FIELDS = (
    ("businessName", "Business name"),
    ("preferredTime", "Preferred time"),
    ("message", "Message"),
)


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def validate_email(email: Any) -> bool:
    return isinstance(email, str) and bool(EMAIL_RE.match(email))


def validate_phone(phone: Any) -> bool:
    if not isinstance(phone, str) or not PHONE_RE.match(phone):
        return False
    return len(re.sub(r"\D", "", phone)) >= MIN_PHONE_DIGITS


def parse_date(value: Any) -> Optional[date]:
    """Accepts YYYY-MM-DD or a full ISO timestamp; returns None when unparseable."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    try:
        return date.fromisoformat(raw)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def parse_amount(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def to_minor_units(amount: Any) -> int:
    """Converts a display amount (e.g. 49.995 dollars) to whole cents, rounding half up."""
    value = parse_amount(amount)
    if value is None:
        raise ValueError(f"Not a numeric amount: {amount!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_booking(data: Dict[str, Any], today: Optional[date] = None) -> ValidationResult:
    if not isinstance(data, dict):
        return ValidationResult(valid=False, errors=["Request body must be a JSON object"])

    errors = []
    today = today or date.today()

    if len(_text(data.get("firstName"))) < MIN_NAME_LENGTH:
        errors.append("First name must be at least 2 characters")

    if len(_text(data.get("lastName"))) < MIN_NAME_LENGTH:
        errors.append("Last name must be at least 2 characters")

    if not validate_email(data.get("email")):
        errors.append("Valid email address is required")

    if not validate_phone(data.get("phone")):
        errors.append("Valid phone number is required")

    service_id = data.get("serviceId")
    has_service_id = bool(_text(service_id)) or (isinstance(service_id, int) and not isinstance(service_id, bool))
    if not has_service_id or not _text(data.get("serviceName")):
        errors.append("Service selection is required")

    preferred = data.get("preferredDate")
    if not _text(preferred):
        errors.append("Preferred date is required")
    else:
        preferred_date = parse_date(preferred)
        if preferred_date is None:
            errors.append("Preferred date must be a valid date (YYYY-MM-DD)")
        elif preferred_date < today:
            errors.append("Preferred date cannot be in the past")

    for key, label in OPTIONAL_TEXT_FIELDS:
        if data.get(key) is not None and not isinstance(data.get(key), str):
            errors.append(f"{label} must be text")

    return ValidationResult(valid=not errors, errors=errors)


def validate_payment(data: Dict[str, Any]) -> ValidationResult:
    if not isinstance(data, dict):
        return ValidationResult(valid=False, errors=["Request body must be a JSON object"])

    errors = []

    amount = parse_amount(data.get("amount"))
    # Must still be at least one minor unit after rounding
    if amount is None or amount <= 0 or to_minor_units(amount) < 1:
        errors.append("Valid amount is required")

    service_id = data.get("serviceId")
    if not _text(service_id) and not (isinstance(service_id, int) and not isinstance(service_id, bool)):
        errors.append("Service ID is required")

    if not validate_email(data.get("customerEmail")):
        errors.append("Valid customer email is required")

    currency = data.get("currency")
    if currency not in (None, "") and not (isinstance(currency, str) and CURRENCY_RE.match(currency)):
        errors.append("Currency must be a 3-letter ISO code")

    return ValidationResult(valid=not errors, errors=errors)
