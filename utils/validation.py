"""Input validation and sanitization utilities

Field checks return an error message, or None when the value is acceptable.
Step validators collect those messages into a field -> message map; an empty
map means the step is valid. Nothing here does I/O.
"""
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from config.settings import (
    AGE_RANGE_OPTIONS, INTEREST_OPTIONS, NEIGHBORHOOD_OPTIONS,
    NAME_MAX_LENGTH, OCCUPATION_MAX_LENGTH, INSTAGRAM_MAX_LENGTH,
    MINIMUM_AGE, MAXIMUM_AGE,
    STEP_PERSONAL, STEP_DEMOGRAPHICS, STEP_INTERESTS, STEP_PAYMENT, STEP_CONFIRMATION,
)
from utils.errors import ValidationError

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
NAME_PATTERN = re.compile(r"^[^\W\d_]+(?:[ '\-][^\W\d_]+)*$")
INSTAGRAM_PATTERN = re.compile(r'^[A-Za-z0-9._]+$')
LINKEDIN_PATTERN = re.compile(r'^https?://(www\.)?linkedin\.com/in/[A-Za-z0-9\-]+/?$')

# Common domain typos and their corrections
EMAIL_DOMAIN_SUGGESTIONS = {
    'gmail.co': 'gmail.com',
    'gmai.com': 'gmail.com',
    'yahooo.com': 'yahoo.com',
    'hotmial.com': 'hotmail.com',
}


def sanitize_string(value: Any, max_length: Optional[int] = None, allow_empty: bool = True) -> Optional[str]:
    """Sanitize string input"""
    if value is None:
        return None if allow_empty else ""

    # Convert to string and strip whitespace
    sanitized = str(value).strip()

    # Remove null bytes and control characters (except newlines and tabs)
    sanitized = re.sub(r'[\x00-\x08\x0b-\x0c\x0e-\x1f]', '', sanitized)

    # Enforce max length
    if max_length and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized if (sanitized or allow_empty) else None


def validate_email(email: str) -> bool:
    """Validate email format"""
    if not email:
        return False
    return bool(EMAIL_PATTERN.match(email))


def sanitize_list(value: Any, max_items: Optional[int] = None) -> List[str]:
    """Sanitize list input, dropping empties and duplicates"""
    if not value:
        return []

    if not isinstance(value, list):
        return []

    sanitized = []
    for item in value:
        cleaned = sanitize_string(item) if item else None
        if cleaned and cleaned not in sanitized:
            sanitized.append(cleaned)

    if max_items and len(sanitized) > max_items:
        sanitized = sanitized[:max_items]

    return sanitized


def validate_integer(value: Any, min_value: Optional[int] = None, max_value: Optional[int] = None) -> Optional[int]:
    """Validate and convert to integer, clamping to the given bounds"""
    if value is None:
        return None

    try:
        int_value = int(value)
        if min_value is not None and int_value < min_value:
            return min_value
        if max_value is not None and int_value > max_value:
            return max_value
        return int_value
    except (ValueError, TypeError):
        return None


def validate_enum(value: Any, allowed_values: List[str], case_sensitive: bool = True) -> Optional[str]:
    """Validate value is in allowed enum values, returning the canonical spelling"""
    if not value:
        return None

    str_value = str(value).strip()

    if case_sensitive:
        return str_value if str_value in allowed_values else None

    for allowed in allowed_values:
        if allowed.upper() == str_value.upper():
            return allowed
    return None


def coerce_bool(value: Any) -> bool:
    """Interpret checkbox-ish values ('true', 'on', 1, True)"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 'on')
    return bool(value)


def sanitize_json_input(data: Dict[str, Any], schema: Dict[str, Any]) -> Dict[str, Any]:
    """
    Sanitize JSON input based on schema. Only fields present in the schema are kept.

    Schema format:
    {
        'field_name': {
            'type': 'string' | 'int' | 'bool' | 'list' | 'email' | 'enum',
            'required': bool,
            'max_length': int (for strings),
            'max_items': int (for lists),
            'allowed_values': List[str] (for enum),
            'min': int, 'max': int (for integers),
            'default': any
        }
    }
    """
    sanitized = {}

    for field_name, field_schema in schema.items():
        field_type = field_schema.get('type', 'string')
        required = field_schema.get('required', False)
        default = field_schema.get('default')

        value = data.get(field_name, default)

        # Check required fields
        if required and (value is None or value == ''):
            raise ValueError(f"Field '{field_name}' is required")

        # Skip None values unless required
        if value is None:
            continue

        if field_type == 'string':
            max_length = field_schema.get('max_length')
            sanitized[field_name] = sanitize_string(value, max_length=max_length)

        elif field_type == 'int':
            min_val = field_schema.get('min')
            max_val = field_schema.get('max')
            int_value = validate_integer(value, min_value=min_val, max_value=max_val)
            if int_value is None:
                raise ValueError(f"Field '{field_name}' must be an integer")
            sanitized[field_name] = int_value

        elif field_type == 'bool':
            sanitized[field_name] = coerce_bool(value)

        elif field_type == 'list':
            max_items = field_schema.get('max_items')
            sanitized[field_name] = sanitize_list(value, max_items=max_items)

        elif field_type == 'email':
            email = sanitize_string(value)
            if email and not validate_email(email):
                raise ValueError(f"Invalid email format for field '{field_name}'")
            sanitized[field_name] = email.lower() if email else email

        elif field_type == 'enum':
            allowed_values = field_schema.get('allowed_values', [])
            enum_value = validate_enum(value, allowed_values)
            if enum_value is None:
                raise ValueError(f"Field '{field_name}' must be one of: {', '.join(allowed_values)}")
            sanitized[field_name] = enum_value

    return sanitized


# ==================== Field checks ====================

def parse_date(value: Any) -> Optional[date]:
    """Parse YYYY-MM-DD (or an ISO timestamp) into a date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def calculate_age(birth_date: date, today: Optional[date] = None) -> int:
    """Whole years between birth_date and today"""
    today = today or date.today()
    had_birthday = (today.month, today.day) >= (birth_date.month, birth_date.day)
    return today.year - birth_date.year - (0 if had_birthday else 1)


def check_name(value: Any, label: str) -> Optional[str]:
    name = (value or '').strip() if isinstance(value, str) else ''
    if not name:
        return f"{label} is required"
    if len(name) > NAME_MAX_LENGTH:
        return f"{label} must be less than {NAME_MAX_LENGTH} characters"
    if not NAME_PATTERN.match(name):
        return f"{label} can only contain letters, spaces, hyphens, and apostrophes"
    return None


def check_email(value: Any) -> Optional[str]:
    email = (value or '').strip() if isinstance(value, str) else ''
    if not email:
        return 'Email address is required'
    if not validate_email(email):
        return 'Please enter a valid email address'
    local, domain = email.rsplit('@', 1)
    suggestion = EMAIL_DOMAIN_SUGGESTIONS.get(domain.lower())
    if suggestion:
        return f"Did you mean {local}@{suggestion}?"
    return None


def check_date_of_birth(value: Any, today: Optional[date] = None) -> Optional[str]:
    if not value:
        return 'Date of birth is required'
    birth_date = parse_date(value)
    if birth_date is None:
        return 'Please enter a valid birth date'
    today = today or date.today()
    if birth_date >= today:
        return 'Date of birth must be in the past'
    age = calculate_age(birth_date, today)
    if age < MINIMUM_AGE:
        return f"You must be at least {MINIMUM_AGE} years old to join"
    if age > MAXIMUM_AGE:
        return 'Please enter a valid date of birth'
    return None


def check_instagram_handle(value: Any) -> Optional[str]:
    if not value:
        return None
    handle = str(value).strip().lstrip('@')
    if not INSTAGRAM_PATTERN.match(handle):
        return 'Instagram handle can only contain letters, numbers, dots, and underscores'
    if len(handle) > INSTAGRAM_MAX_LENGTH:
        return f"Instagram handle must be 1-{INSTAGRAM_MAX_LENGTH} characters long"
    return None


def check_linkedin_url(value: Any) -> Optional[str]:
    if not value:
        return None
    if not LINKEDIN_PATTERN.match(str(value).strip()):
        return 'Please enter a valid LinkedIn profile URL (e.g., https://linkedin.com/in/yourname)'
    return None


def check_occupation(value: Any) -> Optional[str]:
    occupation = (value or '').strip() if isinstance(value, str) else ''
    if not occupation:
        return 'Please describe your occupation'
    if len(occupation) > OCCUPATION_MAX_LENGTH:
        return f"Occupation description must be at most {OCCUPATION_MAX_LENGTH} characters"
    return None


def check_interests(value: Any) -> Optional[str]:
    if not isinstance(value, list) or not value:
        return 'Please select at least one interest'
    unknown = [item for item in value if item not in INTEREST_OPTIONS]
    if unknown:
        return f"Unknown interest: {unknown[0]}"
    return None


# ==================== Step validators ====================

def validate_personal_step(data: Dict[str, Any], today: Optional[date] = None) -> Dict[str, str]:
    errors = {}
    checks = {
        'first_name': check_name(data.get('first_name'), 'First name'),
        'last_name': check_name(data.get('last_name'), 'Last name'),
        'email': check_email(data.get('email')),
        'date_of_birth': check_date_of_birth(data.get('date_of_birth'), today=today),
        'instagram_handle': check_instagram_handle(data.get('instagram_handle')),
        'linkedin_url': check_linkedin_url(data.get('linkedin_url')),
    }
    for field, message in checks.items():
        if message:
            errors[field] = message
    return errors


def validate_demographics_step(data: Dict[str, Any], today: Optional[date] = None) -> Dict[str, str]:
    errors = {}
    if validate_enum(data.get('age_range'), AGE_RANGE_OPTIONS) is None:
        errors['age_range'] = 'Please select your age range'
    if validate_enum(data.get('neighborhood'), NEIGHBORHOOD_OPTIONS) is None:
        errors['neighborhood'] = 'Please select your neighborhood'
    occupation_error = check_occupation(data.get('occupation'))
    if occupation_error:
        errors['occupation'] = occupation_error
    return errors


def validate_interests_step(data: Dict[str, Any], today: Optional[date] = None) -> Dict[str, str]:
    message = check_interests(data.get('interests'))
    return {'interests': message} if message else {}


def validate_payment_step(data: Dict[str, Any], card_complete: bool = False) -> Dict[str, str]:
    """Card validity itself is checked by the payment widget; only readiness is gated here"""
    errors = {}
    if not coerce_bool(data.get('terms_accepted')):
        errors['terms_accepted'] = 'Please accept the terms to continue'
    if not card_complete:
        errors['card'] = 'Please complete your card details'
    return errors


STEP_VALIDATORS: Dict[int, Callable[..., Dict[str, str]]] = {
    STEP_PERSONAL: validate_personal_step,
    STEP_DEMOGRAPHICS: validate_demographics_step,
    STEP_INTERESTS: validate_interests_step,
}


def validate_step(step: int, data: Dict[str, Any], card_complete: bool = False,
                  today: Optional[date] = None) -> Dict[str, str]:
    """Field -> message map for one form step (empty when the step is valid)"""
    if step == STEP_PAYMENT:
        return validate_payment_step(data, card_complete=card_complete)
    if step == STEP_CONFIRMATION:
        return {}
    validator = STEP_VALIDATORS.get(step)
    if validator is None:
        raise ValueError(f"Unknown form step: {step}")
    return validator(data, today=today)


# ==================== Server-side payload ====================

def normalize_applicant_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Trim and canonicalise applicant fields the way they are stored"""
    instagram = sanitize_string(data.get('instagram_handle'), max_length=100) or ''
    referral_code = sanitize_string(data.get('referral_code'), max_length=64) or ''
    return {
        'first_name': sanitize_string(data.get('first_name'), max_length=200) or '',
        'last_name': sanitize_string(data.get('last_name'), max_length=200) or '',
        'email': (sanitize_string(data.get('email'), max_length=320) or '').lower(),
        'date_of_birth': sanitize_string(data.get('date_of_birth'), max_length=40) or '',
        'instagram_handle': instagram.lstrip('@'),
        'linkedin_url': sanitize_string(data.get('linkedin_url'), max_length=500) or '',
        'age_range': validate_enum(data.get('age_range'), AGE_RANGE_OPTIONS, case_sensitive=False)
                     or sanitize_string(data.get('age_range')) or '',
        'neighborhood': validate_enum(data.get('neighborhood'), NEIGHBORHOOD_OPTIONS, case_sensitive=False)
                        or sanitize_string(data.get('neighborhood')) or '',
        'occupation': sanitize_string(data.get('occupation'), max_length=OCCUPATION_MAX_LENGTH + 1) or '',
        'interests': sanitize_list(data.get('interests'), max_items=len(INTEREST_OPTIONS) + 1),
        'marketing_opt_in': coerce_bool(data.get('marketing_opt_in', False)),
        'referral_code': referral_code.upper(),
    }


def validate_signup_payload(data: Any, today: Optional[date] = None) -> Dict[str, Any]:
    """Normalise a submission payload and run every applicant step validator.

    Raises ValidationError listing every failing field.
    """
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')

    normalized = normalize_applicant_data(data)
    errors: Dict[str, str] = {}
    for step in (STEP_PERSONAL, STEP_DEMOGRAPHICS, STEP_INTERESTS):
        errors.update(validate_step(step, normalized, today=today))

    if errors:
        raise ValidationError.from_field_errors(errors)
    return normalized
