"""Admin service for reviewing and editing waitlist users"""
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from config import settings
from config.settings import AGE_RANGE_OPTIONS, NEIGHBORHOOD_OPTIONS, INTEREST_OPTIONS
from services import data_store
from services.applicant import utc_now_iso
from utils.errors import Conflict, NotFound, ValidationError
from utils.logger import log_info
from utils.validation import (
    sanitize_json_input, check_name, check_email, check_date_of_birth,
    check_instagram_handle, check_linkedin_url, check_occupation, check_interests,
)

USER_COLUMNS = (
    'id, first_name, last_name, email, date_of_birth, instagram_handle, linkedin_url, '
    'age_range, neighborhood, occupation, interests, marketing_opt_in, referral_code, '
    'referred_by, waitlist_position, referral_count, payment_completed, created_at, updated_at'
)

SEARCH_COLUMNS = ['first_name', 'last_name', 'email', 'referral_code']

IMMUTABLE_FIELDS = {'id', 'referral_code', 'waitlist_position', 'referral_count', 'created_at', 'updated_at'}

ADMIN_EDIT_SCHEMA = {
    'first_name': {'type': 'string', 'max_length': 200},
    'last_name': {'type': 'string', 'max_length': 200},
    'email': {'type': 'email'},
    'date_of_birth': {'type': 'string', 'max_length': 40},
    'instagram_handle': {'type': 'string', 'max_length': 100},
    'linkedin_url': {'type': 'string', 'max_length': 500},
    'age_range': {'type': 'enum', 'allowed_values': AGE_RANGE_OPTIONS},
    'neighborhood': {'type': 'enum', 'allowed_values': NEIGHBORHOOD_OPTIONS},
    'occupation': {'type': 'string', 'max_length': 1000},
    'interests': {'type': 'list', 'max_items': len(INTEREST_OPTIONS)},
    'marketing_opt_in': {'type': 'bool'},
    'payment_completed': {'type': 'bool'},
}

FIELD_CHECKS = {
    'first_name': lambda v: check_name(v, 'First name'),
    'last_name': lambda v: check_name(v, 'Last name'),
    'email': check_email,
    'date_of_birth': check_date_of_birth,
    'instagram_handle': check_instagram_handle,
    'linkedin_url': check_linkedin_url,
    'occupation': check_occupation,
    'interests': check_interests,
}


def is_admin(token: Optional[str]) -> bool:
    """Check the admin session token against ADMIN_API_TOKENS (comma-separated)"""
    if not token:
        return False
    return any(hmac.compare_digest(token, allowed) for allowed in settings.ADMIN_API_TOKENS)


def list_users(search: Optional[str] = None, limit: int = 50, offset: int = 0, store=None) -> Dict[str, Any]:
    """Users in waitlist order, optionally filtered by name/email/code"""
    store = store or data_store.get_data_store()
    users = store.select(
        'users',
        columns=USER_COLUMNS,
        search=(SEARCH_COLUMNS, search) if search else None,
        order='waitlist_position',
        limit=limit,
        offset=offset,
    )
    return {'users': users, 'total': store.count('users'), 'limit': limit, 'offset': offset}


def get_user(user_id: str, store=None) -> Dict[str, Any]:
    store = store or data_store.get_data_store()
    user = store.find_by('users', id=user_id)
    if user is None:
        raise NotFound('User not found')
    return user


def update_user(user_id: str, patch: Any, store=None) -> Dict[str, Any]:
    """Apply an admin edit. Ownership and ordering fields cannot be changed."""
    if not isinstance(patch, dict) or not patch:
        raise ValidationError('No data provided')

    errors = {}
    for name in patch:
        if name in IMMUTABLE_FIELDS:
            errors[name] = f"{name} cannot be changed"
        elif name not in ADMIN_EDIT_SCHEMA:
            errors[name] = f"Unknown field: {name}"
    if errors:
        raise ValidationError.from_field_errors(errors)

    try:
        cleaned = sanitize_json_input(patch, {k: ADMIN_EDIT_SCHEMA[k] for k in patch})
    except ValueError as e:
        raise ValidationError(str(e))

    for name, value in cleaned.items():
        check = FIELD_CHECKS.get(name)
        message = check(value) if check else None
        if message:
            errors[name] = message
    if errors:
        raise ValidationError.from_field_errors(errors)

    store = store or data_store.get_data_store()
    user = get_user(user_id, store=store)

    new_email = cleaned.get('email')
    if new_email and new_email != user.get('email'):
        other = store.find_by('users', email=new_email)
        if other is not None and other['id'] != user_id:
            raise Conflict('An account with this email already exists')

    cleaned['updated_at'] = utc_now_iso()
    updated = store.update('users', user_id, cleaned)
    log_info(f"Admin updated user {user_id}: {', '.join(sorted(k for k in cleaned if k != 'updated_at'))}")
    return updated or {**user, **cleaned}


def get_stats(now: Optional[datetime] = None, store=None) -> Dict[str, Any]:
    """Headline counters for the admin dashboard"""
    store = store or data_store.get_data_store()
    now = now or datetime.now(timezone.utc)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)

    total_users = store.count('users')
    today_signups = store.count('users', conditions=[
        ('created_at', 'gte', today.isoformat()),
        ('created_at', 'lt', tomorrow.isoformat()),
    ])
    total_referrals = store.count('users', conditions=[('referred_by', 'not_is', 'null')])
    payments_completed = store.count('users', payment_completed=True)

    top_referrers = store.select(
        'users',
        columns='first_name, last_name, referral_count, waitlist_position',
        conditions=[('referral_count', 'gt', 0)],
        order='referral_count', desc=True, limit=5,
    )
    recent_signups = store.select(
        'users',
        columns='id, first_name, last_name, email, waitlist_position, created_at',
        order='created_at', desc=True, limit=5,
    )

    return {
        'total_users': total_users,
        'today_signups': today_signups,
        'total_referrals': total_referrals,
        'payments_completed': payments_completed,
        'conversion_rate': round(total_referrals / total_users * 100) if total_users else 0,
        'top_referrers': [
            {
                'name': f"{u.get('first_name', '')} {u.get('last_name', '')}".strip(),
                'referral_count': u.get('referral_count') or 0,
                'position': u.get('waitlist_position') or 0,
            }
            for u in top_referrers
        ],
        'recent_signups': [
            {
                'id': u['id'],
                'name': f"{u.get('first_name', '')} {u.get('last_name', '')}".strip(),
                'email': u.get('email'),
                'position': u.get('waitlist_position') or 0,
                'created_at': u.get('created_at'),
            }
            for u in recent_signups
        ],
    }
