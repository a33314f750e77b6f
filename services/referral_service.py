"""Referral codes, attribution, and referral lookups"""
import re
import secrets
import time
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from config.settings import (
    REFERRAL_SEED_MAX_LENGTH, REFERRAL_RANDOM_DIGITS, REFERRAL_CODE_MAX_ATTEMPTS,
    REFERRAL_SEED_FALLBACK, SITE_URL,
)
from services import data_store
from services.applicant import utc_now_iso
from utils.errors import NotFound, ValidationError
from utils.logger import log_debug, log_info, log_warning

# Seed (up to 10 chars) + 4 digits, optionally suffixed with the collision fallback timestamp
REFERRAL_CODE_PATTERN = re.compile(
    r'^[A-Z0-9]{1,%d}\d{%d}(_\d+)?$' % (REFERRAL_SEED_MAX_LENGTH, REFERRAL_RANDOM_DIGITS)
)


def normalize_seed(seed_name: str) -> str:
    """Uppercase alphanumeric prefix of the seed name"""
    seed = re.sub(r'[^A-Z0-9]', '', (seed_name or '').upper())
    return seed[:REFERRAL_SEED_MAX_LENGTH] or REFERRAL_SEED_FALLBACK


def random_digits() -> str:
    """Random digits with no leading zero (1000-9999)"""
    low = 10 ** (REFERRAL_RANDOM_DIGITS - 1)
    return str(low + secrets.randbelow(9 * low))


def generate_referral_code(seed_name: str) -> str:
    """Candidate code, not guaranteed unique"""
    return f"{normalize_seed(seed_name)}{random_digits()}"


def is_referral_code_format(code: Optional[str]) -> bool:
    return bool(code) and bool(REFERRAL_CODE_PATTERN.match(code))


def generate_unique_referral_code(seed_name: str, store=None) -> str:
    """Generate a code no existing user owns.

    After REFERRAL_CODE_MAX_ATTEMPTS collisions the last candidate gets a
    millisecond timestamp suffix and is accepted without another check.
    Data store errors propagate.
    """
    store = store or data_store.get_data_store()

    candidate = None
    for _ in range(REFERRAL_CODE_MAX_ATTEMPTS):
        candidate = generate_referral_code(seed_name)
        if store.find_by('users', referral_code=candidate) is None:
            return candidate
        log_debug(f"Referral code {candidate} already taken")

    fallback = f"{candidate}_{int(time.time() * 1000)}"
    log_warning(f"Referral code space exhausted for seed '{normalize_seed(seed_name)}', using {fallback}")
    return fallback


def find_referrer(code: Optional[str], store=None) -> Optional[Dict[str, Any]]:
    """Soft lookup of the user owning a code; blank or unknown codes return None.

    Any non-blank code is matched exactly, whatever its shape, so codes issued
    under an older format still resolve.
    """
    code = (code or '').strip().upper()
    if not code:
        return None
    store = store or data_store.get_data_store()
    return store.find_by('users', referral_code=code)


def increment_referral_count(referrer: Dict[str, Any], store=None) -> int:
    """Bump a referrer's referral_count by one and return the new value"""
    store = store or data_store.get_data_store()
    new_count = (referrer.get('referral_count') or 0) + 1
    store.update('users', referrer['id'], {
        'referral_count': new_count,
        'updated_at': utc_now_iso(),
    })
    return new_count


def record_referral(referrer_id: str, referee_id: str, code: str, store=None) -> Dict[str, Any]:
    """Create the referrer -> referee edge (one per referee)"""
    store = store or data_store.get_data_store()
    edge = store.insert('referrals', {
        'referrer_id': referrer_id,
        'referee_id': referee_id,
        'referral_code': code,
        'created_at': utc_now_iso(),
    })
    log_info(f"Recorded referral via {code}", referrer_id=referrer_id, user_id=referee_id)
    return edge


def build_referral_link(code: str) -> str:
    query = urlencode({
        'ref': code,
        'utm_source': 'referral',
        'utm_medium': 'link',
        'utm_campaign': 'waitlist',
    })
    return f"{SITE_URL}/?{query}"


def lookup_referral(code: Optional[str], store=None) -> Dict[str, Any]:
    """Display information about the owner of a referral code"""
    code = (code or '').strip().upper()
    if not code:
        raise ValidationError('Referral code parameter is required')

    referrer = find_referrer(code, store=store)
    if referrer is None:
        if not is_referral_code_format(code):
            raise NotFound('Referral code not found. Codes look like NAME1234.')
        raise NotFound('Referral code not found')

    return {
        'valid': True,
        'referrer': {
            'first_name': referrer.get('first_name'),
            'referral_count': referrer.get('referral_count') or 0,
            'waitlist_position': referrer.get('waitlist_position'),
        },
        'message': f"Valid referral code from {referrer.get('first_name')}!",
    }


def get_referral_stats(user_id: str, store=None) -> Dict[str, Any]:
    """Waitlist standing and referral totals for one user"""
    if not user_id:
        raise ValidationError('user_id is required')

    store = store or data_store.get_data_store()
    user = store.find_by('users', id=user_id)
    if user is None:
        raise NotFound('User not found')

    total_users = store.count('users')
    friends_joined = store.count('referrals', referrer_id=user_id)
    position = user.get('waitlist_position') or 0

    return {
        'waitlist_position': position,
        'total_users': total_users,
        'referral_count': user.get('referral_count') or 0,
        'friends_joined': friends_joined,
        'percentile': round(position / total_users * 100) if total_users else 0,
        'referral_code': user.get('referral_code'),
        'referral_link': build_referral_link(user.get('referral_code')),
    }
