"""Rate limiting for the public signup, referral and payment endpoints"""
from flask_limiter import Limiter

from config import settings
from utils.auth import get_client_ip


def get_rate_limit_key():
    """Applicants are anonymous, so limits are per client IP"""
    return f"ip:{get_client_ip()}"


def init_rate_limiter(app):
    """Attach a Limiter to the app using the RATE_LIMIT_* settings"""
    app.config.setdefault('RATELIMIT_ENABLED', settings.RATE_LIMIT_ENABLED)

    return Limiter(
        app=app,
        key_func=get_rate_limit_key,
        default_limits=[settings.RATE_LIMIT_DEFAULT],
        storage_uri=settings.RATE_LIMIT_STORAGE_URI,
        headers_enabled=True
    )


# Presets used by the route decorators
RATE_LIMITS = {
    'strict': '10 per minute',      # Signup and payment setup/confirmation
    'moderate': '30 per minute',    # Admin edits
    'standard': '60 per minute',    # Referral stats
    'generous': '100 per minute',   # Referral code lookups while the applicant types
}
