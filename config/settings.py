"""Application settings and fixed option lists"""
import os
from dotenv import load_dotenv

load_dotenv()

# Form steps, in order
STEP_PERSONAL = 0
STEP_DEMOGRAPHICS = 1
STEP_INTERESTS = 2
STEP_PAYMENT = 3
STEP_CONFIRMATION = 4
FORM_STEPS = [STEP_PERSONAL, STEP_DEMOGRAPHICS, STEP_INTERESTS, STEP_PAYMENT, STEP_CONFIRMATION]

STEP_NAMES = {
    STEP_PERSONAL: 'Personal Information',
    STEP_DEMOGRAPHICS: 'Location & Background',
    STEP_INTERESTS: 'Interests & Preferences',
    STEP_PAYMENT: 'Payment Information',
    STEP_CONFIRMATION: 'Confirmation',
}

AGE_RANGE_OPTIONS = ['20s', '30s', '40s', '50s', '60s+']

NEIGHBORHOOD_OPTIONS = [
    'Brickell',
    'Coconut Grove',
    'Coral Gables',
    'Edgewater or Midtown',
    'South Beach',
    'Sunset Harbor',
    'Miami Beach',
    'Fort Lauderdale',
    'Boca Raton',
    'Palm Beach',
    'Other (please list)',
]

INTEREST_OPTIONS = [
    'Social Events & Fitness',
    'Networking & Mentorship',
    'Business & Finance Talks',
    'Member Perks & Discounts',
]

# Field limits
NAME_MAX_LENGTH = 50
OCCUPATION_MAX_LENGTH = 500
INSTAGRAM_MAX_LENGTH = 30
MINIMUM_AGE = 18
MAXIMUM_AGE = 100

# Referral codes: uppercase(seed)[:10] + 4 random digits
REFERRAL_SEED_MAX_LENGTH = 10
REFERRAL_RANDOM_DIGITS = 4
REFERRAL_CODE_MAX_ATTEMPTS = 10
REFERRAL_SEED_FALLBACK = 'MEMBER'

# Insert attempts when a concurrent signup takes the same waitlist position
POSITION_ASSIGN_ATTEMPTS = int(os.environ.get('POSITION_ASSIGN_ATTEMPTS', 5))

SITE_URL = os.environ.get('SITE_URL', 'http://localhost:3000').rstrip('/')

# Stripe
STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY')
STRIPE_METADATA_SOURCE = os.environ.get('STRIPE_METADATA_SOURCE', 'membership_waitlist')

# Email (AWS SES)
EMAIL_ENABLED = os.environ.get('EMAIL_ENABLED', 'false').lower() == 'true'
SES_FROM_EMAIL = os.environ.get('SES_FROM_EMAIL', 'hello@example.com')
SES_FROM_NAME = os.environ.get('SES_FROM_NAME', 'Membership Waitlist')
AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')

# Admin session tokens (comma-separated)
ADMIN_API_TOKENS = [t.strip() for t in os.environ.get('ADMIN_API_TOKENS', '').split(',') if t.strip()]

CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', 'http://localhost:3000').split(',') if o.strip()]

# Rate limiting (flask-limiter); storage URI may point at Redis when running several workers
RATE_LIMIT_ENABLED = os.environ.get('RATE_LIMIT_ENABLED', 'true').lower() == 'true'
RATE_LIMIT_DEFAULT = os.environ.get('RATE_LIMIT_DEFAULT', '100 per minute')
RATE_LIMIT_STORAGE_URI = os.environ.get('RATE_LIMIT_STORAGE_URI', 'memory://')
