"""Waitlist signup orchestration

Required steps (duplicate check, referral code, position, referral
attribution, user insert) either all succeed or the signup fails. Payment
setup, the referral edge, the welcome email and the referrer notification
are best-effort: their outcome is reported per step and never fails the
signup.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from config import settings
from services import data_store
from services.applicant import Applicant
from services.email_service import get_email_dispatcher
from services.payment_service import get_payment_gateway, prepare_payment
from services.referral_service import (
    build_referral_link, find_referrer, generate_unique_referral_code,
    increment_referral_count, record_referral,
)
from utils.errors import Conflict, DuplicateKeyError, UpstreamUnavailable
from utils.logger import log_info, log_step_failure, log_warning
from utils.validation import validate_signup_payload

SUCCEEDED = 'succeeded'
SKIPPED = 'skipped'
FAILED = 'failed'


@dataclass
class StepResult:
    status: str
    reason: Optional[str] = None

    @classmethod
    def succeeded(cls) -> 'StepResult':
        return cls(SUCCEEDED)

    @classmethod
    def skipped(cls, reason: str) -> 'StepResult':
        return cls(SKIPPED, reason)

    @classmethod
    def failed(cls, reason: str) -> 'StepResult':
        return cls(FAILED, reason)

    def to_dict(self) -> Dict[str, Any]:
        return {'status': self.status, 'reason': self.reason}


@dataclass
class SignupResult:
    user: Dict[str, Any]
    client_secret: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    steps: Dict[str, StepResult] = field(default_factory=dict)

    @property
    def user_id(self) -> str:
        return self.user['id']

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user': {
                'id': self.user['id'],
                'email': self.user['email'],
                'referral_code': self.user['referral_code'],
                'waitlist_position': self.user['waitlist_position'],
                'payment_completed': bool(self.user.get('payment_completed')),
            },
            'client_secret': self.client_secret,
            'stripe_customer_id': self.stripe_customer_id,
            'steps': {name: result.to_dict() for name, result in self.steps.items()},
        }


class WaitlistService:
    """Creates waitlist users and drives the best-effort follow-up steps"""

    def __init__(self, store=None, gateway=None, mailer=None, email_enabled: Optional[bool] = None):
        self.store = store or data_store.get_data_store()
        self.gateway = gateway or get_payment_gateway()
        self.mailer = mailer or get_email_dispatcher()
        self.email_enabled = settings.EMAIL_ENABLED if email_enabled is None else email_enabled

    # ==================== Required steps ====================

    def assign_position(self) -> int:
        """Next waitlist position: current number of users + 1"""
        return self.store.count('users') + 1

    def _next_free_position(self) -> int:
        """Position to retry with after a conflict; never below the highest issued position + 1"""
        highest = self.store.select(
            'users', columns='waitlist_position', order='waitlist_position', desc=True, limit=1
        )
        highest_position = highest[0]['waitlist_position'] if highest else 0
        return max(self.assign_position(), (highest_position or 0) + 1)

    def _attribute_referral(self, applicant: Applicant) -> Optional[Dict[str, Any]]:
        """Credit the owner of the supplied code; unknown codes are ignored"""
        code = applicant.referred_by
        if not code:
            return None

        referrer = find_referrer(code, store=self.store)
        if referrer is None:
            log_info(f"Ignoring unknown referral code {code} for {applicant.email}")
            return None

        increment_referral_count(referrer, store=self.store)
        return referrer

    def _insert_user(self, applicant: Applicant, referral_code: str, position: int) -> Dict[str, Any]:
        """Insert the user row, retrying when a concurrent signup took the position or code"""
        for _ in range(settings.POSITION_ASSIGN_ATTEMPTS):
            try:
                return self.store.insert('users', applicant.to_row(referral_code, position))
            except DuplicateKeyError as e:
                if e.column == 'email':
                    raise Conflict('An account with this email already exists') from e
                if e.column == 'referral_code':
                    referral_code = generate_unique_referral_code(applicant.first_name, store=self.store)
                elif e.column == 'waitlist_position':
                    taken = position
                    position = self._next_free_position()
                    log_warning(f"Waitlist position {taken} taken concurrently, retrying with {position}")
                else:
                    raise UpstreamUnavailable('Failed to create user account') from e

        raise UpstreamUnavailable('Could not assign a waitlist position, please try again')

    # ==================== Best-effort steps ====================

    def _setup_payment(self, user: Dict[str, Any], result: SignupResult) -> StepResult:
        try:
            payment = prepare_payment(user, store=self.store, gateway=self.gateway)
        except Exception as e:
            log_step_failure('payment_setup', user['id'], e)
            return StepResult.failed(str(e))

        result.client_secret = payment['client_secret']
        result.stripe_customer_id = payment['customer_id']
        result.user['stripe_customer_id'] = payment['customer_id']
        return StepResult.succeeded()

    def _record_referral(self, referrer: Optional[Dict[str, Any]], user: Dict[str, Any],
                         code: Optional[str]) -> StepResult:
        if referrer is None:
            return StepResult.skipped('no referrer')
        try:
            record_referral(referrer['id'], user['id'], code, store=self.store)
        except Exception as e:
            log_step_failure('referral_record', user['id'], e)
            return StepResult.failed(str(e))
        return StepResult.succeeded()

    def _send_welcome(self, user: Dict[str, Any]) -> StepResult:
        if not self.email_enabled:
            return StepResult.skipped('email disabled')
        try:
            self.mailer.send(user['email'], 'welcome', {
                'first_name': user['first_name'],
                'email': user['email'],
                'waitlist_position': user['waitlist_position'],
                'referral_code': user['referral_code'],
                'referral_url': build_referral_link(user['referral_code']),
            }, user_id=user['id'])
        except Exception as e:
            log_step_failure('welcome_email', user['id'], e)
            return StepResult.failed(str(e))
        return StepResult.succeeded()

    def _notify_referrer(self, referrer: Optional[Dict[str, Any]], user: Dict[str, Any],
                         referral_step: StepResult) -> StepResult:
        """Tell the referrer a friend joined; only once the referral edge is recorded"""
        if referrer is None:
            return StepResult.skipped('no referrer')
        if referral_step.status != SUCCEEDED:
            return StepResult.skipped('referral not recorded')
        if not self.email_enabled:
            return StepResult.skipped('email disabled')
        if not referrer.get('email'):
            return StepResult.skipped('referrer has no email')
        try:
            self.mailer.send(referrer['email'], 'referral_success', {
                'first_name': referrer.get('first_name') or 'there',
                'friend_name': f"{user['first_name']} {user.get('last_name') or ''}".strip(),
                'referral_code': referrer['referral_code'],
                'referral_url': build_referral_link(referrer['referral_code']),
            }, user_id=referrer['id'])
        except Exception as e:
            log_step_failure('referrer_email', user['id'], e)
            return StepResult.failed(str(e))
        return StepResult.succeeded()

    # ==================== Orchestration ====================

    def submit(self, applicant: Applicant) -> SignupResult:
        """Create the waitlist user for an already-validated applicant"""
        if self.store.find_by('users', email=applicant.email) is not None:
            raise Conflict('An account with this email already exists')

        referral_code = generate_unique_referral_code(applicant.first_name, store=self.store)
        position = self.assign_position()
        referrer = self._attribute_referral(applicant)
        user = self._insert_user(applicant, referral_code, position)

        log_info(f"User {user['id']} joined the waitlist at #{user['waitlist_position']}")

        result = SignupResult(user=user)
        result.steps['payment_setup'] = self._setup_payment(user, result)
        result.steps['referral_record'] = self._record_referral(referrer, user, applicant.referred_by)
        result.steps['welcome_email'] = self._send_welcome(user)
        result.steps['referrer_email'] = self._notify_referrer(referrer, user, result.steps['referral_record'])
        return result


def join_waitlist(data: Dict[str, Any], tracking: Optional[Dict[str, Any]] = None,
                  service: Optional[WaitlistService] = None) -> SignupResult:
    """Validate a submission payload and run the signup"""
    validated = validate_signup_payload(data)
    applicant = Applicant.from_validated(validated, tracking=tracking)
    service = service or WaitlistService()
    return service.submit(applicant)
