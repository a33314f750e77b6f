"""Signup form controller

Binds the pure form reducer to storage, the waitlist API, and the card
widget. Every mutation is saved, so a reload resumes where the applicant
left off. Submitting from the Payment step runs:

    signup -> card confirmation -> payment confirmation -> Confirmation

A signup that already went through is never sent again; the stored
completion data is used to resume the payment part of the chain.
"""
from datetime import date
from typing import Any, Callable, Dict, Optional

from config.settings import STEP_PAYMENT
from signup_form.api_client import WaitlistApiClient
from signup_form.state import (
    CompletionData, FormState, GoToStep, Next, PaymentSucceeded, Prev, PrefillReferral,
    Reset, SetCardComplete, SignupCompleted, SubmitFailed, UpdateField,
    apply_url_params, reduce,
)
from signup_form.storage import STORAGE_KEY, MemoryStorage, clear_snapshot, load_snapshot, save_snapshot
from utils.errors import ValidationError, WaitlistError
from utils.logger import get_logger

logger = get_logger('signup_form')

SIGNUP_FIELDS = (
    'first_name', 'last_name', 'email', 'date_of_birth', 'instagram_handle', 'linkedin_url',
    'age_range', 'neighborhood', 'occupation', 'interests', 'marketing_opt_in',
    'referral_code', 'utm_source', 'user_agent',
)

GENERIC_SUBMIT_ERROR = 'Something went wrong creating your account. Please try again.'
GENERIC_PAYMENT_ERROR = 'We could not save your card. Please check the details and try again.'


class CardSetupError(Exception):
    """Raised by the card widget when it cannot confirm a setup intent"""


def build_signup_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    payload = {name: data.get(name) for name in SIGNUP_FIELDS}
    return {k: v for k, v in payload.items() if v not in (None, '')}


class SignupForm:
    """Drives one applicant through the waitlist signup.

    `confirm_card_setup(client_secret)` is the card widget hook. It returns
    a dict with `status`, `setup_intent_id` and `payment_method_id`, or
    raises CardSetupError.
    """

    def __init__(self, api: WaitlistApiClient, confirm_card_setup: Callable[[str], Dict[str, Any]],
                 storage=None, storage_key: str = STORAGE_KEY, today: Optional[date] = None):
        self.api = api
        self.confirm_card_setup = confirm_card_setup
        self.storage = storage if storage is not None else MemoryStorage()
        self.storage_key = storage_key
        self.today = today
        self.state: FormState = load_snapshot(self.storage, key=storage_key, today=today) or FormState()

    def dispatch(self, action) -> FormState:
        self.state = reduce(self.state, action, today=self.today)
        save_snapshot(self.storage, self.state, key=self.storage_key)
        return self.state

    # ==================== Navigation ====================

    def next(self) -> FormState:
        submitting_payment = self.state.current_step == STEP_PAYMENT
        state = self.dispatch(Next())
        if submitting_payment and state.is_submitting:
            return self._submit()
        return state

    def prev(self) -> FormState:
        return self.dispatch(Prev())

    def go_to_step(self, step: int) -> FormState:
        return self.dispatch(GoToStep(step))

    def update_field(self, name: str, value: Any) -> FormState:
        return self.dispatch(UpdateField(name, value))

    def set_card_complete(self, complete: bool) -> FormState:
        return self.dispatch(SetCardComplete(complete))

    def prefill_referral(self, code: str) -> FormState:
        return self.dispatch(PrefillReferral(code))

    def load_url(self, url: str) -> FormState:
        self.state = apply_url_params(self.state, url, today=self.today)
        save_snapshot(self.storage, self.state, key=self.storage_key)
        return self.state

    def reset(self) -> FormState:
        self.state = reduce(self.state, Reset())
        clear_snapshot(self.storage, key=self.storage_key)
        return self.state

    # ==================== Submission ====================

    def _create_account(self) -> Optional[str]:
        """Signup call; returns the client secret or None when the form should stop"""
        try:
            result = self.api.signup(build_signup_payload(self.state.data))
        except ValidationError as e:
            self.dispatch(SubmitFailed(e.message, payment=False, field_errors=e.field_errors))
            return None
        except WaitlistError as e:
            self.dispatch(SubmitFailed(e.message, payment=False))
            return None
        except Exception:
            self.dispatch(SubmitFailed(GENERIC_SUBMIT_ERROR, payment=False))
            raise

        user = result.get('user') or {}
        completion = CompletionData(
            user_id=user['id'],
            referral_code=user.get('referral_code', ''),
            waitlist_position=int(user.get('waitlist_position') or 0),
            stripe_customer_id=result.get('stripe_customer_id'),
        )
        self.dispatch(SignupCompleted(completion))
        logger.info(f"Signup created user {completion.user_id} at position {completion.waitlist_position}")
        return result.get('client_secret') or ''

    def _submit(self) -> FormState:
        client_secret = None
        if self.state.completion is None:
            client_secret = self._create_account()
            if client_secret is None:
                return self.state

        completion = self.state.completion
        try:
            if not client_secret:
                client_secret = self.api.create_setup_intent(completion.user_id).get('client_secret')
            if not client_secret:
                return self.dispatch(SubmitFailed(GENERIC_PAYMENT_ERROR))

            outcome = self.confirm_card_setup(client_secret)
            if outcome.get('status') != 'succeeded':
                message = outcome.get('error') or GENERIC_PAYMENT_ERROR
                return self.dispatch(SubmitFailed(message))

            confirmed = self.api.confirm_payment(completion.user_id, outcome['setup_intent_id'])
        except CardSetupError as e:
            return self.dispatch(SubmitFailed(str(e) or GENERIC_PAYMENT_ERROR))
        except WaitlistError as e:
            return self.dispatch(SubmitFailed(e.message))
        except Exception:
            self.dispatch(SubmitFailed(GENERIC_PAYMENT_ERROR))
            raise

        payment_method_id = confirmed.get('payment_method_id') or outcome.get('payment_method_id')
        return self.dispatch(PaymentSucceeded(payment_method_id))
