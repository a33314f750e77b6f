"""Multi-step signup form state and its reducer

The form moves linearly through Personal -> Demographics -> Interests ->
Payment -> Confirmation. All changes go through ``reduce(state, action)``,
which returns a new ``FormState`` and never mutates its input. Leaving the
Payment step is not done here: ``Next`` on Payment only marks the form as
submitting, and the controller dispatches ``PaymentSucceeded`` once the
payment chain has finished.
"""
import copy
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from config.settings import (
    FORM_STEPS, STEP_NAMES,
    STEP_PERSONAL, STEP_DEMOGRAPHICS, STEP_INTERESTS, STEP_PAYMENT, STEP_CONFIRMATION,
)
from utils.validation import validate_step

EMPTY_FORM_DATA: Dict[str, Any] = {
    # Step 1: Personal
    'first_name': '',
    'last_name': '',
    'email': '',
    'date_of_birth': '',
    'instagram_handle': '',
    'linkedin_url': '',
    # Step 2: Demographics
    'age_range': '',
    'neighborhood': '',
    'occupation': '',
    # Step 3: Interests
    'interests': [],
    'marketing_opt_in': False,
    # Step 4: Payment & referral
    'referral_code': '',
    'terms_accepted': False,
    # Tracking
    'utm_source': '',
    'utm_medium': '',
    'utm_campaign': '',
    'user_agent': '',
}

STEP_FIELDS: Dict[int, List[str]] = {
    STEP_PERSONAL: ['first_name', 'last_name', 'email', 'date_of_birth', 'instagram_handle', 'linkedin_url'],
    STEP_DEMOGRAPHICS: ['age_range', 'neighborhood', 'occupation'],
    STEP_INTERESTS: ['interests'],
    STEP_PAYMENT: ['terms_accepted', 'card'],
    STEP_CONFIRMATION: [],
}

GATED_STEPS = (STEP_PERSONAL, STEP_DEMOGRAPHICS, STEP_INTERESTS, STEP_PAYMENT)


@dataclass
class CompletionData:
    """What the server assigned once the signup went through"""
    user_id: str
    referral_code: str
    waitlist_position: int
    stripe_customer_id: Optional[str] = None
    payment_completed: bool = False
    payment_method_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'referral_code': self.referral_code,
            'waitlist_position': self.waitlist_position,
            'stripe_customer_id': self.stripe_customer_id,
            'payment_completed': self.payment_completed,
            'payment_method_id': self.payment_method_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CompletionData':
        return cls(
            user_id=data['user_id'],
            referral_code=data['referral_code'],
            waitlist_position=int(data['waitlist_position']),
            stripe_customer_id=data.get('stripe_customer_id'),
            payment_completed=bool(data.get('payment_completed', False)),
            payment_method_id=data.get('payment_method_id'),
        )


@dataclass
class FormState:
    data: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(EMPTY_FORM_DATA))
    current_step: int = STEP_PERSONAL
    step_valid: Dict[int, bool] = field(default_factory=lambda: {step: False for step in GATED_STEPS})
    errors: Dict[str, str] = field(default_factory=dict)
    card_complete: bool = False
    is_submitting: bool = False
    submit_error: Optional[str] = None
    payment_error: Optional[str] = None
    completion: Optional[CompletionData] = None

    @property
    def step_name(self) -> str:
        return STEP_NAMES.get(self.current_step, 'Unknown Step')

    @property
    def progress(self) -> int:
        return round((self.current_step + 1) / len(FORM_STEPS) * 100)

    @property
    def can_go_next(self) -> bool:
        return self.step_valid.get(self.current_step, False)

    @property
    def is_complete(self) -> bool:
        return self.current_step == STEP_CONFIRMATION


# ==================== Actions ====================

@dataclass
class Next:
    pass


@dataclass
class Prev:
    pass


@dataclass
class GoToStep:
    step: int


@dataclass
class UpdateField:
    name: str
    value: Any


@dataclass
class SetCardComplete:
    complete: bool


@dataclass
class PrefillReferral:
    code: str


@dataclass
class Reset:
    pass


@dataclass
class SignupCompleted:
    completion: CompletionData


@dataclass
class PaymentSucceeded:
    payment_method_id: str


@dataclass
class SubmitFailed:
    message: str
    payment: bool = True
    field_errors: Dict[str, str] = field(default_factory=dict)


# ==================== Reducer ====================

def _validity(data: Dict[str, Any], card_complete: bool, today: Optional[date]) -> Dict[int, bool]:
    return {
        step: not validate_step(step, data, card_complete=card_complete, today=today)
        for step in GATED_STEPS
    }


def initial_state(referral_code: Optional[str] = None, today: Optional[date] = None) -> FormState:
    state = FormState()
    if referral_code:
        state = reduce(state, PrefillReferral(referral_code), today=today)
    return state


def with_fresh_validation(state: FormState, today: Optional[date] = None) -> FormState:
    """Recompute per-step validity without producing error messages"""
    return replace(state, step_valid=_validity(state.data, state.card_complete, today), errors={})


def _normalize_field(name: str, value: Any) -> Any:
    if name == 'referral_code' and isinstance(value, str):
        return value.strip().upper()
    if name == 'interests':
        return list(value or [])
    return value


def _next(state: FormState, today: Optional[date]) -> FormState:
    step = state.current_step
    if step == STEP_CONFIRMATION or state.is_submitting:
        return state

    step_errors = validate_step(step, state.data, card_complete=state.card_complete, today=today)
    step_valid = dict(state.step_valid)
    step_valid[step] = not step_errors

    errors = {k: v for k, v in state.errors.items() if k not in STEP_FIELDS[step]}
    if step_errors:
        errors.update(step_errors)
        return replace(state, step_valid=step_valid, errors=errors)

    if step == STEP_PAYMENT:
        return replace(state, step_valid=step_valid, errors=errors,
                       is_submitting=True, submit_error=None, payment_error=None)

    return replace(state, step_valid=step_valid, errors=errors, current_step=step + 1)


def reduce(state: FormState, action: Any, today: Optional[date] = None) -> FormState:
    """Apply one action and return the new state"""
    if isinstance(action, Next):
        return _next(state, today)

    if isinstance(action, Prev):
        # Confirmation only exits through Reset
        if state.current_step in (STEP_PERSONAL, STEP_CONFIRMATION) or state.is_submitting:
            return state
        return replace(state, current_step=state.current_step - 1)

    if isinstance(action, GoToStep):
        if action.step not in FORM_STEPS:
            raise ValueError(f"Unknown form step: {action.step}")
        return replace(state, current_step=action.step)

    if isinstance(action, UpdateField):
        if action.name not in EMPTY_FORM_DATA:
            raise ValueError(f"Unknown form field: {action.name}")
        data = dict(state.data)
        data[action.name] = _normalize_field(action.name, action.value)
        errors = {k: v for k, v in state.errors.items() if k != action.name}
        step_valid = dict(state.step_valid)
        if state.current_step in GATED_STEPS:
            step_valid[state.current_step] = not validate_step(
                state.current_step, data, card_complete=state.card_complete, today=today
            )
        return replace(state, data=data, errors=errors, step_valid=step_valid)

    if isinstance(action, SetCardComplete):
        errors = {k: v for k, v in state.errors.items() if k != 'card'}
        step_valid = dict(state.step_valid)
        step_valid[STEP_PAYMENT] = not validate_step(STEP_PAYMENT, state.data, card_complete=action.complete)
        return replace(state, card_complete=action.complete, errors=errors, step_valid=step_valid)

    if isinstance(action, PrefillReferral):
        code = (action.code or '').strip().upper()
        if not code:
            return state
        data = dict(state.data)
        data['referral_code'] = code
        if not data.get('utm_source'):
            data['utm_source'] = 'referral'
        return replace(state, data=data)

    if isinstance(action, Reset):
        return FormState()

    if isinstance(action, SignupCompleted):
        return replace(state, completion=action.completion)

    if isinstance(action, PaymentSucceeded):
        completion = state.completion
        if completion is not None:
            completion = replace(completion, payment_completed=True, payment_method_id=action.payment_method_id)
        return replace(state, completion=completion, current_step=STEP_CONFIRMATION,
                       is_submitting=False, submit_error=None, payment_error=None)

    if isinstance(action, SubmitFailed):
        errors = dict(state.errors)
        errors.update(action.field_errors)
        if action.payment:
            return replace(state, is_submitting=False, payment_error=action.message, errors=errors)
        return replace(state, is_submitting=False, submit_error=action.message, errors=errors)

    raise ValueError(f"Unknown form action: {type(action).__name__}")


# ==================== URL handling ====================

def apply_url_params(state: FormState, url: str, today: Optional[date] = None) -> FormState:
    """Pick up ?ref=, utm_* and ?step= from the page URL"""
    params = {k: v[0] for k, v in parse_qs(urlparse(url).query).items() if v}

    ref = params.get('ref')
    if ref and not state.data.get('referral_code'):
        state = reduce(state, PrefillReferral(ref), today=today)

    if params.get('utm_source') and not state.data.get('utm_source'):
        data = dict(state.data)
        for key in ('utm_source', 'utm_medium', 'utm_campaign'):
            if params.get(key):
                data[key] = params[key]
        state = replace(state, data=data)

    step = params.get('step')
    if step is not None and step.isdigit() and int(step) in FORM_STEPS:
        state = reduce(state, GoToStep(int(step)), today=today)

    return state


# ==================== Snapshots ====================

SNAPSHOT_VERSION = 1


def to_snapshot(state: FormState) -> Dict[str, Any]:
    """The persisted part of the state: form data, current step, completion data"""
    return {
        'version': SNAPSHOT_VERSION,
        'current_step': state.current_step,
        'data': copy.deepcopy(state.data),
        'completion': state.completion.to_dict() if state.completion else None,
    }


def from_snapshot(snapshot: Dict[str, Any], today: Optional[date] = None) -> FormState:
    """Rebuild a state from a snapshot; validation is recomputed, never restored"""
    if snapshot.get('version') != SNAPSHOT_VERSION:
        raise ValueError(f"Unsupported snapshot version: {snapshot.get('version')}")

    data = copy.deepcopy(EMPTY_FORM_DATA)
    data.update({k: v for k, v in (snapshot.get('data') or {}).items() if k in EMPTY_FORM_DATA})

    step = snapshot.get('current_step', STEP_PERSONAL)
    if step not in FORM_STEPS:
        step = STEP_PERSONAL

    completion = snapshot.get('completion')
    state = FormState(
        data=data,
        current_step=step,
        completion=CompletionData.from_dict(completion) if completion else None,
    )
    return with_fresh_validation(state, today=today)
