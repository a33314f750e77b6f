from datetime import date
from unittest.mock import MagicMock

import pytest
import requests

from config.settings import STEP_CONFIRMATION, STEP_PAYMENT
from signup_form.api_client import WaitlistApiClient
from signup_form.controller import CardSetupError, SignupForm, build_signup_payload
from signup_form.storage import STORAGE_KEY, MemoryStorage
from utils.errors import Conflict, UpstreamUnavailable, ValidationError

TODAY = date(2026, 10, 19)

FIELDS_BY_STEP = [
    {'first_name': 'Sarah', 'last_name': 'Connor', 'email': 'sarah@example.com', 'date_of_birth': '1995-06-15'},
    {'age_range': '30s', 'neighborhood': 'Brickell', 'occupation': 'Designer'},
    {'interests': ['Networking & Mentorship']},
]


class FakeApi:
    def __init__(self):
        self.signups = []
        self.setup_intents = []
        self.confirmations = []
        self.signup_error = None
        self.confirm_error = None

    def signup(self, payload):
        self.signups.append(payload)
        if self.signup_error is not None:
            raise self.signup_error
        return {
            'user': {'id': 'user-1', 'email': payload['email'], 'referral_code': 'SARAH1234',
                     'waitlist_position': 43, 'payment_completed': False},
            'client_secret': 'seti_1_secret_a',
            'stripe_customer_id': 'cus_1',
            'steps': {},
        }

    def create_setup_intent(self, user_id):
        self.setup_intents.append(user_id)
        return {'client_secret': f"seti_{len(self.setup_intents) + 1}_secret_b", 'customer_id': 'cus_1'}

    def confirm_payment(self, user_id, setup_intent_id):
        self.confirmations.append((user_id, setup_intent_id))
        if self.confirm_error is not None:
            raise self.confirm_error
        return {'payment_method_id': 'pm_1', 'setup_intent_status': 'succeeded'}


class FakeCard:
    def __init__(self):
        self.secrets = []
        self.decline = False

    def __call__(self, client_secret):
        self.secrets.append(client_secret)
        if self.decline:
            raise CardSetupError('Your card was declined.')
        intent_id = client_secret.split('_secret_')[0]
        return {'status': 'succeeded', 'setup_intent_id': intent_id, 'payment_method_id': 'pm_1'}


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def card():
    return FakeCard()


@pytest.fixture
def storage():
    return MemoryStorage()


def ready_to_pay(form):
    for fields in FIELDS_BY_STEP:
        for name, value in fields.items():
            form.update_field(name, value)
        form.next()
    assert form.state.current_step == STEP_PAYMENT
    form.update_field('terms_accepted', True)
    form.set_card_complete(True)
    return form


@pytest.fixture
def form(api, card, storage):
    return ready_to_pay(SignupForm(api, card, storage=storage, today=TODAY))


class TestPaymentChain:

    def test_full_submission_reaches_confirmation(self, form, api, card):
        state = form.next()

        assert state.current_step == STEP_CONFIRMATION
        assert state.completion.waitlist_position == 43
        assert state.completion.payment_completed is True
        assert card.secrets == ['seti_1_secret_a']
        assert api.confirmations == [('user-1', 'seti_1')]
        assert api.setup_intents == []

    def test_payload_carries_form_fields(self, form, api):
        form.update_field('referral_code', 'john1234')
        form.next()

        payload = api.signups[0]
        assert payload['referral_code'] == 'JOHN1234'
        assert payload['interests'] == ['Networking & Mentorship']
        assert 'terms_accepted' not in payload

    def test_declined_card_stays_on_payment(self, form, card):
        card.decline = True

        state = form.next()

        assert state.current_step == STEP_PAYMENT
        assert state.payment_error == 'Your card was declined.'
        assert state.is_submitting is False
        assert state.completion.user_id == 'user-1'

    def test_retry_after_decline_does_not_sign_up_again(self, form, api, card):
        card.decline = True
        form.next()
        card.decline = False

        state = form.next()

        assert state.current_step == STEP_CONFIRMATION
        assert len(api.signups) == 1
        assert api.setup_intents == ['user-1']

    def test_existing_email_shows_banner(self, form, api):
        api.signup_error = Conflict('An account with this email already exists')

        state = form.next()

        assert state.current_step == STEP_PAYMENT
        assert state.submit_error == 'An account with this email already exists'
        assert state.completion is None

    def test_server_validation_errors_map_to_fields(self, form, api):
        api.signup_error = ValidationError.from_field_errors({'email': 'Please enter a valid email address'})

        state = form.next()

        assert state.errors['email'] == 'Please enter a valid email address'
        assert state.submit_error == 'Validation failed'

    def test_payment_confirmation_outage(self, form, api):
        api.confirm_error = UpstreamUnavailable('Payment service error: timeout')

        state = form.next()

        assert state.current_step == STEP_PAYMENT
        assert state.payment_error == 'Payment service error: timeout'

    def test_incomplete_card_does_not_submit(self, form, api):
        form.set_card_complete(False)
        state = form.next()

        assert api.signups == []
        assert state.errors['card'] == 'Please complete your card details'


class TestPersistence:

    def test_reload_resumes_step_and_completion(self, form, api, card, storage):
        card.decline = True
        form.next()

        reloaded = SignupForm(api, card, storage=storage, today=TODAY)

        assert reloaded.state.current_step == STEP_PAYMENT
        assert reloaded.state.data['first_name'] == 'Sarah'
        assert reloaded.state.completion.user_id == 'user-1'
        assert reloaded.state.card_complete is False

        card.decline = False
        reloaded.set_card_complete(True)
        assert reloaded.next().current_step == STEP_CONFIRMATION
        assert len(api.signups) == 1

    def test_reset_clears_storage(self, form, storage):
        form.next()
        state = form.reset()

        assert state.current_step == 0
        assert state.completion is None
        assert storage.get_item(STORAGE_KEY) is None

    def test_url_prefill_is_saved(self, api, card, storage):
        form = SignupForm(api, card, storage=storage, today=TODAY)
        form.load_url('https://example.com/?ref=john1234')

        assert SignupForm(api, card, storage=storage).state.data['referral_code'] == 'JOHN1234'


def test_build_signup_payload_drops_empty_fields():
    payload = build_signup_payload({'first_name': 'Sarah', 'instagram_handle': '', 'utm_source': None})
    assert payload == {'first_name': 'Sarah'}


class TestApiClient:

    def _response(self, status, body):
        response = MagicMock()
        response.status_code = status
        response.json.return_value = body
        return response

    def test_signup_returns_data_block(self):
        session = MagicMock()
        session.request.return_value = self._response(201, {'success': True, 'data': {'user': {'id': 'u1'}}})
        client = WaitlistApiClient('https://api.example.com/', session=session)

        assert client.signup({'email': 'a@example.com'}) == {'user': {'id': 'u1'}}
        args, kwargs = session.request.call_args
        assert args == ('POST', 'https://api.example.com/api/signup')
        assert kwargs['json'] == {'email': 'a@example.com'}

    def test_error_status_becomes_typed_error(self):
        session = MagicMock()
        session.request.return_value = self._response(409, {'error': 'An account with this email already exists'})
        client = WaitlistApiClient('https://api.example.com', session=session)

        with pytest.raises(Conflict) as exc_info:
            client.signup({})
        assert exc_info.value.message == 'An account with this email already exists'

    def test_validation_details_survive(self):
        session = MagicMock()
        session.request.return_value = self._response(400, {
            'error': 'Validation failed',
            'details': [{'field': 'email', 'message': 'Please enter a valid email address'}],
        })
        client = WaitlistApiClient('https://api.example.com', session=session)

        with pytest.raises(ValidationError) as exc_info:
            client.signup({})
        assert exc_info.value.field_errors == {'email': 'Please enter a valid email address'}

    def test_network_failure(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError('refused')
        client = WaitlistApiClient('https://api.example.com', session=session)

        with pytest.raises(UpstreamUnavailable):
            client.lookup_referral('JOHN1234')
