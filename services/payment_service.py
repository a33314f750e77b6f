"""Payment service for Stripe setup intents (save a card now, charge on acceptance)"""
from typing import Any, Dict, Optional

import stripe

from config import settings
from services import data_store
from services.applicant import utc_now_iso
from utils.errors import InvalidState, NotFound, UpstreamUnavailable, ValidationError
from utils.logger import log_info, log_warning


def _attr(obj, name):
    """Read a field from a Stripe object or a plain id string"""
    if obj is None:
        return None
    if isinstance(obj, str):
        return obj if name == 'id' else None
    return getattr(obj, name, None)


class PaymentGateway:
    """Narrow wrapper over the Stripe customer and setup intent APIs"""

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key
        self._initialized = False

    def _ensure_initialized(self):
        """Lazy initialization of Stripe API key"""
        if not self._initialized:
            api_key = self._api_key or settings.STRIPE_SECRET_KEY
            if not api_key:
                raise UpstreamUnavailable("Payment service not configured. Please set STRIPE_SECRET_KEY.")
            stripe.api_key = api_key
            self._initialized = True

    def create_or_get_customer(self, email: str, name: str, existing_id: Optional[str] = None) -> str:
        """Return existing_id if Stripe still has that customer, otherwise create one"""
        self._ensure_initialized()

        if existing_id:
            try:
                customer = stripe.Customer.retrieve(existing_id)
                if not _attr(customer, 'deleted'):
                    return existing_id
                log_warning(f"Stripe customer {existing_id} was deleted, creating a new one")
            except stripe.InvalidRequestError:
                log_warning(f"Stripe customer {existing_id} not found, creating a new one")
            except stripe.StripeError as e:
                raise UpstreamUnavailable(f"Payment service error: {e.user_message or str(e)}") from e

        try:
            customer = stripe.Customer.create(
                email=email,
                name=name,
                metadata={'source': settings.STRIPE_METADATA_SOURCE},
            )
        except stripe.StripeError as e:
            raise UpstreamUnavailable(f"Payment service error: {e.user_message or str(e)}") from e

        log_info(f"Created Stripe customer {customer.id} for {email}")
        return customer.id

    def create_setup_intent(self, customer_id: str) -> str:
        """Off-session setup intent for the customer; returns its client secret"""
        self._ensure_initialized()
        try:
            intent = stripe.SetupIntent.create(
                customer=customer_id,
                usage='off_session',
                metadata={'source': settings.STRIPE_METADATA_SOURCE},
            )
        except stripe.StripeError as e:
            raise UpstreamUnavailable(f"Payment service error: {e.user_message or str(e)}") from e
        return intent.client_secret

    def retrieve_setup_intent(self, setup_intent_id: str) -> Dict[str, Any]:
        self._ensure_initialized()
        try:
            intent = stripe.SetupIntent.retrieve(setup_intent_id)
        except stripe.InvalidRequestError as e:
            if getattr(e, 'code', None) == 'resource_missing':
                raise NotFound('Setup intent not found') from e
            raise UpstreamUnavailable(f"Payment service error: {str(e)}") from e
        except stripe.StripeError as e:
            raise UpstreamUnavailable(f"Payment service error: {e.user_message or str(e)}") from e

        return {
            'id': intent.id,
            'status': intent.status,
            'payment_method_id': _attr(intent.payment_method, 'id'),
            'customer_id': _attr(intent.customer, 'id'),
        }


_gateway = None


def get_payment_gateway() -> PaymentGateway:
    global _gateway
    if _gateway is None:
        _gateway = PaymentGateway()
    return _gateway


def prepare_payment(user: Dict[str, Any], store=None, gateway=None) -> Dict[str, Any]:
    """Create or reuse the user's Stripe customer and open a setup intent.

    Returns {'client_secret', 'customer_id'}; Stripe and data store errors propagate.
    """
    store = store or data_store.get_data_store()
    gateway = gateway or get_payment_gateway()

    full_name = f"{user.get('first_name', '')} {user.get('last_name', '')}".strip()
    existing_id = user.get('stripe_customer_id')
    customer_id = gateway.create_or_get_customer(user['email'], full_name, existing_id)

    if customer_id != existing_id:
        store.update('users', user['id'], {
            'stripe_customer_id': customer_id,
            'updated_at': utc_now_iso(),
        })

    client_secret = gateway.create_setup_intent(customer_id)
    return {'client_secret': client_secret, 'customer_id': customer_id}


def create_setup_intent_for_user(user_id: str, store=None, gateway=None) -> Dict[str, Any]:
    """Re-drive payment setup for a user whose signup-time setup failed or was abandoned"""
    if not user_id:
        raise ValidationError.from_field_errors({'user_id': 'User ID is required'}, 'Invalid request data')

    store = store or data_store.get_data_store()
    user = store.find_by('users', id=user_id)
    if user is None:
        raise NotFound('User not found')

    return prepare_payment(user, store=store, gateway=gateway)


def confirm_setup(user_id: str, setup_intent_id: str, store=None, gateway=None) -> Dict[str, Any]:
    """Record a payment method once the client has confirmed the setup intent with Stripe"""
    errors = {}
    if not user_id:
        errors['user_id'] = 'User ID is required'
    if not setup_intent_id:
        errors['setup_intent_id'] = 'Setup intent ID is required'
    if errors:
        raise ValidationError.from_field_errors(errors, 'Invalid request data')

    store = store or data_store.get_data_store()
    gateway = gateway or get_payment_gateway()

    user = store.find_by('users', id=user_id)
    if user is None:
        raise NotFound('User not found')

    intent = gateway.retrieve_setup_intent(setup_intent_id)

    if intent['status'] != 'succeeded':
        raise InvalidState('Payment method setup was not completed successfully')

    payment_method_id = intent.get('payment_method_id')
    if not payment_method_id:
        raise InvalidState('No payment method found for this setup intent')

    stored_customer = user.get('stripe_customer_id')
    if stored_customer and intent.get('customer_id') and intent['customer_id'] != stored_customer:
        raise InvalidState('Setup intent does not belong to this user')

    already_saved = user.get('payment_completed') and user.get('stripe_payment_method_id') == payment_method_id
    if not already_saved:
        store.update('users', user_id, {
            'stripe_payment_method_id': payment_method_id,
            'payment_completed': True,
            'updated_at': utc_now_iso(),
        })
        log_info("Saved payment method", user_id=user_id)

    return {
        'payment_method_id': payment_method_id,
        'setup_intent_status': intent['status'],
    }
