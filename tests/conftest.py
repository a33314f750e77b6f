import os

import pytest

# Set test environment variables before any settings are imported
os.environ["FLASK_ENV"] = "testing"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["ADMIN_API_TOKENS"] = "test-admin-token"
os.environ.pop("STRIPE_SECRET_KEY", None)

from fakes import FakeDataStore, FakeGateway, FakeMailer  # noqa: E402


@pytest.fixture
def store():
    return FakeDataStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def applicant_data():
    """A complete, valid submission"""
    return {
        'first_name': 'Sarah',
        'last_name': 'Connor',
        'email': 'sarah@example.com',
        'date_of_birth': '1995-06-15',
        'instagram_handle': '@sarah.c',
        'linkedin_url': 'https://linkedin.com/in/sarah-connor',
        'age_range': '30s',
        'neighborhood': 'Brickell',
        'occupation': 'Product designer at a fintech startup',
        'interests': ['Networking & Mentorship', 'Social Events & Fitness'],
        'marketing_opt_in': True,
    }


@pytest.fixture
def patched_services(monkeypatch, store, gateway, mailer):
    """Route every service-level singleton to the in-memory fakes"""
    from services import data_store, payment_service, email_service, waitlist_service

    monkeypatch.setattr(data_store, 'get_data_store', lambda: store)
    monkeypatch.setattr(payment_service, 'get_payment_gateway', lambda: gateway)
    monkeypatch.setattr(email_service, 'get_email_dispatcher', lambda: mailer)
    monkeypatch.setattr(waitlist_service, 'get_payment_gateway', lambda: gateway)
    monkeypatch.setattr(waitlist_service, 'get_email_dispatcher', lambda: mailer)
    return store


@pytest.fixture
def app(patched_services):
    from app import app as flask_app
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def admin_headers(monkeypatch):
    from config import settings
    monkeypatch.setattr(settings, 'ADMIN_API_TOKENS', ['test-admin-token'])
    return {'Authorization': 'Bearer test-admin-token'}
