import re

from fakes import seed_users, unavailable


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'


class TestSignupEndpoint:

    def test_signup_success(self, client, store, applicant_data):
        seed_users(store, 42)

        response = client.post('/api/signup', json=applicant_data,
                               headers={'X-Forwarded-For': '203.0.113.9, 10.0.0.1'})

        assert response.status_code == 201
        body = response.get_json()
        assert body['success'] is True
        user = body['data']['user']
        assert user['waitlist_position'] == 43
        assert re.match(r'^SARAH\d{4}$', user['referral_code'])
        assert user['payment_completed'] is False
        assert body['data']['client_secret']
        assert body['data']['steps']['welcome_email']['status'] == 'skipped'

        stored = store.find_by('users', id=user['id'])
        assert stored['ip_address'] == '203.0.113.9'
        assert stored['user_agent']

    def test_empty_body(self, client):
        response = client.post('/api/signup', json={})
        assert response.status_code == 400
        assert response.get_json() == {'error': 'No data provided'}

    def test_non_object_body_is_rejected(self, client, store, applicant_data):
        for body in ([applicant_data], 'hello'):
            response = client.post('/api/signup', json=body)
            assert response.status_code == 400
            assert response.get_json()['error'] == 'Request body must be a JSON object'
        assert store.count('users') == 0

    def test_validation_errors_are_listed(self, client, applicant_data):
        applicant_data['email'] = 'not-an-email'
        applicant_data['interests'] = []

        response = client.post('/api/signup', json=applicant_data)

        assert response.status_code == 400
        fields = {d['field'] for d in response.get_json()['details']}
        assert fields == {'email', 'interests'}

    def test_duplicate_email(self, client, store, applicant_data):
        assert client.post('/api/signup', json=applicant_data).status_code == 201

        response = client.post('/api/signup', json=applicant_data)

        assert response.status_code == 409
        assert response.get_json()['error'] == 'An account with this email already exists'
        assert store.count('users') == 1

    def test_store_outage(self, client, store, applicant_data):
        store.failures[('find_by', 'users')] = unavailable()
        response = client.post('/api/signup', json=applicant_data)
        assert response.status_code == 503


class TestReferralEndpoints:

    def test_lookup_known_code(self, client, store):
        store.add('users', first_name='John', email='john@example.com', referral_code='JOHN1234',
                  referral_count=2, waitlist_position=5)

        response = client.get('/api/referral?code=john1234')

        assert response.status_code == 200
        assert response.get_json()['referrer']['first_name'] == 'John'

    def test_lookup_unknown_code(self, client):
        response = client.get('/api/referral?code=NOPE9999')
        assert response.status_code == 404
        assert response.get_json()['valid'] is False

    def test_lookup_without_code(self, client):
        assert client.get('/api/referral').status_code == 400

    def test_stats(self, client, store):
        users = seed_users(store, 4)

        response = client.post('/api/referral/stats', json={'user_id': users[0]['id']})

        assert response.status_code == 200
        stats = response.get_json()['stats']
        assert stats['waitlist_position'] == 1
        assert stats['total_users'] == 4


class TestPaymentEndpoints:

    def test_setup_intent_then_confirm(self, client, store, gateway, applicant_data):
        user_id = client.post('/api/signup', json=applicant_data).get_json()['data']['user']['id']

        response = client.post('/api/payments/setup-intent', json={'user_id': user_id})
        assert response.status_code == 200
        intent_id = response.get_json()['data']['client_secret'].replace('_secret_test', '')
        gateway.complete_intent(intent_id, 'pm_card_visa')

        response = client.post('/api/payments/confirm', json={'user_id': user_id, 'setup_intent_id': intent_id})

        assert response.status_code == 200
        assert response.get_json()['data']['payment_method_id'] == 'pm_card_visa'
        assert store.find_by('users', id=user_id)['payment_completed'] is True

    def test_confirm_unfinished_intent(self, client, gateway, applicant_data):
        data = client.post('/api/signup', json=applicant_data).get_json()['data']
        intent_id = data['client_secret'].replace('_secret_test', '')

        response = client.post('/api/payments/confirm',
                               json={'user_id': data['user']['id'], 'setup_intent_id': intent_id})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Payment method setup was not completed successfully'

    def test_confirm_requires_fields(self, client):
        response = client.post('/api/payments/confirm', json={})
        assert response.status_code == 400

    def test_setup_intent_unknown_user(self, client):
        response = client.post('/api/payments/setup-intent', json={'user_id': 'missing'})
        assert response.status_code == 404
