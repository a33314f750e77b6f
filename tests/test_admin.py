from datetime import datetime, timezone

import pytest

from services import admin_service
from utils.errors import Conflict, NotFound, ValidationError

from fakes import seed_users


class TestAdminAuth:

    def test_requires_token(self, client):
        response = client.get('/api/admin/users')
        assert response.status_code == 401
        assert response.get_json() == {'error': 'Admin authentication required'}

    def test_rejects_wrong_token(self, client, admin_headers):
        response = client.get('/api/admin/users', headers={'Authorization': 'Bearer nope'})
        assert response.status_code == 401

    def test_accepts_header_token(self, client, admin_headers):
        response = client.get('/api/admin/users', headers={'X-Admin-Token': 'test-admin-token'})
        assert response.status_code == 200

    def test_no_tokens_configured(self, monkeypatch):
        from config import settings
        monkeypatch.setattr(settings, 'ADMIN_API_TOKENS', [])
        assert admin_service.is_admin('anything') is False
        assert admin_service.is_admin(None) is False


class TestUserListing:

    def test_lists_in_position_order(self, client, store, admin_headers):
        seed_users(store, 12)

        response = client.get('/api/admin/users?limit=5&offset=5', headers=admin_headers)

        body = response.get_json()
        assert body['total'] == 12
        assert [u['waitlist_position'] for u in body['users']] == [6, 7, 8, 9, 10]

    def test_search(self, store):
        seed_users(store, 12)
        result = admin_service.list_users(search='member11', store=store)
        assert [u['email'] for u in result['users']] == ['member11@example.com']

    def test_get_user(self, client, store, admin_headers):
        user = seed_users(store, 1)[0]
        assert client.get(f"/api/admin/users/{user['id']}", headers=admin_headers).get_json()['email'] == \
            'member1@example.com'
        assert client.get('/api/admin/users/missing', headers=admin_headers).status_code == 404


class TestUserEdits:

    def test_edit_profile_fields(self, client, store, admin_headers):
        user = seed_users(store, 1)[0]

        response = client.patch(f"/api/admin/users/{user['id']}",
                                json={'occupation': 'Architect', 'marketing_opt_in': 'true'},
                                headers=admin_headers)

        assert response.status_code == 200
        stored = store.find_by('users', id=user['id'])
        assert stored['occupation'] == 'Architect'
        assert stored['marketing_opt_in'] is True
        assert stored['updated_at']

    @pytest.mark.parametrize('field', ['referral_code', 'waitlist_position', 'referral_count', 'id'])
    def test_immutable_fields(self, store, field):
        user = seed_users(store, 1)[0]
        with pytest.raises(ValidationError) as exc_info:
            admin_service.update_user(user['id'], {field: 'X'}, store=store)
        assert field in exc_info.value.field_errors
        assert store.find_by('users', id=user['id'])['referral_code'] == 'MEMBER1001'

    def test_field_checks_apply(self, store):
        user = seed_users(store, 1)[0]
        with pytest.raises(ValidationError) as exc_info:
            admin_service.update_user(user['id'], {'first_name': 'R2D2'}, store=store)
        assert 'first_name' in exc_info.value.field_errors

    def test_email_must_stay_unique(self, store):
        users = seed_users(store, 2)
        with pytest.raises(Conflict):
            admin_service.update_user(users[0]['id'], {'email': 'member2@example.com'}, store=store)

    def test_unknown_user(self, store):
        with pytest.raises(NotFound):
            admin_service.update_user('missing', {'occupation': 'Architect'}, store=store)


def test_dashboard_stats(client, store, admin_headers):
    now = datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)
    users = seed_users(store, 4)
    store.tables['users'][0].update(referral_count=2)
    store.tables['users'][1].update(referred_by=users[0]['referral_code'], payment_completed=True)
    store.tables['users'][2].update(referred_by=users[0]['referral_code'],
                                    created_at='2026-10-19T09:30:00+00:00')

    stats = admin_service.get_stats(now=now, store=store)

    assert stats['total_users'] == 4
    assert stats['today_signups'] == 1
    assert stats['total_referrals'] == 2
    assert stats['payments_completed'] == 1
    assert stats['conversion_rate'] == 50
    assert stats['top_referrers'][0] == {'name': 'Member1 Existing', 'referral_count': 2, 'position': 1}
    assert stats['recent_signups'][0]['position'] == 3

    assert client.get('/api/admin/stats', headers=admin_headers).status_code == 200
