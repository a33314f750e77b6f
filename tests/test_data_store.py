from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from services.data_store import SupabaseDataStore, clean_search_term
from utils.errors import DuplicateKeyError, UpstreamUnavailable


@pytest.fixture
def client():
    return MagicMock()


def test_search_term_with_filter_delimiters(client):
    query = client.table.return_value.select.return_value
    query.or_.return_value.execute.return_value.data = [{'id': 'u1'}]

    rows = SupabaseDataStore(client=client).select(
        'users', search=(['first_name', 'last_name'], 'Smith, John (VIP)')
    )

    assert rows == [{'id': 'u1'}]
    query.or_.assert_called_once_with('first_name.ilike.%Smith John VIP%,last_name.ilike.%Smith John VIP%')


def test_clean_search_term_drops_wildcards_and_quotes():
    assert clean_search_term('50% "off"*') == '50 off'
    assert clean_search_term('sarah@example.com') == 'sarah@example.com'
    assert clean_search_term(None) == ''


def test_unique_violation_names_the_column(client):
    client.table.return_value.insert.return_value.execute.side_effect = APIError({
        'code': '23505',
        'message': 'duplicate key value violates unique constraint "users_email_key"',
        'details': 'Key (email)=(sarah@example.com) already exists.',
    })

    with pytest.raises(DuplicateKeyError) as exc_info:
        SupabaseDataStore(client=client).insert('users', {'email': 'sarah@example.com'})

    assert exc_info.value.column == 'email'


def test_other_errors_are_upstream_unavailable(client):
    client.table.return_value.select.return_value.eq.return_value.limit.return_value.execute.side_effect = (
        ConnectionError('connection refused')
    )

    with pytest.raises(UpstreamUnavailable):
        SupabaseDataStore(client=client).find_by('users', email='sarah@example.com')
