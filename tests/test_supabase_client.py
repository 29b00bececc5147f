"""
Supabase connection helper tests
Run with: python3 -m pytest tests/
"""

from unittest.mock import MagicMock

import pytest

import supabase_client


@pytest.fixture
def created(monkeypatch):
    clients = []

    def fake_create_client(url, key):
        client = MagicMock()
        client.url, client.key = url, key
        clients.append(client)
        return client

    monkeypatch.setattr(supabase_client, 'create_client', fake_create_client)
    return clients


def test_legacy_env_names(monkeypatch):
    monkeypatch.delenv('SUPABASE_URL', raising=False)
    monkeypatch.delenv('SUPABASE_ANON_KEY', raising=False)
    monkeypatch.setenv('NEXT_PUBLIC_SUPABASE_URL', 'https://legacy.supabase.co')
    monkeypatch.setenv('NEXT_PUBLIC_SUPABASE_ANON_KEY', 'legacy-key')
    assert supabase_client.get_supabase_url() == 'https://legacy.supabase.co'
    assert supabase_client.is_configured()


def test_unconfigured_client_raises(monkeypatch):
    for name in ('SUPABASE_URL', 'NEXT_PUBLIC_SUPABASE_URL'):
        monkeypatch.delenv(name, raising=False)
    with pytest.raises(ValueError, match="not configured"):
        supabase_client.get_client()
    assert supabase_client.check_supabase_connection() is False


def test_access_token_bound_to_queries(created):
    supabase_client.get_client('user-token')
    created[0].postgrest.auth.assert_called_once_with('user-token')


def test_anonymous_client(created):
    supabase_client.get_client()
    created[0].postgrest.auth.assert_not_called()


def test_connection_check(created, monkeypatch):
    assert supabase_client.check_supabase_connection() is True

    def unreachable(url, key):
        raise ConnectionError("no route to host")

    monkeypatch.setattr(supabase_client, 'create_client', unreachable)
    assert supabase_client.check_supabase_connection() is False
