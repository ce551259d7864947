import json as jsonlib

import httpx
import pytest

from chat_core.domain.exceptions import AuthError, StoreError
from chat_core.domain.models import Identity, Turn
from chat_core.domain.session import SessionStatus
from chat_core.infrastructure.auth.supabase_auth import SupabaseAuthClient
from chat_core.infrastructure.storage.supabase_store import SupabaseMessageStore


class SettingsStub:
    supabase_url = "https://proj.supabase.co"
    supabase_anon_key = "anon-key"
    messages_table = "messages"
    http_timeout = 1.0


class Resp:
    def __init__(self, status_code=200, data=None):
        self.status_code = status_code
        self._data = data
        self.text = "" if data is None else jsonlib.dumps(data)
        self.content = self.text.encode("utf-8")

    def json(self):
        return self._data


def _fake_client(responses, calls):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, params=None, headers=None, **_):
            calls.append(("POST", url, json, params, headers))
            return responses.pop(0)

        def get(self, url, params=None, headers=None, **_):
            calls.append(("GET", url, None, params, headers))
            return responses.pop(0)

    return Client


IDENTITY = Identity(id="u-1", email="arun@example.com", access_token="user-token")


def test_store_insert(monkeypatch):
    calls = []
    monkeypatch.setattr("httpx.Client", _fake_client([Resp(201)], calls))
    SupabaseMessageStore(SettingsStub()).insert("user", "hi", IDENTITY)
    method, url, body, _, headers = calls[0]
    assert (method, url) == ("POST", "https://proj.supabase.co/rest/v1/messages")
    assert body == {"user_id": "u-1", "role": "user", "content": "hi"}
    assert headers["apikey"] == "anon-key"
    assert headers["Authorization"] == "Bearer user-token"


def test_store_query_orders_by_created_at(monkeypatch):
    calls = []
    rows = [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "ignored"},
        {"role": "model", "content": "hello"},
    ]
    monkeypatch.setattr("httpx.Client", _fake_client([Resp(200, rows)], calls))
    turns = SupabaseMessageStore(SettingsStub()).query(IDENTITY)
    assert turns == [Turn(role="user", text="hi"), Turn(role="model", text="hello")]
    params = calls[0][3]
    assert params == {"select": "role,content", "user_id": "eq.u-1", "order": "created_at.asc"}


def test_store_write_error(monkeypatch):
    monkeypatch.setattr("httpx.Client", _fake_client([Resp(401, {"message": "JWT expired"})], []))
    with pytest.raises(StoreError):
        SupabaseMessageStore(SettingsStub()).insert("model", "x", IDENTITY)


def test_auth_sign_in_and_out(monkeypatch):
    calls = []
    session_data = {
        "access_token": "tok",
        "refresh_token": "ref",
        "user": {"id": "u-1", "email": "arun@example.com"},
    }
    monkeypatch.setattr("httpx.Client", _fake_client([Resp(200, session_data), Resp(204)], calls))
    auth = SupabaseAuthClient(SettingsStub())
    states = []
    auth.tracker.subscribe(states.append)

    assert auth.initial_session().status == SessionStatus.UNAUTHENTICATED
    session = auth.sign_in_with_password("arun@example.com", "secret")
    assert session.identity == Identity(id="u-1", email="arun@example.com")
    assert session.identity.access_token == "tok"
    assert auth.tracker.state.status == SessionStatus.AUTHENTICATED
    assert calls[0][1] == "https://proj.supabase.co/auth/v1/token"
    assert calls[0][3] == {"grant_type": "password"}

    auth.sign_out()
    assert calls[1][1] == "https://proj.supabase.co/auth/v1/logout"
    assert calls[1][4]["Authorization"] == "Bearer tok"
    assert [s.status for s in states] == [
        SessionStatus.UNAUTHENTICATED,
        SessionStatus.AUTHENTICATED,
        SessionStatus.UNAUTHENTICATED,
    ]


def test_auth_sign_in_error(monkeypatch):
    error = {"error": "invalid_grant", "error_description": "Invalid login credentials"}
    monkeypatch.setattr("httpx.Client", _fake_client([Resp(400, error)], []))
    auth = SupabaseAuthClient(SettingsStub())
    with pytest.raises(AuthError) as exc:
        auth.sign_in_with_password("a@b.c", "wrong")
    assert str(exc.value) == "Invalid login credentials"
    assert auth.current is None


def test_auth_sign_up_does_not_sign_in(monkeypatch):
    monkeypatch.setattr("httpx.Client", _fake_client([Resp(200, {"id": "u-2", "email": "new@b.c"})], []))
    auth = SupabaseAuthClient(SettingsStub())
    identity = auth.sign_up("new@b.c", "secret")
    assert identity.id == "u-2"
    assert auth.current is None
    assert auth.tracker.state.status == SessionStatus.LOADING


def test_auth_sign_out_survives_network_error(monkeypatch):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, *a, **kw):
            raise httpx.ConnectError("offline")

    auth = SupabaseAuthClient(SettingsStub())
    monkeypatch.setattr(
        "httpx.Client",
        _fake_client([Resp(200, {"access_token": "t", "user": {"id": "u", "email": "e"}})], []),
    )
    auth.sign_in_with_password("e", "p")
    monkeypatch.setattr("httpx.Client", Client)
    assert auth.sign_out().status == SessionStatus.UNAUTHENTICATED
