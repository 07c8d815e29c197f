from types import SimpleNamespace
from unittest.mock import MagicMock
from fastapi import FastAPI, Depends
from fastapi.testclient import TestClient
import pytest

from anoint_checkout.utils import security as security_mod
from anoint_checkout.utils.security import COOKIE_NAME, determine_role, get_current_user, require_admin


def _make_app():
    app = FastAPI()

    @app.get("/me")
    def me(user=Depends(get_current_user)):
        return user

    @app.get("/admin")
    def admin(user=Depends(require_admin)):
        return {"ok": True}

    return app


def _supabase_with_user(email, metadata):
    client = MagicMock()
    user = SimpleNamespace(id="u-1", email=email, user_metadata=metadata)
    client.auth.get_user.return_value = SimpleNamespace(user=user)
    return client


def test_determine_role():
    assert determine_role(None, {"role": "admin"}) == "admin"
    assert determine_role("admin@example.com", {}) == "admin"
    assert determine_role("buyer@example.com", None) == "user"


def test_missing_token_is_401():
    client = TestClient(_make_app())
    res = client.get("/me")
    assert res.status_code == 401
    assert res.json()["detail"] == "Not authenticated"


def test_bearer_token_resolves_user(monkeypatch):
    monkeypatch.setattr(security_mod, "get_supabase", lambda: _supabase_with_user("buyer@example.com", {}))
    client = TestClient(_make_app())

    res = client.get("/me", headers={"Authorization": "Bearer tok"})

    assert res.status_code == 200
    assert res.json()["email"] == "buyer@example.com"
    assert res.json()["role"] == "user"


def test_cookie_token_and_admin_role(monkeypatch):
    monkeypatch.setattr(security_mod, "get_supabase", lambda: _supabase_with_user("ops@example.com", {"role": "admin"}))
    client = TestClient(_make_app())
    client.cookies.set(COOKIE_NAME, "tok")

    assert client.get("/admin").json() == {"ok": True}


def test_non_admin_is_403(monkeypatch):
    monkeypatch.setattr(security_mod, "get_supabase", lambda: _supabase_with_user("buyer@example.com", {}))
    client = TestClient(_make_app())
    res = client.get("/admin", headers={"Authorization": "Bearer tok"})
    assert res.status_code == 403


def test_invalid_token_is_401(monkeypatch):
    failing = MagicMock()
    failing.auth.get_user.side_effect = RuntimeError("invalid JWT")
    monkeypatch.setattr(security_mod, "get_supabase", lambda: failing)
    client = TestClient(_make_app())
    res = client.get("/me", headers={"Authorization": "Bearer expired"})
    assert res.status_code == 401
