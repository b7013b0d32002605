"""
Tests for POST /token: grant dispatch, code redemption, PKCE, refresh rotation,
client credentials and the structured error envelope.
"""
import hashlib
import logging
import secrets
from base64 import urlsafe_b64encode
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import jwt
import pytest
from fastapi.testclient import TestClient

from mock_idp import grants
from mock_idp.config import ACCESS_TOKEN_EXPIRES, TENANT_ID
from mock_idp.directory import resolve_user
from mock_idp.main import app
from mock_idp.store import AuthorizationCodeGrant, MemoryCredentialStore, RefreshTokenGrant, get_credential_store

REDIRECT_URI = "https://client.example/cb"


@pytest.fixture
def store():
    return MemoryCredentialStore()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_credential_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_code_verifier_and_challenge():
    verifier = secrets.token_urlsafe(32)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


def _login(client, email="jane.smith@contoso.com", scope="openid protocol.read", **extra) -> str:
    """Run POST /authorize and return the issued code."""
    data = {"redirect_uri": REDIRECT_URI, "email": email, "scope": scope, "client_id": "test-client", **extra}
    response = client.post("/authorize", data=data, follow_redirects=False)
    assert response.status_code == 302
    return parse_qs(urlsplit(response.headers["location"]).query)["code"][0]


def _redeem(client, code: str, **extra):
    data = {"grant_type": "authorization_code", "code": code, "redirect_uri": REDIRECT_URI, **extra}
    return client.post("/token", data=data)


def _claims(token: str) -> dict:
    return jwt.decode(token, options={"verify_signature": False})


def _assert_error(response, status_code: int, error: str):
    assert response.status_code == status_code
    data = response.json()
    assert data["error"] == error
    assert isinstance(data["error_codes"], list) and isinstance(data["error_codes"][0], int)
    for field in ("timestamp", "trace_id", "correlation_id"):
        assert data[field]
    assert data["trace_id"] in data["error_description"]
    assert data["correlation_id"] in data["error_description"]
    assert data["timestamp"] in data["error_description"]
    return data


# --- dispatch ---


def test_token_unsupported_grant_type(client):
    _assert_error(client.post("/token", data={"grant_type": "password", "code": "x"}), 400, "unsupported_grant_type")


def test_token_missing_grant_type(client):
    _assert_error(client.post("/token", data={"code": "x"}), 400, "unsupported_grant_type")


def test_unsupported_grant_invokes_no_handler(client, store):
    store.add_refresh_token(
        RefreshTokenGrant(
            token="rt",
            client_id="c",
            scope="s",
            user_id="u",
            email="a@b.com",
            display_name="A",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )
    )
    client.post("/token", data={"grant_type": "refresh-token", "refresh_token": "rt"})
    assert len(store) == 1


def test_error_echoes_client_request_id(client):
    response = client.post("/token", data={"grant_type": "nope"}, headers={"client-request-id": "corr-42"})
    assert response.json()["correlation_id"] == "corr-42"


# --- authorization_code ---


def test_full_flow_for_jane_smith(client):
    code = _login(client)
    assert len(code) >= 32
    response = _redeem(client, code)
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "Bearer"
    assert data["expires_in"] == ACCESS_TOKEN_EXPIRES
    assert data["ext_expires_in"] == ACCESS_TOKEN_EXPIRES
    assert data["scope"] == "openid protocol.read"
    assert data["refresh_token"]
    assert data["id_token"]

    access = _claims(data["access_token"])
    assert "Protocol.Admin" in access["roles"]
    assert "protocol.read" in access["scp"].split()
    assert "openid" not in access["scp"].split()
    assert access["aud"] == "test-client"
    assert access["tid"] == TENANT_ID

    id_claims = _claims(data["id_token"])
    assert id_claims["sub"] == resolve_user("jane.smith@contoso.com").sub
    assert id_claims["name"] == "Jane Smith"


def test_tenant_token_path(client):
    code = _login(client)
    response = client.post(f"/{TENANT_ID}/v2.0/token", data={"grant_type": "authorization_code", "code": code})
    assert response.status_code == 200


def test_code_is_single_use(client):
    code = _login(client)
    assert _redeem(client, code).status_code == 200
    _assert_error(_redeem(client, code), 400, "invalid_grant")


def test_unknown_code(client):
    _assert_error(_redeem(client, "invalid-code"), 400, "invalid_grant")


def test_missing_code(client):
    data = _assert_error(client.post("/token", data={"grant_type": "authorization_code"}), 400, "invalid_request")
    assert "code" in data["error_description"]


def test_expired_code_fails_then_is_gone(client, store):
    user = resolve_user("a@b.com")
    store.add_code(
        AuthorizationCodeGrant(
            code="expired-code",
            client_id="test-client",
            redirect_uri=REDIRECT_URI,
            scope="openid",
            user_id=user.sub,
            email=user.email,
            display_name=user.name,
            expires_at=datetime.now(timezone.utc) - timedelta(seconds=1),
        )
    )
    first = _assert_error(_redeem(client, "expired-code"), 400, "invalid_grant")
    assert "expired" in first["error_description"]
    assert len(store) == 0
    second = _assert_error(_redeem(client, "expired-code"), 400, "invalid_grant")
    assert "already redeemed" in second["error_description"]
    _assert_error(_redeem(client, "expired-code"), 400, "invalid_grant")


def test_nonce_is_carried_into_tokens(client):
    code = _login(client, nonce="nonce-abc")
    data = _redeem(client, code).json()
    assert _claims(data["id_token"])["nonce"] == "nonce-abc"
    assert _claims(data["access_token"])["nonce"] == "nonce-abc"


def test_synthesized_user_gets_reader_role(client):
    data = _redeem(client, _login(client, email="new.person@fabrikam.com")).json()
    claims = _claims(data["access_token"])
    assert claims["roles"] == ["Protocol.Reader"]
    assert claims["name"] == "New Person"


def test_same_email_same_subject_across_codes(client):
    first = _claims(_redeem(client, _login(client, email="x.y@z.com")).json()["access_token"])
    second = _claims(_redeem(client, _login(client, email="x.y@z.com")).json()["access_token"])
    assert first["sub"] == second["sub"]


# --- PKCE ---


def test_pkce_s256_roundtrip(client):
    verifier, challenge = _make_code_verifier_and_challenge()
    code = _login(client, code_challenge=challenge, code_challenge_method="S256")
    assert _redeem(client, code, code_verifier=verifier).status_code == 200


def test_pkce_wrong_verifier(client, store):
    verifier, challenge = _make_code_verifier_and_challenge()
    code = _login(client, code_challenge=challenge, code_challenge_method="S256")
    data = _assert_error(_redeem(client, code, code_verifier="not-the-verifier"), 400, "invalid_grant")
    assert "code_verifier" in data["error_description"]
    # Consumed by the failed attempt; the right verifier is now too late
    _assert_error(_redeem(client, code, code_verifier=verifier), 400, "invalid_grant")


def test_pkce_plain(client):
    code = _login(client, code_challenge="plain-secret-value", code_challenge_method="plain")
    assert _redeem(client, code, code_verifier="plain-secret-value").status_code == 200


def test_pkce_unknown_method_fails_closed(client):
    verifier, challenge = _make_code_verifier_and_challenge()
    code = _login(client, code_challenge=challenge, code_challenge_method="S512")
    _assert_error(_redeem(client, code, code_verifier=verifier), 400, "invalid_grant")


def test_pkce_missing_verifier_is_permissive_by_default(client):
    _, challenge = _make_code_verifier_and_challenge()
    code = _login(client, code_challenge=challenge, code_challenge_method="S256")
    assert _redeem(client, code).status_code == 200


def test_pkce_missing_verifier_rejected_in_strict_mode(client, monkeypatch):
    monkeypatch.setattr(grants, "PKCE_STRICT", True)
    _, challenge = _make_code_verifier_and_challenge()
    code = _login(client, code_challenge=challenge, code_challenge_method="S256")
    _assert_error(_redeem(client, code), 400, "invalid_grant")


def test_grant_failures_are_logged_without_secrets(client, caplog):
    caplog.set_level(logging.DEBUG, logger="mock_idp.grants")
    verifier, challenge = _make_code_verifier_and_challenge()
    code = _login(client, code_challenge=challenge, code_challenge_method="S256")
    _redeem(client, code, client_id="test-client", code_verifier="wrong-verifier")
    _redeem(client, "no-such-code", client_id="test-client")
    client.post("/token", data={"grant_type": "refresh_token", "refresh_token": "no-such-rt", "client_id": "test-client"})

    messages = [r.getMessage() for r in caplog.records if r.name == "mock_idp.grants"]
    assert any("PKCE mismatch" in m for m in messages)
    assert any("authorization_code grant: unknown" in m for m in messages)
    assert any("refresh_token grant: unknown" in m for m in messages)
    assert all("client_id=test-client" in m for m in messages)
    for secret in (code, "no-such-code", "no-such-rt", "wrong-verifier"):
        assert not any(secret in m for m in messages)


# --- refresh_token ---


def test_refresh_rotates_token(client):
    first = _redeem(client, _login(client)).json()
    r = client.post("/token", data={"grant_type": "refresh_token", "refresh_token": first["refresh_token"]})
    assert r.status_code == 200
    second = r.json()
    assert second["refresh_token"] != first["refresh_token"]
    assert second["scope"] == first["scope"]
    assert second["id_token"]
    assert _claims(second["access_token"])["sub"] == _claims(first["access_token"])["sub"]
    assert "Protocol.Admin" in _claims(second["access_token"])["roles"]

    # Old token is dead; the new one works exactly once
    _assert_error(
        client.post("/token", data={"grant_type": "refresh_token", "refresh_token": first["refresh_token"]}),
        400,
        "invalid_grant",
    )
    r3 = client.post("/token", data={"grant_type": "refresh_token", "refresh_token": second["refresh_token"]})
    assert r3.status_code == 200


def test_refresh_keeps_single_active_token(client, store):
    first = _redeem(client, _login(client)).json()
    assert len(store) == 1
    client.post("/token", data={"grant_type": "refresh_token", "refresh_token": first["refresh_token"]})
    assert len(store) == 1


def test_refresh_missing_token(client):
    _assert_error(client.post("/token", data={"grant_type": "refresh_token"}), 400, "invalid_request")


def test_refresh_unknown_token(client):
    _assert_error(client.post("/token", data={"grant_type": "refresh_token", "refresh_token": "nope"}), 400, "invalid_grant")


def test_refresh_expired_token_is_removed(client, store):
    store.add_refresh_token(
        RefreshTokenGrant(
            token="old-rt",
            client_id="test-client",
            scope="openid",
            user_id="u",
            email="a@b.com",
            display_name="A",
            expires_at=datetime.now(timezone.utc) - timedelta(seconds=1),
        )
    )
    _assert_error(client.post("/token", data={"grant_type": "refresh_token", "refresh_token": "old-rt"}), 400, "invalid_grant")
    assert len(store) == 0


# --- client_credentials ---


def test_client_credentials_returns_access_token_only(client, store):
    r = client.post(
        "/token",
        data={"grant_type": "client_credentials", "client_id": "billing-daemon", "client_secret": "s3cret"},
    )
    assert r.status_code == 200
    data = r.json()
    assert data["token_type"] == "Bearer"
    assert "access_token" in data
    assert "refresh_token" not in data
    assert "id_token" not in data
    assert data["scope"] == "billing-daemon/.default"
    claims = _claims(data["access_token"])
    assert claims["aud"] == "billing-daemon"
    assert claims["roles"] == ["Protocol.Read.All"]
    assert len(store) == 0


def test_client_credentials_subject_is_stable(client):
    form = {"grant_type": "client_credentials", "client_id": "svc", "client_secret": "x"}
    a = _claims(client.post("/token", data=form).json()["access_token"])
    b = _claims(client.post("/token", data=form).json()["access_token"])
    assert a["sub"] == b["sub"]


@pytest.mark.parametrize(
    "form",
    [
        {"client_id": "svc", "client_secret": ""},
        {"client_id": "svc"},
        {"client_secret": "x"},
        {},
    ],
)
def test_client_credentials_requires_id_and_secret(client, form):
    r = client.post("/token", data={"grant_type": "client_credentials", **form})
    _assert_error(r, 401, "invalid_client")
