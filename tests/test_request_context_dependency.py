from __future__ import annotations

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from sequence_service.api.deps import request_context as request_context_module
from sequence_service.core.config import settings
from sequence_service.core.security.auth0_jwt_verifier import AuthTokenValidationError
from sequence_service.schemas.request_context import SequenceRequestContext


class _FakeVerifier:
    def verify(self, token: str):
        if token == "ok.token.jwt":
            return {
                "sub": "auth0|u-1",
                "email": "jwt@example.com",
                "iss": "https://tenant.example.com/",
                "aud": "https://api.example.com",
                "iat": 1,
                "exp": 9999999999,
            }
        if token == "ns.email.jwt":
            return {
                "sub": "auth0|u-2",
                "https://contractnest.example.com/email": "NS.Jwt@Example.com",
                "iss": "https://tenant.example.com/",
                "aud": "https://api.example.com",
                "iat": 1,
                "exp": 9999999999,
            }
        raise AuthTokenValidationError("bad token")


def _build_app() -> FastAPI:
    app = FastAPI()

    @app.get("/whoami")
    def whoami(ctx: SequenceRequestContext = Depends(request_context_module.get_request_context)):
        return {
            "tenant": ctx.tenant_id,
            "is_live": ctx.is_live,
            "environment": ctx.environment,
            "request_id": ctx.request_id,
            "email": ctx.identity.email,
            "source": ctx.identity.auth_source,
            "sub": ctx.identity.subject,
            "actor": ctx.identity.actor,
        }

    return app


def test_legacy_header_mode_uses_x_user_email(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_MODE", "legacy_header")
    with TestClient(_build_app()) as client:
        r = client.get(
            "/whoami",
            headers={
                "Authorization": "Bearer opaque",
                "x-tenant-id": "tenant-a",
                "X-User-Email": "Legacy@Example.com",
            },
        )
        assert r.status_code == 200
        payload = r.json()
        assert payload["email"] == "legacy@example.com"
        assert payload["source"] == "legacy_header"
        assert payload["tenant"] == "tenant-a"
        assert payload["request_id"]


def test_legacy_header_mode_ignores_bearer_token(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_MODE", "legacy_header")
    monkeypatch.setattr(request_context_module, "_get_verifier", lambda: _FakeVerifier())
    with TestClient(_build_app()) as client:
        r = client.get(
            "/whoami",
            headers={
                "Authorization": "Bearer ok.token.jwt",
                "x-tenant-id": "tenant-a",
                "X-User-Email": "legacy@example.com",
            },
        )
        assert r.status_code == 200
        assert r.json()["source"] == "legacy_header"


def test_bearer_token_is_always_required(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_MODE", "legacy_header")
    with TestClient(_build_app()) as client:
        r = client.get("/whoami", headers={"x-tenant-id": "tenant-a"})
        assert r.status_code == 401
        r = client.get("/whoami", headers={"Authorization": "Basic abc", "x-tenant-id": "tenant-a"})
        assert r.status_code == 401


def test_jwt_only_mode_rejects_invalid_token(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_MODE", "jwt_only")
    monkeypatch.setattr(request_context_module, "_get_verifier", lambda: _FakeVerifier())
    with TestClient(_build_app()) as client:
        r = client.get(
            "/whoami",
            headers={"Authorization": "Bearer bad.token.jwt", "x-tenant-id": "tenant-a"},
        )
        assert r.status_code == 401
        assert r.json()["detail"] == "Invalid or expired token"


def test_dual_mode_prefers_bearer(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_MODE", "dual")
    monkeypatch.setattr(request_context_module, "_get_verifier", lambda: _FakeVerifier())
    with TestClient(_build_app()) as client:
        r = client.get(
            "/whoami",
            headers={
                "Authorization": "Bearer ok.token.jwt",
                "x-tenant-id": "tenant-a",
                "X-User-Email": "legacy@example.com",
            },
        )
        assert r.status_code == 200
        payload = r.json()
        assert payload["email"] == "jwt@example.com"
        assert payload["source"] == "jwt"
        assert payload["sub"] == "auth0|u-1"


def test_dual_mode_falls_back_to_legacy_for_opaque_tokens(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_MODE", "dual")
    with TestClient(_build_app()) as client:
        r = client.get(
            "/whoami",
            headers={
                "Authorization": "Bearer opaque",
                "x-tenant-id": "tenant-a",
                "X-User-Email": "legacy@example.com",
            },
        )
        assert r.status_code == 200
        assert r.json()["source"] == "legacy_header"


def test_jwt_email_extracted_from_namespaced_claim(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_MODE", "jwt_only")
    monkeypatch.setattr(request_context_module, "_get_verifier", lambda: _FakeVerifier())
    with TestClient(_build_app()) as client:
        r = client.get(
            "/whoami",
            headers={"Authorization": "Bearer ns.email.jwt", "x-tenant-id": "tenant-a"},
        )
        assert r.status_code == 200
        assert r.json()["email"] == "ns.jwt@example.com"
        assert r.json()["actor"] == "ns.jwt@example.com"


def test_tenant_header_is_required(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_MODE", "legacy_header")
    with TestClient(_build_app()) as client:
        r = client.get("/whoami", headers={"Authorization": "Bearer opaque", "x-tenant-id": "  "})
        assert r.status_code == 400


def test_environment_header_selects_test_data(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_MODE", "legacy_header")
    monkeypatch.setattr(settings, "SEQUENCE_DEFAULT_ENVIRONMENT", "live")
    with TestClient(_build_app()) as client:
        headers = {"Authorization": "Bearer opaque", "x-tenant-id": "tenant-a"}
        assert client.get("/whoami", headers=headers).json()["is_live"] is True
        r = client.get("/whoami", headers={**headers, "x-environment": "TEST"})
        assert r.json()["is_live"] is False
        assert r.json()["environment"] == "test"
