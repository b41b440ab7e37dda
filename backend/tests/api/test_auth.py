"""Tests for JWKS-verified bearer JWT authentication."""

import time
from dataclasses import dataclass
from unittest.mock import MagicMock, patch

import jwt as pyjwt
import pytest
import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

pytestmark = pytest.mark.unit

# ---------------------------------------------------------------------------
# RSA keypair generated once for entire test module
# ---------------------------------------------------------------------------
_private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
_public_key = _private_key.public_key()

_private_pem = _private_key.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption(),
)

_TEST_ISSUER = "https://auth.factorypulse.test"


def _sign_jwt(payload: dict, kid: str = "test-kid") -> str:
    """Sign a JWT with the test RSA private key."""
    return pyjwt.encode(payload, _private_pem, algorithm="RS256", headers={"kid": kid})


def _claims(**overrides) -> dict:
    now = int(time.time())
    claims = {
        "sub": "user_abc",
        "iat": now - 10,
        "exp": now + 300,
        "nbf": now - 10,
        "iss": _TEST_ISSUER,
        "role": "management",
        "org_id": "org-acme",
    }
    claims.update(overrides)
    return {k: v for k, v in claims.items() if v is not None}


# ---------------------------------------------------------------------------
# Mock JWKS client that returns the test public key
# ---------------------------------------------------------------------------
@dataclass
class _FakeSigningKey:
    key: object


def _mock_jwks_client():
    client = MagicMock()
    client.get_signing_key_from_jwt.return_value = _FakeSigningKey(key=_public_key)
    return client


def _mock_settings(audiences: list[str] | None = None):
    """Return a mock Settings with test-friendly defaults."""
    s = MagicMock()
    s.auth_jwks_url = "https://auth.factorypulse.test/.well-known/jwks.json"
    s.auth_issuer = _TEST_ISSUER
    s.auth_allowed_audiences = audiences or []
    s.auth_role_claim = "role"
    s.auth_organization_claim = "org_id"
    return s


def _request():
    mock_request = MagicMock()
    mock_request.state = MagicMock()
    return mock_request


class TestDecodeJwt:
    def test_valid_token(self):
        from factory_pulse.core.auth import decode_jwt

        with patch("factory_pulse.core.auth.get_jwks_client", _mock_jwks_client):
            claims = decode_jwt(_sign_jwt(_claims()))

        assert claims["sub"] == "user_abc"
        assert claims["org_id"] == "org-acme"

    def test_expired_token_raises(self):
        from factory_pulse.core.auth import decode_jwt

        now = int(time.time())
        token = _sign_jwt(_claims(iat=now - 600, exp=now - 300, nbf=now - 600))

        with patch("factory_pulse.core.auth.get_jwks_client", _mock_jwks_client):
            with pytest.raises(HTTPException) as exc_info:
                decode_jwt(token)
            assert exc_info.value.status_code == 401
            assert "expired" in exc_info.value.detail.lower()

    def test_immature_token_raises(self):
        from factory_pulse.core.auth import decode_jwt

        now = int(time.time())
        token = _sign_jwt(_claims(iat=now + 600, exp=now + 900, nbf=now + 600))

        with patch("factory_pulse.core.auth.get_jwks_client", _mock_jwks_client):
            with pytest.raises(HTTPException) as exc_info:
                decode_jwt(token)
            assert exc_info.value.status_code == 401

    def test_missing_sub_raises(self):
        from factory_pulse.core.auth import decode_jwt

        token = _sign_jwt(_claims(sub=None))

        with patch("factory_pulse.core.auth.get_jwks_client", _mock_jwks_client):
            with pytest.raises(HTTPException) as exc_info:
                decode_jwt(token)
            assert exc_info.value.status_code == 401
            assert "sub" in exc_info.value.detail.lower()

    def test_token_signed_by_other_key_raises(self):
        from factory_pulse.core.auth import decode_jwt

        other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        token = pyjwt.encode(_claims(), other_key, algorithm="RS256", headers={"kid": "test-kid"})

        with patch("factory_pulse.core.auth.get_jwks_client", _mock_jwks_client):
            with pytest.raises(HTTPException) as exc_info:
                decode_jwt(token)
            assert exc_info.value.status_code == 401


class TestRequireActor:
    async def test_valid_bearer_token(self):
        from factory_pulse.core.auth import require_actor

        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials=_sign_jwt(_claims()))
        request = _request()

        with (
            patch("factory_pulse.core.auth.get_jwks_client", _mock_jwks_client),
            patch("factory_pulse.core.auth.get_settings", _mock_settings),
        ):
            actor = await require_actor(request=request, credentials=creds)

        assert actor.user_id == "user_abc"
        assert actor.role == "management"
        assert actor.organization_id == "org-acme"
        assert request.state.user_id == "user_abc"

    async def test_actor_bound_to_log_context(self):
        from factory_pulse.core.auth import require_actor

        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials=_sign_jwt(_claims()))
        structlog.contextvars.clear_contextvars()

        with (
            patch("factory_pulse.core.auth.get_jwks_client", _mock_jwks_client),
            patch("factory_pulse.core.auth.get_settings", _mock_settings),
        ):
            await require_actor(request=_request(), credentials=creds)

        try:
            assert structlog.contextvars.get_contextvars() == {"organization_id": "org-acme", "user_id": "user_abc"}
        finally:
            structlog.contextvars.clear_contextvars()

    async def test_missing_credentials_raises_401(self):
        from factory_pulse.core.auth import require_actor

        with pytest.raises(HTTPException) as exc_info:
            await require_actor(request=_request(), credentials=None)
        assert exc_info.value.status_code == 401

    async def test_invalid_token_raises_401(self):
        from factory_pulse.core.auth import require_actor

        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="garbage.token.here")

        with (
            patch("factory_pulse.core.auth.get_jwks_client", _mock_jwks_client),
            patch("factory_pulse.core.auth.get_settings", _mock_settings),
        ):
            with pytest.raises(HTTPException) as exc_info:
                await require_actor(request=_request(), credentials=creds)
            assert exc_info.value.status_code == 401

    async def test_wrong_issuer_raises_401(self):
        from factory_pulse.core.auth import require_actor

        creds = HTTPAuthorizationCredentials(
            scheme="Bearer", credentials=_sign_jwt(_claims(iss="https://evil.example.com"))
        )

        with (
            patch("factory_pulse.core.auth.get_jwks_client", _mock_jwks_client),
            patch("factory_pulse.core.auth.get_settings", _mock_settings),
        ):
            with pytest.raises(HTTPException) as exc_info:
                await require_actor(request=_request(), credentials=creds)
            assert "iss" in exc_info.value.detail

    async def test_missing_organization_claim_raises_401(self):
        from factory_pulse.core.auth import require_actor

        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials=_sign_jwt(_claims(org_id=None)))

        with (
            patch("factory_pulse.core.auth.get_jwks_client", _mock_jwks_client),
            patch("factory_pulse.core.auth.get_settings", _mock_settings),
        ):
            with pytest.raises(HTTPException) as exc_info:
                await require_actor(request=_request(), credentials=creds)
            assert exc_info.value.status_code == 401
            assert "organization" in exc_info.value.detail

    async def test_audience_enforced_when_configured(self):
        from factory_pulse.core.auth import require_actor

        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials=_sign_jwt(_claims(aud="other-app")))

        with (
            patch("factory_pulse.core.auth.get_jwks_client", _mock_jwks_client),
            patch("factory_pulse.core.auth.get_settings", lambda: _mock_settings(["factory-pulse"])),
        ):
            with pytest.raises(HTTPException) as exc_info:
                await require_actor(request=_request(), credentials=creds)
            assert "aud" in exc_info.value.detail

    async def test_matching_audience_accepted(self):
        from factory_pulse.core.auth import require_actor

        creds = HTTPAuthorizationCredentials(
            scheme="Bearer", credentials=_sign_jwt(_claims(aud=["factory-pulse", "portal"]))
        )

        with (
            patch("factory_pulse.core.auth.get_jwks_client", _mock_jwks_client),
            patch("factory_pulse.core.auth.get_settings", lambda: _mock_settings(["factory-pulse"])),
        ):
            actor = await require_actor(request=_request(), credentials=creds)

        assert actor.user_id == "user_abc"


def test_actor_without_role_claim():
    from factory_pulse.core.auth import actor_from_claims

    with patch("factory_pulse.core.auth.get_settings", _mock_settings):
        actor = actor_from_claims({"sub": "user_abc", "org_id": "org-acme"})

    assert actor.role is None
