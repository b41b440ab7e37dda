"""Bearer JWT authentication for FastAPI, verified against a JWKS endpoint."""

from functools import lru_cache

import jwt as pyjwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from factory_pulse.core.config import get_settings
from factory_pulse.core.logging import bind_actor_context
from factory_pulse.domain.actors import Actor

_bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_jwks_client() -> PyJWKClient:
    """Create a cached JWKS client pointing at the configured JWKS endpoint."""
    settings = get_settings()
    if not settings.auth_jwks_url:
        raise ValueError("auth_jwks_url is not configured")
    return PyJWKClient(settings.auth_jwks_url, cache_keys=True, lifespan=300)


def decode_jwt(token: str) -> dict:
    """Verify and decode a session JWT.

    Raises ``HTTPException(401)`` on any validation failure.
    """
    try:
        client = get_jwks_client()
        signing_key = client.get_signing_key_from_jwt(token)

        payload = pyjwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            options={
                "verify_exp": True,
                "verify_nbf": True,
                "verify_iat": True,
                "verify_aud": False,
                "require": ["sub", "exp", "nbf", "iat"],
            },
        )
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except pyjwt.ImmatureSignatureError:
        raise HTTPException(status_code=401, detail="Token not yet valid (immature)")
    except pyjwt.MissingRequiredClaimError as exc:
        raise HTTPException(status_code=401, detail=f"Missing required claim: {exc}")
    except pyjwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")

    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Token missing sub claim")

    return payload


def _validate_audience_claim(aud_claim: object, allowed_audiences: list[str]) -> None:
    """Validate aud claim against configured allowed audiences."""
    if aud_claim is None:
        raise HTTPException(status_code=401, detail="Missing aud claim")

    if isinstance(aud_claim, str):
        audiences = {aud_claim}
    elif isinstance(aud_claim, list) and all(isinstance(v, str) for v in aud_claim):
        audiences = set(aud_claim)
    else:
        raise HTTPException(status_code=401, detail="Invalid aud claim format")

    if not audiences.intersection(allowed_audiences):
        raise HTTPException(status_code=401, detail="Unauthorized audience (aud mismatch)")


def actor_from_claims(claims: dict) -> Actor:
    """Map verified token claims onto an Actor using the configured claim names."""
    settings = get_settings()
    role = claims.get(settings.auth_role_claim)
    organization_id = claims.get(settings.auth_organization_claim)
    return Actor(
        user_id=claims["sub"],
        role=str(role) if role else None,
        organization_id=str(organization_id) if organization_id else None,
    )


async def require_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> Actor:
    """FastAPI dependency that extracts the authenticated actor.

    Usage::

        @router.post("/projects/{project_id}/transitions")
        async def transition(actor: Actor = Depends(require_actor)):
            ...
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    claims = decode_jwt(credentials.credentials)
    settings = get_settings()

    if settings.auth_issuer and claims.get("iss") != settings.auth_issuer:
        raise HTTPException(status_code=401, detail="Invalid issuer (iss mismatch)")

    # Optional audience validation (only enforced when configured)
    if settings.auth_allowed_audiences:
        _validate_audience_claim(claims.get("aud"), settings.auth_allowed_audiences)

    actor = actor_from_claims(claims)
    if actor.organization_id is None:
        raise HTTPException(status_code=401, detail="Token missing organization claim")

    # user_id on request state for the error handlers; both ids on every log line
    request.state.user_id = actor.user_id
    bind_actor_context(actor)

    return actor
