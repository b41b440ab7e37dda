"""Authenticated actor handed to the transition core by the identity layer."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Actor:
    """Opaque user id plus the role and organization claims from the bearer token."""

    user_id: str
    role: str | None = None
    organization_id: str | None = None
