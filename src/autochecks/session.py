"""Authenticated backend session state."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

#: Fallback lifetime when the auth server omits ``expires_in``.
DEFAULT_SESSION_TTL: float = 3600.0


class AuthSession(BaseModel):
    """Session returned by a successful sign-in.

    Parameters
    ----------
    access_token : str
        Bearer token sent with every backend request.
    refresh_token : str
        Token used to obtain a new access token.
    user_id : str
        The authenticated account id; the snapshot table is keyed by it.
    email : str or None
        Account email, stored locally as ``cloud_user_email``.
    created_at : float
        Monotonic timestamp (``time.monotonic()``) when the session was
        created.
    ttl : float
        Seconds until the access token expires.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )

    access_token: str
    refresh_token: str = ""
    user_id: str
    email: str | None = None
    created_at: float = Field(default_factory=time.monotonic)
    ttl: float = DEFAULT_SESSION_TTL

    @classmethod
    def from_token_response(cls, body: dict[str, Any]) -> AuthSession:
        """Build from a ``/auth/v1/token`` response body."""
        user = body.get("user") if isinstance(body.get("user"), dict) else {}
        expires_in = body.get("expires_in")
        return cls(
            access_token=str(body.get("access_token") or ""),
            refresh_token=str(body.get("refresh_token") or ""),
            user_id=str(user.get("id") or ""),
            email=user.get("email"),
            ttl=float(expires_in) if isinstance(expires_in, (int, float)) else DEFAULT_SESSION_TTL,
        )

    @property
    def is_expired(self) -> bool:
        """Whether the access token has exceeded its lifetime."""
        return (time.monotonic() - self.created_at) >= self.ttl

    @property
    def age(self) -> float:
        return time.monotonic() - self.created_at
