"""The bearer credential produced by a successful login."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from spotterm.exceptions import AuthError

logger = logging.getLogger(__name__)

# Applied, with a warning, when the token response omits expires_in.
DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class Session:
    """Access token and expiry returned by the token endpoint.

    There is no refresh: once :meth:`is_expired` is true the only way to get
    a usable session is a new login.
    """

    access_token: str = field(repr=False)
    token_type: str
    expires_at: datetime
    refresh_token: Optional[str] = field(default=None, repr=False)
    scope: Optional[str] = None

    @classmethod
    def from_token_response(
        cls, data: dict[str, Any], received_at: Optional[datetime] = None
    ) -> Session:
        """Build a session from a token endpoint JSON body.

        ``expires_at`` is ``received_at + expires_in``; *received_at*
        defaults to the current UTC time.

        Raises:
            AuthError: If ``access_token`` is missing, or ``expires_in`` is
                not a finite, non-negative number a datetime can hold.
        """
        access_token = data.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise AuthError("Token response missing 'access_token' field")

        raw_expires_in = data.get("expires_in")
        if raw_expires_in is None:
            logger.warning(
                "Token response has no 'expires_in'; assuming %d seconds", DEFAULT_EXPIRES_IN
            )
            raw_expires_in = DEFAULT_EXPIRES_IN
        if isinstance(raw_expires_in, bool):
            raise AuthError(f"Token response has invalid 'expires_in': {raw_expires_in!r}")
        try:
            expires_in = float(raw_expires_in)
        except (TypeError, ValueError) as exc:
            raise AuthError(f"Token response has invalid 'expires_in': {raw_expires_in!r}") from exc
        if not math.isfinite(expires_in) or expires_in < 0:
            raise AuthError(f"Token response has invalid 'expires_in': {raw_expires_in!r}")

        now = received_at or datetime.now(timezone.utc)
        try:
            expires_at = now + timedelta(seconds=expires_in)
        except OverflowError as exc:
            raise AuthError(f"Token response has out-of-range 'expires_in': {raw_expires_in!r}") from exc

        return cls(
            access_token=access_token,
            token_type=str(data.get("token_type") or "Bearer"),
            expires_at=expires_at,
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
        )

    @property
    def authorization_header(self) -> str:
        # The provider returns "Bearer" but some echo it lowercase.
        return f"Bearer {self.access_token}"

    @property
    def granted_scopes(self) -> list[str]:
        return self.scope.split() if self.scope else []

    def expires_in(self, now: Optional[datetime] = None) -> float:
        """Seconds until expiry; negative once expired."""
        now = now or datetime.now(timezone.utc)
        return (self.expires_at - now).total_seconds()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_in(now) <= 0
