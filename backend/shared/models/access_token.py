"""Access token model, scopes and expiry buckets."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum


class Scope(StrEnum):
    """Capabilities an access token may carry."""

    PASTE = "paste"
    PASTE_READ = "paste:read"
    USER = "user"
    USER_READ = "user:read"
    USER_ACCESS_TOKENS = "user:access_tokens"


# A broader scope grants its read-only counterpart.
SCOPE_IMPLIES: dict[Scope, frozenset[Scope]] = {
    Scope.PASTE: frozenset({Scope.PASTE_READ}),
    Scope.USER: frozenset({Scope.USER_READ}),
}

# Scopes granted to the implicit token issued on login and registration.
LOGIN_SCOPES: frozenset[Scope] = frozenset(
    {Scope.PASTE, Scope.USER, Scope.USER_ACCESS_TOKENS}
)


def expand_scopes(scopes: frozenset[Scope] | set[Scope]) -> frozenset[Scope]:
    """Return *scopes* together with every scope they imply."""
    expanded = set(scopes)
    for scope in scopes:
        expanded |= SCOPE_IMPLIES.get(scope, frozenset())
    return frozenset(expanded)


class ExpiresIn(StrEnum):
    """Expiry buckets a caller can pick for a self-service token."""

    NEVER = "never"
    ONE_HOUR = "1h"
    TWO_HOURS = "2h"
    TEN_HOURS = "10h"
    ONE_DAY = "1d"
    TWO_DAYS = "2d"
    ONE_WEEK = "1w"
    ONE_MONTH = "1m"
    ONE_YEAR = "1y"

    @property
    def delta(self) -> timedelta | None:
        return _EXPIRES_IN_DELTAS[self]

    def expires_at(self, now: datetime) -> datetime | None:
        """Absolute expiry for a token created at *now*; ``None`` never expires."""
        delta = self.delta
        return now + delta if delta is not None else None


_EXPIRES_IN_DELTAS: dict[ExpiresIn, timedelta | None] = {
    ExpiresIn.NEVER: None,
    ExpiresIn.ONE_HOUR: timedelta(hours=1),
    ExpiresIn.TWO_HOURS: timedelta(hours=2),
    ExpiresIn.TEN_HOURS: timedelta(hours=10),
    ExpiresIn.ONE_DAY: timedelta(days=1),
    ExpiresIn.TWO_DAYS: timedelta(days=2),
    ExpiresIn.ONE_WEEK: timedelta(weeks=1),
    ExpiresIn.ONE_MONTH: timedelta(days=30),
    ExpiresIn.ONE_YEAR: timedelta(days=365),
}


@dataclass
class AccessToken:
    """Persisted access token record.

    Only the SHA-512 hash of the secret half is stored; the composite
    ``{id}-{secret}`` string exists solely in the response that issued it.
    """

    id: str
    token_hash: str
    owner_id: str
    scopes: frozenset[Scope] = field(default_factory=frozenset)
    hidden: bool = False
    description: str = ""
    created_at: datetime | None = None
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now
