"""Per-request caller identity."""

from dataclasses import dataclass

from shared.models.access_token import Scope, expand_scopes
from shared.models.user import User

from core.errors import AuthError, ErrorKind


@dataclass(frozen=True)
class UserContext:
    """Who is calling and with which scopes. Immutable for the request."""

    user: User | None = None
    token_id: str | None = None
    scopes: frozenset[Scope] = frozenset()

    @property
    def is_logged_in(self) -> bool:
        return self.user is not None

    def has_scope(self, *scopes: Scope) -> bool:
        """True when any of *scopes* is held directly or through implication."""
        held = expand_scopes(self.scopes)
        return any(scope in held for scope in scopes)

    def require(self, *scopes: Scope) -> User:
        """Return the user or raise: anonymous is 401, missing scope is 403."""
        if self.user is None:
            raise AuthError(ErrorKind.UNAUTHENTICATED, "You must be logged in.")
        if scopes and not self.has_scope(*scopes):
            names = " or ".join(scopes)
            raise AuthError(ErrorKind.FORBIDDEN, f"Missing required scope: {names}.")
        return self.user


ANONYMOUS = UserContext()


def extract_bearer(authorization: str | None) -> str | None:
    """Token from an ``Authorization: Bearer <token>`` header, if any."""
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None
