"""Login, registration and access-token lifecycle.

Access tokens are opaque ``{id}-{secret}`` strings. The id is the lookup key;
only a SHA-512 hash of the secret is stored, so the raw token exists solely in
the response that issued it.

New accounts go through a registration carrier: a short-lived HS512 JWT that
binds the verified provider identity to the username the client picks next.
It is never accepted as a credential anywhere else.

This service is HTTP-agnostic. It returns plain results and raises
``AuthError``; routers turn those into cookies, redirects and status codes.
"""

import hashlib
import hmac
import logging
import secrets
from collections.abc import Callable, Collection
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

import asyncpg
import jwt
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from shared.database import DatabaseManager
from shared.errors import DuplicateRecordError
from shared.models.access_token import (
    LOGIN_SCOPES,
    AccessToken,
    ExpiresIn,
    Scope,
    expand_scopes,
)
from shared.models.action_log import ActionLogKind
from shared.models.user import User, default_user_settings
from shared.repositories.access_token import AccessTokenRepository
from shared.repositories.user import UserRepository

from core.errors import AuthError, ErrorKind
from core.user_context import ANONYMOUS, UserContext

from .action_logger import ActionLogger
from .id_provider import IdProvider
from .image_service import ImageService
from .oauth_service import OAuthProviderConfig, OAuthService, ProviderUser
from .session_store import SessionStore

logger = logging.getLogger(__name__)

TOKEN_SEPARATOR = "-"
LOGIN_TOKEN_EXPIRES_IN = ExpiresIn.ONE_MONTH
REGISTRATION_PATH = "/create-account"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def hash_secret(secret: str) -> str:
    """Hex SHA-512 of an access-token secret."""
    return hashlib.sha512(secret.encode("utf-8")).hexdigest()


# ============================================
# Results
# ============================================


@dataclass(frozen=True)
class IssuedAccessToken:
    """Freshly issued token. ``token`` is the only copy of the secret."""

    token: str
    token_id: str
    expires_at: datetime | None


@dataclass(frozen=True)
class TokenValidation:
    valid: bool
    token_id: str | None = None
    owner_id: str | None = None
    scopes: frozenset[Scope] = frozenset()


# Unknown id, expired and wrong secret all produce this same value
INVALID_TOKEN = TokenValidation(valid=False)


@dataclass(frozen=True)
class RegistrationTicket:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class CallbackResult:
    """Outcome of a successful callback: exactly one of the two is set."""

    redirect_url: str
    access_token: IssuedAccessToken | None = None
    registration: RegistrationTicket | None = None


@dataclass(frozen=True)
class RegistrationResult:
    user: User
    access_token: IssuedAccessToken


class RegistrationClaims(BaseModel):
    """Claims of the registration carrier, read only after signature checks pass."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    exp: int
    provider_name: str = Field(min_length=1)
    provider_external_id: str = Field(min_length=1)
    avatar_url: str = ""


# ============================================
# Service
# ============================================


class AuthService:
    """Orchestrates the OAuth login handshake and access tokens."""

    def __init__(
        self,
        *,
        db: DatabaseManager,
        users: UserRepository,
        access_tokens: AccessTokenRepository,
        oauth: OAuthService,
        sessions: SessionStore,
        images: ImageService,
        action_logger: ActionLogger,
        id_provider: IdProvider,
        client_url: str,
        secret_key: str,
        algorithm: str = "HS512",
        registration_ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("JWT secret key cannot be empty")

        self.db = db
        self.users = users
        self.access_tokens = access_tokens
        self.oauth = oauth
        self.sessions = sessions
        self.images = images
        self.action_logger = action_logger
        self.id_provider = id_provider
        self.client_url = client_url.rstrip("/")
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.registration_ttl = registration_ttl
        self.clock = clock

    # ------------------------------------------------------------------
    # Login handshake
    # ------------------------------------------------------------------

    async def initiate_login(self, provider_key: str, session_id: str) -> str:
        """Store a fresh state for the session and return the provider authorize URL."""
        config = self.oauth.provider_config(provider_key)

        state = self.id_provider.generate_state()
        await self.sessions.put_state(session_id, state)

        query = urlencode(
            {
                "client_id": config.client_id,
                "redirect_uri": config.redirect_url,
                "scope": ",".join(config.scopes),
                "response_type": "code",
                "state": state,
            }
        )
        logger.debug(f"Login initiated with {config.name}")
        return f"{config.authorize_url}?{query}"

    async def cancel_login(self, session_id: str) -> None:
        """Consume the pending state after the provider reported an error."""
        await self.sessions.take_state(session_id)

    async def handle_callback(
        self,
        provider_key: str,
        returned_state: str | None,
        code: str | None,
        session_id: str,
    ) -> CallbackResult:
        """Validate the provider callback and log the user in or start registration."""
        # Taking the state clears it before any comparison, so a replayed
        # callback always fails here on its second attempt.
        stored_state = await self.sessions.take_state(session_id)
        if stored_state is None:
            raise AuthError(ErrorKind.INTERNAL_INCONSISTENCY, "Missing state session.")

        if not returned_state or not hmac.compare_digest(
            returned_state.encode("utf-8"), stored_state.encode("utf-8")
        ):
            logger.warning(f"OAuth state mismatch on {provider_key} callback")
            raise AuthError(ErrorKind.BAD_REQUEST, "The OAuth states don't match.")

        if not code:
            raise AuthError(ErrorKind.BAD_REQUEST, "Missing the authorization code.")

        config = self.oauth.provider_config(provider_key)
        provider_token = await self.oauth.exchange_code(config, code)
        provider_user = await self.oauth.fetch_provider_user(config, provider_token)

        user = await self.users.get_by_provider(config.name, provider_user.external_id)
        if user is not None:
            issued = await self.generate_access_token(
                user.id, LOGIN_SCOPES, LOGIN_TOKEN_EXPIRES_IN, hidden=True
            )
            logger.info(f"User logged in: {user.username} ({user.id}) via {config.name}")
            return CallbackResult(redirect_url=self.client_url, access_token=issued)

        ticket = self._issue_registration(config, provider_user)
        query = urlencode({"username": provider_user.username})
        logger.info(f"New {config.name} account {provider_user.external_id}, registration pending")
        return CallbackResult(
            redirect_url=f"{self.client_url}{REGISTRATION_PATH}?{query}",
            registration=ticket,
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _issue_registration(
        self, config: OAuthProviderConfig, provider_user: ProviderUser
    ) -> RegistrationTicket:
        expires_at = self.clock() + self.registration_ttl
        claims = RegistrationClaims(
            exp=int(expires_at.timestamp()),
            provider_name=config.name,
            provider_external_id=provider_user.external_id,
            avatar_url=provider_user.avatar_url,
        )
        token = jwt.encode(claims.model_dump(), self.secret_key, algorithm=self.algorithm)
        return RegistrationTicket(token=token, expires_at=expires_at)

    def _decode_registration(self, token: str) -> RegistrationClaims:
        # Expiry is checked against the service clock once the signature holds
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"require": ["exp"], "verify_exp": False},
            )
            claims = RegistrationClaims.model_validate(payload)
        except (jwt.InvalidTokenError, ValidationError) as e:
            logger.warning(f"Rejected registration token: {type(e).__name__}")
            raise AuthError(ErrorKind.UNAUTHENTICATED, "Invalid registration token.") from None

        if claims.exp <= self.clock().timestamp():
            raise AuthError(
                ErrorKind.BAD_REQUEST, "The registration has expired, please log in again."
            )
        return claims

    async def complete_registration(
        self, username: str, registration_token: str | None
    ) -> RegistrationResult:
        """Create the account bound to the carrier's provider identity.

        The image, the user, its login token and the audit rows are written
        in one transaction; any failure leaves no user behind.
        """
        if not registration_token:
            raise AuthError(ErrorKind.BAD_REQUEST, "Missing the registration cookie.")

        if await self.users.exists_by_username(username):
            raise AuthError(ErrorKind.BAD_REQUEST, "Username is already taken.")

        claims = self._decode_registration(registration_token)

        avatar: tuple[bytes, str] | None = None
        if claims.avatar_url:
            avatar = await self.oauth.download_avatar(claims.avatar_url)

        try:
            async with self.db.transaction() as conn:
                avatar_id = None
                if avatar is not None:
                    avatar_id = await self.images.upload(*avatar, conn=conn)

                async def insert_user(user_id: str) -> User:
                    return await self.users.insert(
                        User(
                            id=user_id,
                            username=username,
                            provider_name=claims.provider_name,
                            provider_external_id=claims.provider_external_id,
                            avatar_id=avatar_id,
                            settings=default_user_settings(),
                            created_at=self.clock(),
                        ),
                        conn=conn,
                    )

                user = await self.id_provider.allocate(self.users.exists_by_id, insert_user)
                issued = await self.generate_access_token(
                    user.id, LOGIN_SCOPES, LOGIN_TOKEN_EXPIRES_IN, hidden=True, conn=conn
                )
                await self.action_logger.log(ActionLogKind.USER_CREATED, user.id, conn=conn)
        except DuplicateRecordError as e:
            if e.field == "username":
                raise AuthError(ErrorKind.BAD_REQUEST, "Username is already taken.") from None
            raise AuthError(ErrorKind.BAD_REQUEST, "This account is already registered.") from None

        logger.info(f"User registered: {user.username} ({user.id}) via {user.provider_name}")
        return RegistrationResult(user=user, access_token=issued)

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    async def generate_access_token(
        self,
        owner_id: str,
        scopes: Collection[Scope],
        expires_in: ExpiresIn,
        hidden: bool = False,
        description: str = "",
        conn: asyncpg.Connection | None = None,
    ) -> IssuedAccessToken:
        """Issue a new token. The returned string is the only copy of its secret."""
        secret = secrets.token_hex(32)
        now = self.clock()

        async def insert(token_id: str) -> AccessToken:
            return await self.access_tokens.insert(
                AccessToken(
                    id=token_id,
                    token_hash=hash_secret(secret),
                    owner_id=owner_id,
                    scopes=frozenset(scopes),
                    hidden=hidden,
                    description=description,
                    created_at=now,
                    expires_at=expires_in.expires_at(now),
                ),
                conn=conn,
            )

        record = await self.id_provider.allocate(self.access_tokens.exists, insert)
        await self.action_logger.log(ActionLogKind.ACCESS_TOKEN_CREATED, owner_id, conn=conn)

        logger.debug(f"Access token {record.id} issued for {owner_id} (hidden={hidden})")
        return IssuedAccessToken(
            token=f"{record.id}{TOKEN_SEPARATOR}{secret}",
            token_id=record.id,
            expires_at=record.expires_at,
        )

    async def validate(self, presented: str | None) -> TokenValidation:
        """Check an opaque token. Expired records are deleted on first use."""
        if not presented:
            return INVALID_TOKEN

        token_id, separator, secret = presented.partition(TOKEN_SEPARATOR)
        if not separator or not token_id or not secret:
            return INVALID_TOKEN

        record = await self.access_tokens.get(token_id)
        if record is None:
            return INVALID_TOKEN

        if record.is_expired(self.clock()):
            await self.access_tokens.delete(token_id)
            logger.info(f"Purged expired access token {token_id}")
            return INVALID_TOKEN

        if not hmac.compare_digest(record.token_hash, hash_secret(secret)):
            return INVALID_TOKEN

        return TokenValidation(
            valid=True, token_id=record.id, owner_id=record.owner_id, scopes=record.scopes
        )

    async def resolve_context(self, presented: str | None) -> UserContext:
        """Resolve a presented token to the caller's identity, or anonymous."""
        result = await self.validate(presented)
        if not result.valid or result.owner_id is None:
            return ANONYMOUS

        user = await self.users.get_by_id(result.owner_id)
        if user is None:
            logger.warning(f"Access token {result.token_id} belongs to a missing user")
            return ANONYMOUS

        return UserContext(user=user, token_id=result.token_id, scopes=result.scopes)

    async def logout(self, presented: str | None) -> str:
        """Revoke the presented login token and return the redirect target."""
        result = await self.validate(presented)
        if not result.valid or result.token_id is None or result.owner_id is None:
            raise AuthError(ErrorKind.UNAUTHENTICATED, "Access token is not valid.")

        async with self.db.transaction() as conn:
            await self.access_tokens.delete(result.token_id, conn=conn)
            await self.action_logger.log(
                ActionLogKind.ACCESS_TOKEN_DELETED, result.owner_id, conn=conn
            )

        logger.info(f"User {result.owner_id} logged out")
        return self.client_url

    # ------------------------------------------------------------------
    # Self-service tokens
    # ------------------------------------------------------------------

    async def list_access_tokens(self, ctx: UserContext) -> list[AccessToken]:
        """The caller's self-service tokens; login tokens never show up."""
        user = ctx.require(Scope.USER_ACCESS_TOKENS)
        return await self.access_tokens.list_visible_for_owner(user.id)

    async def create_access_token(
        self,
        ctx: UserContext,
        scopes: Collection[Scope],
        expires_in: ExpiresIn,
        description: str = "",
    ) -> IssuedAccessToken:
        """Issue a visible token limited to scopes the caller already holds."""
        user = ctx.require(Scope.USER_ACCESS_TOKENS)

        requested = frozenset(scopes)
        if not requested:
            raise AuthError(ErrorKind.BAD_REQUEST, "At least one scope is required.")

        not_held = requested - expand_scopes(ctx.scopes)
        if not_held:
            names = ", ".join(sorted(not_held))
            raise AuthError(ErrorKind.FORBIDDEN, f"Can't grant scopes you don't hold: {names}.")

        return await self.generate_access_token(
            user.id, requested, expires_in, hidden=False, description=description
        )

    async def delete_access_token(self, ctx: UserContext, token_id: str) -> None:
        """Delete one of the caller's tokens; anyone else's looks nonexistent."""
        user = ctx.require(Scope.USER_ACCESS_TOKENS)

        record = await self.access_tokens.get(token_id)
        if record is None or record.owner_id != user.id:
            raise AuthError(ErrorKind.NOT_FOUND, "Access token not found.")

        async with self.db.transaction() as conn:
            await self.access_tokens.delete(token_id, conn=conn)
            await self.action_logger.log(ActionLogKind.ACCESS_TOKEN_DELETED, user.id, conn=conn)
