"""OAuth provider client service.

Provider configs are immutable and built once at startup
(``build_provider_configs``). ``OAuthService`` owns one shared httpx client
with a bounded timeout; every transport failure, timeout or non-2xx answer
surfaces as ``ExternalProviderError`` and the provider's response body is
only ever logged, never returned.
"""

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

import httpx

from core.config import Settings
from core.errors import AuthError, ErrorKind, ExternalProviderError

logger = logging.getLogger(__name__)

DEFAULT_AVATAR_CONTENT_TYPE = "image/png"
DEFAULT_AVATAR_MAX_BYTES = 1024 * 1024


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Static configuration of one OAuth provider."""

    name: str
    authorize_url: str
    token_url: str
    user_info_url: str
    client_id: str
    client_secret: str
    redirect_url: str
    scopes: tuple[str, ...] = ()
    # JSON keys of the provider's user-info document
    id_field: str = "id"
    username_field: str = "login"
    avatar_field: str = "avatar_url"


@dataclass(frozen=True)
class ProviderUser:
    """The subset of a provider account the core cares about."""

    external_id: str
    username: str
    avatar_url: str


def _callback_url(settings: Settings, provider: str) -> str:
    return f"{settings.api_url}/api/v3/login/{provider}/callback"


def build_provider_configs(settings: Settings) -> Mapping[str, OAuthProviderConfig]:
    """Build the read-only provider registry from settings.

    Providers without a client id are left out, so logging in through them
    is a ``NotFound``.
    """
    providers: dict[str, OAuthProviderConfig] = {}

    if settings.github_client_id:
        providers["github"] = OAuthProviderConfig(
            name="github",
            authorize_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",
            user_info_url="https://api.github.com/user",
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
            redirect_url=_callback_url(settings, "github"),
            scopes=("read:user",),
            username_field="login",
        )

    if settings.gitlab_client_id:
        providers["gitlab"] = OAuthProviderConfig(
            name="gitlab",
            authorize_url=f"{settings.gitlab_url}/oauth/authorize",
            token_url=f"{settings.gitlab_url}/oauth/token",
            user_info_url=f"{settings.gitlab_url}/api/v4/user",
            client_id=settings.gitlab_client_id,
            client_secret=settings.gitlab_client_secret,
            redirect_url=_callback_url(settings, "gitlab"),
            scopes=("read_user",),
            username_field="username",
        )

    if not providers:
        logger.warning("No OAuth providers configured, login is disabled")
    else:
        logger.info(f"OAuth providers: {', '.join(sorted(providers))}")

    return MappingProxyType(providers)


class OAuthService:
    """Client for the authorization-code flow of the configured providers."""

    def __init__(
        self,
        providers: Mapping[str, OAuthProviderConfig],
        timeout: float = 10.0,
        http: httpx.AsyncClient | None = None,
        avatar_max_bytes: int = DEFAULT_AVATAR_MAX_BYTES,
    ) -> None:
        self.providers = providers
        self.avatar_max_bytes = avatar_max_bytes
        # Shared HTTP client, reuses TCP connections across requests
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        await self._http.aclose()

    def provider_config(self, key: str) -> OAuthProviderConfig:
        config = self.providers.get(key)
        if config is None:
            raise AuthError(ErrorKind.NOT_FOUND, f"Unknown login provider '{key}'.")
        return config

    @asynccontextmanager
    async def _transport_errors(self, method: str, url: str) -> AsyncIterator[None]:
        try:
            yield
        except httpx.TimeoutException as e:
            logger.error(f"Timeout on {method} {url}")
            raise ExternalProviderError(f"Timeout on {method} {url}") from e
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {type(e).__name__}: {e}")
            raise ExternalProviderError(f"{method} {url} failed") from e

    @staticmethod
    def _raise_for_status(method: str, url: str, response: httpx.Response) -> None:
        if not response.is_success:
            logger.error(f"{method} {url} returned {response.status_code}")
            raise ExternalProviderError(f"{method} {url} returned {response.status_code}")

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        async with self._transport_errors(method, url):
            response = await self._http.request(method, url, **kwargs)
        if not response.is_success:
            logger.debug(f"Response: {response.text[:200]}")
        self._raise_for_status(method, url, response)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise ExternalProviderError(f"Invalid JSON from {response.url}") from e
        if not isinstance(data, dict):
            raise ExternalProviderError(f"Unexpected JSON from {response.url}")
        return data

    async def exchange_code(self, config: OAuthProviderConfig, code: str) -> str:
        """Exchange an authorization code for the provider's access token."""
        response = await self._request(
            "POST",
            config.token_url,
            data={
                "client_id": config.client_id,
                "client_secret": config.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": config.redirect_url,
            },
            headers={"Accept": "application/json"},
        )

        token_data = self._json(response)
        access_token = token_data.get("access_token")
        if not access_token:
            # GitHub reports a bad code as 200 with an "error" field
            logger.error(f"No access_token from {config.name}: {token_data.get('error', '-')}")
            raise ExternalProviderError(f"{config.name} returned no access token")

        logger.debug(f"Code exchanged with {config.name}")
        return str(access_token)

    async def fetch_provider_user(
        self, config: OAuthProviderConfig, access_token: str
    ) -> ProviderUser:
        """Fetch the account behind a provider access token."""
        response = await self._request(
            "GET",
            config.user_info_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
        )

        data = self._json(response)
        external_id = data.get(config.id_field)
        if external_id is None or external_id == "":
            raise ExternalProviderError(f"{config.name} user has no '{config.id_field}'")

        return ProviderUser(
            external_id=str(external_id),
            username=str(data.get(config.username_field) or ""),
            avatar_url=str(data.get(config.avatar_field) or ""),
        )

    async def download_avatar(self, url: str) -> tuple[bytes, str]:
        """Download an avatar image, returning ``(bytes, content_type)``.

        The body is streamed and abandoned once it exceeds ``avatar_max_bytes``.
        Falls back to ``image/png`` when the host sends no content type.
        """
        content = bytearray()
        async with self._transport_errors("GET", url):
            async with self._http.stream("GET", url, follow_redirects=True) as response:
                self._raise_for_status("GET", url, response)
                declared = response.headers.get("content-length", "")
                if declared.isdigit() and int(declared) > self.avatar_max_bytes:
                    logger.error(f"Avatar at {url} declares {declared} bytes, too large")
                    raise ExternalProviderError(f"Avatar at {url} is too large")
                async for chunk in response.aiter_bytes():
                    content.extend(chunk)
                    if len(content) > self.avatar_max_bytes:
                        logger.error(f"Avatar at {url} exceeds {self.avatar_max_bytes} bytes")
                        raise ExternalProviderError(f"Avatar at {url} is too large")
                content_type = response.headers.get("content-type", "").split(";")[0].strip()
        return bytes(content), content_type or DEFAULT_AVATAR_CONTENT_TYPE
