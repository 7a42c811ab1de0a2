import httpx
import pytest

from core.config import Settings
from core.errors import AuthError, ErrorKind, ExternalProviderError
from services import OAuthService, build_provider_configs


def _service(settings: Settings, handler) -> OAuthService:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OAuthService(build_provider_configs(settings), http=http)


class TestProviderConfigs:
    def test_only_configured_providers(self, settings):
        providers = build_provider_configs(settings)
        assert list(providers) == ["github"]

    def test_gitlab_uses_instance_url(self, settings):
        custom = settings.model_copy(
            update={
                "gitlab_client_id": "gl-id",
                "gitlab_client_secret": "gl-secret",
                "gitlab_url": "https://git.example.test",
            }
        )

        gitlab = build_provider_configs(custom)["gitlab"]

        assert gitlab.authorize_url == "https://git.example.test/oauth/authorize"
        assert gitlab.user_info_url == "https://git.example.test/api/v4/user"
        assert gitlab.redirect_url == "http://api.test/api/v3/login/gitlab/callback"
        assert gitlab.username_field == "username"

    def test_registry_is_read_only(self, settings):
        providers = build_provider_configs(settings)
        with pytest.raises(TypeError):
            providers["evil"] = providers["github"]  # type: ignore[index]


class TestExchangeCode:
    @pytest.mark.anyio
    async def test_returns_provider_token(self, oauth, provider):
        config = oauth.provider_config("github")
        assert await oauth.exchange_code(config, "abc123") == "gho_provider_token"

    @pytest.mark.anyio
    async def test_error_body_without_token(self, oauth, provider):
        provider.token_body = {"error": "bad_verification_code"}
        config = oauth.provider_config("github")

        with pytest.raises(ExternalProviderError):
            await oauth.exchange_code(config, "expired")

    @pytest.mark.anyio
    async def test_timeout(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        service = _service(settings, handler)
        with pytest.raises(ExternalProviderError) as exc_info:
            await service.exchange_code(service.provider_config("github"), "abc123")
        assert exc_info.value.kind is ErrorKind.EXTERNAL_PROVIDER_ERROR

    @pytest.mark.anyio
    async def test_non_json_response(self, settings):
        service = _service(settings, lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ExternalProviderError):
            await service.exchange_code(service.provider_config("github"), "abc123")


class TestFetchProviderUser:
    @pytest.mark.anyio
    async def test_maps_fields(self, oauth, provider):
        user = await oauth.fetch_provider_user(oauth.provider_config("github"), "gho_token")
        assert user.external_id == "42"
        assert user.username == "octocat"
        assert user.avatar_url == provider.avatar_url

    @pytest.mark.anyio
    async def test_error_status(self, oauth, provider):
        provider.user_status = 401
        with pytest.raises(ExternalProviderError):
            await oauth.fetch_provider_user(oauth.provider_config("github"), "gho_token")

    @pytest.mark.anyio
    async def test_missing_id(self, settings):
        service = _service(settings, lambda request: httpx.Response(200, json={"login": "x"}))
        with pytest.raises(ExternalProviderError):
            await service.fetch_provider_user(service.provider_config("github"), "gho_token")

    @pytest.mark.anyio
    async def test_provider_details_are_not_exposed(self, oauth, provider):
        provider.user_status = 500
        with pytest.raises(ExternalProviderError) as exc_info:
            await oauth.fetch_provider_user(oauth.provider_config("github"), "gho_token")
        assert exc_info.value.to_payload() == {
            "error": "external_provider_error",
            "detail": "Failed to communicate with the login provider.",
        }


class TestDownloadAvatar:
    @pytest.mark.anyio
    async def test_keeps_content_type(self, oauth, provider):
        content, content_type = await oauth.download_avatar(provider.avatar_url)
        assert content == b"\x89PNG-avatar"
        assert content_type == "image/jpeg"

    @pytest.mark.anyio
    async def test_defaults_to_png(self, oauth, provider):
        provider.avatar_content_type = None
        _, content_type = await oauth.download_avatar(provider.avatar_url)
        assert content_type == "image/png"

    @pytest.mark.anyio
    async def test_declared_size_over_limit(self, settings, provider):
        http = httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))
        service = OAuthService(build_provider_configs(settings), http=http, avatar_max_bytes=4)

        with pytest.raises(ExternalProviderError):
            await service.download_avatar(provider.avatar_url)

    @pytest.mark.anyio
    async def test_streamed_body_over_limit(self, settings):
        async def chunks():
            for _ in range(8):
                yield b"x" * 1024

        def handler(request: httpx.Request) -> httpx.Response:
            # No content-length: the cap has to trip while streaming
            return httpx.Response(200, content=chunks(), headers={"content-type": "image/png"})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        service = OAuthService(build_provider_configs(settings), http=http, avatar_max_bytes=4096)

        with pytest.raises(ExternalProviderError):
            await service.download_avatar("https://avatars.example.test/huge")

    @pytest.mark.anyio
    async def test_body_at_limit_is_accepted(self, settings, provider):
        http = httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))
        service = OAuthService(
            build_provider_configs(settings),
            http=http,
            avatar_max_bytes=len(b"\x89PNG-avatar"),
        )

        content, _ = await service.download_avatar(provider.avatar_url)

        assert content == b"\x89PNG-avatar"


def test_unknown_provider_is_not_found(oauth):
    with pytest.raises(AuthError) as exc_info:
        oauth.provider_config("myspace")
    assert exc_info.value.kind is ErrorKind.NOT_FOUND
