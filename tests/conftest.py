"""Shared fixtures: in-memory repositories and a scripted OAuth provider."""

import copy
import json
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import httpx
import pytest
from shared.errors import DuplicateRecordError, IdCollisionError
from shared.models.access_token import AccessToken
from shared.models.action_log import ActionLog, ActionLogKind
from shared.models.image import Image
from shared.models.user import User

from core.config import Settings
from services import (
    ActionLogger,
    AuthService,
    IdProvider,
    ImageService,
    MemorySessionStore,
    OAuthService,
    build_provider_configs,
)

SECRET_KEY = "test-secret-key-for-registration-tokens"
CLIENT_URL = "http://client.test"


@pytest.fixture
def anyio_backend():
    return "asyncio"


# ============================================
# Fakes
# ============================================


class FakeClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime.now(UTC).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class FakeUserRepository:
    def __init__(self) -> None:
        self.rows: dict[str, User] = {}

    async def get_by_id(self, user_id):
        return self.rows.get(user_id)

    async def get_by_provider(self, provider_name, external_id):
        for user in self.rows.values():
            if (user.provider_name, user.provider_external_id) == (provider_name, external_id):
                return user
        return None

    async def exists_by_id(self, user_id):
        return user_id in self.rows

    async def exists_by_username(self, username):
        return any(u.username.lower() == username.lower() for u in self.rows.values())

    async def insert(self, user, conn=None):
        if user.id in self.rows:
            raise IdCollisionError("users", user.id)
        if any(u.username.lower() == user.username.lower() for u in self.rows.values()):
            raise DuplicateRecordError("users", "username")
        if await self.get_by_provider(user.provider_name, user.provider_external_id):
            raise DuplicateRecordError("users", "provider_identity")
        self.rows[user.id] = user
        return user


class FakeAccessTokenRepository:
    def __init__(self) -> None:
        self.rows: dict[str, AccessToken] = {}

    async def get(self, token_id):
        return self.rows.get(token_id)

    async def exists(self, token_id):
        return token_id in self.rows

    async def insert(self, token, conn=None):
        if token.id in self.rows:
            raise IdCollisionError("access_tokens", token.id)
        self.rows[token.id] = token
        return token

    async def delete(self, token_id, conn=None):
        return self.rows.pop(token_id, None) is not None

    async def list_visible_for_owner(self, owner_id):
        tokens = [t for t in self.rows.values() if t.owner_id == owner_id and not t.hidden]
        return sorted(tokens, key=lambda t: t.created_at)


class FakeImageRepository:
    def __init__(self) -> None:
        self.rows: dict[str, Image] = {}

    async def exists(self, image_id):
        return image_id in self.rows

    async def get(self, image_id):
        return self.rows.get(image_id)

    async def insert(self, image, conn=None):
        if image.id in self.rows:
            raise IdCollisionError("images", image.id)
        self.rows[image.id] = image


class FakeActionLogRepository:
    def __init__(self) -> None:
        self.rows: list[ActionLog] = []

    async def insert(self, kind, subject_id, conn=None):
        entry = ActionLog(id=len(self.rows) + 1, kind=ActionLogKind(kind), subject_id=subject_id)
        self.rows.append(entry)
        return entry

    def kinds(self) -> list[ActionLogKind]:
        return [entry.kind for entry in self.rows]


class FakeDatabase:
    """Stands in for DatabaseManager; a failed transaction restores every store."""

    def __init__(self, *stores) -> None:
        self.stores = stores
        self.is_connected = True

    @asynccontextmanager
    async def transaction(self):
        snapshots = [copy.deepcopy(store.rows) for store in self.stores]
        try:
            yield None
        except Exception:
            for store, rows in zip(self.stores, snapshots, strict=True):
                store.rows = rows
            raise

    async def check_health(self) -> bool:
        return True


class FakeProvider:
    """Scripted GitHub: token endpoint, user endpoint and avatar host."""

    def __init__(self) -> None:
        self.external_id = 42
        self.login = "octocat"
        self.avatar_url = "https://avatars.example.test/u/42"
        self.token_status = 200
        self.token_body: dict = {"access_token": "gho_provider_token"}
        self.user_status = 200
        self.avatar_content_type: str | None = "image/jpeg"
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url == "https://github.com/login/oauth/access_token":
            return httpx.Response(self.token_status, json=self.token_body)
        if url == "https://api.github.com/user":
            return httpx.Response(
                self.user_status,
                json={"id": self.external_id, "login": self.login, "avatar_url": self.avatar_url},
            )
        if url == self.avatar_url:
            headers = {}
            if self.avatar_content_type:
                headers["content-type"] = self.avatar_content_type
            return httpx.Response(200, content=b"\x89PNG-avatar", headers=headers)
        return httpx.Response(404, content=json.dumps({"message": "Not Found"}).encode())

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


# ============================================
# Fixtures
# ============================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        github_client_id="gh-client-id",
        github_client_secret="gh-client-secret",
        jwt_secret_key=SECRET_KEY,
        database_url="postgresql://test@localhost/test",
        client_url=CLIENT_URL,
        api_url="http://api.test",
        environment="testing",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def users() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def access_tokens() -> FakeAccessTokenRepository:
    return FakeAccessTokenRepository()


@pytest.fixture
def images() -> FakeImageRepository:
    return FakeImageRepository()


@pytest.fixture
def action_logs() -> FakeActionLogRepository:
    return FakeActionLogRepository()


@pytest.fixture
def db(users, access_tokens, images, action_logs) -> FakeDatabase:
    return FakeDatabase(users, access_tokens, images, action_logs)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def oauth(settings, provider) -> OAuthService:
    http = httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))
    return OAuthService(build_provider_configs(settings), http=http)


@pytest.fixture
def sessions() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def auth_service(
    db, users, access_tokens, images, action_logs, oauth, sessions, clock
) -> AuthService:
    id_provider = IdProvider()
    return AuthService(
        db=db,
        users=users,
        access_tokens=access_tokens,
        oauth=oauth,
        sessions=sessions,
        images=ImageService(images, id_provider),
        action_logger=ActionLogger(action_logs),
        id_provider=id_provider,
        client_url=CLIENT_URL,
        secret_key=SECRET_KEY,
        clock=clock,
    )


def make_user(user_id: str = "user0001", username: str = "alice", external_id: str = "42") -> User:
    return User(
        id=user_id,
        username=username,
        provider_name="github",
        provider_external_id=external_id,
        created_at=datetime(2024, 1, 1, tzinfo=UTC),
    )
