import pytest
from conftest import make_user
from shared.models.access_token import LOGIN_SCOPES, Scope, expand_scopes

from core.errors import AuthError, ErrorKind
from core.user_context import ANONYMOUS, UserContext, extract_bearer
from services import MemorySessionStore


class TestUserContext:
    def test_anonymous(self):
        assert not ANONYMOUS.is_logged_in
        assert not ANONYMOUS.has_scope(Scope.PASTE_READ)

    def test_require_without_login_is_unauthenticated(self):
        with pytest.raises(AuthError) as exc_info:
            ANONYMOUS.require(Scope.USER)
        assert exc_info.value.kind is ErrorKind.UNAUTHENTICATED
        assert exc_info.value.status_code == 401

    def test_require_without_scope_is_forbidden(self):
        ctx = UserContext(user=make_user(), scopes=frozenset({Scope.PASTE}))
        with pytest.raises(AuthError) as exc_info:
            ctx.require(Scope.USER_ACCESS_TOKENS)
        assert exc_info.value.kind is ErrorKind.FORBIDDEN
        assert exc_info.value.status_code == 403

    def test_require_any_of(self):
        alice = make_user()
        ctx = UserContext(user=alice, scopes=frozenset({Scope.USER_READ}))
        assert ctx.require(Scope.USER, Scope.USER_READ) is alice

    def test_require_login_only(self):
        alice = make_user()
        assert UserContext(user=alice).require() is alice

    def test_broad_scope_implies_read(self):
        ctx = UserContext(user=make_user(), scopes=frozenset({Scope.PASTE, Scope.USER}))
        assert ctx.has_scope(Scope.PASTE_READ)
        assert ctx.has_scope(Scope.USER_READ)
        assert not ctx.has_scope(Scope.USER_ACCESS_TOKENS)

    def test_read_does_not_imply_write(self):
        ctx = UserContext(user=make_user(), scopes=frozenset({Scope.PASTE_READ}))
        assert not ctx.has_scope(Scope.PASTE)


def test_expand_login_scopes():
    assert expand_scopes(LOGIN_SCOPES) == frozenset(Scope)


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("Bearer abc-def", "abc-def"),
        ("bearer abc-def", "abc-def"),
        ("Bearer   abc-def  ", "abc-def"),
        ("Basic dXNlcjpwYXNz", None),
        ("Bearer", None),
        ("Bearer ", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_bearer(header, expected):
    assert extract_bearer(header) == expected


class TestMemorySessionStore:
    @pytest.mark.anyio
    async def test_take_is_single_use(self):
        store = MemorySessionStore()
        await store.put_state("s1", "state-1")

        assert await store.take_state("s1") == "state-1"
        assert await store.take_state("s1") is None

    @pytest.mark.anyio
    async def test_new_login_replaces_pending_state(self):
        store = MemorySessionStore()
        await store.put_state("s1", "old")
        await store.put_state("s1", "new")
        assert await store.take_state("s1") == "new"

    @pytest.mark.anyio
    async def test_sessions_are_independent(self):
        store = MemorySessionStore()
        await store.put_state("s1", "one")
        await store.put_state("s2", "two")
        assert await store.take_state("s2") == "two"
        assert await store.take_state("s1") == "one"
