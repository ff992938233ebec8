from datetime import timedelta

import pytest
from starlette.requests import Request

from app.core.config import settings
from app.core.exceptions import AuthFailure
from app.core.security import (
    Identity,
    IdentityResolver,
    create_access_token,
    create_session_token,
    parse_bearer,
    request_resolver,
    websocket_resolver,
)


def make_request(headers: dict = None, query_string: bytes = b"") -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "headers": raw, "query_string": query_string})


def session_cookie(token: str) -> dict:
    return {"Cookie": f"{settings.SESSION_COOKIE_NAME}={token}"}


class FakeStrategy:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    async def resolve(self, conn):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


@pytest.mark.parametrize("value", [None, "", "Bearer", "Bearer ", "Token abc", "abc"])
def test_parse_bearer_rejects_malformed(value):
    assert parse_bearer(value) is None


def test_parse_bearer_accepts_scheme_case_insensitively():
    assert parse_bearer("bearer abc") == "abc"
    assert parse_bearer("Bearer abc") == "abc"


def test_parse_bearer_keeps_everything_after_the_scheme():
    assert parse_bearer("Bearer a b") == "a b"


@pytest.mark.asyncio
class TestIdentityResolverChain:
    async def test_first_success_wins(self):
        first = FakeStrategy(result=Identity("alice"))
        second = FakeStrategy(result=Identity("bob"))
        identity = await IdentityResolver([first, second]).resolve(make_request())
        assert identity.user_id == "alice"
        assert second.calls == 0

    async def test_rejecting_strategy_falls_through(self):
        first = FakeStrategy(error=AuthFailure("expired"))
        second = FakeStrategy(result=Identity("bob"))
        identity = await IdentityResolver([first, second]).resolve(make_request())
        assert identity.user_id == "bob"

    async def test_no_identity_is_auth_failure(self):
        with pytest.raises(AuthFailure):
            await IdentityResolver([FakeStrategy(), FakeStrategy()]).resolve(make_request())


@pytest.mark.asyncio
class TestRequestResolver:
    async def test_session_cookie(self):
        request = make_request(session_cookie(create_session_token("alice", "alice@example.com")))
        identity = await request_resolver.resolve(request)
        assert identity == Identity("alice", "alice@example.com")

    async def test_bearer_header(self):
        request = make_request({"Authorization": f"Bearer {create_access_token('bob')}"})
        identity = await request_resolver.resolve(request)
        assert identity.user_id == "bob"

    async def test_cookie_takes_precedence_over_header(self):
        headers = session_cookie(create_session_token("alice"))
        headers["Authorization"] = f"Bearer {create_access_token('bob')}"
        identity = await request_resolver.resolve(make_request(headers))
        assert identity.user_id == "alice"

    async def test_invalid_cookie_falls_back_to_header(self):
        headers = session_cookie("not-a-token")
        headers["Authorization"] = f"Bearer {create_access_token('bob')}"
        identity = await request_resolver.resolve(make_request(headers))
        assert identity.user_id == "bob"

    async def test_expired_token_rejected(self):
        token = create_access_token("bob", expires_delta=timedelta(seconds=-5))
        with pytest.raises(AuthFailure):
            await request_resolver.resolve(make_request({"Authorization": f"Bearer {token}"}))

    async def test_session_token_is_not_a_bearer_token(self):
        token = create_session_token("bob")
        with pytest.raises(AuthFailure):
            await request_resolver.resolve(make_request({"Authorization": f"Bearer {token}"}))

    async def test_tampered_token_rejected(self):
        token = create_access_token("bob")
        with pytest.raises(AuthFailure):
            await request_resolver.resolve(make_request({"Authorization": f"Bearer {token}x"}))

    async def test_malformed_header_is_plain_failure(self):
        with pytest.raises(AuthFailure):
            await request_resolver.resolve(make_request({"Authorization": "Bearer"}))

    async def test_token_with_extra_parts_rejected(self):
        token = create_access_token("bob")
        with pytest.raises(AuthFailure):
            await request_resolver.resolve(make_request({"Authorization": f"Bearer {token} extra"}))

    async def test_query_token_only_for_websockets(self):
        query = f"access_token={create_access_token('carol')}".encode()
        with pytest.raises(AuthFailure):
            await request_resolver.resolve(make_request(query_string=query))
        identity = await websocket_resolver.resolve(make_request(query_string=query))
        assert identity.user_id == "carol"
