"""Unit tests for session identity resolution."""

from types import SimpleNamespace

import pytest
from starlette.datastructures import State

from storefront.core.auth import (
    StaticTokenIdentityProvider,
    get_current_user_id,
    get_optional_user_id,
    parse_session_tokens,
)
from storefront.core.errors import AuthenticationAppError


def _request(provider: StaticTokenIdentityProvider) -> SimpleNamespace:
    """Minimal stand-in exposing what the dependencies read."""
    return SimpleNamespace(
        app=SimpleNamespace(state=SimpleNamespace(identity_provider=provider)),
        state=State(),
        url=SimpleNamespace(path="/api/orders/1"),
    )


class TestParseSessionTokens:
    """Test session token table parsing."""

    def test_parse_single_pair(self) -> None:
        assert parse_session_tokens("tok:user-1") == {"tok": "user-1"}

    def test_parse_multiple_pairs_with_whitespace(self) -> None:
        assert parse_session_tokens(" a:u1 , b : u2 ") == {"a": "u1", "b": "u2"}

    def test_parse_none_and_empty(self) -> None:
        assert parse_session_tokens(None) == {}
        assert parse_session_tokens("") == {}

    def test_malformed_pairs_are_skipped(self) -> None:
        assert parse_session_tokens("no-colon,:missing-token,missing-user:,ok:u1") == {"ok": "u1"}


class TestStaticTokenIdentityProvider:
    def test_resolves_known_token(self) -> None:
        provider = StaticTokenIdentityProvider.from_string("tok-a:alice")
        assert provider.resolve("tok-a") == "alice"

    def test_unknown_or_empty_token(self) -> None:
        provider = StaticTokenIdentityProvider({"tok-a": "alice"})
        assert provider.resolve("tok-b") is None
        assert provider.resolve("") is None


class TestDependencies:
    """Test FastAPI dependencies for bearer sessions."""

    @pytest.mark.asyncio
    async def test_current_user_from_bearer_token(self) -> None:
        request = _request(StaticTokenIdentityProvider({"tok-a": "alice"}))

        assert await get_current_user_id(request, authorization="Bearer tok-a") == "alice"

    @pytest.mark.asyncio
    async def test_scheme_is_case_insensitive(self) -> None:
        request = _request(StaticTokenIdentityProvider({"tok-a": "alice"}))

        assert await get_current_user_id(request, authorization="bearer tok-a") == "alice"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("authorization", [None, "", "tok-a", "Basic tok-a", "Bearer wrong"])
    async def test_current_user_raises_401_error(self, authorization) -> None:
        request = _request(StaticTokenIdentityProvider({"tok-a": "alice"}))

        with pytest.raises(AuthenticationAppError) as exc_info:
            await get_current_user_id(request, authorization=authorization)

        assert exc_info.value.code == "unauthorized"

    @pytest.mark.asyncio
    async def test_optional_user_is_none_for_anonymous(self) -> None:
        request = _request(StaticTokenIdentityProvider({"tok-a": "alice"}))

        assert await get_optional_user_id(request, authorization=None) is None

    @pytest.mark.asyncio
    async def test_resolution_is_cached_per_request(self) -> None:
        provider = StaticTokenIdentityProvider({"tok-a": "alice"})
        request = _request(provider)

        await get_optional_user_id(request, authorization="Bearer tok-a")
        request.app.state.identity_provider = StaticTokenIdentityProvider({})

        assert await get_current_user_id(request, authorization="Bearer tok-a") == "alice"
