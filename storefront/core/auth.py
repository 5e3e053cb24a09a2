"""Session identity resolution.

The storefront's session provider lives outside this service; routes only
need the authenticated user id behind a bearer token. Identity providers are
looked up on ``app.state`` so deployments (and tests) can inject their own.

Design principles:
- Single Responsibility: Only maps bearer tokens to user ids
- Dependency Injection: Used via FastAPI Depends() for loose coupling
- Configuration-driven: the static provider reads tokens from env vars
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from abc import ABC, abstractmethod
from typing import Annotated

from fastapi import Header, Request

from storefront.core.errors import AuthenticationAppError
from storefront.core.logging import log_security_event

logger = logging.getLogger(__name__)


class AbstractIdentityProvider(ABC):
    """Resolves a session token to the owning user id."""

    @abstractmethod
    def resolve(self, token: str) -> str | None:
        """Return the user id for ``token`` or None when it is not a valid session."""
        raise NotImplementedError


def parse_session_tokens(tokens_string: str | None) -> dict[str, str]:
    """Parse comma-separated ``token:user_id`` pairs into a mapping.

    Args:
        tokens_string: Comma-separated pairs, or None.

    Returns:
        Mapping of token to user id. Malformed pairs are skipped.

    Examples:
        >>> parse_session_tokens("tok-a:user-1, tok-b:user-2")
        {'tok-a': 'user-1', 'tok-b': 'user-2'}
        >>> parse_session_tokens(None)
        {}
    """
    if not tokens_string:
        return {}

    tokens: dict[str, str] = {}
    for pair in tokens_string.split(","):
        token, sep, user_id = pair.strip().partition(":")
        if sep and token.strip() and user_id.strip():
            tokens[token.strip()] = user_id.strip()
    return tokens


class StaticTokenIdentityProvider(AbstractIdentityProvider):
    """Identity provider backed by a fixed token table."""

    def __init__(self, tokens: dict[str, str]) -> None:
        self._tokens = dict(tokens)

    @classmethod
    def from_string(cls, tokens_string: str | None) -> "StaticTokenIdentityProvider":
        return cls(parse_session_tokens(tokens_string))

    def resolve(self, token: str) -> str | None:
        if not token:
            return None
        for known, user_id in self._tokens.items():
            if hmac.compare_digest(known.encode(), token.encode()):
                return user_id
        return None


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _token_hash(token: str) -> str:
    """Hash the session token for logging without exposing it."""
    return hashlib.sha256(token.encode()).hexdigest()[:16]


def resolve_user_id(request: Request, authorization: str | None) -> str | None:
    """Resolve the caller's user id, caching it on ``request.state``.

    Args:
        request: Current request (provides ``app.state.identity_provider``).
        authorization: Raw Authorization header value.

    Returns:
        The user id, or None for anonymous/invalid sessions.
    """
    if hasattr(request.state, "user_id"):
        return request.state.user_id

    token = _bearer_token(authorization)
    user_id = None
    if token:
        provider: AbstractIdentityProvider = request.app.state.identity_provider
        user_id = provider.resolve(token)
        if user_id is None:
            log_security_event(
                "auth.invalid_session",
                token_hash=_token_hash(token),
                path=request.url.path,
            )

    request.state.user_id = user_id
    return user_id


async def get_optional_user_id(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> str | None:
    """FastAPI dependency returning the user id or None for anonymous callers."""
    return resolve_user_id(request, authorization)


async def get_current_user_id(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """FastAPI dependency requiring a valid bearer session.

    Raises:
        AuthenticationAppError: 401 when the session is missing or invalid.
    """
    user_id = resolve_user_id(request, authorization)
    if user_id is None:
        logger.info("auth.rejected", extra={"has_authorization": bool(authorization)})
        raise AuthenticationAppError(
            code="unauthorized",
            message="Authentication required",
        )
    return user_id
