from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Sequence
import logging

from jose import JWTError, jwt
from fastapi import Depends, Request
from fastapi.security.utils import get_authorization_scheme_param
from starlette.requests import HTTPConnection

from app.core.config import settings
from app.core.exceptions import AuthFailure, unauthorized

logger = logging.getLogger(__name__)

ACCESS_TOKEN = "access"
SESSION_TOKEN = "session"


@dataclass(frozen=True)
class Identity:
    """The authenticated principal a request acts for."""
    user_id: str
    email: Optional[str] = None


def create_token(
    user_id: str,
    token_type: str,
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[Dict[str, Any]] = None
) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(
        minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES if token_type == ACCESS_TOKEN else settings.SESSION_EXPIRE_MINUTES
    ))

    payload = {
        "sub": str(user_id),
        "exp": int(expire.timestamp()),
        "iat": int(now.timestamp()),
        "type": token_type,
    }
    if settings.JWT_AUDIENCE:
        payload["aud"] = settings.JWT_AUDIENCE

    if additional_claims:
        payload.update(additional_claims)

    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_access_token(user_id: str, email: Optional[str] = None, expires_delta: Optional[timedelta] = None) -> str:
    claims = {"email": email} if email else None
    return create_token(user_id, ACCESS_TOKEN, expires_delta, claims)


def create_session_token(user_id: str, email: Optional[str] = None, expires_delta: Optional[timedelta] = None) -> str:
    claims = {"email": email} if email else None
    return create_token(user_id, SESSION_TOKEN, expires_delta, claims)


class IdentityProvider:
    """Verifies provider-issued tokens.

    Verification is a coroutine so callers treat it as a suspension point, the
    same as a remote introspection call would be.
    """

    def __init__(self, secret_key: str, algorithm: str, audience: Optional[str] = None):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.audience = audience

    async def verify(self, token: str, expected_type: str) -> Identity:
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except JWTError as e:
            raise AuthFailure(str(e)) from e

        if payload.get("type") != expected_type:
            raise AuthFailure("Invalid token type")
        subject = payload.get("sub")
        if not subject:
            raise AuthFailure("Token has no subject")
        return Identity(user_id=str(subject), email=payload.get("email"))


class SessionCookieResolver:
    """Resolves the ambient session cookie set by the login callback."""

    def __init__(self, provider: IdentityProvider, cookie_name: str):
        self.provider = provider
        self.cookie_name = cookie_name

    async def resolve(self, conn: HTTPConnection) -> Optional[Identity]:
        token = conn.cookies.get(self.cookie_name)
        if not token:
            return None
        return await self.provider.verify(token, SESSION_TOKEN)


def parse_bearer(value: Optional[str]) -> Optional[str]:
    """Return the token of a ``Bearer <token>`` value, else None."""
    scheme, token = get_authorization_scheme_param(value)
    if scheme.lower() != "bearer" or not token:
        return None
    return token


class BearerTokenResolver:
    def __init__(self, provider: IdentityProvider):
        self.provider = provider

    async def resolve(self, conn: HTTPConnection) -> Optional[Identity]:
        token = parse_bearer(conn.headers.get("authorization"))
        if token is None:
            return None
        return await self.provider.verify(token, ACCESS_TOKEN)


class QueryTokenResolver:
    """``?access_token=`` for websocket upgrades, which browsers cannot add headers to."""

    def __init__(self, provider: IdentityProvider, param: str = "access_token"):
        self.provider = provider
        self.param = param

    async def resolve(self, conn: HTTPConnection) -> Optional[Identity]:
        token = conn.query_params.get(self.param)
        if not token:
            return None
        return await self.provider.verify(token, ACCESS_TOKEN)


class IdentityResolver:
    """Ordered chain of strategies; the first one that yields an identity wins."""

    def __init__(self, strategies: Sequence):
        self.strategies = list(strategies)

    async def resolve(self, conn: HTTPConnection) -> Identity:
        for strategy in self.strategies:
            try:
                identity = await strategy.resolve(conn)
            except AuthFailure as e:
                logger.debug(f"{type(strategy).__name__} rejected credential: {e}")
                continue
            if identity is not None:
                return identity
        raise AuthFailure("No valid credential")


identity_provider = IdentityProvider(
    settings.SECRET_KEY, settings.JWT_ALGORITHM, settings.JWT_AUDIENCE
)

request_resolver = IdentityResolver([
    SessionCookieResolver(identity_provider, settings.SESSION_COOKIE_NAME),
    BearerTokenResolver(identity_provider),
])

websocket_resolver = IdentityResolver(
    request_resolver.strategies + [QueryTokenResolver(identity_provider)]
)


def get_identity_resolver() -> IdentityResolver:
    return request_resolver


async def get_current_identity(
    request: Request,
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Identity:
    """Dependency: the caller's identity, or a uniform 401."""
    try:
        return await resolver.resolve(request)
    except AuthFailure:
        raise unauthorized()
