"""
Delegated (OAuth) login endpoints
"""

import logging
import secrets
from typing import Optional

from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.common.errors import AuthlibBaseError
from fastapi import APIRouter, Query, Request, Response, status
from fastapi.responses import RedirectResponse
import httpx

from app.core.config import settings
from app.core.exceptions import CustomHTTPException
from app.core.security import create_session_token
from app.schemas.auth import LoginResponse
from app.schemas.bookmark import MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

STATE_COOKIE_NAME = "oauth_state"
STATE_COOKIE_MAX_AGE = 10 * 60


def _callback_url(request: Request) -> str:
    return str(request.base_url).rstrip("/") + settings.OAUTH_CALLBACK_PATH


def _oauth_client(redirect_uri: str) -> AsyncOAuth2Client:
    return AsyncOAuth2Client(
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        scope="openid email profile",
        redirect_uri=redirect_uri,
    )


def build_authorization_url(redirect_uri: str) -> tuple[str, str]:
    """Provider URL the browser should visit, and the state it will echo back"""
    if not settings.oauth_configured:
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="OAuth provider is not configured",
        )
    client = _oauth_client(redirect_uri)
    return client.create_authorization_url(
        settings.GOOGLE_AUTHORIZE_URL,
        state=secrets.token_urlsafe(24),
    )


async def exchange_code(redirect_uri: str, code: str) -> dict:
    """Trade an authorization code for the provider's userinfo claims"""
    async with _oauth_client(redirect_uri) as client:
        await client.fetch_token(settings.GOOGLE_ACCESS_TOKEN_URL, code=code)
        response = await client.get(settings.GOOGLE_USERINFO_URL)
        response.raise_for_status()
        return response.json()


@router.post("/login", response_model=LoginResponse)
async def login(request: Request, response: Response):
    try:
        url, state = build_authorization_url(_callback_url(request))
    except CustomHTTPException:
        raise
    except (AuthlibBaseError, ValueError) as e:
        logger.warning(f"OAuth login failed: {e}")
        raise CustomHTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    response.set_cookie(
        key=STATE_COOKIE_NAME,
        value=state,
        max_age=STATE_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    return {"url": url}


@router.get("/callback", include_in_schema=False)
async def oauth_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
):
    if error:
        raise CustomHTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)

    expected_state = request.cookies.get(STATE_COOKIE_NAME)
    if not code or not state or not expected_state or not secrets.compare_digest(state, expected_state):
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid OAuth callback",
        )

    try:
        userinfo = await exchange_code(_callback_url(request), code)
    except (AuthlibBaseError, httpx.HTTPError, ValueError) as e:
        logger.warning(f"OAuth code exchange failed: {e}")
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="OAuth provider rejected the login",
        )

    subject = userinfo.get("sub")
    if not subject:
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="OAuth provider returned no subject",
        )

    redirect = RedirectResponse(settings.FRONTEND_URL, status_code=status.HTTP_303_SEE_OTHER)
    redirect.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=create_session_token(str(subject), userinfo.get("email")),
        max_age=settings.SESSION_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    redirect.delete_cookie(STATE_COOKIE_NAME)
    logger.info(f"User {subject} logged in")
    return redirect


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"message": "Logged out"}
