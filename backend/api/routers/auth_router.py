"""Authentication API routes"""

import logging
import secrets
from datetime import datetime
from typing import Any
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field
from shared.models.access_token import Scope
from shared.models.user import User

from core.config import Settings, get_settings
from core.cookies import (
    delete_cookie,
    set_access_cookie,
    set_registration_cookie,
    set_session_cookie,
)
from core.dependencies import get_auth_service, get_user_context
from core.user_context import UserContext
from services import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v3", tags=["authentication"])


# ============================================
# Request / Response Models
# ============================================


class RegisterRequest(BaseModel):
    username: str = Field(min_length=1, max_length=20, pattern=r"^[A-Za-z0-9_.-]+$")


class UserResponse(BaseModel):
    id: str
    username: str
    provider_name: str
    avatar_id: str | None
    settings: dict[str, Any]
    created_at: datetime | None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            provider_name=user.provider_name,
            avatar_id=user.avatar_id,
            settings=user.settings,
            created_at=user.created_at,
        )


# ============================================
# Login
# ============================================


@router.get("/login/{provider}")
async def login(
    provider: str,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """Start the OAuth flow: redirect to the provider's authorize page"""
    # A fresh session per attempt; an older pending login is simply abandoned
    session_id = secrets.token_urlsafe(32)
    authorize_url = await auth_service.initiate_login(provider, session_id)

    response = RedirectResponse(url=authorize_url, status_code=302)
    set_session_cookie(response, request, settings, session_id)
    return response


@router.get("/login/{provider}/callback")
async def login_callback(
    provider: str,
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """Handle the provider redirect: log in or start registration"""
    session_id = request.cookies.get(settings.session_cookie_name, "")

    if error:
        logger.warning(f"OAuth error from {provider}: {error}")
        await auth_service.cancel_login(session_id)
        response = RedirectResponse(
            url=f"{settings.client_url}/login?{urlencode({'error': error})}", status_code=302
        )
        delete_cookie(response, request, settings, settings.session_cookie_name)
        return response

    result = await auth_service.handle_callback(provider, state, code, session_id)

    response = RedirectResponse(url=result.redirect_url, status_code=302)
    delete_cookie(response, request, settings, settings.session_cookie_name)
    if result.access_token is not None:
        set_access_cookie(
            response,
            request,
            settings,
            result.access_token.token,
            result.access_token.expires_at,
        )
    elif result.registration is not None:
        set_registration_cookie(
            response,
            request,
            settings,
            result.registration.token,
            result.registration.expires_at,
        )
    return response


# ============================================
# Registration
# ============================================


@router.post("/auth/register", response_model=UserResponse)
async def register(
    body: RegisterRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Create the account for a pending provider identity"""
    registration_token = request.cookies.get(settings.registration_cookie_name)
    result = await auth_service.complete_registration(body.username, registration_token)

    response = JSONResponse(UserResponse.from_user(result.user).model_dump(mode="json"))
    delete_cookie(response, request, settings, settings.registration_cookie_name)
    set_access_cookie(
        response,
        request,
        settings,
        result.access_token.token,
        result.access_token.expires_at,
    )
    return response


# ============================================
# Session
# ============================================


@router.get("/auth/self", response_model=UserResponse)
async def get_self(ctx: UserContext = Depends(get_user_context)) -> UserResponse:
    """Get the current user"""
    user = ctx.require(Scope.USER, Scope.USER_READ)
    return UserResponse.from_user(user)


@router.get("/auth/logout")
async def logout(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """Revoke the login token and clear its cookie"""
    token = request.cookies.get(settings.access_cookie_name)
    redirect_url = await auth_service.logout(token)

    response = RedirectResponse(url=redirect_url, status_code=302)
    delete_cookie(response, request, settings, settings.access_cookie_name)
    return response
