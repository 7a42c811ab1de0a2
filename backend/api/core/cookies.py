"""Auth cookie helpers.

Credential cookies (access token, registration carrier) are HttpOnly and
SameSite=Strict. The login session cookie must survive the cross-site
redirect back from the provider, so it is SameSite=Lax.
"""

from datetime import UTC, datetime

from fastapi import Request, Response

from core.config import Settings


def _is_secure(settings: Settings, request: Request) -> bool:
    return settings.https or request.url.scheme == "https"


def _max_age(expires_at: datetime | None) -> int | None:
    if expires_at is None:
        return None
    return max(int((expires_at - datetime.now(UTC)).total_seconds()), 0)


def set_access_cookie(
    response: Response,
    request: Request,
    settings: Settings,
    token: str,
    expires_at: datetime | None,
) -> None:
    response.set_cookie(
        key=settings.access_cookie_name,
        value=token,
        max_age=_max_age(expires_at),
        path="/",
        httponly=True,
        secure=_is_secure(settings, request),
        samesite="strict",
    )


def set_registration_cookie(
    response: Response,
    request: Request,
    settings: Settings,
    token: str,
    expires_at: datetime,
) -> None:
    response.set_cookie(
        key=settings.registration_cookie_name,
        value=token,
        max_age=_max_age(expires_at),
        path="/",
        httponly=True,
        secure=_is_secure(settings, request),
        samesite="strict",
    )


def set_session_cookie(
    response: Response, request: Request, settings: Settings, session_id: str
) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_id,
        max_age=settings.session_ttl_seconds,
        path="/",
        httponly=True,
        secure=_is_secure(settings, request),
        samesite="lax",
    )


def delete_cookie(response: Response, request: Request, settings: Settings, name: str) -> None:
    response.delete_cookie(
        key=name,
        path="/",
        httponly=True,
        secure=_is_secure(settings, request),
        samesite="strict",
    )
