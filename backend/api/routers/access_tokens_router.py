"""Self-service access token routes"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from shared.models.access_token import AccessToken, ExpiresIn, Scope

from core.dependencies import get_auth_service, get_user_context
from core.user_context import UserContext
from services import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v3/auth/self/access_tokens", tags=["access tokens"])


class AccessTokenResponse(BaseModel):
    id: str
    description: str
    scopes: list[Scope]
    created_at: datetime | None
    expires_at: datetime | None

    @classmethod
    def from_token(cls, token: AccessToken) -> "AccessTokenResponse":
        return cls(
            id=token.id,
            description=token.description,
            scopes=sorted(token.scopes),
            created_at=token.created_at,
            expires_at=token.expires_at,
        )


class CreateAccessTokenRequest(BaseModel):
    scopes: list[Scope] = Field(min_length=1)
    expires_in: ExpiresIn = ExpiresIn.NEVER
    description: str = Field(default="", max_length=200)


class CreatedAccessTokenResponse(BaseModel):
    id: str
    token: str
    expires_at: datetime | None


@router.get("", response_model=list[AccessTokenResponse])
async def list_access_tokens(
    ctx: UserContext = Depends(get_user_context),
    auth_service: AuthService = Depends(get_auth_service),
) -> list[AccessTokenResponse]:
    """List the caller's self-service tokens"""
    tokens = await auth_service.list_access_tokens(ctx)
    return [AccessTokenResponse.from_token(t) for t in tokens]


@router.post("", response_model=CreatedAccessTokenResponse, status_code=201)
async def create_access_token(
    body: CreateAccessTokenRequest,
    ctx: UserContext = Depends(get_user_context),
    auth_service: AuthService = Depends(get_auth_service),
) -> CreatedAccessTokenResponse:
    """Create a token. The secret is shown only in this response"""
    issued = await auth_service.create_access_token(
        ctx, body.scopes, body.expires_in, description=body.description
    )
    logger.info(f"Self-service token {issued.token_id} created")
    return CreatedAccessTokenResponse(
        id=issued.token_id, token=issued.token, expires_at=issued.expires_at
    )


@router.delete("/{token_id}", status_code=204)
async def delete_access_token(
    token_id: str,
    ctx: UserContext = Depends(get_user_context),
    auth_service: AuthService = Depends(get_auth_service),
) -> Response:
    """Delete one of the caller's tokens"""
    await auth_service.delete_access_token(ctx, token_id)
    return Response(status_code=204)
