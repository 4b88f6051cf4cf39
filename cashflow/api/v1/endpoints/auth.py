"""
Auth endpoints — registration, login (OAuth2 password flow), token refresh
and the caller's own profile.
"""

import uuid

from fastapi import APIRouter, Cookie, Depends, Request, Response
from fastapi.security import OAuth2PasswordRequestForm
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from cashflow.api.v1.deps import get_current_actor, get_db
from cashflow.core.config import settings
from cashflow.core.exceptions import InvalidCredentials, NotFound
from cashflow.core.permissions import Actor, permission_set
from cashflow.core.security import (create_access_token, create_refresh_token,
                                    decode_refresh_token)
from cashflow.models.user import User
from cashflow.schemas.common import LogoutResponse
from cashflow.schemas.token import RefreshRequest, Token
from cashflow.schemas.user import (CurrentUserRead, ProfileUpdate, UserCreate,
                                   UserRead)
from cashflow.services import directory

# Rate limiter keyed by client IP
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

router = APIRouter(prefix="/auth", tags=["auth"])


def _issue_tokens(response: Response, user_id: uuid.UUID) -> Token:
    """Create an access/refresh pair and mirror it into HttpOnly cookies."""
    access_token = create_access_token(user_id)
    refresh_token = create_refresh_token(user_id)

    response.set_cookie(
        key="access_token",
        value=f"Bearer {access_token}",
        httponly=True,
        secure=settings.COOKIE_SECURE,  # Set to True in HTTPS production
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    response.set_cookie(
        key="refresh_token",
        value=refresh_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )
    return Token(access_token=access_token, refresh_token=refresh_token)


async def _current_user_read(db: AsyncSession, user: User) -> CurrentUserRead:
    roles = await directory.load_roles(db, user.id)
    return CurrentUserRead(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=directory.primary_role(roles),
        created_at=user.created_at,
        roles=sorted(roles, key=lambda r: r.value),
        permissions=permission_set(roles),
    )


@router.post("/register", response_model=UserRead, status_code=201)
@limiter.limit(settings.REGISTER_RATE_LIMIT)
async def register(
    request: Request,
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> UserRead:
    """Create an account. The first account ever registered becomes admin."""
    user, role = await directory.register_user(db, body.email, body.password, body.full_name)
    return UserRead(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=role,
        created_at=user.created_at,
    )


@router.post("/login", response_model=Token)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login_for_access_token(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
) -> Token:
    """Authenticate with email/password. Returns tokens and sets HttpOnly cookies."""
    user = await directory.authenticate(db, form_data.username, form_data.password)
    return _issue_tokens(response, user.id)


@router.post("/refresh", response_model=Token)
async def refresh_access_token_endpoint(
    response: Response,
    body: RefreshRequest | None = None,
    refresh_token_cookie: str | None = Cookie(None, alias="refresh_token"),
    db: AsyncSession = Depends(get_db),
) -> Token:
    # Priority: Body > Cookie
    token_str = None
    if body and body.refresh_token:
        token_str = body.refresh_token
    elif refresh_token_cookie:
        token_str = refresh_token_cookie

    if not token_str:
        raise InvalidCredentials("Refresh token missing")

    payload = decode_refresh_token(token_str)
    if payload is None or payload.get("sub") is None:
        raise InvalidCredentials("Invalid or expired refresh token")

    try:
        user = await directory.get_user(db, payload["sub"])
    except NotFound as exc:
        raise InvalidCredentials("User not found") from exc

    return _issue_tokens(response, user.id)


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response) -> LogoutResponse:
    """Clear auth cookies and end the session."""
    response.delete_cookie("access_token")
    response.delete_cookie("refresh_token")
    return LogoutResponse(message="Logged out")


@router.get("/me", response_model=CurrentUserRead)
async def read_current_user(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> CurrentUserRead:
    """Return the caller's profile, role and derived permission flags."""
    user = await directory.get_user(db, actor.user_id)
    return await _current_user_read(db, user)


@router.patch("/me", response_model=CurrentUserRead)
async def update_current_user(
    body: ProfileUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> CurrentUserRead:
    """Update the caller's own full name."""
    user = await directory.update_profile(db, actor, body.full_name)
    return await _current_user_read(db, user)
