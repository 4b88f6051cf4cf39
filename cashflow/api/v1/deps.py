"""
FastAPI dependencies — database session, identity context and role guards.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from typing import Optional

from fastapi import Cookie, Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from cashflow.core import permissions
from cashflow.core.exceptions import InvalidCredentials, NotFound, Unauthorized
from cashflow.core.permissions import Actor, RoleSet
from cashflow.core.security import decode_access_token
from cashflow.db.session import async_session_factory
from cashflow.services import directory

# We use auto_error=False so we can manually check for the cookie if header is missing
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Auth dependencies ───────────────────────────────────────────────
def _token_from(header_token: str | None, cookie_token: str | None) -> str | None:
    # Priority: Header > Cookie
    if header_token:
        return header_token
    if cookie_token:
        # Cookies are set as "Bearer <token>"
        if cookie_token.startswith("Bearer "):
            return cookie_token.split(" ", 1)[1]
        return cookie_token
    return None


async def get_current_actor(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),  # Read from HttpOnly Cookie
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """Decode JWT from Header OR Cookie and resolve the caller's roles."""
    final_token = _token_from(token, access_token)
    if not final_token:
        raise InvalidCredentials("Could not validate credentials")

    payload = decode_access_token(final_token)
    if payload is None or payload.get("sub") is None:
        raise InvalidCredentials("Could not validate credentials")

    try:
        user = await directory.get_user(db, uuid.UUID(payload["sub"]))
    except (ValueError, NotFound) as exc:
        raise InvalidCredentials("Could not validate credentials") from exc

    roles = await directory.load_roles(db, user.id)
    return Actor(user_id=user.id, email=user.email, roles=roles)


def require_permission(
    predicate: Callable[[RoleSet], bool],
    action: str,
) -> Callable[..., object]:
    """Build a guard that rejects callers whose role set fails *predicate*."""

    async def _guard(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not predicate(actor.roles):
            raise Unauthorized(f"You do not have permission to {action}")
        return actor

    _guard.__name__ = f"require_{predicate.__name__}"
    return _guard


require_view = require_permission(permissions.can_view, "view transactions")
require_edit = require_permission(permissions.can_edit, "edit transactions")
require_delete = require_permission(permissions.can_delete, "delete transactions")
require_admin = require_permission(permissions.is_admin, "manage users")
