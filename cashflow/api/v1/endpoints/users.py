"""
User administration endpoints (admin only).

Role replacement and account removal refuse to target the calling
administrator; that rule lives in ``services.directory``.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cashflow.api.v1.deps import get_db, require_admin
from cashflow.core.permissions import Actor
from cashflow.schemas.common import DeleteResponse
from cashflow.schemas.user import RoleUpdate, UserRead
from cashflow.services import directory

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserRead])
async def list_users(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> list[UserRead]:
    """Every account with its role, most recently registered first."""
    rows = await directory.list_users(db, actor)
    return [
        UserRead(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=role,
            created_at=user.created_at,
        )
        for user, role in rows
    ]


@router.put("/{user_id}/role", response_model=UserRead)
async def set_user_role(
    user_id: uuid.UUID,
    body: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> UserRead:
    role = await directory.set_role(db, actor, user_id, body.role)
    user = await directory.get_user(db, user_id)
    return UserRead(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=role,
        created_at=user.created_at,
    )


@router.delete("/{user_id}", response_model=DeleteResponse)
async def remove_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> DeleteResponse:
    """Delete an account, its role and every transaction it owns."""
    user = await directory.remove_user(db, actor, user_id)
    return DeleteResponse(success=True, message=f"User '{user.email}' removed")
