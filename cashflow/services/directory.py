"""
User/role directory — accounts, role assignments and the bootstrap rule.

The very first account ever registered becomes ``admin``; every later one
starts as ``view_only``. Only administrators can list accounts, replace a
role or remove an account, and they cannot do either to themselves.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cashflow.core.config import settings
from cashflow.core.enums import AppRole
from cashflow.core.exceptions import (AlreadyRegistered, InvalidCredentials,
                                      NotFound, Unauthorized, ValidationError)
from cashflow.core.permissions import Actor, RoleSet, as_role_set, is_admin
from cashflow.core.security import get_password_hash, verify_password
from cashflow.models.transaction import Transaction
from cashflow.models.user import BootstrapClaim, User, UserRole
from cashflow.schemas.user import normalise_email

logger = logging.getLogger(__name__)

# Precedence used when a legacy account still carries several role rows.
_ROLE_PRECEDENCE = (
    AppRole.ADMIN,
    AppRole.EDIT,
    AppRole.INSERT_INCOME,
    AppRole.INSERT_EXPENSES,
    AppRole.VIEW_ONLY,
)


class _BootstrapTaken(Exception):
    """Another registration claimed the bootstrap admin slot first."""


def primary_role(roles: RoleSet) -> AppRole | None:
    for role in _ROLE_PRECEDENCE:
        if role in roles:
            return role
    return None


def _coerce_id(value: uuid.UUID | str, what: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise NotFound(f"{what} not found") from exc


# ── Role lookup / server-side gate ──────────────────────────────────
async def load_roles(db: AsyncSession, user_id: uuid.UUID) -> RoleSet:
    result = await db.execute(select(UserRole.role).where(UserRole.user_id == user_id))
    return as_role_set(result.scalars().all())


async def authorize(
    db: AsyncSession,
    actor: Actor,
    predicate: Callable[[RoleSet], bool],
    action: str,
) -> RoleSet:
    """Re-read the actor's roles from the database and apply *predicate*.

    ``actor.roles`` is deliberately ignored here: the role set comes from
    ``user_roles`` as of this transaction.
    """
    roles = await load_roles(db, actor.user_id)
    if not predicate(roles):
        logger.warning(
            "Denied '%s' for user %s (roles: %s)",
            action,
            actor.user_id,
            sorted(r.value for r in roles) or "none",
        )
        raise Unauthorized(f"You do not have permission to {action}")
    return roles


# ── Accounts ────────────────────────────────────────────────────────
async def get_user(db: AsyncSession, user_id: uuid.UUID | str) -> User:
    result = await db.execute(select(User).where(User.id == _coerce_id(user_id, "User")))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user


async def _is_first_user(db: AsyncSession) -> bool:
    claimed = await db.execute(select(BootstrapClaim.id).limit(1))
    if claimed.scalar_one_or_none() is not None:
        return False
    count = await db.execute(select(func.count(User.id)))
    return (count.scalar() or 0) == 1


async def _create_account(
    db: AsyncSession,
    email: str,
    password: str,
    full_name: str | None,
    allow_bootstrap: bool,
) -> tuple[User, AppRole]:
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        full_name=full_name,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise AlreadyRegistered() from exc

    role = AppRole.VIEW_ONLY
    if allow_bootstrap and await _is_first_user(db):
        db.add(BootstrapClaim(id=1, user_id=user.id))
        try:
            await db.flush()
        except IntegrityError as exc:
            raise _BootstrapTaken() from exc
        role = AppRole.ADMIN

    db.add(UserRole(user_id=user.id, role=role))
    await db.commit()
    return user, role


async def register_user(
    db: AsyncSession,
    email: str,
    password: str,
    full_name: str | None = None,
) -> tuple[User, AppRole]:
    """Create an account and its single role row per the bootstrap rule."""
    try:
        email = normalise_email(email)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if len(password or "") < settings.MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters"
        )
    full_name = (full_name or "").strip() or None

    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        raise AlreadyRegistered()

    try:
        user, role = await _create_account(db, email, password, full_name, allow_bootstrap=True)
    except _BootstrapTaken:
        await db.rollback()
        logger.info("Bootstrap admin already claimed; registering %s as view_only", email)
        user, role = await _create_account(db, email, password, full_name, allow_bootstrap=False)

    logger.info("Registered user %s with role %s", email, role.value)
    return user, role


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    result = await db.execute(select(User).where(User.email == (email or "").strip().lower()))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.hashed_password):
        raise InvalidCredentials()
    return user


async def update_profile(db: AsyncSession, actor: Actor, full_name: str | None) -> User:
    """Users may rename themselves; nothing else on the profile is writable."""
    user = await get_user(db, actor.user_id)
    user.full_name = full_name
    await db.commit()
    await db.refresh(user)
    return user


# ── Administration ──────────────────────────────────────────────────
async def list_users(db: AsyncSession, actor: Actor) -> list[tuple[User, AppRole | None]]:
    await authorize(db, actor, is_admin, "manage users")
    result = await db.execute(
        select(User)
        .options(selectinload(User.roles))
        .order_by(User.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return [
        (user, primary_role(as_role_set(r.role for r in user.roles)))
        for user in result.scalars().all()
    ]


async def set_role(
    db: AsyncSession,
    actor: Actor,
    user_id: uuid.UUID | str,
    role: AppRole | str,
) -> AppRole:
    """Replace every role row of *user_id* with exactly one *role* row."""
    await authorize(db, actor, is_admin, "manage users")
    try:
        new_role = AppRole(role)
    except ValueError as exc:
        raise ValidationError(f"Unknown role '{role}'") from exc

    target = await get_user(db, user_id)
    if target.id == actor.user_id:
        raise Unauthorized("Administrators cannot change their own role")

    await db.execute(delete(UserRole).where(UserRole.user_id == target.id))
    db.add(UserRole(user_id=target.id, role=new_role))
    await db.commit()
    logger.info("User %s set role of %s to %s", actor.user_id, target.email, new_role.value)
    return new_role


async def remove_user(db: AsyncSession, actor: Actor, user_id: uuid.UUID | str) -> User:
    """Delete an account together with its role rows and owned transactions."""
    await authorize(db, actor, is_admin, "manage users")
    target = await get_user(db, user_id)
    if target.id == actor.user_id:
        raise Unauthorized("Administrators cannot remove their own account")

    removed = await db.execute(delete(Transaction).where(Transaction.user_id == target.id))
    await db.execute(delete(UserRole).where(UserRole.user_id == target.id))
    await db.execute(
        update(BootstrapClaim).where(BootstrapClaim.user_id == target.id).values(user_id=None)
    )
    await db.execute(delete(User).where(User.id == target.id))
    await db.commit()
    logger.info(
        "User %s removed %s (%d transactions deleted)",
        actor.user_id,
        target.email,
        removed.rowcount or 0,
    )
    return target
