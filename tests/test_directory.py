"""Tests for the user/role directory service."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import delete, func, select

from cashflow.core.enums import AppRole, PaymentMethod, TransactionType
from cashflow.core.exceptions import (AlreadyRegistered, InvalidCredentials,
                                      NotFound, Unauthorized, ValidationError)
from cashflow.core.permissions import Actor
from cashflow.models.transaction import Transaction
from cashflow.models.user import BootstrapClaim, User, UserRole
from cashflow.services import directory


async def _roles_of(db, user_id):
    result = await db.execute(select(UserRole.role).where(UserRole.user_id == user_id))
    return list(result.scalars().all())


# ── Bootstrap ───────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_first_user_becomes_admin_then_view_only(db_session):
    first, first_role = await directory.register_user(db_session, "first@ledger.test", "secret123")
    second, second_role = await directory.register_user(db_session, "second@ledger.test", "secret123")
    third, third_role = await directory.register_user(db_session, "third@ledger.test", "secret123")

    assert first_role is AppRole.ADMIN
    assert second_role is AppRole.VIEW_ONLY
    assert third_role is AppRole.VIEW_ONLY
    assert await _roles_of(db_session, first.id) == [AppRole.ADMIN]
    assert await _roles_of(db_session, third.id) == [AppRole.VIEW_ONLY]

    claims = await db_session.execute(select(BootstrapClaim))
    claim = claims.scalar_one()
    assert claim.user_id == first.id


@pytest.mark.asyncio
async def test_bootstrap_is_once_ever(db_session):
    """Emptying the user table does not hand admin to the next sign-up."""
    await directory.register_user(db_session, "root@ledger.test", "secret123")
    await db_session.execute(delete(UserRole))
    await db_session.execute(delete(User))
    await db_session.commit()
    db_session.expire_all()

    claim = (await db_session.execute(select(BootstrapClaim))).scalar_one()
    assert claim.user_id is None

    _newcomer, role = await directory.register_user(db_session, "new@ledger.test", "secret123")
    assert role is AppRole.VIEW_ONLY


@pytest.mark.asyncio
async def test_bootstrap_claim_collision_retries_as_view_only(
    session_factory, db_session, monkeypatch
):
    """Both racers saw themselves as first; the loser's claim insert collides."""
    # The winner commits from its own session, as a concurrent request would
    async with session_factory() as winner:
        winner.add(BootstrapClaim(id=1, user_id=None))
        await winner.commit()

    async def _looks_first(_db):
        return True

    monkeypatch.setattr(directory, "_is_first_user", _looks_first)

    user, role = await directory.register_user(db_session, "loser@ledger.test", "secret123")
    assert role is AppRole.VIEW_ONLY
    assert await _roles_of(db_session, user.id) == [AppRole.VIEW_ONLY]

    users = await db_session.execute(select(User.id).where(User.email == "loser@ledger.test"))
    assert list(users.scalars().all()) == [user.id]
    role_rows = await db_session.execute(select(func.count()).select_from(UserRole))
    assert role_rows.scalar() == 1
    claim = (await db_session.execute(select(BootstrapClaim))).scalar_one()
    assert claim.user_id is None


@pytest.mark.asyncio
async def test_bootstrap_already_claimed_registers_view_only(db_session):
    """A claim row already present (a concurrent sign-up won) forces view_only."""
    db_session.add(BootstrapClaim(id=1, user_id=None))
    await db_session.commit()

    _user, role = await directory.register_user(db_session, "late@ledger.test", "secret123")
    assert role is AppRole.VIEW_ONLY


# ── Registration / authentication ───────────────────────────────────
@pytest.mark.asyncio
async def test_duplicate_email_rejected(db_session):
    await directory.register_user(db_session, "dup@ledger.test", "secret123")
    with pytest.raises(AlreadyRegistered):
        await directory.register_user(db_session, "  DUP@ledger.test ", "secret123")


@pytest.mark.asyncio
@pytest.mark.parametrize("email,password", [("not-an-email", "secret123"), ("ok@ledger.test", "123")])
async def test_registration_validation(db_session, email, password):
    with pytest.raises(ValidationError):
        await directory.register_user(db_session, email, password)
    count = await db_session.execute(select(func.count()).select_from(UserRole))
    assert count.scalar() == 0


@pytest.mark.asyncio
async def test_authenticate(db_session):
    user, _ = await directory.register_user(db_session, "login@ledger.test", "secret123", "Ana")
    found = await directory.authenticate(db_session, "Login@Ledger.test", "secret123")
    assert found.id == user.id
    assert found.full_name == "Ana"

    with pytest.raises(InvalidCredentials):
        await directory.authenticate(db_session, "login@ledger.test", "wrong-password")
    with pytest.raises(InvalidCredentials):
        await directory.authenticate(db_session, "nobody@ledger.test", "secret123")


@pytest.mark.asyncio
async def test_update_profile(db_session):
    user, _ = await directory.register_user(db_session, "me@ledger.test", "secret123")
    updated = await directory.update_profile(db_session, Actor(user_id=user.id), "New Name")
    assert updated.full_name == "New Name"


# ── Administration ──────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_list_users_requires_admin_and_orders_newest_first(make_user, db_session):
    admin = await make_user(AppRole.ADMIN, email="a@ledger.test")
    viewer = await make_user(AppRole.VIEW_ONLY, email="b@ledger.test")
    editor = await make_user(AppRole.EDIT, email="c@ledger.test")

    rows = await directory.list_users(db_session, admin)
    assert [u.email for u, _ in rows] == ["c@ledger.test", "b@ledger.test", "a@ledger.test"]
    assert [r for _, r in rows] == [AppRole.EDIT, AppRole.VIEW_ONLY, AppRole.ADMIN]

    with pytest.raises(Unauthorized):
        await directory.list_users(db_session, viewer)
    with pytest.raises(Unauthorized):
        await directory.list_users(db_session, editor)


@pytest.mark.asyncio
async def test_set_role_replaces_all_rows(make_user, db_session):
    admin = await make_user(AppRole.ADMIN)
    target = await make_user(AppRole.VIEW_ONLY)
    # Legacy second row that must not survive the replacement
    db_session.add(UserRole(user_id=target.user_id, role=AppRole.INSERT_INCOME))
    await db_session.commit()

    await directory.set_role(db_session, admin, target.user_id, "edit")
    assert await _roles_of(db_session, target.user_id) == [AppRole.EDIT]


@pytest.mark.asyncio
async def test_set_role_guards(make_user, db_session):
    admin = await make_user(AppRole.ADMIN)
    viewer = await make_user(AppRole.VIEW_ONLY)

    with pytest.raises(Unauthorized):
        await directory.set_role(db_session, viewer, admin.user_id, AppRole.VIEW_ONLY)
    with pytest.raises(Unauthorized):
        await directory.set_role(db_session, admin, admin.user_id, AppRole.VIEW_ONLY)
    with pytest.raises(ValidationError):
        await directory.set_role(db_session, admin, viewer.user_id, "superuser")
    with pytest.raises(NotFound):
        await directory.set_role(
            db_session, admin, "00000000-0000-0000-0000-000000000000", AppRole.EDIT
        )
    assert await _roles_of(db_session, admin.user_id) == [AppRole.ADMIN]


@pytest.mark.asyncio
async def test_remove_user_cascades_roles_and_transactions(make_user, db_session):
    admin = await make_user(AppRole.ADMIN)
    editor = await make_user(AppRole.EDIT)
    db_session.add_all(
        [
            Transaction(
                user_id=editor.user_id,
                date=date(2024, 1, 1),
                type=TransactionType.INCOME,
                client_supplier="Acme",
                amount=Decimal("10.00"),
                payment_method=PaymentMethod.INSTANT_TRANSFER,
            ),
            Transaction(
                user_id=admin.user_id,
                date=date(2024, 1, 2),
                type=TransactionType.EXPENSE,
                client_supplier="Shop",
                amount=Decimal("5.00"),
                payment_method=PaymentMethod.CASH,
            ),
        ]
    )
    await db_session.commit()

    removed = await directory.remove_user(db_session, admin, editor.user_id)
    assert removed.email == editor.email

    with pytest.raises(NotFound):
        await directory.get_user(db_session, editor.user_id)
    assert await _roles_of(db_session, editor.user_id) == []
    remaining = await db_session.execute(select(Transaction.user_id))
    assert list(remaining.scalars().all()) == [admin.user_id]


@pytest.mark.asyncio
async def test_remove_user_guards(make_user, db_session):
    admin = await make_user(AppRole.ADMIN)
    editor = await make_user(AppRole.EDIT)

    with pytest.raises(Unauthorized):
        await directory.remove_user(db_session, editor, admin.user_id)
    with pytest.raises(Unauthorized):
        await directory.remove_user(db_session, admin, admin.user_id)
    with pytest.raises(NotFound):
        await directory.remove_user(db_session, admin, "not-a-uuid")
