"""
Role predicates — who may do what with the ledger.

Pure functions over a user's role set. They are evaluated twice for every
guarded request: by the HTTP guard dependencies before the endpoint runs,
and again inside the services against the role rows re-read from the
database. Both layers import from here so the answers cannot drift apart.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field

from cashflow.core.enums import AppRole, TransactionType

RoleSet = frozenset[AppRole]


def as_role_set(roles: Iterable[AppRole | str] | None) -> RoleSet:
    """Coerce raw role values into a role set, dropping unknown labels."""
    result = set()
    for role in roles or ():
        try:
            result.add(AppRole(role))
        except ValueError:
            continue
    return frozenset(result)


# ── Predicates ──────────────────────────────────────────────────────
def can_view(roles: RoleSet) -> bool:
    return len(roles) > 0


def can_edit(roles: RoleSet) -> bool:
    return AppRole.ADMIN in roles or AppRole.EDIT in roles


def can_insert_expense(roles: RoleSet) -> bool:
    return can_edit(roles) or AppRole.INSERT_EXPENSES in roles


def can_insert_income(roles: RoleSet) -> bool:
    return can_edit(roles) or AppRole.INSERT_INCOME in roles


def can_delete(roles: RoleSet) -> bool:
    return AppRole.ADMIN in roles or AppRole.EDIT in roles


def is_admin(roles: RoleSet) -> bool:
    return AppRole.ADMIN in roles


def can_insert(roles: RoleSet, tx_type: TransactionType | str) -> bool:
    """Direction-specific insert right for an ``income`` or ``expense`` row."""
    if TransactionType(tx_type) is TransactionType.INCOME:
        return can_insert_income(roles)
    return can_insert_expense(roles)


def permission_set(roles: RoleSet) -> dict[str, bool]:
    return {
        "can_view": can_view(roles),
        "can_edit": can_edit(roles),
        "can_insert_expense": can_insert_expense(roles),
        "can_insert_income": can_insert_income(roles),
        "can_delete": can_delete(roles),
        "is_admin": is_admin(roles),
    }


# ── Request context ─────────────────────────────────────────────────
@dataclass(frozen=True)
class Actor:
    """The caller of a core operation: resolved identity plus role set."""

    user_id: uuid.UUID
    email: str = ""
    roles: RoleSet = field(default_factory=frozenset)
