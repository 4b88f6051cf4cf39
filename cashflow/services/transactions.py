"""
Transaction store — role-gated CRUD over the shared ledger.

Every operation takes the acting :class:`Actor` and re-checks its rights
against ``user_roles`` before touching ``transactions``; the HTTP guards
in ``api/v1/deps.py`` are not trusted to have done so.

Policy notes:
- ``update`` requires only the generic edit right, even when it changes
  ``type``; direction-specific insert rights are checked on insert only.
- ``delete`` of an unknown or already-deleted id raises ``NotFound``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cashflow.core.exceptions import NotFound, ValidationError
from cashflow.core.permissions import (Actor, can_delete, can_edit,
                                       can_insert, can_view)
from cashflow.models.transaction import Transaction
from cashflow.schemas.transaction import (TransactionCreate, TransactionFilter,
                                          TransactionUpdate)
from cashflow.services.aggregation import filter_transactions
from cashflow.services.directory import authorize

logger = logging.getLogger(__name__)

Payload = BaseModel | Mapping[str, Any]


def _validate(schema: type[BaseModel], data: Payload) -> Any:
    """Run *data* through *schema*, reporting failures as ``ValidationError``."""
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return schema.model_validate(dict(data))
    except PydanticValidationError as exc:
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        message = errors[0]["msg"] if errors else "Invalid input"
        raise ValidationError(message, errors=errors) from exc


def _coerce_id(tx_id: uuid.UUID | str) -> uuid.UUID:
    if isinstance(tx_id, uuid.UUID):
        return tx_id
    try:
        return uuid.UUID(str(tx_id))
    except ValueError as exc:
        raise NotFound("Transaction not found") from exc


async def _fetch(db: AsyncSession, tx_id: uuid.UUID | str, lock: bool = False) -> Transaction:
    query = select(Transaction).where(Transaction.id == _coerce_id(tx_id))
    if lock:
        # SQLite ignores FOR UPDATE; PostgreSQL serialises concurrent writers.
        query = query.with_for_update()
    result = await db.execute(query)
    tx = result.scalar_one_or_none()
    if tx is None:
        raise NotFound("Transaction not found")
    return tx


# ── Reads ───────────────────────────────────────────────────────────
async def list_transactions(
    db: AsyncSession,
    actor: Actor,
    criteria: TransactionFilter | Mapping[str, Any] | None = None,
) -> list[Transaction]:
    """All visible transactions matching *criteria*, newest date first."""
    await authorize(db, actor, can_view, "view transactions")
    result = await db.execute(
        select(Transaction).order_by(Transaction.date.desc(), Transaction.created_at.desc())
    )
    return filter_transactions(result.scalars().all(), criteria)


async def get_transaction(db: AsyncSession, actor: Actor, tx_id: uuid.UUID | str) -> Transaction:
    await authorize(db, actor, can_view, "view transactions")
    return await _fetch(db, tx_id)


# ── Writes ──────────────────────────────────────────────────────────
async def insert_transaction(db: AsyncSession, actor: Actor, fields: Payload) -> Transaction:
    payload: TransactionCreate = _validate(TransactionCreate, fields)
    await authorize(
        db,
        actor,
        lambda roles: can_insert(roles, payload.type),
        f"insert {payload.type.value} transactions",
    )

    tx = Transaction(user_id=actor.user_id, **payload.model_dump(exclude_none=True))
    db.add(tx)
    await db.commit()
    await db.refresh(tx)
    logger.info(
        "User %s inserted %s %s (%s)", actor.user_id, tx.type.value, tx.amount, tx.id
    )
    return tx


async def update_transaction(
    db: AsyncSession,
    actor: Actor,
    tx_id: uuid.UUID | str,
    changes: Payload,
) -> Transaction:
    """Apply a partial update; fields not supplied keep their values."""
    await authorize(db, actor, can_edit, "edit transactions")
    payload: TransactionUpdate = _validate(TransactionUpdate, changes)
    tx = await _fetch(db, tx_id, lock=True)

    updates = payload.model_dump(exclude_unset=True)
    for field, value in updates.items():
        setattr(tx, field, value)
    tx.updated_at = datetime.now(timezone.utc)

    await db.commit()
    await db.refresh(tx)
    logger.info("User %s updated transaction %s: %s", actor.user_id, tx.id, sorted(updates))
    return tx


async def delete_transaction(db: AsyncSession, actor: Actor, tx_id: uuid.UUID | str) -> None:
    await authorize(db, actor, can_delete, "delete transactions")
    tx = await _fetch(db, tx_id, lock=True)
    await db.delete(tx)
    await db.commit()
    logger.info("User %s deleted transaction %s", actor.user_id, tx_id)
