"""
Ledger transaction endpoints.

- GET operations require any assigned role.
- POST requires the insert right matching the transaction ``type``.
- PATCH requires edit rights, DELETE requires delete rights.

Each guard is re-evaluated inside ``services.transactions``.
"""

from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from cashflow.api.v1.deps import (get_current_actor, get_db, require_delete,
                                  require_edit, require_view)
from cashflow.core.exceptions import Unauthorized, ValidationError
from cashflow.core.permissions import Actor, can_insert
from cashflow.models.transaction import Transaction
from cashflow.schemas.common import DeleteResponse
from cashflow.schemas.transaction import (SummaryRead, TransactionCreate,
                                          TransactionFilter, TransactionRead,
                                          TransactionUpdate)
from cashflow.services import transactions as store
from cashflow.services.aggregation import summarize

router = APIRouter(prefix="/transactions", tags=["transactions"])


def transaction_filter(
    start_date: date | None = None,
    end_date: date | None = None,
    type: str | None = Query(default=None, description="income, expense or all"),
    search: str | None = Query(default=None, max_length=100),
) -> TransactionFilter:
    try:
        return TransactionFilter(
            start_date=start_date, end_date=end_date, type=type, search=search
        )
    except PydanticValidationError as exc:
        raise ValidationError("type must be one of: income, expense, all") from exc


@router.get("", response_model=list[TransactionRead])
async def list_transactions(
    criteria: TransactionFilter = Depends(transaction_filter),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_view),
) -> list[Transaction]:
    """Shared ledger, newest date first, narrowed by the optional filters."""
    return await store.list_transactions(db, actor, criteria)


@router.get("/summary", response_model=SummaryRead)
async def transactions_summary(
    criteria: TransactionFilter = Depends(transaction_filter),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_view),
) -> SummaryRead:
    """Income, expense and balance totals over the filtered ledger."""
    rows = await store.list_transactions(db, actor, criteria)
    totals = summarize(rows)
    return SummaryRead(
        income=totals.income,
        expense=totals.expense,
        balance=totals.balance,
        count=totals.count,
    )


@router.get("/{tx_id}", response_model=TransactionRead)
async def get_transaction(
    tx_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_view),
) -> Transaction:
    return await store.get_transaction(db, actor, tx_id)


@router.post("", response_model=TransactionRead, status_code=201)
async def create_transaction(
    body: TransactionCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Transaction:
    if not can_insert(actor.roles, body.type):
        raise Unauthorized(f"You do not have permission to insert {body.type.value} transactions")
    return await store.insert_transaction(db, actor, body)


@router.patch("/{tx_id}", response_model=TransactionRead)
async def update_transaction(
    tx_id: uuid.UUID,
    body: TransactionUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_edit),
) -> Transaction:
    return await store.update_transaction(db, actor, tx_id, body)


@router.delete("/{tx_id}", response_model=DeleteResponse)
async def delete_transaction(
    tx_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_delete),
) -> DeleteResponse:
    await store.delete_transaction(db, actor, tx_id)
    return DeleteResponse(success=True, message="Transaction deleted")
