"""
Filtering and totals over a snapshot of ledger transactions.

Nothing here touches the database: both functions accept any iterable of
objects exposing ``date``, ``type``, ``client_supplier``, ``description``
and ``amount`` (ORM rows, read schemas, or test doubles).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, TypeVar

from cashflow.core.enums import TransactionType
from cashflow.schemas.transaction import TransactionFilter

T = TypeVar("T")

_ZERO = Decimal("0.00")


@dataclass(frozen=True)
class Summary:
    income: Decimal = _ZERO
    expense: Decimal = _ZERO
    balance: Decimal = _ZERO
    count: int = 0


def _as_criteria(criteria: TransactionFilter | Mapping[str, Any] | None) -> TransactionFilter:
    if criteria is None:
        return TransactionFilter()
    if isinstance(criteria, TransactionFilter):
        return criteria
    return TransactionFilter.model_validate(dict(criteria))


def _as_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _matches(tx: Any, crit: TransactionFilter, needle: str | None) -> bool:
    if crit.start_date and tx.date < crit.start_date:
        return False
    if crit.end_date and tx.date > crit.end_date:
        return False
    if crit.type and crit.type != "all" and tx.type != crit.type:
        return False
    if needle:
        haystacks = (tx.client_supplier or "", tx.description or "")
        return any(needle in text.casefold() for text in haystacks)
    return True


def filter_transactions(
    transactions: Iterable[T],
    criteria: TransactionFilter | Mapping[str, Any] | None = None,
) -> list[T]:
    """Keep the transactions matching every supplied filter dimension.

    Date bounds are inclusive; ``type`` of ``"all"`` or ``None`` keeps both
    directions; ``search`` is a case-insensitive substring match against
    the client/supplier *or* the description. Input order is preserved.
    """
    crit = _as_criteria(criteria)
    # Surrounding spaces are part of the needle; an all-blank search is ignored.
    needle = crit.search.casefold() if crit.search and crit.search.strip() else None
    return [tx for tx in transactions if _matches(tx, crit, needle)]


def summarize(transactions: Iterable[Any]) -> Summary:
    """Income, expense and balance totals; all zeros for an empty input."""
    income = _ZERO
    expense = _ZERO
    count = 0
    for tx in transactions:
        count += 1
        if tx.type == TransactionType.INCOME:
            income += _as_decimal(tx.amount)
        else:
            expense += _as_decimal(tx.amount)
    return Summary(income=income, expense=expense, balance=income - expense, count=count)
