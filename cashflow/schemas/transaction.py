"""Pydantic schemas for ledger transactions, filters and summaries."""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from cashflow.core.enums import PaymentMethod, TransactionType

CLIENT_SUPPLIER_MAX = 100
DESCRIPTION_MAX = 500

# Fields that may be omitted from a partial update but never set to null.
_REQUIRED_ON_UPDATE = ("date", "type", "client_supplier", "amount", "payment_method")


def _client_supplier(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Client/supplier must not be empty")
    if len(v) > CLIENT_SUPPLIER_MAX:
        raise ValueError(f"Client/supplier must not exceed {CLIENT_SUPPLIER_MAX} characters")
    return v


def _description(v: str | None) -> str | None:
    if v is not None and len(v) > DESCRIPTION_MAX:
        raise ValueError(f"Description must not exceed {DESCRIPTION_MAX} characters")
    return v


# ── Write ───────────────────────────────────────────────────────────
class TransactionCreate(BaseModel):
    date: dt.date | None = None
    type: TransactionType
    client_supplier: str
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    description: str | None = None
    payment_method: PaymentMethod

    model_config = {"extra": "forbid"}

    @field_validator("client_supplier")
    @classmethod
    def _check_client_supplier(cls, v: str) -> str:
        return _client_supplier(v)

    @field_validator("description")
    @classmethod
    def _check_description(cls, v: str | None) -> str | None:
        return _description(v)


class TransactionUpdate(BaseModel):
    date: dt.date | None = None
    type: TransactionType | None = None
    client_supplier: str | None = None
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    description: str | None = None
    payment_method: PaymentMethod | None = None

    model_config = {"extra": "forbid"}

    @field_validator("client_supplier")
    @classmethod
    def _check_client_supplier(cls, v: str | None) -> str | None:
        return None if v is None else _client_supplier(v)

    @field_validator("description")
    @classmethod
    def _check_description(cls, v: str | None) -> str | None:
        return _description(v)

    @model_validator(mode="after")
    def _no_null_required(self) -> "TransactionUpdate":
        for name in _REQUIRED_ON_UPDATE:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


# ── Read ────────────────────────────────────────────────────────────
class TransactionRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    date: dt.date
    type: TransactionType
    client_supplier: str
    amount: Decimal
    description: str | None
    payment_method: PaymentMethod
    created_at: dt.datetime | None
    updated_at: dt.datetime | None

    model_config = {"from_attributes": True}


# ── Filters / summary ──────────────────────────────────────────────
class TransactionFilter(BaseModel):
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    type: TransactionType | Literal["all"] | None = None
    search: str | None = None


class SummaryRead(BaseModel):
    income: Decimal
    expense: Decimal
    balance: Decimal
    count: int
