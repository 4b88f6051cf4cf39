"""Closed value sets shared by models, schemas and permission checks."""

from __future__ import annotations

import enum


class AppRole(str, enum.Enum):
    ADMIN = "admin"
    VIEW_ONLY = "view_only"
    EDIT = "edit"
    INSERT_EXPENSES = "insert_expenses"
    INSERT_INCOME = "insert_income"


class TransactionType(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"


class PaymentMethod(str, enum.Enum):
    CASH = "dinheiro"
    INSTANT_TRANSFER = "pix"
    CREDIT_CARD = "cartao_credito"
    DEBIT_CARD = "cartao_debito"
    WIRE_TRANSFER = "transferencia"
    BILL_OF_EXCHANGE = "boleto"
    CHECK = "cheque"
    OTHER = "outro"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Database labels for a value enum (used by ``sqlalchemy.Enum``)."""
    return [member.value for member in enum_cls]
