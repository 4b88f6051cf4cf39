"""
Transaction model — one dated income or expense entry of the shared ledger.
"""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal

from sqlalchemy import (CheckConstraint, Column, Date, DateTime, Enum,
                        ForeignKey, Index, Numeric, String, Uuid)
from sqlalchemy.orm import relationship

from cashflow.core.enums import PaymentMethod, TransactionType, enum_values
from cashflow.db.base import Base


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _today() -> dt.date:
    return _utcnow().date()


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        Index("ix_transactions_date_created", "date", "created_at"),
    )

    id: uuid.UUID = Column(Uuid, primary_key=True, default=uuid.uuid4)  # type: ignore[assignment]
    user_id: uuid.UUID = Column(  # type: ignore[assignment]
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date: dt.date = Column(Date, nullable=False, default=_today)  # type: ignore[assignment]
    type: TransactionType = Column(  # type: ignore[assignment]
        Enum(TransactionType, name="transaction_type", values_callable=enum_values),
        nullable=False,
    )
    client_supplier: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    amount: Decimal = Column(Numeric(12, 2), nullable=False)  # type: ignore[assignment]
    description: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    payment_method: PaymentMethod = Column(  # type: ignore[assignment]
        Enum(PaymentMethod, name="payment_method", values_callable=enum_values),
        nullable=False,
    )
    created_at: dt.datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]
    updated_at: dt.datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )

    owner = relationship("User", back_populates="transactions")
