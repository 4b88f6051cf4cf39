"""
User, role-assignment and bootstrap-claim models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (Column, DateTime, Enum, ForeignKey, Integer, String,
                        UniqueConstraint, Uuid)
from sqlalchemy.orm import relationship

from cashflow.core.enums import AppRole, enum_values
from cashflow.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: uuid.UUID = Column(Uuid, primary_key=True, default=uuid.uuid4)  # type: ignore[assignment]
    email: str = Column(String(320), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    hashed_password: str = Column(String(128), nullable=False)  # type: ignore[assignment]
    full_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow, index=True)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )

    roles = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    transactions = relationship(
        "Transaction",
        back_populates="owner",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_id_role"),)

    id: uuid.UUID = Column(Uuid, primary_key=True, default=uuid.uuid4)  # type: ignore[assignment]
    user_id: uuid.UUID = Column(  # type: ignore[assignment]
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: AppRole = Column(  # type: ignore[assignment]
        Enum(AppRole, name="app_role", values_callable=enum_values),
        nullable=False,
        default=AppRole.VIEW_ONLY,
    )
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]

    user = relationship("User", back_populates="roles")


class BootstrapClaim(Base):
    """Single-row table: whoever inserts row ``id=1`` became the bootstrap admin.

    The primary key makes two concurrent "first" sign-ups collide instead of
    both observing an empty user table.
    """

    __tablename__ = "bootstrap_claims"

    id: int = Column(Integer, primary_key=True, autoincrement=False)  # type: ignore[assignment]
    user_id: uuid.UUID | None = Column(  # type: ignore[assignment]
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    claimed_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]
