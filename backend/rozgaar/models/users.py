"""
User model - profile rows for workers, employers and customers.

Accounts themselves live with the identity provider; this table holds the
profile keyed by the provider's user id.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Integer, DateTime, JSON, Enum as SQLEnum, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rozgaar.lib.db import Base


class UserRole(str, enum.Enum):
    """User role enumeration."""
    WORKER = "worker"
    EMPLOYER = "employer"
    CUSTOMER = "customer"


class User(Base):
    """
    User entity - represents all marketplace users.
    """
    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    # Contact info
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Profile
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name="user_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    location: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Free text, usually 'City, State'",
    )

    # Worker profile
    skills: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    experience_years: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bio: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name={self.full_name}, role={self.role})>"
