"""
Service models - categories and the services customers can book.
"""
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import String, Numeric, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rozgaar.lib.db import Base


class ServiceCategory(Base):
    """
    Service category - e.g. plumbing, electrical, cleaning.
    """
    __tablename__ = "service_categories"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    icon: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    def __repr__(self) -> str:
        return f"<ServiceCategory(id={self.id}, name={self.name})>"


class Service(Base):
    """
    Service entity - bookable services.
    """
    __tablename__ = "services"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    category_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("service_categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    base_price: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name={self.name})>"
