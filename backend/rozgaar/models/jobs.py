"""
Job model - open positions posted by employers.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Numeric, DateTime, ForeignKey, Enum as SQLEnum, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rozgaar.lib.db import Base


class JobStatus(str, enum.Enum):
    """Job posting status."""
    OPEN = "open"
    CLOSED = "closed"


class Job(Base):
    """
    Job entity - a posting workers can browse and apply to.
    """
    __tablename__ = "jobs"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    employer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(4000), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    pay: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    worker_type: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Trade requested, e.g. plumber, electrician",
    )

    status: Mapped[JobStatus] = mapped_column(
        SQLEnum(JobStatus, name="job_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=JobStatus.OPEN,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, title={self.title}, status={self.status})>"
