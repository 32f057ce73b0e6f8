"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from rozgaar.models.users import User, UserRole
from rozgaar.models.services import Service, ServiceCategory
from rozgaar.models.bookings import Booking, BookingStatus
from rozgaar.models.negotiations import BookingNegotiation, MessageType
from rozgaar.models.jobs import Job, JobStatus

__all__ = [
    "User",
    "UserRole",
    "Service",
    "ServiceCategory",
    "Booking",
    "BookingStatus",
    "BookingNegotiation",
    "MessageType",
    "Job",
    "JobStatus",
]
