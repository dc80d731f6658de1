"""Tutor application model definitions."""

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from bughouse.database import Base
from bughouse.services.calendar_rules import center_now


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TutorApplication(Base):
    """A student's request to be promoted to tutor, gated by admin review."""
    __tablename__ = "tutor_applications"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    cover_text = Column(Text, nullable=True)
    resume_path = Column(String, nullable=False)  # relative to the resume storage root
    resume_mime = Column(String, nullable=False)
    resume_size = Column(Integer, nullable=False)
    status = Column(
        Enum(
            ApplicationStatus,
            name="application_status",
            native_enum=False,
            values_callable=lambda statuses: [status.value for status in statuses],
        ),
        nullable=False,
        default=ApplicationStatus.PENDING,
    )
    admin_note = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=center_now)
    updated_at = Column(DateTime, nullable=True, onupdate=center_now)
    decided_at = Column(DateTime, nullable=True)

    user = relationship("User")
