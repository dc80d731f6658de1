"""Tutoring session model definitions."""

import enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, or_, text
from sqlalchemy.orm import relationship
from bughouse.database import Base
from bughouse.services.calendar_rules import center_now

ACTIVE_SESSION_CLAUSE = text("status IS NULL OR status <> 'cancelled'")


class SessionStatus(str, enum.Enum):
    """Explicit terminal values. A session with none of them has no stored status."""

    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    COMPLETED = "completed"


class TutoringSession(Base):
    """A confirmed booking binding a student, tutor, subject and time interval."""
    __tablename__ = "tutoring_sessions"
    __table_args__ = (
        Index(
            "uq_sessions_active_tutor_start",
            "tutor_id",
            "start_time",
            unique=True,
            postgresql_where=ACTIVE_SESSION_CLAUSE,
            sqlite_where=ACTIVE_SESSION_CLAUSE,
        ),
        Index(
            "uq_sessions_active_timeslot",
            "timeslot_id",
            unique=True,
            postgresql_where=ACTIVE_SESSION_CLAUSE,
            sqlite_where=ACTIVE_SESSION_CLAUSE,
        ),
    )

    id = Column(Integer, primary_key=True)
    timeslot_id = Column(Integer, ForeignKey("timeslots.id"), nullable=True)
    tutor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=True)
    signed_in_at = Column(DateTime, nullable=True)
    signed_out_at = Column(DateTime, nullable=True)
    rating = Column(Integer, nullable=True)
    feedback = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=center_now)

    timeslot = relationship("Timeslot")
    tutor = relationship("User", foreign_keys=[tutor_id])
    student = relationship("User", foreign_keys=[student_id])
    subject = relationship("Subject")

    @property
    def explicit_status(self) -> SessionStatus | None:
        return SessionStatus(self.status) if self.status else None


def active_session_filter():
    """SQL condition matching sessions that still hold their interval."""
    return or_(TutoringSession.status.is_(None), TutoringSession.status != SessionStatus.CANCELLED.value)
