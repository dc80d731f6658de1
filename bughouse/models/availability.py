"""Availability model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String, Table, Time
from sqlalchemy.orm import relationship
from bughouse.database import Base

availability_subjects = Table(
    "availability_subjects",
    Base.metadata,
    Column("availability_id", Integer, ForeignKey("availability.id", ondelete="CASCADE"), primary_key=True),
    Column("subject_id", Integer, ForeignKey("subjects.id"), primary_key=True),
)


class Availability(Base):
    """A tutor's recurring weekly open window."""
    __tablename__ = "availability"

    id = Column(Integer, primary_key=True)
    tutor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    day_of_week = Column(String(3), nullable=False)  # Mon..Fri
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    tutor = relationship("User")
    subjects = relationship("Subject", secondary=availability_subjects, order_by="Subject.name")
