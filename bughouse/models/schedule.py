"""Schedule and timeslot model definitions."""

from sqlalchemy import Column, Date, ForeignKey, Integer, Time, UniqueConstraint
from sqlalchemy.orm import relationship
from bughouse.database import Base


class Schedule(Base):
    """One operating day on which timeslots may exist."""
    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True)
    date = Column(Date, unique=True, nullable=False)

    timeslots = relationship(
        "Timeslot",
        back_populates="schedule",
        order_by="Timeslot.start_time",
    )


class Timeslot(Base):
    """A pre-materialized bookable interval for one tutor and subject."""
    __tablename__ = "timeslots"
    __table_args__ = (
        UniqueConstraint("schedule_id", "tutor_id", "start_time", name="uq_timeslots_schedule_tutor_start"),
    )

    id = Column(Integer, primary_key=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)
    tutor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    schedule = relationship("Schedule", back_populates="timeslots")
    subject = relationship("Subject")
    tutor = relationship("User")
