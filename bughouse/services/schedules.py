import logging
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from bughouse.core.errors import InvalidDayError, NotFoundError
from bughouse.models.schedule import Schedule, Timeslot
from bughouse.services.calendar_rules import is_operating_weekday

logger = logging.getLogger(__name__)


def create_schedule(db: Session, schedule_date: date) -> Schedule:
    """Return the schedule for ``schedule_date``, creating it on first request."""
    if not is_operating_weekday(schedule_date):
        raise InvalidDayError(
            'The center is closed on Saturday and Sunday. Pick a weekday (Monday through Friday).',
            details={'date': schedule_date.isoformat()},
        )

    existing = db.query(Schedule).filter(Schedule.date == schedule_date).first()
    if existing:
        return existing

    schedule = Schedule(date=schedule_date)
    db.add(schedule)
    try:
        db.commit()
    except IntegrityError:
        # Another request created the same day between our read and insert.
        db.rollback()
        existing = db.query(Schedule).filter(Schedule.date == schedule_date).first()
        if existing is None:
            raise
        return existing

    db.refresh(schedule)
    logger.info('Created schedule %s for %s', schedule.id, schedule_date.isoformat())
    return schedule


def get_schedule(db: Session, schedule_id: int) -> Schedule:
    schedule = db.get(Schedule, schedule_id)
    if schedule is None:
        raise NotFoundError('Schedule not found.', details={'schedule_id': schedule_id})
    return schedule


def list_schedules(db: Session) -> list[Schedule]:
    return (
        db.query(Schedule)
        .options(selectinload(Schedule.timeslots).selectinload(Timeslot.subject))
        .order_by(Schedule.date.asc())
        .all()
    )
