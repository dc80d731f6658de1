import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session, joinedload, selectinload

from bughouse.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidDayError,
    InvalidRangeError,
    NotFoundError,
    ValidationError,
)
from bughouse.database import atomic
from bughouse.models.availability import Availability
from bughouse.models.session import TutoringSession, active_session_filter
from bughouse.models.subject import Subject
from bughouse.models.user import User, UserRole
from bughouse.services.calendar_rules import (
    CLOSE_TIME,
    OPEN_TIME,
    OPERATING_WEEKDAYS,
    WEEKDAY_NAMES,
    intervals_overlap,
    is_operating_weekday,
    is_within_hours,
    normalize_weekday,
    slice_interval,
    weekday_name,
)

logger = logging.getLogger(__name__)

RESOLVED_SLOT_MINUTES = 60


@dataclass(frozen=True)
class ResolvedSlot:
    """A one-hour window derived from a tutor's weekly availability for a concrete date."""

    availability_id: int
    tutor_id: int
    tutor_name: str
    date: date
    start_time: time
    end_time: time
    subject_ids: tuple[int, ...]


def resolve_one_hour_slots(start_time: time, end_time: time) -> list[tuple[time, time]]:
    return slice_interval(start_time, end_time, RESOLVED_SLOT_MINUTES)


def parse_day_of_week(value: str) -> str:
    try:
        day = normalize_weekday(value)
    except ValueError as exc:
        raise ValidationError(str(exc), details={'day_of_week': value}) from exc
    return day


def find_availability(db: Session, day_of_week: str) -> list[Availability]:
    day = parse_day_of_week(day_of_week)
    return (
        db.query(Availability)
        .options(joinedload(Availability.tutor), selectinload(Availability.subjects))
        .filter(Availability.day_of_week == day)
        .order_by(Availability.start_time.asc(), Availability.tutor_id.asc())
        .all()
    )


def list_tutor_availability(db: Session, tutor_id: int) -> list[Availability]:
    rows = (
        db.query(Availability)
        .options(selectinload(Availability.subjects))
        .filter(Availability.tutor_id == tutor_id)
        .all()
    )
    return sorted(rows, key=lambda row: (WEEKDAY_NAMES.index(row.day_of_week), row.start_time))


def create_availability(
    db: Session,
    tutor: User,
    day_of_week: str,
    start_time: time,
    end_time: time,
    subject_ids: list[int] | None = None,
) -> Availability:
    if tutor.role is not UserRole.TUTOR:
        raise ForbiddenError('Only tutors can publish availability.')

    day = parse_day_of_week(day_of_week)
    if day not in OPERATING_WEEKDAYS:
        raise InvalidDayError(
            'Availability can only be set Monday through Friday.',
            details={'day_of_week': day},
        )

    if not is_within_hours(start_time, end_time):
        raise InvalidRangeError(
            f'Availability must fall within center hours ({OPEN_TIME:%H:%M}-{CLOSE_TIME:%H:%M}) '
            'and start before it ends.',
            details={'start': start_time.isoformat(), 'end': end_time.isoformat()},
        )

    with atomic(db):
        requested_ids = set(subject_ids or [])
        subjects = db.query(Subject).filter(Subject.id.in_(requested_ids)).all() if requested_ids else []
        missing = requested_ids - {subject.id for subject in subjects}
        if missing:
            raise NotFoundError('Subject not found.', details={'subject_ids': sorted(missing)})

        overlapping = db.query(Availability).filter(
            Availability.tutor_id == tutor.id,
            Availability.day_of_week == day,
            Availability.start_time < end_time,
            Availability.end_time > start_time,
        ).first()
        if overlapping:
            raise ConflictError(
                'This window overlaps availability you already published.',
                details={'availability_id': overlapping.id},
            )

        availability = Availability(
            tutor_id=tutor.id,
            day_of_week=day,
            start_time=start_time,
            end_time=end_time,
            subjects=subjects,
        )
        db.add(availability)

    db.refresh(availability)
    logger.info('Tutor %s published availability %s on %s %s-%s', tutor.id, availability.id, day, start_time, end_time)
    return availability


def delete_availability(db: Session, tutor: User, availability_id: int) -> None:
    with atomic(db):
        availability = db.get(Availability, availability_id)
        if availability is None:
            raise NotFoundError('Availability not found.', details={'availability_id': availability_id})
        if availability.tutor_id != tutor.id:
            raise ForbiddenError('You can only remove your own availability.')
        db.delete(availability)

    logger.info('Tutor %s removed availability %s', tutor.id, availability_id)


def list_bookable_slots(db: Session, on_date: date, subject_id: int | None = None) -> list[ResolvedSlot]:
    """One-hour slots derived from weekly availability that are still free on ``on_date``."""
    if not is_operating_weekday(on_date):
        return []

    rows = find_availability(db, weekday_name(on_date))
    if subject_id is not None:
        rows = [row for row in rows if not row.subjects or any(subject.id == subject_id for subject in row.subjects)]
    if not rows:
        return []

    day_start = datetime.combine(on_date, time.min)
    booked = db.query(TutoringSession.tutor_id, TutoringSession.start_time, TutoringSession.end_time).filter(
        TutoringSession.tutor_id.in_({row.tutor_id for row in rows}),
        TutoringSession.start_time < day_start + timedelta(days=1),
        TutoringSession.end_time > day_start,
        active_session_filter(),
    ).all()

    slots: list[ResolvedSlot] = []
    for row in rows:
        for slot_start, slot_end in resolve_one_hour_slots(row.start_time, row.end_time):
            starts_at = datetime.combine(on_date, slot_start)
            ends_at = datetime.combine(on_date, slot_end)
            if any(
                tutor_id == row.tutor_id and intervals_overlap(starts_at, ends_at, booked_start, booked_end)
                for tutor_id, booked_start, booked_end in booked
            ):
                continue
            slots.append(
                ResolvedSlot(
                    availability_id=row.id,
                    tutor_id=row.tutor_id,
                    tutor_name=row.tutor.full_name,
                    date=on_date,
                    start_time=slot_start,
                    end_time=slot_end,
                    subject_ids=tuple(subject.id for subject in row.subjects),
                )
            )

    slots.sort(key=lambda slot: (slot.start_time, slot.tutor_id))
    return slots
