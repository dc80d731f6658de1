"""
Booking coordinator.

Both booking paths hold a row lock on the tutor while they check for
overlapping sessions and insert the new one, so two requests racing for the
same tutor serialize. The partial unique indexes on ``tutoring_sessions``
reject whatever slips past the lock (for example on SQLite, which has no
row locks), and the loser always sees ``ConflictError``.
"""

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from bughouse.core.errors import ConflictError, InvalidDayError, InvalidRangeError, NotFoundError, ValidationError
from bughouse.database import atomic
from bughouse.models.availability import Availability
from bughouse.models.schedule import Timeslot
from bughouse.models.session import TutoringSession, active_session_filter
from bughouse.services.availability import parse_day_of_week
from bughouse.services.calendar_rules import (
    CLOSE_TIME,
    OPEN_TIME,
    center_now,
    is_operating_weekday,
    is_within_hours,
    weekday_name,
)
from bughouse.services.lookups import get_subject, get_tutor, get_user

logger = logging.getLogger(__name__)

DEFAULT_SESSION_MINUTES = 60


def find_overlapping_session(
    db: Session,
    tutor_id: int,
    starts_at: datetime,
    ends_at: datetime,
) -> TutoringSession | None:
    return db.query(TutoringSession).filter(
        TutoringSession.tutor_id == tutor_id,
        TutoringSession.start_time < ends_at,
        TutoringSession.end_time > starts_at,
        active_session_filter(),
    ).first()


def ensure_tutor_free(db: Session, tutor_id: int, starts_at: datetime, ends_at: datetime) -> None:
    clash = find_overlapping_session(db, tutor_id, starts_at, ends_at)
    if clash:
        logger.warning(
            'Booking conflict for tutor %s at %s-%s (held by session %s)',
            tutor_id,
            starts_at.isoformat(),
            ends_at.isoformat(),
            clash.id,
        )
        raise ConflictError(
            'This tutor is already booked at that time.',
            details={
                'tutor_id': tutor_id,
                'start_time': starts_at.isoformat(),
                'end_time': ends_at.isoformat(),
            },
        )


def _insert_session(db: Session, session: TutoringSession) -> None:
    db.add(session)
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConflictError('This time was just booked by someone else. Pick another slot.') from exc


def _ensure_future(starts_at: datetime, now: datetime) -> None:
    if starts_at <= now:
        raise ValidationError(
            'Sessions must be booked in the future.',
            details={'start_time': starts_at.isoformat()},
        )


def book_timeslot(db: Session, student_id: int, timeslot_id: int, now: datetime | None = None) -> TutoringSession:
    now = now or center_now()

    with atomic(db):
        timeslot = (
            db.query(Timeslot)
            .options(joinedload(Timeslot.schedule))
            .filter(Timeslot.id == timeslot_id)
            .first()
        )
        if timeslot is None:
            raise NotFoundError('Timeslot not found.', details={'timeslot_id': timeslot_id})

        get_user(db, student_id)
        if student_id == timeslot.tutor_id:
            raise ValidationError('Tutors cannot book their own timeslots.')

        starts_at = datetime.combine(timeslot.schedule.date, timeslot.start_time)
        ends_at = datetime.combine(timeslot.schedule.date, timeslot.end_time)
        _ensure_future(starts_at, now)

        get_tutor(db, timeslot.tutor_id, lock=True)

        taken = db.query(TutoringSession.id).filter(
            TutoringSession.timeslot_id == timeslot.id,
            active_session_filter(),
        ).first()
        if taken:
            raise ConflictError('This timeslot is already booked.', details={'timeslot_id': timeslot.id})

        ensure_tutor_free(db, timeslot.tutor_id, starts_at, ends_at)

        session = TutoringSession(
            timeslot_id=timeslot.id,
            tutor_id=timeslot.tutor_id,
            student_id=student_id,
            subject_id=timeslot.subject_id,
            start_time=starts_at,
            end_time=ends_at,
        )
        _insert_session(db, session)

    db.refresh(session)
    logger.info('Student %s booked timeslot %s as session %s', student_id, timeslot_id, session.id)
    return session


def book_from_availability(
    db: Session,
    student_id: int,
    tutor_id: int,
    day_of_week: str,
    start_time: time,
    session_date: date,
    subject_id: int,
    session_length_minutes: int = DEFAULT_SESSION_MINUTES,
    now: datetime | None = None,
) -> TutoringSession:
    """Book straight from a tutor's weekly availability, without a pre-generated timeslot."""
    now = now or center_now()
    day = parse_day_of_week(day_of_week)

    if session_length_minutes <= 0:
        raise ValidationError('Session length must be a positive number of minutes.')

    starts_at = datetime.combine(session_date, start_time)
    ends_at = starts_at + timedelta(minutes=session_length_minutes)
    if ends_at.date() != session_date or not is_within_hours(start_time, ends_at.time()):
        raise InvalidRangeError(
            f'Sessions must fall within center hours ({OPEN_TIME:%H:%M}-{CLOSE_TIME:%H:%M}).',
            details={'start_time': starts_at.isoformat(), 'end_time': ends_at.isoformat()},
        )

    if not is_operating_weekday(session_date):
        raise InvalidDayError(
            'Sessions can only be booked Monday through Friday.',
            details={'date': session_date.isoformat()},
        )

    if weekday_name(session_date) != day:
        raise ValidationError(
            f'{session_date.isoformat()} is not a {day}.',
            details={'date': session_date.isoformat(), 'day_of_week': day},
        )

    if student_id == tutor_id:
        raise ValidationError('Tutors cannot book sessions with themselves.')

    _ensure_future(starts_at, now)

    with atomic(db):
        get_user(db, student_id)
        get_subject(db, subject_id)
        get_tutor(db, tutor_id, lock=True)

        windows = (
            db.query(Availability)
            .filter(
                Availability.tutor_id == tutor_id,
                Availability.day_of_week == day,
                Availability.start_time <= start_time,
                Availability.end_time >= ends_at.time(),
            )
            .all()
        )
        if not windows:
            raise ValidationError(
                'The tutor is not available at the requested time.',
                details={'tutor_id': tutor_id, 'day_of_week': day, 'start_time': start_time.isoformat()},
            )
        if not any(not window.subjects or any(s.id == subject_id for s in window.subjects) for window in windows):
            raise ValidationError(
                'The tutor does not offer this subject at the requested time.',
                details={'tutor_id': tutor_id, 'subject_id': subject_id},
            )

        ensure_tutor_free(db, tutor_id, starts_at, ends_at)

        session = TutoringSession(
            tutor_id=tutor_id,
            student_id=student_id,
            subject_id=subject_id,
            start_time=starts_at,
            end_time=ends_at,
        )
        _insert_session(db, session)

    db.refresh(session)
    logger.info(
        'Student %s booked tutor %s on %s %s-%s as session %s',
        student_id,
        tutor_id,
        session_date.isoformat(),
        starts_at.time().isoformat(),
        ends_at.time().isoformat(),
        session.id,
    )
    return session
