import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from bughouse.core.errors import ConflictError, InvalidRangeError, ValidationError
from bughouse.database import atomic
from bughouse.models.schedule import Schedule, Timeslot
from bughouse.models.session import TutoringSession, active_session_filter
from bughouse.services.calendar_rules import CLOSE_TIME, OPEN_TIME, intervals_overlap, is_within_hours, slice_interval
from bughouse.services.lookups import get_subject, get_tutor
from bughouse.services.schedules import get_schedule

logger = logging.getLogger(__name__)


def validate_slot_range(start: time, end: time, duration_minutes: int) -> list[tuple[time, time]]:
    if not is_within_hours(start, end):
        raise InvalidRangeError(
            f'Timeslots must fall within center hours ({OPEN_TIME:%H:%M}-{CLOSE_TIME:%H:%M}) '
            'and start before they end.',
            details={'start': start.isoformat(), 'end': end.isoformat()},
        )

    if duration_minutes <= 0:
        raise ValidationError('Slot duration must be a positive number of minutes.')

    windows = slice_interval(start, end, duration_minutes)
    if not windows:
        raise InvalidRangeError(
            'The time range is shorter than a single slot.',
            details={'duration_minutes': duration_minutes},
        )
    return windows


def find_conflicting_windows(
    windows: list[tuple[time, time]],
    existing: list[Timeslot],
) -> list[tuple[time, time]]:
    return [
        (window_start, window_end)
        for window_start, window_end in windows
        if any(
            intervals_overlap(window_start, window_end, slot.start_time, slot.end_time)
            for slot in existing
        )
    ]


def _overlapping_timeslots(db: Session, schedule_id: int, tutor_id: int, start: time, end: time):
    return db.query(Timeslot).filter(
        Timeslot.schedule_id == schedule_id,
        Timeslot.tutor_id == tutor_id,
        Timeslot.start_time < end,
        Timeslot.end_time > start,
    )


def generate_timeslots(
    db: Session,
    schedule_id: int,
    subject_id: int,
    tutor_id: int,
    start: time,
    end: time,
    duration_minutes: int,
) -> int:
    """Materialize back-to-back slots for one tutor. Either every slot is created or none."""
    windows = validate_slot_range(start, end, duration_minutes)

    with atomic(db):
        get_schedule(db, schedule_id)
        get_subject(db, subject_id)
        # Locking the tutor row serializes concurrent generation for the same tutor.
        get_tutor(db, tutor_id, lock=True)

        existing = _overlapping_timeslots(db, schedule_id, tutor_id, start, end).all()

        conflicts = find_conflicting_windows(windows, existing)
        if conflicts:
            logger.warning(
                'Rejected timeslot generation for tutor %s on schedule %s: %d overlapping slots',
                tutor_id,
                schedule_id,
                len(conflicts),
            )
            raise ConflictError(
                'One or more timeslots overlap existing timeslots for this tutor.',
                details={
                    'conflicts': [
                        {'start': conflict_start.isoformat(), 'end': conflict_end.isoformat()}
                        for conflict_start, conflict_end in conflicts
                    ]
                },
            )

        new_slots = [
            Timeslot(
                schedule_id=schedule_id,
                subject_id=subject_id,
                tutor_id=tutor_id,
                start_time=window_start,
                end_time=window_end,
            )
            for window_start, window_end in windows
        ]
        db.add_all(new_slots)
        try:
            db.flush()
        except IntegrityError as exc:
            raise ConflictError('Timeslots were created concurrently for this tutor. Try again.') from exc

        # Re-check once this transaction holds the write lock; SQLite ignores the tutor row lock.
        late_arrivals = _overlapping_timeslots(db, schedule_id, tutor_id, start, end).filter(
            Timeslot.id.notin_([slot.id for slot in new_slots])
        ).all()
        if find_conflicting_windows(windows, late_arrivals):
            logger.warning('Timeslot generation for tutor %s on schedule %s lost a race', tutor_id, schedule_id)
            raise ConflictError('Timeslots were created concurrently for this tutor. Try again.')

    logger.info(
        'Generated %d timeslots for tutor %s on schedule %s (%s-%s, %d min)',
        len(windows),
        tutor_id,
        schedule_id,
        start.isoformat(),
        end.isoformat(),
        duration_minutes,
    )
    return len(windows)


def list_available_timeslots(db: Session, on_date: date, subject_id: int) -> list[Timeslot]:
    """Timeslots on ``on_date`` for the subject that nobody holds and that do not clash with the tutor's sessions."""
    already_booked = exists().where(
        TutoringSession.timeslot_id == Timeslot.id,
        active_session_filter(),
    )
    candidates = (
        db.query(Timeslot)
        .join(Schedule, Timeslot.schedule_id == Schedule.id)
        .options(joinedload(Timeslot.schedule), joinedload(Timeslot.tutor), joinedload(Timeslot.subject))
        .filter(
            Schedule.date == on_date,
            Timeslot.subject_id == subject_id,
            ~already_booked,
        )
        .order_by(Timeslot.start_time.asc(), Timeslot.tutor_id.asc())
        .all()
    )
    if not candidates:
        return []

    day_start = datetime.combine(on_date, time.min)
    tutor_sessions = db.query(TutoringSession.tutor_id, TutoringSession.start_time, TutoringSession.end_time).filter(
        TutoringSession.tutor_id.in_({slot.tutor_id for slot in candidates}),
        TutoringSession.start_time < day_start + timedelta(days=1),
        TutoringSession.end_time > day_start,
        active_session_filter(),
    ).all()

    return [
        slot
        for slot in candidates
        if not any(
            tutor_id == slot.tutor_id
            and intervals_overlap(
                datetime.combine(on_date, slot.start_time),
                datetime.combine(on_date, slot.end_time),
                session_start,
                session_end,
            )
            for tutor_id, session_start, session_end in tutor_sessions
        )
    ]
