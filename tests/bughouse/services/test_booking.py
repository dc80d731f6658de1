from datetime import date, datetime, time

import pytest
from conftest import BEFORE_MONDAY, MONDAY, SATURDAY, add_availability, add_session, add_timeslot, add_user

from bughouse.core import config
from bughouse.core.errors import ConflictError, InvalidDayError, InvalidRangeError, NotFoundError, ValidationError
from bughouse.models.session import SessionStatus, TutoringSession
from bughouse.models.subject import Subject
from bughouse.models.user import UserRole
from bughouse.services.booking import book_from_availability, book_timeslot
from bughouse.services.calendar_rules import center_now


@pytest.fixture
def monday_afternoon(db, tutor, subject):
    return add_availability(db, tutor, 'Mon', time(13, 0), time(17, 0), [subject])


def book(db, student, tutor, subject, start: time, minutes: int = 60, **overrides):
    arguments = {
        'student_id': student.id,
        'tutor_id': tutor.id,
        'day_of_week': 'Mon',
        'start_time': start,
        'session_date': MONDAY,
        'subject_id': subject.id,
        'session_length_minutes': minutes,
        'now': BEFORE_MONDAY,
    }
    arguments.update(overrides)
    return book_from_availability(db, **arguments)


def test_book_timeslot_creates_session_without_status(db, monday_schedule, subject, tutor, student) -> None:
    slot = add_timeslot(db, monday_schedule, subject, tutor, time(10, 0), time(11, 0))

    session = book_timeslot(db, student.id, slot.id, now=BEFORE_MONDAY)

    assert session.timeslot_id == slot.id
    assert session.tutor_id == tutor.id
    assert session.student_id == student.id
    assert session.start_time == datetime(2030, 1, 7, 10, 0)
    assert session.end_time == datetime(2030, 1, 7, 11, 0)
    assert session.status is None


def test_booked_session_records_creation_on_the_center_clock(
    db, monday_afternoon, subject, tutor, student, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(config, 'CENTER_TIMEZONE', 'Pacific/Kiritimati')

    before = center_now()
    session = book(db, student, tutor, subject, time(13, 0))
    after = center_now()

    assert before <= session.created_at <= after


def test_book_timeslot_missing_timeslot(db, student) -> None:
    with pytest.raises(NotFoundError):
        book_timeslot(db, student.id, 12345, now=BEFORE_MONDAY)


def test_book_timeslot_rejects_second_booking(db, monday_schedule, subject, tutor, student, other_student) -> None:
    slot = add_timeslot(db, monday_schedule, subject, tutor, time(10, 0), time(11, 0))
    book_timeslot(db, student.id, slot.id, now=BEFORE_MONDAY)

    with pytest.raises(ConflictError):
        book_timeslot(db, other_student.id, slot.id, now=BEFORE_MONDAY)

    assert db.query(TutoringSession).count() == 1


def test_book_timeslot_after_cancellation(db, monday_schedule, subject, tutor, student, other_student) -> None:
    slot = add_timeslot(db, monday_schedule, subject, tutor, time(10, 0), time(11, 0))
    add_session(
        db,
        tutor,
        student,
        subject,
        datetime(2030, 1, 7, 10),
        datetime(2030, 1, 7, 11),
        status=SessionStatus.CANCELLED.value,
        timeslot=slot,
    )

    session = book_timeslot(db, other_student.id, slot.id, now=BEFORE_MONDAY)

    assert session.student_id == other_student.id


def test_book_timeslot_rejects_overlap_with_availability_booking(
    db, monday_schedule, subject, tutor, student, other_student, monday_afternoon
) -> None:
    book(db, student, tutor, subject, time(13, 0))
    slot = add_timeslot(db, monday_schedule, subject, tutor, time(13, 30), time(14, 30))

    with pytest.raises(ConflictError):
        book_timeslot(db, other_student.id, slot.id, now=BEFORE_MONDAY)


def test_book_timeslot_rejects_past_and_self_booking(db, monday_schedule, subject, tutor, student) -> None:
    slot = add_timeslot(db, monday_schedule, subject, tutor, time(10, 0), time(11, 0))

    with pytest.raises(ValidationError):
        book_timeslot(db, student.id, slot.id, now=datetime(2030, 1, 7, 12, 0))

    with pytest.raises(ValidationError):
        book_timeslot(db, tutor.id, slot.id, now=BEFORE_MONDAY)


def test_book_from_availability_creates_session_without_timeslot(db, tutor, student, subject, monday_afternoon) -> None:
    session = book(db, student, tutor, subject, time(13, 0))

    assert session.timeslot_id is None
    assert session.start_time == datetime(2030, 1, 7, 13, 0)
    assert session.end_time == datetime(2030, 1, 7, 14, 0)


@pytest.mark.parametrize(
    ('start', 'minutes'),
    [
        (time(13, 0), 60),
        (time(12, 30), 60),
        (time(13, 30), 30),
        (time(13, 59), 90),
    ],
)
def test_book_from_availability_rejects_overlap(
    db, tutor, student, other_student, subject, start: time, minutes: int
) -> None:
    add_availability(db, tutor, 'Mon', time(12, 0), time(17, 0), [subject])
    book(db, student, tutor, subject, time(13, 0))

    with pytest.raises(ConflictError):
        book(db, other_student, tutor, subject, start, minutes)


def test_book_from_availability_adjacent_hour_succeeds(
    db, tutor, student, other_student, subject, monday_afternoon
) -> None:
    book(db, student, tutor, subject, time(13, 0))

    session = book(db, other_student, tutor, subject, time(14, 0))

    assert session.start_time == datetime(2030, 1, 7, 14, 0)


def test_book_from_availability_ignores_cancelled_sessions(
    db, tutor, student, other_student, subject, monday_afternoon
) -> None:
    add_session(
        db,
        tutor,
        student,
        subject,
        datetime(2030, 1, 7, 13),
        datetime(2030, 1, 7, 14),
        status=SessionStatus.CANCELLED.value,
    )

    session = book(db, other_student, tutor, subject, time(13, 0))

    assert session.status is None


def test_book_from_availability_other_tutor_is_independent(
    db, tutor, student, other_student, subject, monday_afternoon
) -> None:
    second_tutor = add_user(db, 'second.tutor@example.edu', UserRole.TUTOR)
    add_availability(db, second_tutor, 'Mon', time(13, 0), time(14, 0), [subject])
    book(db, student, tutor, subject, time(13, 0))

    session = book(db, other_student, second_tutor, subject, time(13, 0))

    assert session.tutor_id == second_tutor.id


def test_book_from_availability_validates_hours(db, tutor, student, subject, monday_afternoon) -> None:
    with pytest.raises(InvalidRangeError):
        book(db, student, tutor, subject, time(17, 30))

    with pytest.raises(InvalidRangeError):
        book(db, student, tutor, subject, time(9, 0))


def test_book_from_availability_validates_weekday(db, tutor, student, subject, monday_afternoon) -> None:
    with pytest.raises(InvalidDayError):
        book(db, student, tutor, subject, time(13, 0), day_of_week='Sat', session_date=SATURDAY)

    with pytest.raises(ValidationError):
        book(db, student, tutor, subject, time(13, 0), session_date=date(2030, 1, 8))


def test_book_from_availability_requires_covering_window(db, tutor, student, subject, monday_afternoon) -> None:
    with pytest.raises(ValidationError) as exception_info:
        book(db, student, tutor, subject, time(11, 0))

    assert exception_info.value.message == 'The tutor is not available at the requested time.'


def test_book_from_availability_requires_offered_subject(db, tutor, student, subject, monday_afternoon) -> None:
    other_subject = Subject(name='Chemistry')
    db.add(other_subject)
    db.commit()

    with pytest.raises(ValidationError):
        book(db, student, tutor, other_subject, time(13, 0))


def test_book_from_availability_unknown_tutor(db, student, subject) -> None:
    with pytest.raises(NotFoundError):
        book_from_availability(
            db,
            student_id=student.id,
            tutor_id=999,
            day_of_week='Mon',
            start_time=time(13, 0),
            session_date=MONDAY,
            subject_id=subject.id,
            now=BEFORE_MONDAY,
        )


def test_lost_race_is_rejected_by_unique_index(
    db, tutor, student, other_student, subject, monday_afternoon, monkeypatch: pytest.MonkeyPatch
) -> None:
    book(db, student, tutor, subject, time(13, 0))
    # Simulate a competing request that passed the overlap check before the first insert committed.
    monkeypatch.setattr('bughouse.services.booking.ensure_tutor_free', lambda *args, **kwargs: None)

    with pytest.raises(ConflictError):
        book(db, other_student, tutor, subject, time(13, 0))

    assert db.query(TutoringSession).count() == 1
