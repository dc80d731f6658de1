import os
from datetime import date, datetime, time

import pytest

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from bughouse.database import Database  # noqa: E402
from bughouse.models.availability import Availability  # noqa: E402
from bughouse.models.schedule import Schedule, Timeslot  # noqa: E402
from bughouse.models.session import TutoringSession  # noqa: E402
from bughouse.models.subject import Subject  # noqa: E402
from bughouse.models.tutor_application import TutorApplication  # noqa: E402,F401
from bughouse.models.user import User, UserRole  # noqa: E402

# 2030-01-07 is a Monday; every test that needs "the future" books around it.
MONDAY = date(2030, 1, 7)
SATURDAY = date(2030, 1, 12)
BEFORE_MONDAY = datetime(2030, 1, 6, 9, 0)


@pytest.fixture
def database():
    database = Database('sqlite://')
    database.create_all()
    try:
        yield database
    finally:
        database.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    try:
        yield session
    finally:
        session.close()


def add_user(db, email: str, role: UserRole = UserRole.STUDENT, first_name: str = 'Test') -> User:
    user = User(email=email, first_name=first_name, last_name=email.split('@')[0], role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def student(db) -> User:
    return add_user(db, 'student@example.edu')


@pytest.fixture
def other_student(db) -> User:
    return add_user(db, 'other.student@example.edu')


@pytest.fixture
def tutor(db) -> User:
    return add_user(db, 'tutor@example.edu', UserRole.TUTOR)


@pytest.fixture
def admin(db) -> User:
    return add_user(db, 'admin@example.edu', UserRole.ADMIN)


@pytest.fixture
def subject(db) -> Subject:
    subject = Subject(name='Calculus')
    db.add(subject)
    db.commit()
    db.refresh(subject)
    return subject


@pytest.fixture
def monday_schedule(db) -> Schedule:
    schedule = Schedule(date=MONDAY)
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return schedule


def add_timeslot(db, schedule: Schedule, subject: Subject, tutor: User, start: time, end: time) -> Timeslot:
    timeslot = Timeslot(
        schedule_id=schedule.id,
        subject_id=subject.id,
        tutor_id=tutor.id,
        start_time=start,
        end_time=end,
    )
    db.add(timeslot)
    db.commit()
    db.refresh(timeslot)
    return timeslot


def add_availability(db, tutor: User, day: str, start: time, end: time, subjects=()) -> Availability:
    availability = Availability(
        tutor_id=tutor.id,
        day_of_week=day,
        start_time=start,
        end_time=end,
        subjects=list(subjects),
    )
    db.add(availability)
    db.commit()
    db.refresh(availability)
    return availability


def add_session(
    db,
    tutor: User,
    student: User,
    subject: Subject,
    start: datetime,
    end: datetime,
    status: str | None = None,
    timeslot: Timeslot | None = None,
) -> TutoringSession:
    session = TutoringSession(
        timeslot_id=timeslot.id if timeslot else None,
        tutor_id=tutor.id,
        student_id=student.id,
        subject_id=subject.id,
        start_time=start,
        end_time=end,
        status=status,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session
