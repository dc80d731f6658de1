from datetime import date, datetime, time

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from bughouse.auth.dependencies import get_current_user
from bughouse.database import get_db
from bughouse.models.session import TutoringSession
from bughouse.models.user import User
from bughouse.services import booking, sessions
from bughouse.services.calendar_rules import center_now, normalize_weekday, wall_clock_time
from bughouse.services.session_status import DisplayStatus, classify_session

router = APIRouter(tags=['sessions'])

MAX_FEEDBACK_LENGTH = 1000


class BookTimeslotRequest(BaseModel):
    timeslot_id: int = Field(alias='timeslotId')

    class Config:
        populate_by_name = True


class BookFromAvailabilityRequest(BaseModel):
    tutor_id: int = Field(alias='tutorId')
    day_of_week: str = Field(alias='dayOfWeek')
    start_time: time = Field(alias='startTime')
    date: date
    subject_id: int = Field(alias='subjectId')
    session_length_minutes: int = Field(default=booking.DEFAULT_SESSION_MINUTES, alias='sessionLengthMinutes')

    class Config:
        populate_by_name = True

    @field_validator('day_of_week')
    @classmethod
    def validate_day_of_week(cls, value: str) -> str:
        return normalize_weekday(value)

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: time) -> time:
        return wall_clock_time(value)


class BookingResponse(BaseModel):
    id: int
    start_time: datetime = Field(serialization_alias='startTime')
    end_time: datetime = Field(serialization_alias='endTime')


class UpdateStatusRequest(BaseModel):
    status: str


class FeedbackRequest(BaseModel):
    rating: int
    feedback: str | None = None

    @field_validator('feedback')
    @classmethod
    def validate_feedback(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_FEEDBACK_LENGTH:
            raise ValueError(f'Feedback must be {MAX_FEEDBACK_LENGTH} characters or fewer.')

        return normalized


class SessionResponse(BaseModel):
    id: int
    timeslot_id: int | None = Field(serialization_alias='timeslotId')
    tutor_id: int = Field(serialization_alias='tutorId')
    tutor_name: str = Field(serialization_alias='tutorName')
    student_id: int = Field(serialization_alias='studentId')
    student_name: str = Field(serialization_alias='studentName')
    subject_id: int = Field(serialization_alias='subjectId')
    subject_name: str = Field(serialization_alias='subjectName')
    start_time: datetime = Field(serialization_alias='startTime')
    end_time: datetime = Field(serialization_alias='endTime')
    status: DisplayStatus
    signed_in_at: datetime | None = Field(serialization_alias='signedInAt')
    signed_out_at: datetime | None = Field(serialization_alias='signedOutAt')
    rating: int | None = None
    feedback: str | None = None


def to_session_response(session: TutoringSession, now: datetime) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        timeslot_id=session.timeslot_id,
        tutor_id=session.tutor_id,
        tutor_name=session.tutor.full_name,
        student_id=session.student_id,
        student_name=session.student.full_name,
        subject_id=session.subject_id,
        subject_name=session.subject.name,
        start_time=session.start_time,
        end_time=session.end_time,
        status=classify_session(session, now),
        signed_in_at=session.signed_in_at,
        signed_out_at=session.signed_out_at,
        rating=session.rating,
        feedback=session.feedback,
    )


@router.post('/book', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def book_timeslot(
    data: BookTimeslotRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    session = booking.book_timeslot(db, student_id=user.id, timeslot_id=data.timeslot_id)
    return BookingResponse(id=session.id, start_time=session.start_time, end_time=session.end_time)


@router.post('/book-from-availability', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def book_from_availability(
    data: BookFromAvailabilityRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    session = booking.book_from_availability(
        db,
        student_id=user.id,
        tutor_id=data.tutor_id,
        day_of_week=data.day_of_week,
        start_time=data.start_time,
        session_date=data.date,
        subject_id=data.subject_id,
        session_length_minutes=data.session_length_minutes,
    )
    return BookingResponse(id=session.id, start_time=session.start_time, end_time=session.end_time)


@router.get('/mine', response_model=list[SessionResponse])
def list_my_sessions(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    now = center_now()
    return [to_session_response(session, now) for session in sessions.list_sessions_for_user(db, user)]


@router.post('/{session_id}/cancel', response_model=SessionResponse)
def cancel_session(
    session_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return to_session_response(sessions.cancel_session(db, user, session_id), center_now())


@router.post('/{session_id}/check-in', response_model=SessionResponse)
def check_in(
    session_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    now = center_now()
    return to_session_response(sessions.check_in(db, user, session_id, now), now)


@router.post('/{session_id}/check-out', response_model=SessionResponse)
def check_out(
    session_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    now = center_now()
    return to_session_response(sessions.check_out(db, user, session_id, now), now)


@router.post('/{session_id}/status', response_model=SessionResponse)
def update_session_status(
    session_id: int,
    data: UpdateStatusRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return to_session_response(sessions.mark_session_status(db, user, session_id, data.status), center_now())


@router.post('/{session_id}/feedback', response_model=SessionResponse)
def submit_feedback(
    session_id: int,
    data: FeedbackRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    now = center_now()
    return to_session_response(sessions.submit_feedback(db, user, session_id, data.rating, data.feedback, now), now)
