"""Session lifecycle after booking."""

import logging
from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from bughouse.core import config
from bughouse.core.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from bughouse.database import atomic
from bughouse.models.session import SessionStatus, TutoringSession
from bughouse.models.user import User
from bughouse.services.calendar_rules import center_now
from bughouse.services.session_status import DisplayStatus, classify_session

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
TUTOR_MARKABLE_STATUSES = {SessionStatus.COMPLETED, SessionStatus.NO_SHOW}


def _load_session(db: Session, session_id: int, *, lock: bool = False) -> TutoringSession:
    query = db.query(TutoringSession).filter(TutoringSession.id == session_id)
    if lock:
        query = query.with_for_update()
    session = query.first()
    if session is None:
        raise NotFoundError('Session not found.', details={'session_id': session_id})
    return session


def list_sessions_for_user(db: Session, user: User) -> list[TutoringSession]:
    return (
        db.query(TutoringSession)
        .options(
            joinedload(TutoringSession.tutor),
            joinedload(TutoringSession.student),
            joinedload(TutoringSession.subject),
        )
        .filter(or_(TutoringSession.student_id == user.id, TutoringSession.tutor_id == user.id))
        .order_by(TutoringSession.start_time.asc())
        .all()
    )


def cancel_session(db: Session, user: User, session_id: int) -> TutoringSession:
    with atomic(db):
        session = _load_session(db, session_id, lock=True)
        if user.id not in (session.student_id, session.tutor_id):
            raise ForbiddenError('Only the student or tutor of this session can cancel it.')
        if session.explicit_status is not None:
            raise InvalidStateError(
                f'Session is already {session.status}.',
                details={'session_id': session_id, 'status': session.status},
            )
        session.status = SessionStatus.CANCELLED.value

    logger.info('User %s cancelled session %s', user.id, session_id)
    return session


def check_in(db: Session, user: User, session_id: int, now: datetime | None = None) -> TutoringSession:
    now = now or center_now()

    with atomic(db):
        session = _load_session(db, session_id, lock=True)
        if session.student_id != user.id:
            raise ForbiddenError('Only the student of this session can check in.')
        if session.explicit_status is not None:
            raise InvalidStateError(f'Cannot check in to a {session.status} session.')
        if session.signed_in_at is not None:
            raise InvalidStateError('Already checked in.')
        opens_at = session.start_time - timedelta(minutes=config.CHECK_IN_EARLY_MINUTES)
        if not opens_at <= now < session.end_time:
            raise ValidationError(
                f'Check-in opens {config.CHECK_IN_EARLY_MINUTES} minutes before the session and closes when it ends.'
            )
        session.signed_in_at = now

    logger.info('Student %s checked in to session %s', user.id, session_id)
    return session


def check_out(db: Session, user: User, session_id: int, now: datetime | None = None) -> TutoringSession:
    now = now or center_now()

    with atomic(db):
        session = _load_session(db, session_id, lock=True)
        if session.student_id != user.id:
            raise ForbiddenError('Only the student of this session can check out.')
        if session.signed_in_at is None:
            raise InvalidStateError('Check in before checking out.')
        if session.signed_out_at is not None:
            raise InvalidStateError('Already checked out.')
        session.signed_out_at = now

    logger.info('Student %s checked out of session %s', user.id, session_id)
    return session


def mark_session_status(db: Session, user: User, session_id: int, status: str) -> TutoringSession:
    try:
        new_status = SessionStatus(status.strip().lower())
    except ValueError as exc:
        raise ValidationError('Status must be one of: completed, no_show.', details={'status': status}) from exc
    if new_status not in TUTOR_MARKABLE_STATUSES:
        raise ValidationError('Status must be one of: completed, no_show.', details={'status': status})

    with atomic(db):
        session = _load_session(db, session_id, lock=True)
        if session.tutor_id != user.id:
            raise ForbiddenError('Only the tutor of this session can update its status.')
        if session.explicit_status is SessionStatus.CANCELLED:
            raise InvalidStateError('Cancelled sessions cannot be updated.')
        session.status = new_status.value

    logger.info('Tutor %s marked session %s as %s', user.id, session_id, new_status.value)
    return session


def submit_feedback(
    db: Session,
    user: User,
    session_id: int,
    rating: int,
    feedback: str | None = None,
    now: datetime | None = None,
) -> TutoringSession:
    now = now or center_now()
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(f'Rating must be between {MIN_RATING} and {MAX_RATING}.', details={'rating': rating})

    with atomic(db):
        session = _load_session(db, session_id, lock=True)
        if session.student_id != user.id:
            raise ForbiddenError('Only the student of this session can leave feedback.')
        if session.rating is not None:
            raise InvalidStateError('Feedback was already submitted for this session.')
        if classify_session(session, now) is not DisplayStatus.COMPLETED:
            raise InvalidStateError('Feedback can only be left for completed sessions.')
        session.rating = rating
        session.feedback = feedback.strip() if feedback and feedback.strip() else None

    logger.info('Student %s rated session %s with %d', user.id, session_id, rating)
    return session
