"""Fetch helpers for rows the scheduling core references but does not own."""

from sqlalchemy.orm import Session

from bughouse.core.errors import NotFoundError
from bughouse.models.subject import Subject
from bughouse.models.user import User, UserRole


def get_user(db: Session, user_id: int, *, lock: bool = False) -> User:
    query = db.query(User).filter(User.id == user_id)
    if lock:
        query = query.with_for_update()
    user = query.first()
    if user is None:
        raise NotFoundError('User not found.', details={'user_id': user_id})
    return user


def get_tutor(db: Session, tutor_id: int, *, lock: bool = False) -> User:
    """Load a tutor, optionally taking a row lock that serializes writes to their calendar."""
    user = get_user(db, tutor_id, lock=lock)
    if user.role is not UserRole.TUTOR:
        raise NotFoundError('Tutor not found.', details={'tutor_id': tutor_id})
    return user


def get_subject(db: Session, subject_id: int) -> Subject:
    subject = db.get(Subject, subject_id)
    if subject is None:
        raise NotFoundError('Subject not found.', details={'subject_id': subject_id})
    return subject
