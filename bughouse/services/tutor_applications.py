"""
Tutor application workflow.

An application starts ``pending`` and is decided exactly once. Approval
promotes the applicant to the Tutor role in the same transaction as the
status change. The application row is locked and the status change itself is
guarded on ``pending``, so concurrent decisions serialize and only the first
one wins.
"""

import logging
from pathlib import Path

from sqlalchemy.orm import Session, joinedload

from bughouse.core import config
from bughouse.core.errors import InvalidStateError, NotFoundError, ValidationError
from bughouse.database import atomic
from bughouse.models.tutor_application import ApplicationStatus, TutorApplication
from bughouse.models.user import UserRole
from bughouse.services.calendar_rules import center_now
from bughouse.services.lookups import get_user
from bughouse.services.resume_storage import ResumeStorage

logger = logging.getLogger(__name__)

RESUME_MIME_TYPE = 'application/pdf'


def validate_resume(mime: str | None, size: int) -> None:
    if (mime or '').lower() != RESUME_MIME_TYPE:
        raise ValidationError('Only PDF resumes are accepted.', details={'mime': mime})
    if size <= 0:
        raise ValidationError('Resume (PDF) is required.')
    if size > config.MAX_RESUME_BYTES:
        raise ValidationError(
            f'Resume must be {config.MAX_RESUME_BYTES // (1024 * 1024)} MiB or smaller.',
            details={'size': size, 'max_size': config.MAX_RESUME_BYTES},
        )


def submit_application(
    db: Session,
    storage: ResumeStorage,
    user_id: int,
    cover_text: str | None,
    filename: str | None,
    content: bytes,
    mime: str | None,
    size: int | None = None,
) -> TutorApplication:
    size = len(content) if size is None else size
    validate_resume(mime, size)

    # Nothing touches the disk until the applicant is known to exist.
    get_user(db, user_id)

    stored_path = storage.save(user_id, filename, content)
    try:
        with atomic(db):
            application = TutorApplication(
                user_id=user_id,
                cover_text=(cover_text or '').strip() or None,
                resume_path=stored_path,
                resume_mime=RESUME_MIME_TYPE,
                resume_size=size,
                status=ApplicationStatus.PENDING,
            )
            db.add(application)
    except Exception:
        logger.exception('Saving tutor application for user %s failed; removing %s', user_id, stored_path)
        storage.delete(stored_path)
        raise

    db.refresh(application)
    logger.info('User %s submitted tutor application %s', user_id, application.id)
    return application


def list_applications(db: Session) -> list[TutorApplication]:
    return (
        db.query(TutorApplication)
        .options(joinedload(TutorApplication.user))
        .order_by(TutorApplication.created_at.desc(), TutorApplication.id.desc())
        .all()
    )


def get_latest_application(db: Session, user_id: int) -> TutorApplication:
    application = (
        db.query(TutorApplication)
        .filter(TutorApplication.user_id == user_id)
        .order_by(TutorApplication.created_at.desc(), TutorApplication.id.desc())
        .first()
    )
    if application is None:
        raise NotFoundError('No tutor application found for this user.')
    return application


def _lock_application(db: Session, application_id: int) -> TutorApplication:
    application = (
        db.query(TutorApplication)
        .filter(TutorApplication.id == application_id)
        .with_for_update()
        .first()
    )
    if application is None:
        raise NotFoundError('Application not found.', details={'application_id': application_id})
    return application


def _already_decided(application: TutorApplication) -> InvalidStateError:
    return InvalidStateError(
        f'Application was already {application.status.value}.',
        details={'application_id': application.id, 'status': application.status.value},
    )


def _decide(
    db: Session,
    application_id: int,
    decision: ApplicationStatus,
    note: str | None,
) -> TutorApplication:
    with atomic(db):
        application = _lock_application(db, application_id)
        if application.status is not ApplicationStatus.PENDING:
            raise _already_decided(application)

        # The status guard in the UPDATE lets exactly one decision through even
        # where the row lock is a no-op (SQLite).
        decided_at = center_now()
        updated = (
            db.query(TutorApplication)
            .filter(
                TutorApplication.id == application_id,
                TutorApplication.status == ApplicationStatus.PENDING,
            )
            .update(
                {
                    TutorApplication.status: decision,
                    TutorApplication.admin_note: (note or '').strip() or None,
                    TutorApplication.decided_at: decided_at,
                    TutorApplication.updated_at: decided_at,
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            db.refresh(application)
            logger.warning('Tutor application %s was decided concurrently', application_id)
            raise _already_decided(application)

        if decision is ApplicationStatus.APPROVED:
            applicant = get_user(db, application.user_id, lock=True)
            applicant.role = UserRole.TUTOR

    db.refresh(application)
    logger.info('Tutor application %s %s', application_id, decision.value)
    return application


def approve_application(db: Session, application_id: int, note: str | None = None) -> TutorApplication:
    return _decide(db, application_id, ApplicationStatus.APPROVED, note)


def reject_application(db: Session, application_id: int, note: str | None = None) -> TutorApplication:
    return _decide(db, application_id, ApplicationStatus.REJECTED, note)


def fetch_resume(db: Session, storage: ResumeStorage, application_id: int) -> tuple[Path, TutorApplication]:
    application = db.get(TutorApplication, application_id)
    if application is None:
        raise NotFoundError('Application not found.', details={'application_id': application_id})
    return storage.open_path(application.resume_path), application
