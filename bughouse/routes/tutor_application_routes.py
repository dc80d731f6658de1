from datetime import datetime

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bughouse.auth.dependencies import get_current_user, require_admin
from bughouse.core import config
from bughouse.database import get_db
from bughouse.models.tutor_application import ApplicationStatus, TutorApplication
from bughouse.models.user import User
from bughouse.services import tutor_applications
from bughouse.services.resume_storage import ResumeStorage

router = APIRouter(tags=['tutor-applications'])


def get_resume_storage(request: Request) -> ResumeStorage:
    return request.app.state.resume_storage


class SubmittedApplicationResponse(BaseModel):
    id: int
    status: ApplicationStatus


class ApplicationResponse(BaseModel):
    id: int
    user_id: int = Field(serialization_alias='userId')
    applicant_name: str = Field(serialization_alias='applicantName')
    applicant_email: str = Field(serialization_alias='applicantEmail')
    cover_text: str | None = Field(serialization_alias='coverText')
    resume_mime: str = Field(serialization_alias='resumeMime')
    resume_size: int = Field(serialization_alias='resumeSize')
    status: ApplicationStatus
    admin_note: str | None = Field(serialization_alias='adminNote')
    created_at: datetime = Field(serialization_alias='createdAt')
    updated_at: datetime | None = Field(serialization_alias='updatedAt')
    decided_at: datetime | None = Field(serialization_alias='decidedAt')


class MyApplicationResponse(BaseModel):
    id: int
    status: ApplicationStatus
    admin_note: str | None = Field(serialization_alias='adminNote')
    created_at: datetime = Field(serialization_alias='createdAt')
    updated_at: datetime | None = Field(serialization_alias='updatedAt')

    class Config:
        from_attributes = True


class DecisionRequest(BaseModel):
    note: str | None = None


class DecisionResponse(BaseModel):
    ok: bool
    status: ApplicationStatus


def to_application_response(application: TutorApplication) -> ApplicationResponse:
    return ApplicationResponse(
        id=application.id,
        user_id=application.user_id,
        applicant_name=application.user.full_name,
        applicant_email=application.user.email,
        cover_text=application.cover_text,
        resume_mime=application.resume_mime,
        resume_size=application.resume_size,
        status=application.status,
        admin_note=application.admin_note,
        created_at=application.created_at,
        updated_at=application.updated_at,
        decided_at=application.decided_at,
    )


@router.post('/tutor-applications', response_model=SubmittedApplicationResponse, status_code=status.HTTP_201_CREATED)
def submit_application(
    resume: UploadFile = File(...),
    cover: str | None = Form(default=None),
    db: Session = Depends(get_db),
    storage: ResumeStorage = Depends(get_resume_storage),
    user: User = Depends(get_current_user),
):
    # Anything past the cap is enough to reject; the rest is never buffered.
    content = resume.file.read(config.MAX_RESUME_BYTES + 1)
    application = tutor_applications.submit_application(
        db,
        storage,
        user_id=user.id,
        cover_text=cover,
        filename=resume.filename,
        content=content,
        mime=resume.content_type,
        size=len(content),
    )
    return SubmittedApplicationResponse(id=application.id, status=application.status)


@router.get('/tutor-applications/mine', response_model=MyApplicationResponse)
def get_my_application(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return tutor_applications.get_latest_application(db, user.id)


@router.get('/admin/tutor-applications', response_model=list[ApplicationResponse])
def list_applications(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return [to_application_response(application) for application in tutor_applications.list_applications(db)]


@router.get('/admin/tutor-applications/{application_id}/resume')
def fetch_resume(
    application_id: int,
    db: Session = Depends(get_db),
    storage: ResumeStorage = Depends(get_resume_storage),
    admin: User = Depends(require_admin),
):
    path, application = tutor_applications.fetch_resume(db, storage, application_id)
    return FileResponse(path, media_type=application.resume_mime or 'application/pdf', filename=path.name)


@router.post('/admin/tutor-applications/{application_id}/approve', response_model=DecisionResponse)
def approve_application(
    application_id: int,
    data: DecisionRequest | None = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    application = tutor_applications.approve_application(db, application_id, data.note if data else None)
    return DecisionResponse(ok=True, status=application.status)


@router.post('/admin/tutor-applications/{application_id}/reject', response_model=DecisionResponse)
def reject_application(
    application_id: int,
    data: DecisionRequest | None = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    application = tutor_applications.reject_application(db, application_id, data.note if data else None)
    return DecisionResponse(ok=True, status=application.status)
