from datetime import date, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from bughouse.auth.dependencies import get_current_user, require_tutor
from bughouse.database import get_db
from bughouse.models.availability import Availability
from bughouse.models.user import User
from bughouse.services import availability as availability_service
from bughouse.services.calendar_rules import normalize_weekday, wall_clock_time

router = APIRouter(tags=['availability'])


class SubjectResponse(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    id: int
    tutor_id: int = Field(serialization_alias='tutorId')
    tutor_name: str = Field(serialization_alias='tutorName')
    day_of_week: str = Field(serialization_alias='dayOfWeek')
    start_time: time = Field(serialization_alias='startTime')
    end_time: time = Field(serialization_alias='endTime')
    subjects: list[SubjectResponse]


class CreateAvailabilityRequest(BaseModel):
    day_of_week: str = Field(alias='dayOfWeek')
    start_time: time = Field(alias='startTime')
    end_time: time = Field(alias='endTime')
    subject_ids: list[int] = Field(default_factory=list, alias='subjectIds')

    class Config:
        populate_by_name = True

    @field_validator('day_of_week')
    @classmethod
    def validate_day_of_week(cls, value: str) -> str:
        return normalize_weekday(value)

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_times(cls, value: time) -> time:
        return wall_clock_time(value)


class ResolvedSlotResponse(BaseModel):
    availability_id: int = Field(serialization_alias='availabilityId')
    tutor_id: int = Field(serialization_alias='tutorId')
    tutor_name: str = Field(serialization_alias='tutorName')
    date: date
    start_time: time = Field(serialization_alias='startTime')
    end_time: time = Field(serialization_alias='endTime')
    subject_ids: list[int] = Field(serialization_alias='subjectIds')

    class Config:
        from_attributes = True


def to_availability_response(row: Availability) -> AvailabilityResponse:
    return AvailabilityResponse(
        id=row.id,
        tutor_id=row.tutor_id,
        tutor_name=row.tutor.full_name,
        day_of_week=row.day_of_week,
        start_time=row.start_time,
        end_time=row.end_time,
        subjects=[SubjectResponse.model_validate(subject) for subject in row.subjects],
    )


@router.get('', response_model=list[AvailabilityResponse])
def list_availability(
    day_of_week: str = Query(..., alias='dayOfWeek'),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return [to_availability_response(row) for row in availability_service.find_availability(db, day_of_week)]


@router.get('/mine', response_model=list[AvailabilityResponse])
def list_my_availability(
    db: Session = Depends(get_db),
    tutor: User = Depends(require_tutor),
):
    return [to_availability_response(row) for row in availability_service.list_tutor_availability(db, tutor.id)]


@router.get('/slots', response_model=list[ResolvedSlotResponse])
def list_bookable_slots(
    on_date: date = Query(..., alias='date'),
    subject_id: int | None = Query(default=None, alias='subjectId'),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return availability_service.list_bookable_slots(db, on_date, subject_id)


@router.post('', response_model=AvailabilityResponse, status_code=status.HTTP_201_CREATED)
def create_availability(
    data: CreateAvailabilityRequest,
    db: Session = Depends(get_db),
    tutor: User = Depends(require_tutor),
):
    row = availability_service.create_availability(
        db,
        tutor,
        day_of_week=data.day_of_week,
        start_time=data.start_time,
        end_time=data.end_time,
        subject_ids=data.subject_ids,
    )
    return to_availability_response(row)


@router.delete('/{availability_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_availability(
    availability_id: int,
    db: Session = Depends(get_db),
    tutor: User = Depends(require_tutor),
):
    availability_service.delete_availability(db, tutor, availability_id)
