from datetime import date, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from bughouse.auth.dependencies import get_current_user, require_admin
from bughouse.database import get_db
from bughouse.models.user import User
from bughouse.services import timeslots
from bughouse.services.calendar_rules import wall_clock_time

router = APIRouter(tags=['timeslots'])

DEFAULT_SLOT_DURATION_MINUTES = 60


class GenerateTimeslotsRequest(BaseModel):
    schedule_id: int = Field(alias='scheduleId')
    subject_id: int = Field(alias='subjectId')
    tutor_id: int = Field(alias='tutorId')
    start: time
    end: time
    duration_minutes: int = Field(default=DEFAULT_SLOT_DURATION_MINUTES, alias='durationMinutes')

    class Config:
        populate_by_name = True

    @field_validator('start', 'end')
    @classmethod
    def drop_seconds(cls, value: time) -> time:
        return wall_clock_time(value).replace(second=0, microsecond=0)


class GenerateTimeslotsResponse(BaseModel):
    created: int
    message: str


class AvailableTimeslotResponse(BaseModel):
    id: int
    schedule_id: int = Field(serialization_alias='scheduleId')
    date: date
    subject_id: int = Field(serialization_alias='subjectId')
    subject_name: str = Field(serialization_alias='subjectName')
    tutor_id: int = Field(serialization_alias='tutorId')
    tutor_name: str = Field(serialization_alias='tutorName')
    start_time: time = Field(serialization_alias='startTime')
    end_time: time = Field(serialization_alias='endTime')


@router.post('', response_model=GenerateTimeslotsResponse, status_code=status.HTTP_201_CREATED)
def generate_timeslots(
    data: GenerateTimeslotsRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    created = timeslots.generate_timeslots(
        db,
        schedule_id=data.schedule_id,
        subject_id=data.subject_id,
        tutor_id=data.tutor_id,
        start=data.start,
        end=data.end,
        duration_minutes=data.duration_minutes,
    )
    return GenerateTimeslotsResponse(created=created, message=f'Created {created} timeslots.')


@router.get('', response_model=list[AvailableTimeslotResponse], response_model_by_alias=True)
def list_available_timeslots(
    on_date: date = Query(..., alias='date'),
    subject_id: int = Query(..., alias='subjectId'),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return [
        AvailableTimeslotResponse(
            id=slot.id,
            schedule_id=slot.schedule_id,
            date=slot.schedule.date,
            subject_id=slot.subject_id,
            subject_name=slot.subject.name,
            tutor_id=slot.tutor_id,
            tutor_name=slot.tutor.full_name,
            start_time=slot.start_time,
            end_time=slot.end_time,
        )
        for slot in timeslots.list_available_timeslots(db, on_date, subject_id)
    ]
