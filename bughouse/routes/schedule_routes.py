from datetime import date, time

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bughouse.auth.dependencies import get_current_user, require_admin
from bughouse.database import get_db
from bughouse.models.user import User
from bughouse.services import schedules

router = APIRouter(tags=['schedules'])


class CreateScheduleRequest(BaseModel):
    date: date


class ScheduleResponse(BaseModel):
    id: int
    date: date

    class Config:
        from_attributes = True


class ScheduleTimeslotResponse(BaseModel):
    id: int
    subject_id: int = Field(serialization_alias='subjectId')
    tutor_id: int = Field(serialization_alias='tutorId')
    start_time: time = Field(serialization_alias='startTime')
    end_time: time = Field(serialization_alias='endTime')

    class Config:
        from_attributes = True


class ScheduleWithTimeslotsResponse(ScheduleResponse):
    timeslots: list[ScheduleTimeslotResponse]


@router.post('', response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(
    data: CreateScheduleRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return schedules.create_schedule(db, data.date)


@router.get('', response_model=list[ScheduleWithTimeslotsResponse], response_model_by_alias=True)
def list_schedules(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return schedules.list_schedules(db)
