"""Scheduling domain schemas - Pydantic models for validation"""

import re
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import naive_local_time

HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment"""

    patientId: int
    doctorId: int
    dateTime: datetime
    duration: Optional[int] = Field(None, gt=0, le=24 * 60)  # minutes
    reason: Optional[str] = None

    @field_validator("dateTime")
    @classmethod
    def drop_offset(cls, v: datetime) -> datetime:
        return naive_local_time(v)


class AppointmentReschedule(BaseModel):
    dateTime: datetime
    duration: Optional[int] = Field(None, gt=0, le=24 * 60)
    reason: Optional[str] = None

    @field_validator("dateTime")
    @classmethod
    def drop_offset(cls, v: datetime) -> datetime:
        return naive_local_time(v)


class AppointmentCancel(BaseModel):
    reason: Optional[str] = None


class HistoryResponse(BaseModel):
    id: int
    previous_status: str
    new_status: str
    reason: Optional[str] = None
    changed_by: Optional[int] = None
    changed_at: datetime

    class Config:
        from_attributes = True


class PatientSummary(BaseModel):
    id: int
    first_name: str
    last_name: str
    medical_record_number: str

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""

    id: int
    patient_id: int
    doctor_id: int
    date_time: datetime
    end_time: datetime
    status: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    patient: Optional[PatientSummary] = None

    class Config:
        from_attributes = True


class AppointmentDetailResponse(AppointmentResponse):
    history: list[HistoryResponse] = []


class AppointmentPage(BaseModel):
    data: list[AppointmentResponse]
    pagination: dict


class ConflictCheckResponse(BaseModel):
    conflict: bool
    appointment: Optional[AppointmentResponse] = None


class ScheduleUpsert(BaseModel):
    """Weekly working window for one day of the week"""

    startTime: str
    endTime: str
    slotDuration: int = Field(30, gt=0)

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_hhmm(cls, v: str) -> str:
        if not HHMM.match(v):
            raise ValueError("time must be HH:MM")
        return v


class ScheduleResponse(BaseModel):
    id: int
    doctor_id: int
    day_of_week: int
    start_time: str
    end_time: str
    slot_duration: int

    class Config:
        from_attributes = True


class BlockCreate(BaseModel):
    startDate: datetime
    endDate: datetime
    reason: str

    @field_validator("startDate", "endDate")
    @classmethod
    def drop_offset(cls, v: datetime) -> datetime:
        return naive_local_time(v)


class BlockResponse(BaseModel):
    id: int
    doctor_id: int
    start_date: datetime
    end_date: datetime
    reason: str

    class Config:
        from_attributes = True


class DoctorResponse(BaseModel):
    id: int
    user_id: int
    first_name: str
    last_name: str
    specialty: Optional[str] = None
    license_number: Optional[str] = None
    schedules: list[ScheduleResponse] = []


class SlotResponse(BaseModel):
    startTime: datetime
    endTime: datetime
    available: bool
    reason: Optional[str] = None


class AvailabilityResponse(BaseModel):
    day: date
    available: bool
    slots: list[SlotResponse]
    schedule: Optional[ScheduleResponse] = None
    message: Optional[str] = None
