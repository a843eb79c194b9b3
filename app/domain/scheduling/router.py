"""Scheduling routers - Appointment and doctor calendar endpoints"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...audit import AuditLogger, get_audit_logger
from ...auth import get_current_user, require_permission
from ...clock import Clock, get_clock
from ...database import get_db
from ...models import Doctor, User
from ...shared.validators import naive_local_time
from .schemas import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentDetailResponse,
    AppointmentPage,
    AppointmentReschedule,
    AppointmentResponse,
    AvailabilityResponse,
    BlockCreate,
    BlockResponse,
    ConflictCheckResponse,
    DoctorResponse,
    ScheduleResponse,
    ScheduleUpsert,
    SlotResponse,
)
from .service import SchedulingService

logger = logging.getLogger(__name__)

appointments_router = APIRouter(prefix="/api/appointments", tags=["Appointments"])
doctors_router = APIRouter(prefix="/api/doctors", tags=["Doctors"])


def get_scheduling_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    audit: AuditLogger = Depends(get_audit_logger),
) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db, clock, audit)


# ============================================================================
# APPOINTMENTS
# ============================================================================


@appointments_router.get("", response_model=AppointmentPage)
async def list_appointments(
    doctorId: Optional[int] = Query(None),
    patientId: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    date: Optional[date] = Query(None),
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_permission("appointments", "read")),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """List appointments, chronologically; doctors only see their own"""
    return service.search_appointments(
        current_user,
        doctor_id=doctorId,
        patient_id=patientId,
        status=status,
        day=date,
        start=naive_local_time(startDate),
        end=naive_local_time(endDate),
        page=page,
        limit=limit,
    )


@appointments_router.get("/check-conflict", response_model=ConflictCheckResponse)
async def check_conflict(
    doctorId: int,
    start: datetime,
    end: datetime,
    excludeId: Optional[int] = None,
    current_user: User = Depends(require_permission("appointments", "read")),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Report the first appointment overlapping [start, end) for a doctor"""
    conflict = service.check_conflict(doctorId, naive_local_time(start), naive_local_time(end), excludeId)
    return ConflictCheckResponse(
        conflict=conflict is not None,
        appointment=AppointmentResponse.model_validate(conflict) if conflict else None,
    )


@appointments_router.get("/{appointment_id}", response_model=AppointmentDetailResponse)
async def get_appointment(
    appointment_id: int,
    current_user: User = Depends(require_permission("appointments", "read")),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Get an appointment with its status history (newest first)"""
    return service.get_appointment(appointment_id)


@appointments_router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    current_user: User = Depends(require_permission("appointments", "create")),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Book an appointment after block and overlap checks"""
    return service.create_appointment(data, current_user)


@appointments_router.put("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    data: AppointmentReschedule,
    current_user: User = Depends(require_permission("appointments", "update")),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.reschedule_appointment(
        appointment_id, data.dateTime, data.duration, data.reason, current_user
    )


@appointments_router.put("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    data: AppointmentCancel,
    current_user: User = Depends(require_permission("appointments", "update")),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.cancel_appointment(appointment_id, data.reason, current_user)


@appointments_router.put("/{appointment_id}/confirm", response_model=AppointmentResponse)
async def confirm_appointment(
    appointment_id: int,
    current_user: User = Depends(require_permission("appointments", "update")),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.confirm_appointment(appointment_id, current_user)


@appointments_router.put("/{appointment_id}/no-show", response_model=AppointmentResponse)
async def mark_no_show(
    appointment_id: int,
    current_user: User = Depends(require_permission("appointments", "update")),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.mark_no_show(appointment_id, current_user)


# ============================================================================
# DOCTORS, WEEKLY SCHEDULES AND BLOCKS
# ============================================================================


def doctor_response(doctor: Doctor) -> DoctorResponse:
    return DoctorResponse(
        id=doctor.id,
        user_id=doctor.user_id,
        first_name=doctor.user.first_name,
        last_name=doctor.user.last_name,
        specialty=doctor.specialty.name if doctor.specialty else None,
        license_number=doctor.license_number,
        schedules=[ScheduleResponse.model_validate(s) for s in doctor.schedules],
    )


@doctors_router.get("", response_model=list[DoctorResponse])
async def list_doctors(
    specialtyId: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """List active doctors with their weekly schedules"""
    return [doctor_response(d) for d in service.list_doctors(specialtyId)]


@doctors_router.get("/{doctor_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    doctor_id: int,
    date: date = Query(..., description="YYYY-MM-DD"),
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Slots for a doctor on a date, each marked available, booked or blocked"""
    schedule, plan = service.compute_availability(doctor_id, date)
    if plan is None:
        return AvailabilityResponse(
            day=date, available=False, slots=[], message="The doctor does not work this day"
        )

    return AvailabilityResponse(
        day=date,
        available=True,
        slots=[
            SlotResponse(startTime=s.start, endTime=s.end, available=s.available, reason=s.reason)
            for s in plan
        ],
        schedule=ScheduleResponse.model_validate(schedule),
    )


@doctors_router.put("/{doctor_id}/schedules/{day_of_week}", response_model=ScheduleResponse)
async def set_weekly_schedule(
    doctor_id: int,
    day_of_week: int,
    data: ScheduleUpsert,
    current_user: User = Depends(require_permission("admin", "update")),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Create or replace the working window for one day of the week (0=Sunday)"""
    return service.set_weekly_schedule(doctor_id, day_of_week, data)


@doctors_router.get("/{doctor_id}/blocks", response_model=list[BlockResponse])
async def list_blocks(
    doctor_id: int,
    upcoming: bool = Query(False),
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.list_blocks(doctor_id, upcoming_only=upcoming)


@doctors_router.post("/{doctor_id}/blocks", response_model=BlockResponse, status_code=201)
async def create_block(
    doctor_id: int,
    data: BlockCreate,
    current_user: User = Depends(require_permission("admin", "update")),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Block out a window (vacation, leave) on a doctor's calendar"""
    return service.add_block(doctor_id, data)
