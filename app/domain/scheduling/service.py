"""Scheduling service - Appointment lifecycle, conflict checks and availability"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...audit import AuditLogger, snapshot
from ...clock import Clock
from ...config import AVAILABILITY_ALLOW_OVERRUN, DEFAULT_APPOINTMENT_MINUTES
from ...errors import Conflict, ForbiddenTransition, NotFound, ValidationFailed
from ...models import Appointment, Doctor, DoctorSchedule, ScheduleBlock, User
from . import engine
from .repository import SchedulingRepository, day_window
from .schemas import AppointmentCreate, BlockCreate, ScheduleUpsert

logger = logging.getLogger(__name__)


def block_conflict(block: ScheduleBlock) -> Conflict:
    return Conflict(
        f"The doctor has a schedule block: {block.reason}",
        {
            "block": {
                "id": block.id,
                "reason": block.reason,
                "startDate": block.start_date.isoformat(),
                "endDate": block.end_date.isoformat(),
            }
        },
    )


def appointment_conflict(other: Appointment) -> Conflict:
    return Conflict(
        "The doctor already has an appointment in this time range",
        {
            "conflict": {
                "id": other.id,
                "dateTime": other.date_time.isoformat(),
                "endTime": other.end_time.isoformat(),
            }
        },
    )


class SchedulingService:
    """Service layer for the appointment state machine and doctor calendars"""

    def __init__(self, db: Session, clock: Clock, audit: Optional[AuditLogger] = None):
        self.db = db
        self.clock = clock
        self.audit = audit
        self.repo = SchedulingRepository()

    # ------------------------------------------------------------------
    # Conflict detection
    # ------------------------------------------------------------------

    def check_conflict(
        self,
        doctor_id: int,
        proposed_start: datetime,
        proposed_end: datetime,
        exclude_appointment_id: Optional[int] = None,
    ) -> Optional[Appointment]:
        """First calendar-occupying appointment overlapping [start, end), or None"""
        if proposed_start >= proposed_end:
            raise ValidationFailed("start must be before end")
        candidates = self.repo.appointments_overlapping(
            self.db, doctor_id, proposed_start, proposed_end, exclude_appointment_id
        )
        return engine.find_conflict(candidates, proposed_start, proposed_end, exclude_appointment_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_appointment(self, data: AppointmentCreate, actor: User) -> Appointment:
        patient = self.repo.get_active_patient(self.db, data.patientId)
        if not patient:
            raise NotFound("Patient not found", {"patientId": data.patientId})

        # Lock the doctor row: check + insert must not interleave with another booking
        doctor = self.repo.lock_doctor(self.db, data.doctorId)
        if not doctor or not doctor.is_active:
            self.db.rollback()
            raise NotFound("Doctor not found", {"doctorId": data.doctorId})

        start = data.dateTime
        end = engine.end_of(start, data.duration or DEFAULT_APPOINTMENT_MINUTES)

        try:
            block = engine.find_block(self.repo.blocks_overlapping(self.db, doctor.id, start, end), start, end)
            if block:
                logger.warning(f"⚠️ Booking for doctor {doctor.id} at {start} hits block {block.id}")
                raise block_conflict(block)

            conflict = self.check_conflict(doctor.id, start, end)
            if conflict:
                logger.warning(f"⚠️ Booking for doctor {doctor.id} at {start} overlaps appointment {conflict.id}")
                raise appointment_conflict(conflict)
        except Conflict:
            self.db.rollback()
            raise

        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            date_time=start,
            end_time=end,
            reason=data.reason or None,
            status=engine.STATUS_SCHEDULED,
        )
        self.db.add(appointment)
        self.db.flush()
        self.repo.add_history(
            self.db,
            appointment,
            engine.STATUS_NONE,
            engine.STATUS_SCHEDULED,
            changed_by=actor.id,
            changed_at=self.clock.now(),
        )
        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"✅ Appointment {appointment.id} booked for doctor {doctor.id} at {start}")

        self._audit("CREATE", appointment, None)
        return appointment

    def reschedule_appointment(
        self,
        appointment_id: int,
        new_start: datetime,
        duration_minutes: Optional[int],
        reason: Optional[str],
        actor: User,
    ) -> Appointment:
        if not reason or not reason.strip():
            raise ValidationFailed("A reschedule reason is required")

        appointment = self._get_or_404(appointment_id)
        if appointment.status in engine.TERMINAL_STATUSES:
            raise ForbiddenTransition(
                f"Cannot reschedule an appointment that is {appointment.status}",
                {"appointmentId": appointment.id, "status": appointment.status},
            )

        before = snapshot(appointment)
        new_end = engine.end_of(new_start, duration_minutes or DEFAULT_APPOINTMENT_MINUTES)

        self.repo.lock_doctor(self.db, appointment.doctor_id)
        conflict = self.check_conflict(appointment.doctor_id, new_start, new_end, appointment.id)
        if conflict:
            self.db.rollback()
            logger.warning(f"⚠️ Reschedule of {appointment.id} overlaps appointment {conflict.id}")
            raise appointment_conflict(conflict)

        previous = appointment.status
        appointment.date_time = new_start
        appointment.end_time = new_end
        appointment.status = engine.STATUS_RESCHEDULED
        appointment.notes = reason
        self.repo.add_history(
            self.db,
            appointment,
            previous,
            engine.STATUS_RESCHEDULED,
            changed_by=actor.id,
            changed_at=self.clock.now(),
            reason=reason,
        )
        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment.id} rescheduled to {new_start}")

        self._audit("RESCHEDULE", appointment, before)
        return appointment

    def cancel_appointment(self, appointment_id: int, reason: Optional[str], actor: User) -> Appointment:
        if not reason or not reason.strip():
            raise ValidationFailed("A cancellation reason is required")

        appointment = self._get_or_404(appointment_id)
        if appointment.status in engine.TERMINAL_STATUSES:
            raise ForbiddenTransition(
                f"Cannot cancel an appointment that is {appointment.status}",
                {"appointmentId": appointment.id, "status": appointment.status},
            )

        return self._transition(appointment, engine.STATUS_CANCELLED, actor, reason, "CANCEL")

    def confirm_appointment(self, appointment_id: int, actor: User) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        return self._transition(appointment, engine.STATUS_CONFIRMED, actor, None, "CONFIRM")

    def mark_no_show(self, appointment_id: int, actor: User) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        return self._transition(appointment, engine.STATUS_NO_SHOW, actor, None, "NO_SHOW")

    def mark_attended(self, appointment: Appointment, actor: User) -> None:
        """Record attendance inside the caller's transaction (no commit)"""
        previous = appointment.status
        appointment.status = engine.STATUS_ATTENDED
        self.repo.add_history(
            self.db,
            appointment,
            previous,
            engine.STATUS_ATTENDED,
            changed_by=actor.id,
            changed_at=self.clock.now(),
        )

    def _transition(
        self, appointment: Appointment, new_status: str, actor: User, reason: Optional[str], action: str
    ) -> Appointment:
        before = snapshot(appointment)
        previous = appointment.status
        appointment.status = new_status
        if reason:
            appointment.notes = reason
        self.repo.add_history(
            self.db,
            appointment,
            previous,
            new_status,
            changed_by=actor.id,
            changed_at=self.clock.now(),
            reason=reason,
        )
        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment.id}: {previous} → {new_status}")

        self._audit(action, appointment, before)
        return appointment

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_appointment(self, appointment_id: int) -> Appointment:
        return self._get_or_404(appointment_id)

    def search_appointments(
        self,
        actor: User,
        doctor_id: Optional[int] = None,
        patient_id: Optional[int] = None,
        status: Optional[str] = None,
        day: Optional[date] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict:
        if status and status not in engine.APPOINTMENT_STATUSES:
            raise ValidationFailed(f"Unknown appointment status: {status}")

        # Doctors only see their own calendar
        own = self.repo.get_doctor_by_user(self.db, actor.id)
        if own is not None:
            doctor_id = own.id

        if day:
            start, end = day_window(day)

        items, total = self.repo.search_appointments(
            self.db,
            doctor_id=doctor_id,
            patient_id=patient_id,
            status=status,
            start=start,
            end=end,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return {
            "data": items,
            "pagination": {"page": page, "limit": limit, "total": total, "pages": -(-total // limit)},
        }

    def _get_or_404(self, appointment_id: int) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFound("Appointment not found", {"appointmentId": appointment_id})
        return appointment

    def _audit(self, action: str, appointment: Appointment, before: Optional[dict]) -> None:
        if self.audit:
            self.audit.record(action, "appointments", "Appointment", appointment.id, before, snapshot(appointment))

    # ------------------------------------------------------------------
    # Doctor calendars
    # ------------------------------------------------------------------

    def list_doctors(self, specialty_id: Optional[int] = None) -> list[Doctor]:
        return self.repo.list_active_doctors(self.db, specialty_id)

    def get_doctor(self, doctor_id: int) -> Doctor:
        doctor = self.repo.get_doctor(self.db, doctor_id)
        if not doctor:
            raise NotFound("Doctor not found", {"doctorId": doctor_id})
        return doctor

    def set_weekly_schedule(self, doctor_id: int, day_of_week: int, data: ScheduleUpsert) -> DoctorSchedule:
        self.get_doctor(doctor_id)
        if not 0 <= day_of_week <= 6:
            raise ValidationFailed("dayOfWeek must be between 0 (Sunday) and 6 (Saturday)")
        if engine.parse_clock_time(data.startTime) >= engine.parse_clock_time(data.endTime):
            raise ValidationFailed("startTime must be before endTime")

        schedule = self.repo.upsert_schedule(
            self.db, doctor_id, day_of_week, data.startTime, data.endTime, data.slotDuration
        )
        logger.info(
            f"Schedule for doctor {doctor_id} day {day_of_week}: {data.startTime}-{data.endTime}/{data.slotDuration}m"
        )
        if self.audit:
            self.audit.record("UPDATE", "admin", "DoctorSchedule", schedule.id, None, snapshot(schedule))
        return schedule

    def add_block(self, doctor_id: int, data: BlockCreate) -> ScheduleBlock:
        self.get_doctor(doctor_id)
        if data.startDate >= data.endDate:
            raise ValidationFailed("startDate must be before endDate")
        if not data.reason.strip():
            raise ValidationFailed("A block reason is required")

        block = self.repo.create_block(self.db, doctor_id, data.startDate, data.endDate, data.reason.strip())
        logger.info(f"Block {block.id} for doctor {doctor_id}: {block.start_date} → {block.end_date}")
        if self.audit:
            self.audit.record("CREATE", "admin", "ScheduleBlock", block.id, None, snapshot(block))
        return block

    def list_blocks(self, doctor_id: int, upcoming_only: bool = False) -> list[ScheduleBlock]:
        self.get_doctor(doctor_id)
        return self.repo.list_blocks(self.db, doctor_id, self.clock.now() if upcoming_only else None)

    def compute_availability(
        self, doctor_id: int, day: date
    ) -> tuple[Optional[DoctorSchedule], Optional[engine.DayPlan]]:
        """
        Weekly schedule entry for the day and a restartable plan of slots,
        or (None, None) when the doctor does not work that day.
        """
        self.get_doctor(doctor_id)
        schedule = self.repo.get_schedule(self.db, doctor_id, engine.clinic_day_of_week(day))
        if schedule is None:
            return None, None

        window_start, window_end = day_window(day)
        plan = engine.DayPlan(
            day,
            engine.parse_clock_time(schedule.start_time),
            engine.parse_clock_time(schedule.end_time),
            schedule.slot_duration,
            blocks=self.repo.blocks_overlapping(self.db, doctor_id, window_start, window_end),
            appointments=self.repo.appointments_overlapping(self.db, doctor_id, window_start, window_end),
            allow_overrun=AVAILABILITY_ALLOW_OVERRUN,
        )
        return schedule, plan
