"""Scheduling repository - Database operations for doctors, schedules and appointments"""

from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Appointment, AppointmentHistory, Doctor, DoctorSchedule, Patient, ScheduleBlock
from .engine import INACTIVE_STATUSES


def day_window(day: date) -> tuple[datetime, datetime]:
    """[00:00, next 00:00) of a calendar day"""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


class SchedulingRepository:
    """Repository for scheduling database operations"""

    # Doctors
    @staticmethod
    def get_doctor(db: Session, doctor_id: int) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.id == doctor_id).first()

    @staticmethod
    def lock_doctor(db: Session, doctor_id: int) -> Optional[Doctor]:
        """Row-lock a doctor so bookings against its calendar serialise"""
        return db.query(Doctor).filter(Doctor.id == doctor_id).with_for_update().first()

    @staticmethod
    def get_doctor_by_user(db: Session, user_id: int) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.user_id == user_id).first()

    @staticmethod
    def list_active_doctors(db: Session, specialty_id: Optional[int] = None) -> list[Doctor]:
        query = (
            db.query(Doctor)
            .options(joinedload(Doctor.user), joinedload(Doctor.specialty))
            .filter(Doctor.is_active.is_(True))
        )
        if specialty_id:
            query = query.filter(Doctor.specialty_id == specialty_id)
        return query.order_by(Doctor.id).all()

    @staticmethod
    def get_active_patient(db: Session, patient_id: int) -> Optional[Patient]:
        return (
            db.query(Patient)
            .filter(Patient.id == patient_id, Patient.deleted_at.is_(None))
            .first()
        )

    # Weekly schedules and blocks
    @staticmethod
    def get_schedule(db: Session, doctor_id: int, day_of_week: int) -> Optional[DoctorSchedule]:
        return (
            db.query(DoctorSchedule)
            .filter(DoctorSchedule.doctor_id == doctor_id, DoctorSchedule.day_of_week == day_of_week)
            .first()
        )

    @staticmethod
    def upsert_schedule(
        db: Session, doctor_id: int, day_of_week: int, start_time: str, end_time: str, slot_duration: int
    ) -> DoctorSchedule:
        schedule = SchedulingRepository.get_schedule(db, doctor_id, day_of_week)
        if schedule is None:
            schedule = DoctorSchedule(doctor_id=doctor_id, day_of_week=day_of_week)
            db.add(schedule)
        schedule.start_time = start_time
        schedule.end_time = end_time
        schedule.slot_duration = slot_duration
        db.commit()
        db.refresh(schedule)
        return schedule

    @staticmethod
    def blocks_overlapping(
        db: Session, doctor_id: int, start: datetime, end: datetime
    ) -> list[ScheduleBlock]:
        """Blocks for a doctor overlapping [start, end) under the open-overlap test"""
        return (
            db.query(ScheduleBlock)
            .filter(
                ScheduleBlock.doctor_id == doctor_id,
                ScheduleBlock.start_date < end,
                ScheduleBlock.end_date > start,
            )
            .order_by(ScheduleBlock.start_date, ScheduleBlock.id)
            .all()
        )

    @staticmethod
    def list_blocks(db: Session, doctor_id: int, since: Optional[datetime] = None) -> list[ScheduleBlock]:
        query = db.query(ScheduleBlock).filter(ScheduleBlock.doctor_id == doctor_id)
        if since:
            query = query.filter(ScheduleBlock.end_date > since)
        return query.order_by(ScheduleBlock.start_date).all()

    @staticmethod
    def create_block(
        db: Session, doctor_id: int, start_date: datetime, end_date: datetime, reason: str
    ) -> ScheduleBlock:
        block = ScheduleBlock(doctor_id=doctor_id, start_date=start_date, end_date=end_date, reason=reason)
        db.add(block)
        db.commit()
        db.refresh(block)
        return block

    # Appointments
    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        """Appointment by id, excluding soft-deleted rows"""
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.deleted_at.is_(None))
            .first()
        )

    @staticmethod
    def appointments_overlapping(
        db: Session,
        doctor_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> list[Appointment]:
        """Calendar-occupying appointments for a doctor overlapping [start, end)"""
        query = db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status.notin_(INACTIVE_STATUSES),
            Appointment.deleted_at.is_(None),
            Appointment.date_time < end,
            Appointment.end_time > start,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.order_by(Appointment.date_time, Appointment.id).all()

    @staticmethod
    def search_appointments(
        db: Session,
        doctor_id: Optional[int] = None,
        patient_id: Optional[int] = None,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[Appointment], int]:
        query = db.query(Appointment).filter(Appointment.deleted_at.is_(None))
        if doctor_id:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if patient_id:
            query = query.filter(Appointment.patient_id == patient_id)
        if status:
            query = query.filter(Appointment.status == status)
        if start:
            query = query.filter(Appointment.date_time >= start)
        if end:
            query = query.filter(Appointment.date_time < end)

        total = query.count()
        items = (
            query.options(joinedload(Appointment.patient))
            .order_by(Appointment.date_time, Appointment.id)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def add_history(
        db: Session,
        appointment: Appointment,
        previous_status: str,
        new_status: str,
        changed_by: Optional[int],
        changed_at: datetime,
        reason: Optional[str] = None,
    ) -> AppointmentHistory:
        entry = AppointmentHistory(
            appointment_id=appointment.id,
            previous_status=previous_status,
            new_status=new_status,
            reason=reason,
            changed_by=changed_by,
            changed_at=changed_at,
        )
        db.add(entry)
        return entry
