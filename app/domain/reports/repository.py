"""Reports repository - read-only aggregate queries"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ...models import Appointment, Doctor, Invoice, MedicalAttention, Patient, Payment, User
from ..billing.ledger import INVOICE_CANCELLED, OPEN_PAYMENT_STATUSES


def _in_range(query, column, start: Optional[datetime], end: Optional[datetime]):
    """Inclusive [start, end] filter; either bound may be open"""
    if start:
        query = query.filter(column >= start)
    if end:
        query = query.filter(column <= end)
    return query


class ReportsRepository:
    @staticmethod
    def count_patients(db: Session) -> int:
        return db.query(func.count(Patient.id)).filter(Patient.deleted_at.is_(None)).scalar()

    @staticmethod
    def count_active_users(db: Session) -> int:
        return (
            db.query(func.count(User.id))
            .filter(User.is_active.is_(True), User.deleted_at.is_(None))
            .scalar()
        )

    @staticmethod
    def appointment_counts_by_status(db: Session, start: datetime, end: datetime) -> dict[str, int]:
        """Appointments starting in [start, end) grouped by status"""
        rows = (
            db.query(Appointment.status, func.count(Appointment.id))
            .filter(
                Appointment.deleted_at.is_(None),
                Appointment.date_time >= start,
                Appointment.date_time < end,
            )
            .group_by(Appointment.status)
            .all()
        )
        return dict(rows)

    @staticmethod
    def payments_total(db: Session, start: datetime, end: datetime) -> Decimal:
        total = (
            db.query(func.sum(Payment.amount))
            .filter(Payment.paid_at >= start, Payment.paid_at < end)
            .scalar()
        )
        return Decimal(str(total)) if total is not None else Decimal("0")

    @staticmethod
    def count_open_invoices(db: Session) -> int:
        return (
            db.query(func.count(Invoice.id))
            .filter(
                Invoice.deleted_at.is_(None),
                Invoice.status != INVOICE_CANCELLED,
                Invoice.payment_status.in_(OPEN_PAYMENT_STATUSES),
            )
            .scalar()
        )

    @staticmethod
    def attentions(
        db: Session, start: Optional[datetime], end: Optional[datetime], doctor_id: Optional[int]
    ) -> list[MedicalAttention]:
        query = db.query(MedicalAttention)
        query = _in_range(query, MedicalAttention.created_at, start, end)
        if doctor_id:
            query = query.filter(MedicalAttention.doctor_id == doctor_id)
        return query.order_by(MedicalAttention.created_at.desc(), MedicalAttention.id.desc()).all()

    @staticmethod
    def doctors_by_id(db: Session, doctor_ids: set[int]) -> dict[int, Doctor]:
        if not doctor_ids:
            return {}
        doctors = (
            db.query(Doctor)
            .options(joinedload(Doctor.user), joinedload(Doctor.specialty))
            .filter(Doctor.id.in_(doctor_ids))
            .all()
        )
        return {d.id: d for d in doctors}

    @staticmethod
    def invoices(db: Session, start: Optional[datetime], end: Optional[datetime]) -> list[Invoice]:
        query = db.query(Invoice).options(joinedload(Invoice.patient)).filter(Invoice.deleted_at.is_(None))
        query = _in_range(query, Invoice.created_at, start, end)
        return query.order_by(Invoice.created_at, Invoice.id).all()

    @staticmethod
    def payments(db: Session, start: Optional[datetime], end: Optional[datetime]) -> list[Payment]:
        query = _in_range(db.query(Payment), Payment.paid_at, start, end)
        return query.order_by(Payment.paid_at, Payment.id).all()

    @staticmethod
    def appointments(
        db: Session, start: Optional[datetime], end: Optional[datetime], doctor_id: Optional[int]
    ) -> list[Appointment]:
        query = db.query(Appointment).filter(Appointment.deleted_at.is_(None))
        query = _in_range(query, Appointment.date_time, start, end)
        if doctor_id:
            query = query.filter(Appointment.doctor_id == doctor_id)
        return query.order_by(Appointment.date_time, Appointment.id).all()
