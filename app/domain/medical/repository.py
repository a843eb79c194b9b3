"""Medical repository - Database operations for medical attentions"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Appointment, MedicalAttention


class MedicalRepository:
    @staticmethod
    def get_attention(db: Session, attention_id: int) -> Optional[MedicalAttention]:
        return db.query(MedicalAttention).filter(MedicalAttention.id == attention_id).first()

    @staticmethod
    def get_by_appointment(db: Session, appointment_id: int) -> Optional[MedicalAttention]:
        return db.query(MedicalAttention).filter(MedicalAttention.appointment_id == appointment_id).first()

    @staticmethod
    def lock_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.deleted_at.is_(None))
            .with_for_update()
            .first()
        )

    @staticmethod
    def search_attentions(
        db: Session,
        patient_id: Optional[int] = None,
        doctor_id: Optional[int] = None,
        status: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[MedicalAttention], int]:
        query = db.query(MedicalAttention)
        if patient_id:
            query = query.filter(MedicalAttention.patient_id == patient_id)
        if doctor_id:
            query = query.filter(MedicalAttention.doctor_id == doctor_id)
        if status:
            query = query.filter(MedicalAttention.status == status)

        total = query.count()
        items = (
            query.order_by(MedicalAttention.created_at.desc(), MedicalAttention.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total
