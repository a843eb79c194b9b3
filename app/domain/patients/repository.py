"""Patient repository - Database operations for patients"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Patient


class PatientRepository:
    """Repository for patient database operations"""

    @staticmethod
    def get_patient(db: Session, patient_id: int) -> Optional[Patient]:
        """Get a patient by ID, excluding soft-deleted rows"""
        return db.query(Patient).filter(Patient.id == patient_id, Patient.deleted_at.is_(None)).first()

    @staticmethod
    def get_by_id_number(db: Session, id_number: str) -> Optional[Patient]:
        """Any patient holding this identification, deleted or not (the column is unique)"""
        return db.query(Patient).filter(Patient.id_number == id_number).first()

    @staticmethod
    def search_patients(
        db: Session, search: Optional[str] = None, offset: int = 0, limit: int = 20
    ) -> tuple[list[Patient], int]:
        query = db.query(Patient).filter(Patient.deleted_at.is_(None))
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Patient.first_name.ilike(term),
                    Patient.last_name.ilike(term),
                    Patient.id_number.ilike(term),
                    Patient.phone.ilike(term),
                    Patient.medical_record_number.ilike(term),
                    Patient.email.ilike(term),
                )
            )

        total = query.count()
        items = query.order_by(Patient.created_at.desc(), Patient.id.desc()).offset(offset).limit(limit).all()
        return items, total

    @staticmethod
    def create_patient(db: Session, **patient_data) -> Patient:
        patient = Patient(**patient_data)
        db.add(patient)
        db.commit()
        db.refresh(patient)
        return patient

    @staticmethod
    def update_patient(db: Session, patient: Patient, **updates) -> Patient:
        """Update a patient with provided fields"""
        for key, value in updates.items():
            if hasattr(patient, key):
                setattr(patient, key, value)

        db.commit()
        db.refresh(patient)
        return patient

    @staticmethod
    def soft_delete(db: Session, patient: Patient, when: datetime) -> None:
        patient.deleted_at = when
        db.commit()
