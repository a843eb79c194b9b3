"""Patient service - Registry of patients with medical record numbers"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...audit import AuditLogger, snapshot
from ...clock import Clock
from ...errors import Conflict, NotFound
from ...models import Patient
from ...sequences import MRN_COUNTER, format_mrn, next_value
from .repository import PatientRepository
from .schemas import PatientCreate, PatientUpdate

logger = logging.getLogger(__name__)

# Request field -> column
FIELD_MAP = {
    "idNumber": "id_number",
    "idType": "id_type",
    "firstName": "first_name",
    "lastName": "last_name",
    "dateOfBirth": "date_of_birth",
    "gender": "gender",
    "phone": "phone",
    "email": "email",
    "address": "address",
    "emergencyContactName": "emergency_contact_name",
    "emergencyContactPhone": "emergency_contact_phone",
    "bloodType": "blood_type",
    "allergies": "allergies",
    "notes": "notes",
}

# Columns that may not be cleared by an update
REQUIRED_COLUMNS = {"id_number", "id_type", "first_name", "last_name", "date_of_birth", "gender"}


def duplicate_id_number(id_number: str) -> Conflict:
    return Conflict("A patient with this identification already exists", {"idNumber": id_number})


class PatientService:
    """Service layer for patient business logic"""

    def __init__(self, db: Session, clock: Clock, audit: Optional[AuditLogger] = None):
        self.db = db
        self.clock = clock
        self.audit = audit
        self.repo = PatientRepository()

    def search_patients(self, search: Optional[str] = None, page: int = 1, limit: int = 20) -> dict:
        items, total = self.repo.search_patients(self.db, search, offset=(page - 1) * limit, limit=limit)
        return {
            "data": items,
            "pagination": {"page": page, "limit": limit, "total": total, "pages": -(-total // limit)},
        }

    def get_patient(self, patient_id: int) -> Patient:
        patient = self.repo.get_patient(self.db, patient_id)
        if not patient:
            raise NotFound("Patient not found", {"patientId": patient_id})
        return patient

    def create_patient(self, data: PatientCreate) -> Patient:
        """Register a patient; the MRN comes from the patient counter"""
        if self.repo.get_by_id_number(self.db, data.idNumber):
            raise duplicate_id_number(data.idNumber)

        patient_data = {FIELD_MAP[k]: v for k, v in data.model_dump().items()}
        patient_data["medical_record_number"] = format_mrn(next_value(self.db, MRN_COUNTER))
        patient_data["created_at"] = self.clock.now()

        try:
            patient = self.repo.create_patient(self.db, **patient_data)
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Duplicate patient identification {data.idNumber}: {e.orig}")
            raise duplicate_id_number(data.idNumber) from e

        logger.info(f"✅ Patient {patient.id} registered as {patient.medical_record_number}")
        self._audit("CREATE", patient.id, None, snapshot(patient))
        return patient

    def update_patient(self, patient_id: int, data: PatientUpdate) -> Patient:
        patient = self.get_patient(patient_id)

        if data.idNumber and data.idNumber != patient.id_number:
            if self.repo.get_by_id_number(self.db, data.idNumber):
                raise Conflict(
                    "Another patient with this identification already exists", {"idNumber": data.idNumber}
                )

        updates = {}
        for field, value in data.model_dump(exclude_unset=True).items():
            column = FIELD_MAP[field]
            if value is None and column in REQUIRED_COLUMNS:
                continue
            updates[column] = value

        before = snapshot(patient)
        patient = self.repo.update_patient(self.db, patient, **updates)
        logger.info(f"Patient {patient.id} updated: {sorted(updates)}")

        self._audit("UPDATE", patient.id, before, snapshot(patient))
        return patient

    def delete_patient(self, patient_id: int) -> dict:
        """Soft delete; the row and its MRN are kept"""
        patient = self.get_patient(patient_id)
        before = snapshot(patient)
        self.repo.soft_delete(self.db, patient, self.clock.now())
        logger.info(f"Patient {patient_id} soft-deleted")

        self._audit("DELETE", patient_id, before, None)
        return {"message": "Patient deleted"}

    def _audit(self, action: str, patient_id: int, before: Optional[dict], after: Optional[dict]) -> None:
        if self.audit:
            self.audit.record(action, "patients", "Patient", patient_id, before, after)
