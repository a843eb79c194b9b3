"""Medical service - Attentions opened from appointments and closed with diagnoses"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...audit import AuditLogger, snapshot
from ...clock import Clock
from ...errors import Conflict, ForbiddenTransition, NotFound, ValidationFailed
from ...models import ClinicalNote, MedicalAttention, User
from ..scheduling import engine
from ..scheduling.repository import SchedulingRepository
from ..scheduling.service import SchedulingService
from .repository import MedicalRepository
from .schemas import AmendmentCreate, AttentionStart, AttentionUpdate

logger = logging.getLogger(__name__)

ATTENTION_IN_PROGRESS = "in_progress"
ATTENTION_CLOSED = "closed"

NOTE_AMENDMENT = "amendment"
AMENDMENT_PREFIX = "[ENMIENDA]"


class MedicalService:
    def __init__(self, db: Session, clock: Clock, audit: Optional[AuditLogger] = None):
        self.db = db
        self.clock = clock
        self.audit = audit
        self.repo = MedicalRepository()
        self.scheduling = SchedulingService(db, clock)

    def start_attention(self, data: AttentionStart, actor: User) -> MedicalAttention:
        """
        Open an attention. When it comes from an appointment the appointment
        moves to attended in the same transaction, with a history entry.
        """
        appointment = None
        if data.appointmentId is not None:
            appointment = self.repo.lock_appointment(self.db, data.appointmentId)
            if not appointment:
                self.db.rollback()
                raise NotFound("Appointment not found", {"appointmentId": data.appointmentId})
            if appointment.status == engine.STATUS_ATTENDED:
                self.db.rollback()
                raise ForbiddenTransition(
                    "This appointment was already attended", {"appointmentId": appointment.id}
                )
            existing = self.repo.get_by_appointment(self.db, appointment.id)
            if existing:
                self.db.rollback()
                raise Conflict(
                    "An attention already exists for this appointment", {"attentionId": existing.id}
                )
            if data.patientId is not None and data.patientId != appointment.patient_id:
                self.db.rollback()
                raise ValidationFailed(
                    "patientId does not match the appointment",
                    {"patientId": data.patientId, "appointmentId": appointment.id},
                )

        patient_id = appointment.patient_id if appointment else data.patientId
        if patient_id is None:
            raise ValidationFailed("patientId is required")
        if not SchedulingRepository.get_active_patient(self.db, patient_id):
            self.db.rollback()
            raise NotFound("Patient not found", {"patientId": patient_id})

        doctor_id = self._resolve_doctor(data, actor, appointment.doctor_id if appointment else None)

        attention = MedicalAttention(
            appointment_id=appointment.id if appointment else None,
            patient_id=patient_id,
            doctor_id=doctor_id,
            chief_complaint=data.chiefComplaint or None,
            diagnoses=[],
            status=ATTENTION_IN_PROGRESS,
            created_at=self.clock.now(),
        )
        self.db.add(attention)
        if appointment:
            self.scheduling.mark_attended(appointment, actor)

        try:
            self.db.commit()
        except IntegrityError as e:
            # Lost a race on the one-attention-per-appointment constraint
            self.db.rollback()
            raise Conflict(
                "An attention already exists for this appointment", {"appointmentId": data.appointmentId}
            ) from e
        self.db.refresh(attention)
        logger.info(f"✅ Attention {attention.id} started for patient {patient_id} by doctor {doctor_id}")

        self._audit("START_ATTENTION", attention, None)
        return attention

    def _resolve_doctor(self, data: AttentionStart, actor: User, appointment_doctor_id: Optional[int]) -> int:
        """The acting doctor, else the appointment's doctor, else an explicit doctorId"""
        own = SchedulingRepository.get_doctor_by_user(self.db, actor.id)
        if own is not None:
            return own.id
        if appointment_doctor_id is not None:
            return appointment_doctor_id
        if data.doctorId is not None:
            if not SchedulingRepository.get_doctor(self.db, data.doctorId):
                self.db.rollback()
                raise NotFound("Doctor not found", {"doctorId": data.doctorId})
            return data.doctorId
        self.db.rollback()
        raise ValidationFailed("doctorId is required when the user has no doctor profile")

    def update_attention(self, attention_id: int, data: AttentionUpdate) -> MedicalAttention:
        attention = self.get_attention(attention_id)
        if attention.status == ATTENTION_CLOSED:
            raise ForbiddenTransition("This attention is closed", {"attentionId": attention.id})

        before = snapshot(attention)
        if data.chiefComplaint is not None:
            attention.chief_complaint = data.chiefComplaint
        if data.diagnoses is not None:
            attention.diagnoses = [d.model_dump() for d in data.diagnoses]
        self.db.commit()
        self.db.refresh(attention)

        self._audit("UPDATE", attention, before)
        return attention

    def close_attention(self, attention_id: int) -> MedicalAttention:
        attention = self.get_attention(attention_id)
        if attention.status == ATTENTION_CLOSED:
            raise ForbiddenTransition("This attention is already closed", {"attentionId": attention.id})
        if not attention.diagnoses:
            raise ValidationFailed("At least one diagnosis is required to close an attention")

        before = snapshot(attention)
        attention.status = ATTENTION_CLOSED
        attention.closed_at = self.clock.now()
        self.db.commit()
        self.db.refresh(attention)
        logger.info(f"Attention {attention.id} closed")

        self._audit("CLOSE_ATTENTION", attention, before)
        return attention

    def amend_attention(self, attention_id: int, data: AmendmentCreate, actor: User) -> ClinicalNote:
        """
        Append an amendment note to a closed attention. The attention itself
        stays untouched; the note carries the correction and its reason.
        """
        if not data.content or not data.content.strip():
            raise ValidationFailed("The amendment content is required")

        attention = self.get_attention(attention_id)
        if attention.status != ATTENTION_CLOSED:
            raise ForbiddenTransition(
                "Only closed attentions can be amended", {"attentionId": attention.id, "status": attention.status}
            )

        reason = (data.reason or "").strip()
        header = f"{AMENDMENT_PREFIX} Motivo: {reason}\n" if reason else f"{AMENDMENT_PREFIX} "
        note = ClinicalNote(
            attention_id=attention.id,
            note_type=NOTE_AMENDMENT,
            content=header + data.content.strip(),
            created_by=actor.id,
            created_at=self.clock.now(),
        )
        self.db.add(note)
        self.db.commit()
        self.db.refresh(note)
        logger.info(f"Amendment {note.id} added to attention {attention.id} by {actor.username}")

        if self.audit:
            self.audit.record("AMENDMENT", "medical", "MedicalAttention", attention.id, None, snapshot(note))
        return note

    def get_attention(self, attention_id: int) -> MedicalAttention:
        attention = self.repo.get_attention(self.db, attention_id)
        if not attention:
            raise NotFound("Attention not found", {"attentionId": attention_id})
        return attention

    def search_attentions(
        self,
        actor: User,
        patient_id: Optional[int] = None,
        doctor_id: Optional[int] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        own = SchedulingRepository.get_doctor_by_user(self.db, actor.id)
        if own is not None:
            doctor_id = own.id

        items, total = self.repo.search_attentions(
            self.db, patient_id, doctor_id, status, offset=(page - 1) * limit, limit=limit
        )
        return {
            "data": items,
            "pagination": {"page": page, "limit": limit, "total": total, "pages": -(-total // limit)},
        }

    def _audit(self, action: str, attention: MedicalAttention, before: Optional[dict]) -> None:
        if self.audit:
            self.audit.record(action, "medical", "MedicalAttention", attention.id, before, snapshot(attention))
