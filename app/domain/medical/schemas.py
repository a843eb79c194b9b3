"""Medical domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_required_text


class Diagnosis(BaseModel):
    code: Optional[str] = None  # ICD-10
    description: str
    type: str = "primary"  # primary, secondary

    @field_validator("description")
    @classmethod
    def validate_description(cls, v):
        return validate_required_text(v)


class AttentionStart(BaseModel):
    """Open an attention, optionally from a booked appointment"""

    appointmentId: Optional[int] = None
    patientId: Optional[int] = None
    doctorId: Optional[int] = None
    chiefComplaint: Optional[str] = None


class AttentionUpdate(BaseModel):
    chiefComplaint: Optional[str] = None
    diagnoses: Optional[list[Diagnosis]] = None


class AmendmentCreate(BaseModel):
    content: Optional[str] = None
    reason: Optional[str] = None


class ClinicalNoteResponse(BaseModel):
    id: int
    attention_id: int
    note_type: str
    content: str
    created_by: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AttentionResponse(BaseModel):
    id: int
    appointment_id: Optional[int] = None
    patient_id: int
    doctor_id: int
    chief_complaint: Optional[str] = None
    diagnoses: list[dict] = []
    status: str
    closed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    notes: list[ClinicalNoteResponse] = []

    class Config:
        from_attributes = True


class AttentionPage(BaseModel):
    data: list[AttentionResponse]
    pagination: dict
