"""Patient domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import (
    validate_blood_type,
    validate_email,
    validate_gender,
    validate_phone,
    validate_required_text,
)


class PatientCreate(BaseModel):
    """Schema for registering a new patient"""

    idNumber: str
    idType: str = "cedula"
    firstName: str
    lastName: str
    dateOfBirth: date
    gender: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    emergencyContactName: Optional[str] = None
    emergencyContactPhone: Optional[str] = None
    bloodType: Optional[str] = None
    allergies: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("idNumber", "firstName", "lastName")
    @classmethod
    def validate_required(cls, v):
        return validate_required_text(v)

    @field_validator("gender")
    @classmethod
    def check_gender(cls, v):
        return validate_gender(v)

    @field_validator("phone", "emergencyContactPhone")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("bloodType")
    @classmethod
    def check_blood_type(cls, v):
        return validate_blood_type(v)


class PatientUpdate(BaseModel):
    """Schema for updating a patient; omitted fields are left untouched"""

    idNumber: Optional[str] = None
    idType: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    dateOfBirth: Optional[date] = None
    gender: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    emergencyContactName: Optional[str] = None
    emergencyContactPhone: Optional[str] = None
    bloodType: Optional[str] = None
    allergies: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("idNumber", "firstName", "lastName")
    @classmethod
    def validate_not_blank(cls, v):
        if v is None:
            return v
        return validate_required_text(v)

    @field_validator("gender")
    @classmethod
    def check_gender(cls, v):
        return validate_gender(v)

    @field_validator("phone", "emergencyContactPhone")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("bloodType")
    @classmethod
    def check_blood_type(cls, v):
        return validate_blood_type(v)


class PatientResponse(BaseModel):
    id: int
    medical_record_number: str
    id_type: str
    id_number: str
    first_name: str
    last_name: str
    date_of_birth: date
    gender: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    blood_type: Optional[str] = None
    allergies: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PatientPage(BaseModel):
    data: list[PatientResponse]
    pagination: dict
