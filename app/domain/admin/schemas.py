"""Admin domain schemas - users, roles, specialties and system parameters"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_email, validate_required_text


class UserCreate(BaseModel):
    """Schema for creating a staff account; a specialtyId also creates the doctor profile"""

    username: str
    email: str
    password: str
    firstName: str
    lastName: str
    roleId: int
    specialtyId: Optional[int] = None
    licenseNumber: Optional[str] = None

    @field_validator("username", "firstName", "lastName")
    @classmethod
    def validate_required(cls, v):
        return validate_required_text(v)

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        return validate_email(validate_required_text(v))


class UserUpdate(BaseModel):
    email: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    roleId: Optional[int] = None
    isActive: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        return validate_email(v)


class PasswordReset(BaseModel):
    newPassword: str


class RoleRef(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class DoctorRef(BaseModel):
    id: int
    specialty_id: Optional[int] = None
    license_number: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class AdminUserResponse(BaseModel):
    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    role: RoleRef
    doctor: Optional[DoctorRef] = None

    class Config:
        from_attributes = True


class RoleResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    permissions: list[dict]
    userCount: int


class SpecialtyCreate(BaseModel):
    name: str
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return validate_required_text(v)


class SpecialtyResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class ParameterUpdate(BaseModel):
    value: Optional[str] = None
    description: Optional[str] = None


class ParameterResponse(BaseModel):
    key: str
    value: Optional[str] = None
    description: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
