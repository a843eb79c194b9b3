"""Account domain schemas - login, current user and audit events"""

import json
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class LoginRequest(BaseModel):
    username: str
    password: str

    @field_validator("username")
    @classmethod
    def validate_username(cls, v):
        if not v or not v.strip():
            raise ValueError("Username and password are required")
        return v.strip()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        if not v:
            raise ValueError("Username and password are required")
        return v


class Capability(BaseModel):
    module: str
    action: str


class DoctorProfile(BaseModel):
    id: int
    specialty: Optional[str] = None
    specialtyId: Optional[int] = None


class UserSummary(BaseModel):
    """Schema for the authenticated user"""

    id: int
    username: str
    email: str
    firstName: str
    lastName: str
    role: str
    roleId: int
    doctor: Optional[DoctorProfile] = None
    permissions: list[Capability]


class LoginResponse(BaseModel):
    token: str
    user: UserSummary


class ChangePasswordRequest(BaseModel):
    currentPassword: str
    newPassword: str


class MessageResponse(BaseModel):
    message: str


class AuditUser(BaseModel):
    id: int
    username: str
    first_name: str
    last_name: str

    class Config:
        from_attributes = True


class AuditEventResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    user: Optional[AuditUser] = None
    action: str
    module: str
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    before: Optional[dict] = None
    after: Optional[dict] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

    @field_validator("before", "after", mode="before")
    @classmethod
    def decode_snapshot(cls, v):
        if isinstance(v, str):
            return json.loads(v)
        return v


class AuditPage(BaseModel):
    data: list[AuditEventResponse]
    pagination: dict
