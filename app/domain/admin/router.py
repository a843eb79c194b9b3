"""Admin router - FastAPI endpoints for staff accounts and reference data"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...audit import AuditLogger, get_audit_logger
from ...auth import get_current_user, require_permission
from ...clock import Clock, get_clock
from ...database import get_db
from ...models import User
from ..accounts.schemas import MessageResponse
from .schemas import (
    AdminUserResponse,
    ParameterResponse,
    ParameterUpdate,
    PasswordReset,
    RoleResponse,
    SpecialtyCreate,
    SpecialtyResponse,
    UserCreate,
    UserUpdate,
)
from .service import AdminService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


def get_admin_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    audit: AuditLogger = Depends(get_audit_logger),
) -> AdminService:
    """Dependency injection for AdminService"""
    return AdminService(db, clock, audit)


# ============================================================================
# USERS
# ============================================================================


@router.get("/users", response_model=list[AdminUserResponse])
async def list_users(
    current_user: User = Depends(require_permission("admin", "read")),
    service: AdminService = Depends(get_admin_service),
):
    """Staff accounts, newest first"""
    return service.list_users()


@router.post("/users", response_model=AdminUserResponse, status_code=201)
async def create_user(
    data: UserCreate,
    current_user: User = Depends(require_permission("admin", "create")),
    service: AdminService = Depends(get_admin_service),
):
    return service.create_user(data)


@router.put("/users/{user_id}", response_model=AdminUserResponse)
async def update_user(
    user_id: int,
    data: UserUpdate,
    current_user: User = Depends(require_permission("admin", "update")),
    service: AdminService = Depends(get_admin_service),
):
    return service.update_user(user_id, data)


@router.put("/users/{user_id}/reset-password", response_model=MessageResponse)
async def reset_password(
    user_id: int,
    data: PasswordReset,
    current_user: User = Depends(require_permission("admin", "update")),
    service: AdminService = Depends(get_admin_service),
):
    """Set a new password and unlock the account"""
    service.reset_password(user_id, data.newPassword)
    return {"message": "Password reset"}


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    current_user: User = Depends(require_permission("admin", "delete")),
    service: AdminService = Depends(get_admin_service),
):
    """Soft delete; the account can no longer log in"""
    service.delete_user(user_id, current_user)
    return {"message": "User deleted"}


# ============================================================================
# ROLES, SPECIALTIES, PARAMETERS
# ============================================================================


@router.get("/roles", response_model=list[RoleResponse])
async def list_roles(
    current_user: User = Depends(require_permission("admin", "read")),
    service: AdminService = Depends(get_admin_service),
):
    return service.list_roles()


@router.get("/specialties", response_model=list[SpecialtyResponse])
async def list_specialties(
    current_user: User = Depends(get_current_user),
    service: AdminService = Depends(get_admin_service),
):
    """Specialties by name; open to every signed-in user"""
    return service.list_specialties()


@router.post("/specialties", response_model=SpecialtyResponse, status_code=201)
async def create_specialty(
    data: SpecialtyCreate,
    current_user: User = Depends(require_permission("admin", "create")),
    service: AdminService = Depends(get_admin_service),
):
    return service.create_specialty(data)


@router.get("/parameters", response_model=list[ParameterResponse])
async def list_parameters(
    current_user: User = Depends(require_permission("admin", "read")),
    service: AdminService = Depends(get_admin_service),
):
    return service.list_parameters()


@router.put("/parameters/{key}", response_model=ParameterResponse)
async def set_parameter(
    key: str,
    data: ParameterUpdate,
    current_user: User = Depends(require_permission("admin", "update")),
    service: AdminService = Depends(get_admin_service),
):
    return service.set_parameter(key, data)
