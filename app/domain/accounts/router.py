"""Account routers - Authentication and audit log endpoints"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ...audit import AuditLogger, get_audit_logger, request_audit_logger
from ...auth import get_current_user, require_permission, security
from ...clock import Clock, get_clock
from ...database import get_db
from ...models import User
from ...shared.validators import naive_local_time
from .schemas import (
    AuditPage,
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    UserSummary,
)
from .service import AccountService, user_summary

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/api/auth", tags=["Authentication"])
audit_router = APIRouter(prefix="/api/audit", tags=["Audit"])


def get_account_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> AccountService:
    """Dependency injection for AccountService"""
    return AccountService(db, clock)


@auth_router.post("/login", response_model=LoginResponse)
async def login(
    data: LoginRequest,
    request: Request,
    service: AccountService = Depends(get_account_service),
):
    """Exchange username and password for a bearer token"""
    audit = request_audit_logger(request, service.db, service.clock, None)
    return service.login(data.username, data.password, audit)


@auth_router.get("/me", response_model=UserSummary)
async def get_me(current_user: User = Depends(get_current_user)):
    """Current user with role and capability list"""
    return user_summary(current_user)


@auth_router.post("/logout", response_model=MessageResponse)
async def logout(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    current_user: User = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
    service: AccountService = Depends(get_account_service),
):
    """Revoke the bearer token used for this request"""
    service.logout(current_user, credentials.credentials, audit)
    return {"message": "Logged out"}


@auth_router.put("/change-password", response_model=MessageResponse)
async def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
    service: AccountService = Depends(get_account_service),
):
    service.change_password(current_user, data.currentPassword, data.newPassword, audit)
    return {"message": "Password updated"}


@audit_router.get("", response_model=AuditPage)
async def list_audit_events(
    userId: Optional[int] = Query(None),
    module: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_permission("audit", "read")),
    service: AccountService = Depends(get_account_service),
):
    """Audit events, newest first"""
    return service.search_audit_events(
        userId, module, action, naive_local_time(startDate), naive_local_time(endDate), page, limit
    )


@audit_router.get("/modules", response_model=list[str])
async def list_audit_modules(
    current_user: User = Depends(require_permission("audit", "read")),
    service: AccountService = Depends(get_account_service),
):
    return service.audit_modules()
