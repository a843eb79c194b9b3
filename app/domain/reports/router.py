"""Reports router - read-only management reports"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_permission
from ...clock import Clock, get_clock
from ...database import get_db
from ...models import User
from ...shared.validators import naive_local_time
from .schemas import AppointmentsReport, ClinicalReport, DashboardResponse, FinancialReport
from .service import ReportsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["Reports"])


def get_reports_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ReportsService:
    """Dependency injection for ReportsService"""
    return ReportsService(db, clock)


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(
    current_user: User = Depends(require_permission("reports", "read")),
    service: ReportsService = Depends(get_reports_service),
):
    """Today's and this month's key figures"""
    return service.dashboard()


@router.get("/clinical", response_model=ClinicalReport)
async def clinical_report(
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    doctorId: Optional[int] = Query(None),
    current_user: User = Depends(require_permission("reports", "read")),
    service: ReportsService = Depends(get_reports_service),
):
    """Attentions per doctor and the most frequent diagnoses"""
    return service.clinical(naive_local_time(startDate), naive_local_time(endDate), doctorId)


@router.get("/financial", response_model=FinancialReport)
async def financial_report(
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    current_user: User = Depends(require_permission("reports", "read")),
    service: ReportsService = Depends(get_reports_service),
):
    return service.financial(naive_local_time(startDate), naive_local_time(endDate))


@router.get("/appointments", response_model=AppointmentsReport)
async def appointments_report(
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    doctorId: Optional[int] = Query(None),
    current_user: User = Depends(require_permission("reports", "read")),
    service: ReportsService = Depends(get_reports_service),
):
    """Appointment counts by status and by doctor"""
    return service.appointments(naive_local_time(startDate), naive_local_time(endDate), doctorId)
