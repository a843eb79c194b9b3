"""Patient router - FastAPI endpoints for the patient registry"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...audit import AuditLogger, get_audit_logger
from ...auth import require_permission
from ...clock import Clock, get_clock
from ...database import get_db
from ...models import User
from .schemas import PatientCreate, PatientPage, PatientResponse, PatientUpdate
from .service import PatientService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/patients", tags=["Patients"])


def get_patient_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    audit: AuditLogger = Depends(get_audit_logger),
) -> PatientService:
    """Dependency injection for PatientService"""
    return PatientService(db, clock, audit)


@router.get("", response_model=PatientPage)
async def list_patients(
    search: Optional[str] = Query(None, description="Name, id number, phone, MRN or email"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    current_user: User = Depends(require_permission("patients", "read")),
    service: PatientService = Depends(get_patient_service),
):
    """List patients, newest first"""
    return service.search_patients(search, page, limit)


@router.get("/{patient_id}", response_model=PatientResponse)
async def get_patient(
    patient_id: int,
    current_user: User = Depends(require_permission("patients", "read")),
    service: PatientService = Depends(get_patient_service),
):
    return service.get_patient(patient_id)


@router.post("", response_model=PatientResponse, status_code=201)
async def create_patient(
    data: PatientCreate,
    current_user: User = Depends(require_permission("patients", "create")),
    service: PatientService = Depends(get_patient_service),
):
    return service.create_patient(data)


@router.put("/{patient_id}", response_model=PatientResponse)
async def update_patient(
    patient_id: int,
    data: PatientUpdate,
    current_user: User = Depends(require_permission("patients", "update")),
    service: PatientService = Depends(get_patient_service),
):
    return service.update_patient(patient_id, data)


@router.delete("/{patient_id}")
async def delete_patient(
    patient_id: int,
    current_user: User = Depends(require_permission("patients", "delete")),
    service: PatientService = Depends(get_patient_service),
):
    """Soft delete a patient"""
    return service.delete_patient(patient_id)
