"""Medical router - FastAPI endpoints for medical attentions"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...audit import AuditLogger, get_audit_logger
from ...auth import require_permission
from ...clock import Clock, get_clock
from ...database import get_db
from ...models import User
from .schemas import (
    AmendmentCreate,
    AttentionPage,
    AttentionResponse,
    AttentionStart,
    AttentionUpdate,
    ClinicalNoteResponse,
)
from .service import MedicalService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/medical", tags=["Medical"])


def get_medical_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    audit: AuditLogger = Depends(get_audit_logger),
) -> MedicalService:
    """Dependency injection for MedicalService"""
    return MedicalService(db, clock, audit)


@router.get("/attentions", response_model=AttentionPage)
async def list_attentions(
    patientId: Optional[int] = Query(None),
    doctorId: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    current_user: User = Depends(require_permission("medical", "read")),
    service: MedicalService = Depends(get_medical_service),
):
    return service.search_attentions(current_user, patientId, doctorId, status, page, limit)


@router.get("/attentions/{attention_id}", response_model=AttentionResponse)
async def get_attention(
    attention_id: int,
    current_user: User = Depends(require_permission("medical", "read")),
    service: MedicalService = Depends(get_medical_service),
):
    return service.get_attention(attention_id)


@router.post("/attentions", response_model=AttentionResponse, status_code=201)
async def start_attention(
    data: AttentionStart,
    current_user: User = Depends(require_permission("medical", "create")),
    service: MedicalService = Depends(get_medical_service),
):
    """Start an attention; from an appointment this marks it attended"""
    return service.start_attention(data, current_user)


@router.put("/attentions/{attention_id}", response_model=AttentionResponse)
async def update_attention(
    attention_id: int,
    data: AttentionUpdate,
    current_user: User = Depends(require_permission("medical", "update")),
    service: MedicalService = Depends(get_medical_service),
):
    return service.update_attention(attention_id, data)


@router.put("/attentions/{attention_id}/close", response_model=AttentionResponse)
async def close_attention(
    attention_id: int,
    current_user: User = Depends(require_permission("medical", "update")),
    service: MedicalService = Depends(get_medical_service),
):
    return service.close_attention(attention_id)


@router.post("/attentions/{attention_id}/amendment", response_model=ClinicalNoteResponse, status_code=201)
async def amend_attention(
    attention_id: int,
    data: AmendmentCreate,
    current_user: User = Depends(require_permission("medical", "update")),
    service: MedicalService = Depends(get_medical_service),
):
    """Add an amendment note to a closed attention"""
    return service.amend_attention(attention_id, data, current_user)
