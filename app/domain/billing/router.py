"""Billing router - FastAPI endpoints for the service catalog, invoices and payments"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...audit import AuditLogger, get_audit_logger
from ...auth import require_permission
from ...clock import Clock, get_clock
from ...database import get_db
from ...models import User
from ...shared.validators import naive_local_time
from .schemas import (
    InvoiceCancel,
    InvoiceCreate,
    InvoicePage,
    InvoiceResponse,
    PaymentCreate,
    PaymentResult,
    ReceivableResponse,
    ServiceCreate,
    ServiceResponse,
)
from .service import LedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing", tags=["Billing"])


def get_ledger_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    audit: AuditLogger = Depends(get_audit_logger),
) -> LedgerService:
    """Dependency injection for LedgerService"""
    return LedgerService(db, clock, audit)


# ============================================================================
# SERVICE CATALOG
# ============================================================================


@router.get("/services", response_model=list[ServiceResponse])
async def list_services(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    current_user: User = Depends(require_permission("billing", "read")),
    service: LedgerService = Depends(get_ledger_service),
):
    return service.list_services(category, search)


@router.post("/services", response_model=ServiceResponse, status_code=201)
async def create_service(
    data: ServiceCreate,
    current_user: User = Depends(require_permission("billing", "create")),
    service: LedgerService = Depends(get_ledger_service),
):
    return service.create_service(data)


# ============================================================================
# INVOICES
# ============================================================================


@router.get("/invoices", response_model=InvoicePage)
async def list_invoices(
    patientId: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    paymentStatus: Optional[str] = Query(None),
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    current_user: User = Depends(require_permission("billing", "read")),
    service: LedgerService = Depends(get_ledger_service),
):
    """List invoices, newest first"""
    return service.search_invoices(
        patient_id=patientId,
        status=status,
        payment_status=paymentStatus,
        start=naive_local_time(startDate),
        end=naive_local_time(endDate),
        page=page,
        limit=limit,
    )


@router.get("/accounts-receivable", response_model=list[ReceivableResponse])
async def accounts_receivable(
    current_user: User = Depends(require_permission("billing", "read")),
    service: LedgerService = Depends(get_ledger_service),
):
    """Open invoices with amount paid and outstanding balance"""
    return [
        ReceivableResponse(
            **InvoiceResponse.model_validate(row["invoice"]).model_dump(),
            totalPaid=row["totalPaid"],
            balance=row["balance"],
        )
        for row in service.accounts_receivable()
    ]


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    current_user: User = Depends(require_permission("billing", "read")),
    service: LedgerService = Depends(get_ledger_service),
):
    return service.get_invoice(invoice_id)


@router.post("/invoices", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    current_user: User = Depends(require_permission("billing", "create")),
    service: LedgerService = Depends(get_ledger_service),
):
    """Create a draft invoice with frozen totals"""
    return service.create_invoice(data)


@router.put("/invoices/{invoice_id}/issue", response_model=InvoiceResponse)
async def issue_invoice(
    invoice_id: int,
    current_user: User = Depends(require_permission("billing", "update")),
    service: LedgerService = Depends(get_ledger_service),
):
    return service.issue_invoice(invoice_id)


@router.put("/invoices/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(
    invoice_id: int,
    data: InvoiceCancel,
    current_user: User = Depends(require_permission("billing", "update")),
    service: LedgerService = Depends(get_ledger_service),
):
    return service.cancel_invoice(invoice_id, data.reason)


@router.post("/invoices/{invoice_id}/payments", response_model=PaymentResult, status_code=201)
async def record_payment(
    invoice_id: int,
    data: PaymentCreate,
    current_user: User = Depends(require_permission("billing", "create")),
    service: LedgerService = Depends(get_ledger_service),
):
    """Register a payment; rejected when it exceeds the pending balance"""
    return service.record_payment(invoice_id, data, current_user)
