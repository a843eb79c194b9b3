"""Billing domain schemas - Pydantic models for validation"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ServiceCreate(BaseModel):
    """Schema for a catalog service"""

    code: str
    name: str
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    category: str = "consultation"

    @field_validator("code", "name")
    @classmethod
    def validate_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class ServiceResponse(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    price: float
    category: str

    class Config:
        from_attributes = True


class InvoiceItem(BaseModel):
    serviceId: Optional[int] = None
    description: str
    quantity: Optional[int] = Field(None, ge=1)
    unitPrice: Decimal = Field(..., ge=0)


class InvoiceCreate(BaseModel):
    """Schema for creating an invoice"""

    patientId: int
    attentionId: Optional[int] = None
    items: list[InvoiceItem] = []
    taxRate: Decimal = Field(Decimal("0"), ge=0, le=100)  # Percentage
    notes: Optional[str] = None


class InvoiceCancel(BaseModel):
    reason: Optional[str] = None


class PaymentCreate(BaseModel):
    """Schema for registering a payment against an invoice"""

    amount: Decimal
    method: str = "cash"  # cash, card, transfer, ...
    reference: Optional[str] = None
    notes: Optional[str] = None


class InvoiceDetailResponse(BaseModel):
    id: int
    service_id: Optional[int] = None
    description: str
    quantity: int
    unit_price: float
    subtotal: float

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: int
    invoice_id: int
    amount: float
    method: str
    reference: Optional[str] = None
    received_by: Optional[int] = None
    notes: Optional[str] = None
    paid_at: datetime

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    """Schema for invoice response"""

    id: int
    invoice_number: str
    patient_id: int
    attention_id: Optional[int] = None
    subtotal: float
    tax: float
    total: float
    status: str
    payment_status: str
    notes: Optional[str] = None
    issued_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    details: list[InvoiceDetailResponse] = []
    payments: list[PaymentResponse] = []

    class Config:
        from_attributes = True


class InvoicePage(BaseModel):
    data: list[InvoiceResponse]
    pagination: dict


class InvoiceBalance(BaseModel):
    total: float
    paid: float
    remaining: float
    status: str


class PaymentResult(BaseModel):
    payment: PaymentResponse
    invoiceBalance: InvoiceBalance


class ReceivableResponse(InvoiceResponse):
    totalPaid: float
    balance: float
