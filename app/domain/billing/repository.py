"""Billing repository - Database operations for invoices, payments and services"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ...models import Invoice, InvoiceDetail, MedicalAttention, Patient, Payment, Service
from .ledger import INVOICE_CANCELLED, OPEN_PAYMENT_STATUSES


class BillingRepository:
    """Repository for billing database operations"""

    # Catalog
    @staticmethod
    def list_services(db: Session, category: Optional[str] = None, search: Optional[str] = None) -> list[Service]:
        query = db.query(Service).filter(Service.is_active.is_(True))
        if category:
            query = query.filter(Service.category == category)
        if search:
            term = f"%{search.lower()}%"
            query = query.filter(Service.name.ilike(term) | Service.code.ilike(term))
        return query.order_by(Service.name).all()

    @staticmethod
    def get_service_by_code(db: Session, code: str) -> Optional[Service]:
        return db.query(Service).filter(Service.code == code).first()

    @staticmethod
    def get_services(db: Session, service_ids: set[int]) -> dict[int, Service]:
        if not service_ids:
            return {}
        return {s.id: s for s in db.query(Service).filter(Service.id.in_(service_ids)).all()}

    @staticmethod
    def create_service(db: Session, **service_data) -> Service:
        service = Service(**service_data)
        db.add(service)
        db.commit()
        db.refresh(service)
        return service

    # Referenced entities
    @staticmethod
    def get_active_patient(db: Session, patient_id: int) -> Optional[Patient]:
        return db.query(Patient).filter(Patient.id == patient_id, Patient.deleted_at.is_(None)).first()

    @staticmethod
    def get_attention(db: Session, attention_id: int) -> Optional[MedicalAttention]:
        return db.query(MedicalAttention).filter(MedicalAttention.id == attention_id).first()

    # Invoices
    @staticmethod
    def get_invoice(db: Session, invoice_id: int) -> Optional[Invoice]:
        """Invoice by id, excluding soft-deleted rows"""
        return (
            db.query(Invoice)
            .options(selectinload(Invoice.details), selectinload(Invoice.payments))
            .filter(Invoice.id == invoice_id, Invoice.deleted_at.is_(None))
            .first()
        )

    @staticmethod
    def lock_invoice(db: Session, invoice_id: int) -> Optional[Invoice]:
        """Row-lock an invoice so payments against it serialise"""
        return (
            db.query(Invoice)
            .filter(Invoice.id == invoice_id, Invoice.deleted_at.is_(None))
            .with_for_update()
            .first()
        )

    @staticmethod
    def payment_amounts(db: Session, invoice_id: int) -> list:
        return [row[0] for row in db.query(Payment.amount).filter(Payment.invoice_id == invoice_id).all()]

    @staticmethod
    def add_invoice(db: Session, invoice: Invoice, details: list[InvoiceDetail]) -> Invoice:
        db.add(invoice)
        db.flush()
        for detail in details:
            detail.invoice_id = invoice.id
            db.add(detail)
        db.commit()
        db.refresh(invoice)
        return invoice

    @staticmethod
    def search_invoices(
        db: Session,
        patient_id: Optional[int] = None,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Invoice], int]:
        query = db.query(Invoice).filter(Invoice.deleted_at.is_(None))
        if patient_id:
            query = query.filter(Invoice.patient_id == patient_id)
        if status:
            query = query.filter(Invoice.status == status)
        if payment_status:
            query = query.filter(Invoice.payment_status == payment_status)
        if start:
            query = query.filter(Invoice.created_at >= start)
        if end:
            query = query.filter(Invoice.created_at <= end)

        total = query.count()
        items = (
            query.options(selectinload(Invoice.details), selectinload(Invoice.payments))
            .order_by(Invoice.created_at.desc(), Invoice.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def open_invoices(db: Session) -> list[Invoice]:
        """Non-cancelled invoices still owing money, oldest first"""
        return (
            db.query(Invoice)
            .options(selectinload(Invoice.payments), selectinload(Invoice.details))
            .filter(
                Invoice.deleted_at.is_(None),
                Invoice.status != INVOICE_CANCELLED,
                Invoice.payment_status.in_(OPEN_PAYMENT_STATUSES),
            )
            .order_by(Invoice.created_at.asc(), Invoice.id.asc())
            .all()
        )
