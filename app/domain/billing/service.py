"""Billing service - Invoices, payments and accounts receivable"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...audit import AuditLogger, snapshot
from ...clock import Clock
from ...errors import Conflict, ForbiddenTransition, NotFound, ValidationFailed
from ...models import Invoice, InvoiceDetail, Payment, Service, User
from ...sequences import invoice_counter_name, next_value
from . import ledger
from .repository import BillingRepository
from .schemas import InvoiceCreate, PaymentCreate, ServiceCreate

logger = logging.getLogger(__name__)


class LedgerService:
    """Service layer for the invoice and payment ledger"""

    def __init__(self, db: Session, clock: Clock, audit: Optional[AuditLogger] = None):
        self.db = db
        self.clock = clock
        self.audit = audit
        self.repo = BillingRepository()

    # ------------------------------------------------------------------
    # Service catalog
    # ------------------------------------------------------------------

    def list_services(self, category: Optional[str] = None, search: Optional[str] = None) -> list[Service]:
        return self.repo.list_services(self.db, category, search)

    def create_service(self, data: ServiceCreate) -> Service:
        if ledger.has_sub_cents(data.price):
            raise ValidationFailed("Price cannot have fractions of a cent", {"price": str(data.price)})
        if self.repo.get_service_by_code(self.db, data.code):
            raise Conflict("A service with this code already exists", {"code": data.code})

        service = self.repo.create_service(
            self.db,
            code=data.code,
            name=data.name,
            description=data.description,
            price=data.price,
            category=data.category,
        )
        logger.info(f"Service {service.code} added to catalog at {service.price}")
        self._audit("CREATE", "Service", service.id, None, snapshot(service))
        return service

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def create_invoice(self, data: InvoiceCreate) -> Invoice:
        """
        Create a draft invoice. Totals are computed here once and frozen;
        the number comes from the per-year counter inside this transaction.
        """
        if not data.items:
            raise ValidationFailed("An invoice needs at least one item")
        sub_cent = [str(item.unitPrice) for item in data.items if ledger.has_sub_cents(item.unitPrice)]
        if sub_cent:
            raise ValidationFailed("Unit prices cannot have fractions of a cent", {"unitPrices": sub_cent})

        patient = self.repo.get_active_patient(self.db, data.patientId)
        if not patient:
            raise NotFound("Patient not found", {"patientId": data.patientId})

        if data.attentionId is not None and not self.repo.get_attention(self.db, data.attentionId):
            raise NotFound("Medical attention not found", {"attentionId": data.attentionId})

        service_ids = {item.serviceId for item in data.items if item.serviceId is not None}
        known = self.repo.get_services(self.db, service_ids)
        missing = sorted(service_ids - set(known))
        if missing:
            raise NotFound("Service not found", {"serviceIds": missing})

        totals = ledger.compute_totals(((item.quantity, item.unitPrice) for item in data.items), data.taxRate)

        now = self.clock.now()
        sequence = next_value(self.db, invoice_counter_name(now.year))
        invoice = Invoice(
            invoice_number=ledger.format_invoice_number(now.year, sequence),
            patient_id=patient.id,
            attention_id=data.attentionId,
            subtotal=totals.subtotal,
            tax=totals.tax,
            total=totals.total,
            status=ledger.INVOICE_DRAFT,
            payment_status=ledger.PAYMENT_PENDING,
            notes=data.notes,
            created_at=now,
        )
        details = [
            InvoiceDetail(
                service_id=item.serviceId,
                description=item.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=line.subtotal,
            )
            for item, line in zip(data.items, totals.lines)
        ]
        invoice = self.repo.add_invoice(self.db, invoice, details)
        logger.info(f"✅ Invoice {invoice.invoice_number} created for patient {patient.id}: total {invoice.total}")

        self._audit("CREATE", "Invoice", invoice.id, None, snapshot(invoice))
        return invoice

    def get_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.repo.get_invoice(self.db, invoice_id)
        if not invoice:
            raise NotFound("Invoice not found", {"invoiceId": invoice_id})
        return invoice

    def search_invoices(
        self,
        patient_id: Optional[int] = None,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        items, total = self.repo.search_invoices(
            self.db,
            patient_id=patient_id,
            status=status,
            payment_status=payment_status,
            start=start,
            end=end,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return {
            "data": items,
            "pagination": {"page": page, "limit": limit, "total": total, "pages": -(-total // limit)},
        }

    def issue_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if invoice.status != ledger.INVOICE_DRAFT:
            raise ForbiddenTransition(
                "Only draft invoices can be issued",
                {"invoiceId": invoice.id, "status": invoice.status},
            )

        before = snapshot(invoice)
        invoice.status = ledger.INVOICE_ISSUED
        invoice.issued_at = self.clock.now()
        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.invoice_number} issued")

        self._audit("ISSUE", "Invoice", invoice.id, before, snapshot(invoice))
        return invoice

    def cancel_invoice(self, invoice_id: int, reason: Optional[str]) -> Invoice:
        """Cancel from any state; payments already recorded stay on the ledger"""
        invoice = self.get_invoice(invoice_id)

        before = snapshot(invoice)
        invoice.status = ledger.INVOICE_CANCELLED
        invoice.notes = ledger.cancellation_note(reason)
        self.db.commit()
        self.db.refresh(invoice)
        logger.warning(f"⚠️ Invoice {invoice.invoice_number} cancelled (payment status {invoice.payment_status})")

        self._audit("CANCEL", "Invoice", invoice.id, before, snapshot(invoice))
        return invoice

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def record_payment(self, invoice_id: int, data: PaymentCreate, actor: User) -> dict:
        """
        Append a payment. The invoice row is locked so the balance read and
        the insert cannot interleave with another payment on the same invoice.
        """
        amount = ledger.to_money(data.amount)
        if amount <= 0:
            raise ValidationFailed("Payment amount must be greater than zero", {"amount": str(amount)})
        if ledger.has_sub_cents(amount):
            raise ValidationFailed("Payment amount cannot have fractions of a cent", {"amount": str(amount)})

        invoice = self.repo.lock_invoice(self.db, invoice_id)
        if not invoice:
            self.db.rollback()
            raise NotFound("Invoice not found", {"invoiceId": invoice_id})

        if invoice.status == ledger.INVOICE_CANCELLED:
            self.db.rollback()
            raise ForbiddenTransition("Cannot pay a cancelled invoice", {"invoiceId": invoice.id})

        total = ledger.to_money(invoice.total)
        paid = ledger.total_paid(self.repo.payment_amounts(self.db, invoice.id))
        if ledger.exceeds_balance(amount, total, paid):
            remaining = total - paid
            self.db.rollback()
            logger.warning(f"⚠️ Payment of {amount} on {invoice.invoice_number} exceeds balance {remaining}")
            raise Conflict(
                "Payment amount exceeds the pending balance",
                {"remaining": float(remaining), "total": float(total), "paid": float(paid)},
            )

        before = snapshot(invoice)
        now = self.clock.now()
        payment = Payment(
            invoice_id=invoice.id,
            amount=amount,
            method=data.method,
            reference=data.reference,
            received_by=actor.id,
            notes=data.notes,
            paid_at=now,
        )
        self.db.add(payment)

        paid += amount
        invoice.payment_status = ledger.payment_status_for(total, paid)
        if invoice.status == ledger.INVOICE_DRAFT:
            invoice.status = ledger.INVOICE_ISSUED
        if invoice.issued_at is None:
            invoice.issued_at = now

        self.db.commit()
        self.db.refresh(payment)
        self.db.refresh(invoice)

        # Report the balance from what the ledger actually holds
        paid = ledger.total_paid(self.repo.payment_amounts(self.db, invoice.id))
        logger.info(
            f"✅ Payment {payment.id} of {amount} on {invoice.invoice_number} → {invoice.payment_status}"
        )

        self._audit("PAYMENT", "Invoice", invoice.id, before, snapshot(invoice))
        return {
            "payment": payment,
            "invoiceBalance": {
                "total": float(total),
                "paid": float(paid),
                "remaining": float(total - paid),
                "status": invoice.payment_status,
            },
        }

    def accounts_receivable(self) -> list[dict]:
        """Open invoices with their paid amount and balance, oldest first"""
        receivables = []
        for invoice in self.repo.open_invoices(self.db):
            paid = ledger.total_paid(p.amount for p in invoice.payments)
            receivables.append(
                {
                    "invoice": invoice,
                    "totalPaid": float(paid),
                    "balance": float(ledger.to_money(invoice.total) - paid),
                }
            )
        return receivables

    def _audit(
        self, action: str, entity_type: str, entity_id: int, before: Optional[dict], after: Optional[dict]
    ) -> None:
        if self.audit:
            self.audit.record(action, "billing", entity_type, entity_id, before, after)
