"""Reports service - management dashboard and clinical, financial and appointment reports"""

import logging
from collections import Counter, defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...clock import Clock
from ...errors import ValidationFailed
from ...models import Doctor
from ..billing import ledger
from ..scheduling import engine
from ..scheduling.repository import day_window
from .repository import ReportsRepository

logger = logging.getLogger(__name__)

TOP_DIAGNOSES = 10


def doctor_name(doctor: Optional[Doctor]) -> str:
    if doctor is None or doctor.user is None:
        return "Unknown"
    return f"{doctor.user.first_name} {doctor.user.last_name}"


def specialty_name(doctor: Optional[Doctor]) -> Optional[str]:
    return doctor.specialty.name if doctor is not None and doctor.specialty else None


def month_window(moment: datetime) -> tuple[datetime, datetime]:
    """[first day 00:00, first day of next month 00:00) around a moment"""
    start = datetime(moment.year, moment.month, 1)
    if moment.month == 12:
        return start, datetime(moment.year + 1, 1, 1)
    return start, datetime(moment.year, moment.month + 1, 1)


class ReportsService:
    def __init__(self, db: Session, clock: Clock):
        self.db = db
        self.clock = clock
        self.repo = ReportsRepository()

    def dashboard(self) -> dict:
        """Headline numbers for today and the current calendar month"""
        now = self.clock.now()
        today_start, today_end = day_window(now.date())
        month_start, month_end = month_window(now)

        today = self.repo.appointment_counts_by_status(self.db, today_start, today_end)
        month = self.repo.appointment_counts_by_status(self.db, month_start, month_end)
        month_total = sum(month.values())
        attended = month.get(engine.STATUS_ATTENDED, 0)

        return {
            "totalPatients": self.repo.count_patients(self.db),
            "todayAppointments": sum(today.values()),
            "monthAppointments": month_total,
            "cancelledAppointments": month.get(engine.STATUS_CANCELLED, 0),
            "attendedAppointments": attended,
            "noShowAppointments": month.get(engine.STATUS_NO_SHOW, 0),
            "monthRevenue": float(self.repo.payments_total(self.db, month_start, month_end)),
            "pendingInvoices": self.repo.count_open_invoices(self.db),
            "activeUsers": self.repo.count_active_users(self.db),
            "occupancyRate": round(attended * 100 / month_total, 1) if month_total else 0.0,
        }

    def clinical(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None, doctor_id: Optional[int] = None
    ) -> dict:
        self._check_range(start, end)
        attentions = self.repo.attentions(self.db, start, end, doctor_id)
        doctors = self.repo.doctors_by_id(self.db, {a.doctor_id for a in attentions})

        per_doctor = Counter(a.doctor_id for a in attentions)
        diagnoses = Counter(
            d["description"] for a in attentions for d in (a.diagnoses or []) if d.get("description")
        )

        return {
            "totalAttentions": len(attentions),
            "byDoctor": [
                {
                    "doctorId": attending_id,
                    "doctor": doctor_name(doctors.get(attending_id)),
                    "specialty": specialty_name(doctors.get(attending_id)),
                    "count": count,
                }
                for attending_id, count in per_doctor.most_common()
            ],
            "topDiagnoses": [
                {"diagnosis": description, "count": count}
                for description, count in diagnoses.most_common(TOP_DIAGNOSES)
            ],
            "details": attentions,
        }

    def financial(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> dict:
        """
        Invoiced amounts by creation date and collections by payment date.
        Cancelled invoices are counted but do not add to the invoiced total.
        """
        self._check_range(start, end)
        invoices = self.repo.invoices(self.db, start, end)
        payments = self.repo.payments(self.db, start, end)

        invoiced = sum(
            (ledger.to_money(i.total) for i in invoices if i.status != ledger.INVOICE_CANCELLED), Decimal("0")
        )
        collected = ledger.total_paid(p.amount for p in payments)

        by_method: dict[str, Decimal] = defaultdict(Decimal)
        for payment in payments:
            by_method[payment.method] += ledger.to_money(payment.amount)

        return {
            "totalInvoiced": float(invoiced),
            "totalCollected": float(collected),
            "totalPending": float(invoiced - collected),
            "invoiceCount": len(invoices),
            "cancelledCount": sum(1 for i in invoices if i.status == ledger.INVOICE_CANCELLED),
            "paymentsByMethod": [{"method": m, "total": float(t)} for m, t in sorted(by_method.items())],
            "invoices": [
                {
                    "invoiceNumber": i.invoice_number,
                    "patient": f"{i.patient.first_name} {i.patient.last_name}",
                    "total": float(i.total),
                    "status": i.status,
                    "paymentStatus": i.payment_status,
                    "paid": float(ledger.total_paid(p.amount for p in i.payments)),
                }
                for i in invoices
            ],
        }

    def appointments(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None, doctor_id: Optional[int] = None
    ) -> dict:
        self._check_range(start, end)
        appointments = self.repo.appointments(self.db, start, end, doctor_id)
        doctors = self.repo.doctors_by_id(self.db, {a.doctor_id for a in appointments})

        by_status = Counter(a.status for a in appointments)
        by_doctor: dict[int, dict] = {}
        for appointment in appointments:
            row = by_doctor.setdefault(
                appointment.doctor_id,
                {
                    "doctorId": appointment.doctor_id,
                    "doctor": doctor_name(doctors.get(appointment.doctor_id)),
                    "total": 0,
                    "attended": 0,
                    "cancelled": 0,
                    "noShow": 0,
                },
            )
            row["total"] += 1
            if appointment.status == engine.STATUS_ATTENDED:
                row["attended"] += 1
            elif appointment.status == engine.STATUS_CANCELLED:
                row["cancelled"] += 1
            elif appointment.status == engine.STATUS_NO_SHOW:
                row["noShow"] += 1

        return {
            "total": len(appointments),
            "byStatus": [{"status": s, "count": c} for s, c in sorted(by_status.items())],
            "byDoctor": list(by_doctor.values()),
        }

    @staticmethod
    def _check_range(start: Optional[datetime], end: Optional[datetime]) -> None:
        if start and end and start > end:
            raise ValidationFailed("startDate must not be after endDate")
