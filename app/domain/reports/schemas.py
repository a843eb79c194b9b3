"""Reports schemas - response shapes for management reports"""

from typing import Optional

from pydantic import BaseModel

from ..medical.schemas import AttentionResponse


class DashboardResponse(BaseModel):
    totalPatients: int
    todayAppointments: int
    monthAppointments: int
    cancelledAppointments: int
    attendedAppointments: int
    noShowAppointments: int
    monthRevenue: float
    pendingInvoices: int
    activeUsers: int
    occupancyRate: float  # attended / month appointments, percent


class DoctorAttentions(BaseModel):
    doctorId: int
    doctor: str
    specialty: Optional[str] = None
    count: int


class DiagnosisCount(BaseModel):
    diagnosis: str
    count: int


class ClinicalReport(BaseModel):
    totalAttentions: int
    byDoctor: list[DoctorAttentions]
    topDiagnoses: list[DiagnosisCount]
    details: list[AttentionResponse]


class MethodTotal(BaseModel):
    method: str
    total: float


class InvoiceLine(BaseModel):
    invoiceNumber: str
    patient: str
    total: float
    status: str
    paymentStatus: str
    paid: float


class FinancialReport(BaseModel):
    totalInvoiced: float
    totalCollected: float
    totalPending: float
    invoiceCount: int
    cancelledCount: int
    paymentsByMethod: list[MethodTotal]
    invoices: list[InvoiceLine]


class StatusCount(BaseModel):
    status: str
    count: int


class DoctorAppointments(BaseModel):
    doctorId: int
    doctor: str
    total: int
    attended: int
    cancelled: int
    noShow: int


class AppointmentsReport(BaseModel):
    total: int
    byStatus: list[StatusCount]
    byDoctor: list[DoctorAppointments]
