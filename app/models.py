from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# Money columns: exact decimal with cents
Money = Numeric(12, 2)


role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True
    ),
)


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(255), nullable=True)

    permissions = relationship("Permission", secondary=role_permissions, lazy="selectin")
    users = relationship("User", back_populates="role")

    def capabilities(self) -> set[tuple[str, str]]:
        """Return the (module, action) pairs granted to this role"""
        return {(p.module, p.action) for p in self.permissions}


class Permission(Base):
    __tablename__ = "permissions"
    __table_args__ = (UniqueConstraint("module", "action", name="uq_permission_module_action"),)

    id = Column(Integer, primary_key=True, index=True)
    module = Column(String(50), nullable=False)  # patients, appointments, medical, billing, ...
    action = Column(String(20), nullable=False)  # read, create, update, delete
    description = Column(String(255), nullable=True)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    # Login lockout tracking
    failed_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)

    role = relationship("Role", back_populates="users", lazy="joined")
    doctor = relationship("Doctor", back_populates="user", uselist=False)


class Specialty(Base):
    __tablename__ = "specialties"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    doctors = relationship("Doctor", back_populates="specialty")


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    specialty_id = Column(Integer, ForeignKey("specialties.id"), nullable=True)
    license_number = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    user = relationship("User", back_populates="doctor")
    specialty = relationship("Specialty", back_populates="doctors")
    schedules = relationship(
        "DoctorSchedule", back_populates="doctor", order_by="DoctorSchedule.day_of_week"
    )


class DoctorSchedule(Base):
    """Recurring weekly working window for a doctor"""

    __tablename__ = "doctor_schedules"
    __table_args__ = (UniqueConstraint("doctor_id", "day_of_week", name="uq_doctor_schedule_day"),)

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    start_time = Column(String(5), nullable=False)  # HH:MM clinic local time
    end_time = Column(String(5), nullable=False)
    slot_duration = Column(Integer, default=30, nullable=False)  # minutes

    doctor = relationship("Doctor", back_populates="schedules")


class ScheduleBlock(Base):
    """Ad-hoc exclusion window (vacation, leave) on a doctor's calendar"""

    __tablename__ = "schedule_blocks"
    __table_args__ = (Index("ix_schedule_blocks_doctor_range", "doctor_id", "start_date", "end_date"),)

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    reason = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    medical_record_number = Column(String(20), unique=True, index=True, nullable=False)
    id_type = Column(String(20), default="cedula", nullable=False)
    id_number = Column(String(50), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    gender = Column(String(20), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    emergency_contact_name = Column(String(255), nullable=True)
    emergency_contact_phone = Column(String(50), nullable=True)
    blood_type = Column(String(5), nullable=True)
    allergies = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (Index("ix_appointments_doctor_range", "doctor_id", "date_time", "end_time"),)

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    date_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    # Status workflow: scheduled → confirmed → attended
    # scheduled/confirmed → rescheduled, any non-terminal → cancelled / no_show
    status = Column(String(20), default="scheduled", nullable=False, index=True)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)  # Last cancellation/reschedule reason

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)

    patient = relationship("Patient")
    doctor = relationship("Doctor")
    history = relationship(
        "AppointmentHistory",
        back_populates="appointment",
        order_by="AppointmentHistory.id.desc()",
    )


class AppointmentHistory(Base):
    """Append-only log of appointment status transitions"""

    __tablename__ = "appointment_history"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    previous_status = Column(String(20), nullable=False)
    new_status = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    changed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    changed_at = Column(DateTime, nullable=False)

    appointment = relationship("Appointment", back_populates="history")


class MedicalAttention(Base):
    __tablename__ = "medical_attentions"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), unique=True, nullable=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    chief_complaint = Column(Text, nullable=True)
    diagnoses = Column(JSON, default=list, nullable=False)  # [{"code", "description", "type"}]
    status = Column(String(20), default="in_progress", nullable=False)  # in_progress, closed
    closed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    notes = relationship("ClinicalNote", back_populates="attention", order_by="ClinicalNote.id")


class ClinicalNote(Base):
    """Append-only note on an attention; amendments are the only way to add to a closed one"""

    __tablename__ = "clinical_notes"

    id = Column(Integer, primary_key=True, index=True)
    attention_id = Column(Integer, ForeignKey("medical_attentions.id"), nullable=False, index=True)
    note_type = Column(String(20), default="amendment", nullable=False)
    content = Column(Text, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, nullable=False)

    attention = relationship("MedicalAttention", back_populates="notes")


class Service(Base):
    """Billable catalog entry"""

    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Money, nullable=False)
    category = Column(String(50), default="consultation", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(20), unique=True, nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    attention_id = Column(Integer, ForeignKey("medical_attentions.id"), nullable=True)

    # Frozen at creation: total = subtotal + tax
    subtotal = Column(Money, nullable=False)
    tax = Column(Money, nullable=False, default=0)
    total = Column(Money, nullable=False)

    status = Column(String(20), default="draft", nullable=False)  # draft, issued, cancelled
    payment_status = Column(String(20), default="pending", nullable=False)  # pending, partial, paid
    notes = Column(Text, nullable=True)
    issued_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)

    patient = relationship("Patient")
    details = relationship("InvoiceDetail", back_populates="invoice", order_by="InvoiceDetail.id")
    payments = relationship("Payment", back_populates="invoice", order_by="Payment.id")


class InvoiceDetail(Base):
    __tablename__ = "invoice_details"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    description = Column(String(500), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    unit_price = Column(Money, nullable=False)
    subtotal = Column(Money, nullable=False)

    invoice = relationship("Invoice", back_populates="details")
    service = relationship("Service")


class Payment(Base):
    """Append-only payment against an invoice"""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    method = Column(String(30), default="cash", nullable=False)  # cash, card, transfer, ...
    reference = Column(String(255), nullable=True)
    received_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)
    paid_at = Column(DateTime, nullable=False)

    invoice = relationship("Invoice", back_populates="payments")


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    action = Column(String(50), nullable=False, index=True)
    module = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, nullable=True)
    before = Column(Text, nullable=True)  # JSON snapshot
    after = Column(Text, nullable=True)  # JSON snapshot
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False)

    user = relationship("User")


class SequenceCounter(Base):
    """Named monotonically increasing counter (invoice numbers, MRNs)"""

    __tablename__ = "sequence_counters"

    name = Column(String(50), primary_key=True)
    value = Column(Integer, default=0, nullable=False)


class SystemParameter(Base):
    """Administrator-editable key/value setting"""

    __tablename__ = "system_parameters"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
    description = Column(String(255), nullable=True)
    updated_at = Column(DateTime, nullable=True)


class RevokedToken(Base):
    """Access tokens ended by logout; kept until the token would have expired anyway"""

    __tablename__ = "revoked_tokens"

    jti = Column(String(64), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    revoked_at = Column(DateTime, nullable=False)
