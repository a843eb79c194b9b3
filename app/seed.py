"""
Idempotent bootstrap data: capability catalog, roles, specialties, service
catalog and the first administrator account.

Safe to run on every startup; rows that already exist are left untouched.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from .config import ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_USERNAME
from .models import Permission, Role, Service, Specialty, User
from .security_utils import hash_password_bcrypt

logger = logging.getLogger(__name__)

MODULES = ("patients", "appointments", "medical", "billing", "admin", "reports", "audit")
ACTIONS = ("read", "create", "update", "delete")
ALL_CAPABILITIES = frozenset((m, a) for m in MODULES for a in ACTIONS)

ROLE_ADMIN = "Administrador"
ROLE_RECEPTION = "Recepción"
ROLE_DOCTOR = "Médico"
ROLE_BILLING = "Facturación"
ROLE_MANAGEMENT = "Gerencia"


def _grant(modules: dict[str, tuple[str, ...]]) -> frozenset:
    return frozenset((m, a) for m, actions in modules.items() for a in actions)


ROLE_CAPABILITIES: dict[str, tuple[str, frozenset]] = {
    ROLE_ADMIN: ("System administrator", ALL_CAPABILITIES),
    ROLE_RECEPTION: (
        "Front desk and admissions",
        _grant({"patients": ACTIONS, "appointments": ACTIONS, "medical": ("read",), "billing": ("read",)}),
    ),
    ROLE_DOCTOR: (
        "Attending physician",
        _grant(
            {"patients": ("read",), "appointments": ("read", "update"), "medical": ACTIONS, "billing": ("read",)}
        ),
    ),
    ROLE_BILLING: (
        "Billing and cashier",
        _grant({"patients": ("read",), "appointments": ("read",), "billing": ACTIONS}),
    ),
    ROLE_MANAGEMENT: (
        "Management and reporting",
        _grant(
            {
                "reports": ACTIONS,
                "audit": ("read",),
                "patients": ("read",),
                "appointments": ("read",),
                "billing": ("read",),
                "medical": ("read",),
            }
        ),
    ),
}

SPECIALTIES = (
    ("Medicina General", "General medicine"),
    ("Pediatría", "Paediatrics"),
    ("Cardiología", "Cardiology"),
    ("Dermatología", "Dermatology"),
    ("Ginecología", "Gynaecology"),
)

SERVICES = (
    ("CONS-GEN", "Consulta General", Decimal("35.00"), "consultation"),
    ("CONS-ESP", "Consulta Especialidad", Decimal("50.00"), "consultation"),
    ("LAB-HEM", "Hemograma Completo", Decimal("15.00"), "laboratory"),
    ("IMG-RX", "Radiografía", Decimal("40.00"), "imaging"),
    ("ECG", "Electrocardiograma", Decimal("30.00"), "procedure"),
)


def seed_permissions(db: Session) -> dict[tuple[str, str], Permission]:
    existing = {(p.module, p.action): p for p in db.query(Permission).all()}
    for module, action in sorted(ALL_CAPABILITIES - set(existing)):
        permission = Permission(module=module, action=action, description=f"{action} {module}")
        db.add(permission)
        existing[(module, action)] = permission
    db.flush()
    return existing


def seed_roles(db: Session, permissions: dict[tuple[str, str], Permission]) -> dict[str, Role]:
    """Create missing roles with their capability sets; the admin role always holds every pair"""
    roles = {}
    for name, (description, capabilities) in ROLE_CAPABILITIES.items():
        role = db.query(Role).filter(Role.name == name).first()
        if role is None:
            role = Role(name=name, description=description)
            role.permissions = [permissions[c] for c in sorted(capabilities)]
            db.add(role)
            logger.info(f"Created role {name} with {len(capabilities)} capabilities")
        elif name == ROLE_ADMIN:
            missing = ALL_CAPABILITIES - role.capabilities()
            role.permissions.extend(permissions[c] for c in sorted(missing))
        roles[name] = role
    db.flush()
    return roles


def seed_catalog(db: Session) -> None:
    for name, description in SPECIALTIES:
        if not db.query(Specialty).filter(Specialty.name == name).first():
            db.add(Specialty(name=name, description=description))

    for code, name, price, category in SERVICES:
        if not db.query(Service).filter(Service.code == code).first():
            db.add(Service(code=code, name=name, price=price, category=category))
    db.flush()


def seed_admin(db: Session, admin_role: Role, password: Optional[str] = ADMIN_PASSWORD) -> Optional[User]:
    """Bootstrap administrator; skipped when no ADMIN_PASSWORD is configured"""
    if not password:
        logger.warning("⚠️ ADMIN_PASSWORD not set, skipping bootstrap administrator")
        return None

    user = db.query(User).filter(User.username == ADMIN_USERNAME).first()
    if user:
        return user

    user = User(
        username=ADMIN_USERNAME,
        email=ADMIN_EMAIL,
        password_hash=hash_password_bcrypt(password),
        first_name="System",
        last_name="Administrator",
        role_id=admin_role.id,
    )
    db.add(user)
    db.flush()
    logger.info(f"Created bootstrap administrator {ADMIN_USERNAME}")
    return user


def seed_database(db: Session, admin_password: Optional[str] = ADMIN_PASSWORD) -> dict[str, Role]:
    try:
        permissions = seed_permissions(db)
        roles = seed_roles(db, permissions)
        seed_catalog(db)
        seed_admin(db, roles[ROLE_ADMIN], admin_password)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("❌ Seeding failed")
        raise

    logger.info("✅ Seed completed")
    return roles
