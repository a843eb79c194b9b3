"""Admin repository - Database operations for staff accounts and reference data"""

from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ...models import Doctor, Role, Specialty, SystemParameter, User


class AdminRepository:
    # Users
    @staticmethod
    def list_users(db: Session) -> list[User]:
        return (
            db.query(User)
            .options(joinedload(User.doctor))
            .filter(User.deleted_at.is_(None))
            .order_by(User.created_at.desc(), User.id.desc())
            .all()
        )

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()

    @staticmethod
    def find_user_taking(
        db: Session, username: Optional[str], email: Optional[str], exclude_id: Optional[int] = None
    ) -> Optional[User]:
        """Any account (deleted ones included) already holding the username or email"""
        clauses = []
        if username:
            clauses.append(User.username == username)
        if email:
            clauses.append(func.lower(User.email) == email.lower())
        if not clauses:
            return None
        query = db.query(User).filter(or_(*clauses))
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        return query.first()

    # Roles
    @staticmethod
    def get_role(db: Session, role_id: int) -> Optional[Role]:
        return db.query(Role).filter(Role.id == role_id).first()

    @staticmethod
    def list_roles_with_user_counts(db: Session) -> list[tuple[Role, int]]:
        counts = dict(
            db.query(User.role_id, func.count(User.id))
            .filter(User.deleted_at.is_(None))
            .group_by(User.role_id)
            .all()
        )
        return [(role, counts.get(role.id, 0)) for role in db.query(Role).order_by(Role.id).all()]

    # Specialties
    @staticmethod
    def list_specialties(db: Session) -> list[Specialty]:
        return db.query(Specialty).order_by(Specialty.name).all()

    @staticmethod
    def get_specialty(db: Session, specialty_id: int) -> Optional[Specialty]:
        return db.query(Specialty).filter(Specialty.id == specialty_id).first()

    @staticmethod
    def get_specialty_by_name(db: Session, name: str) -> Optional[Specialty]:
        return db.query(Specialty).filter(func.lower(Specialty.name) == name.lower()).first()

    # Doctor profiles
    @staticmethod
    def add_doctor_profile(
        db: Session, user: User, specialty_id: int, license_number: Optional[str]
    ) -> Doctor:
        doctor = Doctor(user_id=user.id, specialty_id=specialty_id, license_number=license_number or None)
        db.add(doctor)
        return doctor

    # System parameters
    @staticmethod
    def list_parameters(db: Session) -> list[SystemParameter]:
        return db.query(SystemParameter).order_by(SystemParameter.key).all()

    @staticmethod
    def get_parameter(db: Session, key: str) -> Optional[SystemParameter]:
        return db.get(SystemParameter, key)
