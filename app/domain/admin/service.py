"""Admin service - Staff accounts, doctor profiles, specialties and system parameters"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...audit import AuditLogger, snapshot
from ...clock import Clock
from ...errors import Conflict, NotFound, ValidationFailed
from ...models import Role, Specialty, SystemParameter, User
from ...security_utils import check_password_strength, hash_password_bcrypt
from .repository import AdminRepository
from .schemas import ParameterUpdate, SpecialtyCreate, UserCreate, UserUpdate

logger = logging.getLogger(__name__)


def user_snapshot(user: User) -> Optional[dict]:
    """Audit snapshot of an account without its password hash"""
    data = snapshot(user)
    if data:
        data.pop("password_hash", None)
    return data


def role_summary(role: Role, user_count: int) -> dict:
    return {
        "id": role.id,
        "name": role.name,
        "description": role.description,
        "permissions": [{"module": m, "action": a} for m, a in sorted(role.capabilities())],
        "userCount": user_count,
    }


class AdminService:
    def __init__(self, db: Session, clock: Clock, audit: Optional[AuditLogger] = None):
        self.db = db
        self.clock = clock
        self.audit = audit
        self.repo = AdminRepository()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def list_users(self) -> list[User]:
        return self.repo.list_users(self.db)

    def create_user(self, data: UserCreate) -> User:
        """
        Create a staff account. With a specialtyId the doctor profile is
        created in the same transaction so the calendar can be configured.
        """
        self._check_password(data.password)
        if not self.repo.get_role(self.db, data.roleId):
            raise NotFound("Role not found", {"roleId": data.roleId})
        if data.specialtyId is not None and not self.repo.get_specialty(self.db, data.specialtyId):
            raise NotFound("Specialty not found", {"specialtyId": data.specialtyId})
        if self.repo.find_user_taking(self.db, data.username, data.email):
            raise Conflict("The username or email already exists")

        user = User(
            username=data.username,
            email=data.email,
            password_hash=hash_password_bcrypt(data.password),
            first_name=data.firstName,
            last_name=data.lastName,
            role_id=data.roleId,
            created_at=self.clock.now(),
        )
        self.db.add(user)
        try:
            self.db.flush()
            if data.specialtyId is not None:
                self.repo.add_doctor_profile(self.db, user, data.specialtyId, data.licenseNumber)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise Conflict("The username or email already exists") from e
        self.db.refresh(user)
        logger.info(f"✅ User {user.username} created with role {user.role.name}")

        self._audit("CREATE_USER", "User", user.id, None, user_snapshot(user))
        return user

    def update_user(self, user_id: int, data: UserUpdate) -> User:
        user = self._get_user_or_404(user_id)
        if data.roleId is not None and not self.repo.get_role(self.db, data.roleId):
            raise NotFound("Role not found", {"roleId": data.roleId})
        if data.email and self.repo.find_user_taking(self.db, None, data.email, exclude_id=user.id):
            raise Conflict("The username or email already exists", {"email": data.email})

        before = user_snapshot(user)
        if data.email:
            user.email = data.email
        if data.firstName and data.firstName.strip():
            user.first_name = data.firstName.strip()
        if data.lastName and data.lastName.strip():
            user.last_name = data.lastName.strip()
        if data.roleId is not None:
            user.role_id = data.roleId
        if data.isActive is not None:
            user.is_active = data.isActive
            # A deactivated doctor stops taking bookings
            if user.doctor is not None:
                user.doctor.is_active = data.isActive
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"User {user.username} updated")

        self._audit("UPDATE_USER", "User", user.id, before, user_snapshot(user))
        return user

    def reset_password(self, user_id: int, new_password: str) -> None:
        """Set a new password and clear any login lockout"""
        self._check_password(new_password)
        user = self._get_user_or_404(user_id)

        user.password_hash = hash_password_bcrypt(new_password)
        user.failed_attempts = 0
        user.locked_until = None
        self.db.commit()
        logger.info(f"Password reset for {user.username}")

        self._audit("RESET_PASSWORD", "User", user.id, None, None)

    def delete_user(self, user_id: int, actor: User) -> None:
        if user_id == actor.id:
            raise ValidationFailed("You cannot delete your own user")
        user = self._get_user_or_404(user_id)

        before = user_snapshot(user)
        user.deleted_at = self.clock.now()
        user.is_active = False
        if user.doctor is not None:
            user.doctor.is_active = False
        self.db.commit()
        logger.warning(f"⚠️ User {user.username} deleted by {actor.username}")

        self._audit("DELETE_USER", "User", user.id, before, None)

    def _check_password(self, password: str) -> None:
        strength = check_password_strength(password or "")
        if not strength["is_valid"]:
            raise ValidationFailed(
                "The password does not meet the password policy", {"feedback": strength["feedback"]}
            )

    def _get_user_or_404(self, user_id: int) -> User:
        user = self.repo.get_user(self.db, user_id)
        if not user:
            raise NotFound("User not found", {"userId": user_id})
        return user

    # ------------------------------------------------------------------
    # Roles and specialties
    # ------------------------------------------------------------------

    def list_roles(self) -> list[dict]:
        return [role_summary(role, count) for role, count in self.repo.list_roles_with_user_counts(self.db)]

    def list_specialties(self) -> list[Specialty]:
        return self.repo.list_specialties(self.db)

    def create_specialty(self, data: SpecialtyCreate) -> Specialty:
        if self.repo.get_specialty_by_name(self.db, data.name):
            raise Conflict("The specialty already exists", {"name": data.name})

        specialty = Specialty(name=data.name, description=data.description)
        self.db.add(specialty)
        self.db.commit()
        self.db.refresh(specialty)
        logger.info(f"Specialty {specialty.name} created")

        self._audit("CREATE", "Specialty", specialty.id, None, snapshot(specialty))
        return specialty

    # ------------------------------------------------------------------
    # System parameters
    # ------------------------------------------------------------------

    def list_parameters(self) -> list[SystemParameter]:
        return self.repo.list_parameters(self.db)

    def set_parameter(self, key: str, data: ParameterUpdate) -> SystemParameter:
        """Create or update a parameter; the description is only replaced when given"""
        parameter = self.repo.get_parameter(self.db, key)
        before = snapshot(parameter)
        if parameter is None:
            parameter = SystemParameter(key=key)
            self.db.add(parameter)
        parameter.value = data.value
        if data.description is not None:
            parameter.description = data.description
        parameter.updated_at = self.clock.now()
        self.db.commit()
        self.db.refresh(parameter)
        logger.info(f"Parameter {key} set to {parameter.value!r}")

        self._audit("UPDATE", "SystemParameter", None, before, snapshot(parameter))
        return parameter

    def _audit(
        self, action: str, entity_type: str, entity_id: Optional[int], before: Optional[dict], after: Optional[dict]
    ) -> None:
        if self.audit:
            self.audit.record(action, "admin", entity_type, entity_id, before, after)
