"""Datenmodell für einen angemeldeten Benutzer (Pydantic v2)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from models.roles import UserRole

_ADMIN_ROLES = {UserRole.SUPERADMIN, UserRole.BIGADMIN, UserRole.ADMIN}


class AppUser(BaseModel):
    """Benutzer mit Profil aus der Tabelle profiles."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    role: UserRole
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    school_id: Optional[str] = None   # None nur für superadmin
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    phone_number: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        """Vor- und Nachname, sonst was vorhanden ist, zuletzt die E-Mail."""
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        if self.first_name:
            return self.first_name
        if self.last_name:
            return self.last_name
        return self.email

    @property
    def is_superadmin(self) -> bool:
        return self.role == UserRole.SUPERADMIN

    @property
    def is_bigadmin(self) -> bool:
        return self.role == UserRole.BIGADMIN

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_teacher(self) -> bool:
        return self.role == UserRole.TEACHER

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    @property
    def is_parent(self) -> bool:
        return self.role == UserRole.PARENT

    @property
    def has_admin_privileges(self) -> bool:
        return self.role in _ADMIN_ROLES

    @property
    def can_manage_users(self) -> bool:
        return self.role in _ADMIN_ROLES

    @property
    def can_manage_classes(self) -> bool:
        return self.role in _ADMIN_ROLES or self.role == UserRole.TEACHER

    @property
    def can_manage_school_staff(self) -> bool:
        return self.role in (UserRole.SUPERADMIN, UserRole.BIGADMIN)

    @property
    def can_access_all_schools(self) -> bool:
        return self.role == UserRole.SUPERADMIN

    def belongs_to_school(self, school_id: Optional[str]) -> bool:
        """superadmin gehört zu jeder Schule; ohne Schul-ID nie."""
        if school_id is None:
            return False
        if self.is_superadmin:
            return True
        if self.school_id is None:
            return False
        return self.school_id == school_id

    def has_role_or_higher(self, role: UserRole) -> bool:
        return self.role.rank >= role.rank
