"""Datenmodelle für Einladungs-Tokens und Einladungscodes (Pydantic v2)."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models.roles import UserRole


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_past(moment: Optional[datetime], now: Optional[datetime]) -> bool:
    if moment is None:
        return False
    now = now or utcnow()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now > moment


class InviteToken(BaseModel):
    """Token aus invite_tokens: gewährt Rolle + Schule bei der Registrierung.

    school_id fehlt bei Tokens des superadmin, created_by_user_id bei
    Bootstrap-Tokens. specific_class_id trägt bei Schüler-Tokens die Klasse,
    bei Eltern-Tokens die ID des Kindes.
    """

    model_config = ConfigDict(frozen=True)

    token: str
    role: UserRole
    school_id: Optional[str] = None
    created_by_user_id: Optional[str] = None
    specific_class_id: Optional[str] = None
    times_used: int = Field(0, ge=0)
    usage_limit: int = Field(1, ge=1)
    expires_at: Optional[datetime] = None
    created_at: datetime

    @property
    def is_used(self) -> bool:
        return self.times_used >= self.usage_limit

    @property
    def is_active(self) -> bool:
        return self.times_used < self.usage_limit

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return _is_past(self.expires_at, now)

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return self.is_active and not self.is_expired(now)


class InviteCode(BaseModel):
    """Einladungscode aus invite_codes (Verwaltung durch die Schulleitung)."""

    model_config = ConfigDict(frozen=True)

    id: str
    code: str
    role: UserRole
    school_id: str
    class_id: Optional[str] = None
    usage_limit: int = Field(1, ge=1)
    times_used: int = Field(0, ge=0)
    is_active: bool = True
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def can_be_used(self, now: Optional[datetime] = None) -> bool:
        if not self.is_active:
            return False
        if self.times_used >= self.usage_limit:
            return False
        return not _is_past(self.expires_at, now)

    @property
    def remaining_uses(self) -> int:
        return self.usage_limit - self.times_used


class ParentInvite(BaseModel):
    """Eltern-Einladung (parent_invites), Code mit Präfix "P-"."""

    model_config = ConfigDict(frozen=True)

    id: str
    code: str
    student_id: str
    school_id: str
    times_used: int = Field(0, ge=0)
    usage_limit: int = Field(1, ge=1)
    student_name: Optional[str] = None
    parent_id: Optional[str] = None
    created_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.times_used < self.usage_limit

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return _is_past(self.expires_at, now)

    def can_be_used(self, now: Optional[datetime] = None) -> bool:
        return self.is_active and not self.is_expired(now)

    def as_token(self) -> InviteToken:
        """Sicht als InviteToken; specific_class_id trägt die Schüler-ID."""
        return InviteToken(
            token=self.code,
            role=UserRole.PARENT,
            school_id=self.school_id,
            specific_class_id=self.student_id,
            times_used=self.times_used,
            usage_limit=self.usage_limit,
            expires_at=self.expires_at,
            created_at=self.created_at or utcnow(),
        )
