"""Berechtigungsregeln: wer wen einladen, verwalten und anschreiben darf."""

from typing import Optional

from models.roles import UserRole
from models.user import AppUser

# Einladende Rolle → Rollen, für die sie Einladungen erzeugen darf
INVITE_MATRIX: dict[UserRole, list[UserRole]] = {
    UserRole.SUPERADMIN: [UserRole.BIGADMIN],
    UserRole.BIGADMIN: [UserRole.ADMIN, UserRole.TEACHER],
    UserRole.ADMIN: [UserRole.TEACHER, UserRole.PARENT],
    UserRole.TEACHER: [UserRole.STUDENT],
    UserRole.STUDENT: [],
    UserRole.PARENT: [],
}

# Reihenfolge für Unterhaltungen: kleinere Stufe darf größere anschreiben
_CHAT_LEVELS: dict[UserRole, int] = {
    UserRole.SUPERADMIN: 0,
    UserRole.BIGADMIN: 1,
    UserRole.ADMIN: 2,
    UserRole.TEACHER: 3,
    UserRole.PARENT: 4,
    UserRole.STUDENT: 5,
}


def invitable_roles(creator: UserRole) -> list[UserRole]:
    return list(INVITE_MATRIX.get(creator, []))


def can_generate_invite_for(creator: UserRole, target: UserRole) -> bool:
    return target in INVITE_MATRIX.get(creator, [])


def can_manage_school_tokens(user: AppUser, school_id: Optional[str]) -> bool:
    """superadmin und bigadmin immer, admin nur für die eigene Schule."""
    if user.role in (UserRole.SUPERADMIN, UserRole.BIGADMIN):
        return True
    return user.role == UserRole.ADMIN and school_id is not None \
        and user.school_id == school_id


def can_change_role(actor: AppUser, current: UserRole, new: UserRole) -> bool:
    """Nur wer beide Rollen überragt, darf zwischen ihnen wechseln."""
    if actor.is_superadmin:
        return True
    if not actor.can_manage_users:
        return False
    return actor.role.rank > current.rank and actor.role.rank > new.rank


def can_initiate_conversation(initiator: Optional[UserRole],
                              target: Optional[UserRole]) -> bool:
    """Höhere (oder gleiche) Stufe darf eine Direktunterhaltung beginnen."""
    initiator_level = _CHAT_LEVELS.get(initiator, 999) if initiator else 999
    target_level = _CHAT_LEVELS.get(target, 999) if target else 999
    return initiator_level <= target_level
