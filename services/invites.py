"""Einladungs-Tokens: Erzeugen, Prüfen, Einlösen, Widerrufen.

Reguläre Tokens liegen in invite_tokens, Eltern-Einladungen in
parent_invites (Code mit Präfix "P-"). Wer für welche Rolle einladen darf,
regelt access.permissions.INVITE_MATRIX.
"""

import logging
import secrets
import string
from datetime import datetime
from typing import Optional

from access.permissions import can_generate_invite_for, can_manage_school_tokens
from config.schema import InviteConfig
from data.records import invite_token_from_row, parent_invite_from_row
from data.store import Order, StoreError, TableStore, eq, lt, now_iso, to_storable
from models.invite import InviteToken, ParentInvite, utcnow
from models.roles import UserRole
from models.user import AppUser
from services.base import InviteError, store_errors

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.ascii_letters + string.digits


class InviteService:
    """Verwaltung von Einladungs-Tokens über einen TableStore."""

    def __init__(self, store: TableStore, config: Optional[InviteConfig] = None):
        self.store = store
        self.config = config or InviteConfig()

    def _random_token(self, prefix: str = "") -> str:
        body = "".join(secrets.choice(TOKEN_ALPHABET)
                       for _ in range(self.config.token_length))
        return prefix + body

    def is_parent_code(self, token: str) -> bool:
        return token.startswith(self.config.parent_prefix)

    # ─── Erzeugen ───

    def generate_token(self, creator: Optional[AppUser], target_role: UserRole,
                       school_id: Optional[str], class_id: Optional[str] = None,
                       expires_at: Optional[datetime] = None,
                       usage_limit: Optional[int] = None) -> str:
        """Erzeugt einen neuen Token für target_role und gibt ihn zurück.

        Kollidiert ein Token mit einem vorhandenen (23505), wird bis zu
        max_generate_attempts mal neu gewürfelt.
        """
        if creator is None:
            raise InviteError("Not authenticated")
        if usage_limit is not None and usage_limit < 1:
            raise InviteError(f"usage_limit must be at least 1 (got: {usage_limit})")
        if not can_generate_invite_for(creator.role, target_role):
            raise InviteError(
                f"You do not have permission to create invites for {target_role.value}s")

        if creator.role == UserRole.TEACHER and target_role == UserRole.STUDENT:
            if not class_id:
                raise InviteError("Class ID is required when inviting students")
            with store_errors(InviteError, "Failed to verify class assignment"):
                taught = self.store.select(
                    "subjects",
                    [eq("teacher_id", creator.id), eq("class_id", class_id)],
                    limit=1,
                )
            if not taught:
                raise InviteError("You do not teach any subjects in this class")

        limit = self.config.default_usage_limit if usage_limit is None else usage_limit
        attempts = self.config.max_generate_attempts
        for attempt in range(1, attempts + 1):
            token = self._random_token()
            try:
                self.store.insert("invite_tokens", {
                    "token": token,
                    "role": target_role.value,
                    "school_id": school_id,
                    "created_by_user_id": creator.id,
                    "specific_class_id": class_id,
                    "times_used": 0,
                    "usage_limit": limit,
                    "expires_at": to_storable(expires_at),
                    "created_at": now_iso(),
                })
            except StoreError as e:
                if e.is_unique_violation:
                    logger.warning(f"Token-Kollision (Versuch {attempt}/{attempts})")
                    continue
                logger.error(f"InviteError: Failed to create invite token: {e.message}")
                raise InviteError(f"Failed to create invite token: {e.message}") from e
            logger.info(f"Einladung für Rolle '{target_role.value}' erzeugt "
                        f"(Schule {school_id}, von {creator.email})")
            return token

        raise InviteError(f"Failed to generate unique token after {attempts} attempts")

    # ─── Prüfen & Einlösen ───

    def validate_token(self, token: str, now: Optional[datetime] = None) -> InviteToken:
        """Liefert den Token, wenn er existiert, nicht verbraucht und nicht abgelaufen ist."""
        if self.is_parent_code(token):
            invite = self._parent_invite_by_code(token)
            if invite is None:
                raise InviteError("Invalid or used token")
            result = invite.as_token()
        else:
            try:
                row = self.store.select_single("invite_tokens", [eq("token", token)])
            except StoreError as e:
                if e.is_not_found:
                    raise InviteError("Invalid or used token") from e
                raise InviteError(f"Database error: {e.message}") from e
            try:
                result = invite_token_from_row(row)
            except ValueError as e:
                raise InviteError(f"Database error: {e}") from e

        if result.is_used:
            raise InviteError("Token has reached its usage limit")
        if result.is_expired(now):
            raise InviteError("Token has expired")
        return result

    def mark_used(self, token: str, user_id: Optional[str] = None) -> None:
        """Zählt times_used hoch; Eltern-Codes verknüpfen zusätzlich Elternteil und Kind."""
        if self.is_parent_code(token):
            self._use_parent_invite(token, user_id)
            return
        with store_errors(InviteError, "Failed to mark token as used"):
            row = self.store.select_maybe("invite_tokens", [eq("token", token)])
            if row is None:
                logger.warning(f"Token beim Einlösen nicht gefunden: {token}")
                return
            self.store.update("invite_tokens",
                              {"times_used": int(row.get("times_used") or 0) + 1},
                              [eq("token", token)])

    # ─── Verwaltung ───

    def revoke_token(self, user: AppUser, token: str) -> None:
        """Setzt times_used auf usage_limit; erlaubt für Ersteller und Token-Verwalter."""
        with store_errors(InviteError, "Failed to revoke token"):
            row = self.store.select_maybe("invite_tokens", [eq("token", token)])
        if row is None:
            raise InviteError("Token not found")
        is_creator = row.get("created_by_user_id") == user.id
        if not is_creator and not can_manage_school_tokens(user, row.get("school_id")):
            raise InviteError("You do not have permission to revoke this token")
        with store_errors(InviteError, "Failed to revoke token"):
            self.store.update("invite_tokens", {"times_used": row.get("usage_limit", 1)},
                              [eq("token", token)])
        logger.info(f"Token widerrufen von {user.email}")

    def created_by(self, user: Optional[AppUser]) -> list[InviteToken]:
        if user is None:
            raise InviteError("Not authenticated")
        with store_errors(InviteError, "Failed to fetch tokens"):
            rows = self.store.select("invite_tokens", [eq("created_by_user_id", user.id)],
                                     order_by=[Order("created_at", desc=True)])
        return [invite_token_from_row(r) for r in rows]

    def school_tokens(self, user: AppUser, school_id: str) -> list[InviteToken]:
        if not can_manage_school_tokens(user, school_id):
            raise InviteError("You do not have permission to view school tokens")
        with store_errors(InviteError, "Failed to fetch school tokens"):
            rows = self.store.select("invite_tokens", [eq("school_id", school_id)],
                                     order_by=[Order("created_at", desc=True)])
        return [invite_token_from_row(r) for r in rows]

    def cleanup_expired(self, user: AppUser, school_id: str,
                        now: Optional[datetime] = None) -> int:
        """Löscht abgelaufene Tokens der Schule und gibt deren Anzahl zurück."""
        if not can_manage_school_tokens(user, school_id):
            raise InviteError("You do not have permission to cleanup school tokens")
        cutoff = to_storable(now or utcnow())
        with store_errors(InviteError, "Failed to cleanup expired tokens"):
            removed = self.store.delete(
                "invite_tokens", [eq("school_id", school_id), lt("expires_at", cutoff)])
        if removed:
            logger.info(f"{len(removed)} abgelaufene Tokens gelöscht (Schule {school_id})")
        return len(removed)

    # ─── Eltern-Einladungen ───

    def generate_parent_invite(self, creator: AppUser, student_id: str,
                               expires_at: Optional[datetime] = None) -> ParentInvite:
        """Erzeugt einen "P-"-Code, mit dem sich ein Elternteil für student_id registriert."""
        if not creator.has_admin_privileges:
            raise InviteError("You do not have permission to create parent invites")
        with store_errors(InviteError, "Failed to create parent invite"):
            student = self.store.select_maybe("profiles", [eq("id", student_id)])
        if student is None or student.get("role") != UserRole.STUDENT.value:
            raise InviteError("Student not found")
        if not creator.is_superadmin and student.get("school_id") != creator.school_id:
            raise InviteError("Student does not belong to your school")

        attempts = self.config.max_generate_attempts
        for attempt in range(1, attempts + 1):
            try:
                row = self.store.insert("parent_invites", {
                    "code": self._random_token(self.config.parent_prefix),
                    "student_id": student_id,
                    "school_id": student.get("school_id"),
                    "created_by": creator.id,
                    "times_used": 0,
                    "usage_limit": 1,
                    "expires_at": to_storable(expires_at),
                    "used_at": None,
                    "parent_id": None,
                })
            except StoreError as e:
                if e.is_unique_violation:
                    logger.warning(f"Code-Kollision (Versuch {attempt}/{attempts})")
                    continue
                logger.error(f"InviteError: Failed to create parent invite: {e.message}")
                raise InviteError(f"Failed to create parent invite: {e.message}") from e
            logger.info(f"Eltern-Einladung für Schüler {student_id} erzeugt")
            return parent_invite_from_row(row, student)

        raise InviteError(f"Failed to generate unique token after {attempts} attempts")

    def pending_parent_invites(self, school_id: str) -> list[ParentInvite]:
        """Noch nicht eingelöste Eltern-Einladungen, neueste zuerst."""
        with store_errors(InviteError, "Failed to fetch parent invites"):
            rows = self.store.select("parent_invites", [eq("school_id", school_id)],
                                     order_by=[Order("created_at", desc=True)])
            students = {
                p["id"]: p for p in self.store.select("profiles", [eq("school_id", school_id)])
            }
        invites = [parent_invite_from_row(r, students.get(r.get("student_id"))) for r in rows]
        return [i for i in invites if i.is_active]

    def revoke_parent_invite(self, invite_id: str) -> None:
        with store_errors(InviteError, "Failed to revoke parent invite"):
            self.store.delete("parent_invites", [eq("id", invite_id)])

    def _parent_invite_by_code(self, code: str) -> Optional[ParentInvite]:
        with store_errors(InviteError, "Database error"):
            row = self.store.select_maybe("parent_invites", [eq("code", code)])
        if row is None:
            return None
        try:
            return parent_invite_from_row(row)
        except ValueError as e:
            raise InviteError(f"Database error: {e}") from e

    def _use_parent_invite(self, code: str, parent_id: Optional[str]) -> None:
        invite = self._parent_invite_by_code(code)
        if invite is None:
            logger.warning(f"Eltern-Code beim Einlösen nicht gefunden: {code}")
            return
        values = {"times_used": invite.times_used + 1, "used_at": now_iso()}
        if parent_id:
            values["parent_id"] = parent_id
        with store_errors(InviteError, "Failed to use parent invite"):
            self.store.update("parent_invites", values, [eq("id", invite.id)])
            if parent_id:
                self.store.upsert("parent_student",
                                  {"parent_id": parent_id, "student_id": invite.student_id},
                                  on_conflict=("parent_id", "student_id"))
        logger.info(f"Elternteil {parent_id} mit Schüler {invite.student_id} verknüpft")
