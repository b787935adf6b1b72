"""Schulverwaltung: Schulen, Klassen, Fächer, Benutzer, Einladungscodes, Kennzahlen.

Schulen verwaltet nur der superadmin. Klassen, Fächer und Codes einer
Schule verwaltet, wer Verwaltungsrechte besitzt und zur Schule gehört.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from access.permissions import can_change_role
from data.dtos import SubjectDTO
from data.records import (
    class_from_row,
    invite_code_from_row,
    school_from_row,
    user_from_row,
)
from data.store import Order, TableStore, eq, in_, now_iso, to_storable
from models.invite import InviteCode, utcnow
from models.roles import UserRole
from models.school import ClassInfo, DeputyStats, School, SchoolStats
from models.subject import Subject, color_for_id
from models.user import AppUser
from services.base import AdminError, store_errors
from services.invites import TOKEN_ALPHABET

logger = logging.getLogger(__name__)

SUBSCRIPTION_STATUSES = ("active", "trial", "expired", "suspended")
STAFF_ROLES = (UserRole.TEACHER, UserRole.ADMIN, UserRole.BIGADMIN)
INVITE_CODE_LENGTH = 16
INVITE_CODE_VALIDITY = timedelta(days=7)


def _require_superadmin(actor: AppUser) -> None:
    if not actor.is_superadmin:
        raise AdminError("Only superadmins can manage schools")


def _require_school_manager(actor: AppUser, school_id: Optional[str]) -> None:
    if not actor.can_manage_classes or not actor.belongs_to_school(school_id):
        raise AdminError("You do not have permission to manage this school")


class SchoolAdminService:
    def __init__(self, store: TableStore):
        self.store = store

    # ─── Schulen ───

    def create_school(self, actor: AppUser, name: str) -> School:
        _require_superadmin(actor)
        if not name or not name.strip():
            raise AdminError("School name cannot be empty")
        with store_errors(AdminError, "Failed to create school"):
            row = self.store.insert("schools", {
                "name": name.strip(),
                "subscription_status": "active",
                "created_at": now_iso(),
            })
        logger.info(f"Schule '{name}' angelegt")
        return school_from_row(row)

    def school(self, school_id: str) -> School:
        with store_errors(AdminError, "Failed to fetch school"):
            row = self.store.select_maybe("schools", [eq("id", school_id)])
        if row is None:
            raise AdminError(f"School not found with id {school_id}")
        return school_from_row(row)

    def list_schools(self, actor: AppUser) -> list[School]:
        """superadmin sieht alle Schulen, alle anderen nur die eigene."""
        filters = [] if actor.can_access_all_schools else [eq("id", actor.school_id)]
        with store_errors(AdminError, "Failed to fetch schools"):
            rows = self.store.select("schools", filters, order_by=[Order("name")])
        return [school_from_row(r) for r in rows]

    def rename_school(self, actor: AppUser, school_id: str, name: str) -> School:
        _require_superadmin(actor)
        if not name or not name.strip():
            raise AdminError("School name cannot be empty")
        with store_errors(AdminError, "Failed to update school name"):
            rows = self.store.update("schools", {"name": name.strip()}, [eq("id", school_id)])
        if not rows:
            raise AdminError(f"Failed to update school: school not found with id {school_id}")
        return school_from_row(rows[0])

    def set_subscription(self, actor: AppUser, school_id: str, status: str,
                         expires_at: Optional[datetime] = None) -> School:
        _require_superadmin(actor)
        if status not in SUBSCRIPTION_STATUSES:
            raise AdminError(f"Unknown subscription status: {status}")
        with store_errors(AdminError, "Failed to update subscription"):
            rows = self.store.update("schools", {
                "subscription_status": status,
                "subscription_expires_at": to_storable(expires_at),
            }, [eq("id", school_id)])
        if not rows:
            raise AdminError(f"School not found with id {school_id}")
        logger.info(f"Abo von Schule {school_id}: {status}")
        return school_from_row(rows[0])

    # ─── Klassen ───

    def _class_row(self, class_id: str) -> dict:
        row = self.store.select_maybe("classes", [eq("id", class_id)])
        if row is None:
            raise AdminError(f"Class not found with id {class_id}")
        return row

    def school_classes(self, school_id: str) -> list[ClassInfo]:
        with store_errors(AdminError, "Failed to fetch school classes"):
            rows = self.store.select("classes", [eq("school_id", school_id)],
                                     order_by=[Order("name")])
        return [class_from_row(r) for r in rows]

    def create_class(self, actor: AppUser, school_id: str, name: str,
                     grade_level: Optional[str] = None,
                     academic_year: Optional[str] = None) -> ClassInfo:
        _require_school_manager(actor, school_id)
        if not name or not name.strip():
            raise AdminError("Class name cannot be empty")
        with store_errors(AdminError, "Failed to create class"):
            row = self.store.insert("classes", {
                "school_id": school_id,
                "name": name.strip(),
                "grade_level": grade_level,
                "academic_year": academic_year,
            })
        return class_from_row(row)

    def delete_class(self, actor: AppUser, class_id: str) -> bool:
        with store_errors(AdminError, "Failed to delete class"):
            row = self._class_row(class_id)
            _require_school_manager(actor, row.get("school_id"))
            self.store.delete("class_students", [eq("class_id", class_id)])
            self.store.delete("classes", [eq("id", class_id)])
        return True

    def assign_head_teacher(self, actor: AppUser, class_id: str,
                            teacher_id: Optional[str]) -> ClassInfo:
        """Setzt die Klassenleitung; None entfernt sie."""
        with store_errors(AdminError, "Failed to assign head teacher"):
            row = self._class_row(class_id)
            _require_school_manager(actor, row.get("school_id"))
            if teacher_id is not None:
                teacher = self.store.select_maybe("profiles", [eq("id", teacher_id)])
                if teacher is None or teacher.get("role") != UserRole.TEACHER.value:
                    raise AdminError("Head teacher must be a teacher")
            rows = self.store.update("classes", {"head_teacher_id": teacher_id},
                                     [eq("id", class_id)])
        return class_from_row(rows[0])

    def class_students(self, class_id: str) -> list[AppUser]:
        with store_errors(AdminError, "Failed to fetch class students"):
            links = self.store.select("class_students", [eq("class_id", class_id)])
            ids = [l["student_id"] for l in links]
            rows = self.store.select("profiles", [in_("id", ids)],
                                     order_by=[Order("last_name"), Order("first_name")]) if ids else []
        return [user_from_row(r) for r in rows]

    def add_student_to_class(self, class_id: str, student_id: str) -> bool:
        if not class_id:
            raise AdminError("classId cannot be empty")
        if not student_id:
            raise AdminError("studentId cannot be empty")
        with store_errors(AdminError, "Failed to add student to class"):
            self.store.insert("class_students", {
                "class_id": class_id,
                "student_id": student_id,
                "enrolled_at": now_iso(),
            })
        return True

    def remove_student_from_class(self, class_id: str, student_id: str) -> bool:
        if not class_id:
            raise AdminError("classId cannot be empty")
        if not student_id:
            raise AdminError("studentId cannot be empty")
        with store_errors(AdminError, "Failed to remove student from class"):
            self.store.delete("class_students",
                              [eq("class_id", class_id), eq("student_id", student_id)])
        return True

    def _students(self, school_id: str) -> list[dict]:
        return self.store.select("profiles", [eq("school_id", school_id),
                                              eq("role", UserRole.STUDENT)],
                                 order_by=[Order("last_name"), Order("first_name")])

    def students_without_class(self, school_id: str) -> list[AppUser]:
        with store_errors(AdminError, "Failed to fetch students without class"):
            students = self._students(school_id)
            enrolled = {l["student_id"] for l in self.store.select("class_students")}
        return [user_from_row(s) for s in students if s["id"] not in enrolled]

    def students_without_parents(self, school_id: str) -> list[AppUser]:
        with store_errors(AdminError, "Failed to fetch students without parents"):
            students = self._students(school_id)
            linked = {l["student_id"] for l in self.store.select("parent_student")}
        return [user_from_row(s) for s in students if s["id"] not in linked]

    # ─── Fächer ───

    def _subjects(self, rows: list[dict]) -> list[Subject]:
        teacher_ids = sorted({r["teacher_id"] for r in rows if r.get("teacher_id")})
        teachers = {p["id"]: p for p in self.store.select(
            "profiles", [in_("id", teacher_ids)])} if teacher_ids else {}
        subjects = []
        for row in rows:
            dto = SubjectDTO.from_row({**row, "teacher": teachers.get(row.get("teacher_id"))})
            entity = dto.to_entity_or_none()
            if entity is not None:
                subjects.append(entity)
        return subjects

    def _subject_school(self, subject_row: dict) -> Optional[str]:
        class_row = self.store.select_maybe("classes", [eq("id", subject_row.get("class_id"))])
        return (class_row or {}).get("school_id")

    def school_subjects(self, school_id: str) -> list[Subject]:
        """Fächer aller Klassen der Schule, nach Name."""
        with store_errors(AdminError, "Failed to fetch school subjects"):
            class_ids = [c["id"] for c in self.store.select("classes", [eq("school_id", school_id)])]
            if not class_ids:
                return []
            rows = self.store.select("subjects", [in_("class_id", class_ids)],
                                     order_by=[Order("name")])
            return self._subjects(rows)

    def create_subject(self, actor: AppUser, class_id: str, name: str,
                       teacher_id: Optional[str] = None,
                       color: Optional[int] = None) -> Subject:
        if not name or not name.strip():
            raise AdminError("Subject name cannot be empty")
        with store_errors(AdminError, "Failed to create subject"):
            class_row = self._class_row(class_id)
            _require_school_manager(actor, class_row.get("school_id"))
            row = self.store.insert("subjects", {
                "name": name.strip(),
                "class_id": class_id,
                "teacher_id": teacher_id,
                "color": color,
            })
            if color is None:
                row = self.store.update("subjects", {"color": color_for_id(row["id"])},
                                        [eq("id", row["id"])])[0]
            return self._subjects([row])[0]

    def update_subject(self, actor: AppUser, subject_id: str, name: Optional[str] = None,
                       teacher_id: Optional[str] = None) -> Subject:
        values: dict = {}
        if name is not None:
            if not name.strip():
                raise AdminError("Subject name cannot be empty")
            values["name"] = name.strip()
        if teacher_id is not None:
            values["teacher_id"] = teacher_id or None
        with store_errors(AdminError, "Failed to update subject"):
            row = self.store.select_maybe("subjects", [eq("id", subject_id)])
            if row is None:
                raise AdminError(f"Subject not found with id {subject_id}")
            _require_school_manager(actor, self._subject_school(row))
            rows = self.store.update("subjects", values, [eq("id", subject_id)])
            return self._subjects(rows)[0]

    def delete_subject(self, actor: AppUser, subject_id: str) -> bool:
        with store_errors(AdminError, "Failed to delete subject"):
            row = self.store.select_maybe("subjects", [eq("id", subject_id)])
            if row is None:
                return False
            _require_school_manager(actor, self._subject_school(row))
            self.store.delete("lessons", [eq("subject_id", subject_id)])
            self.store.delete("subjects", [eq("id", subject_id)])
        return True

    # ─── Benutzer ───

    def school_users(self, school_id: str) -> list[AppUser]:
        with store_errors(AdminError, "Failed to fetch school users"):
            rows = self.store.select("profiles", [eq("school_id", school_id)],
                                     order_by=[Order("last_name"), Order("first_name")])
        return [user_from_row(r) for r in rows]

    def school_staff(self, school_id: str) -> list[AppUser]:
        if not school_id:
            raise AdminError("schoolId cannot be empty")
        return [u for u in self.school_users(school_id) if u.role in STAFF_ROLES]

    def update_user_role(self, actor: AppUser, user_id: str, new_role: UserRole) -> AppUser:
        """Rollenwechsel; actor muss alte und neue Rolle überragen."""
        with store_errors(AdminError, "Failed to update user role"):
            row = self.store.select_maybe("profiles", [eq("id", user_id)])
            if row is None:
                raise AdminError(f"User not found with id {user_id}")
            target = user_from_row(row)
            if not actor.is_superadmin and target.school_id != actor.school_id:
                raise AdminError("User does not belong to your school")
            if not can_change_role(actor, target.role, new_role):
                raise AdminError(
                    f"You do not have permission to change role "
                    f"{target.role.value} to {new_role.value}")
            rows = self.store.update("profiles", {"role": new_role}, [eq("id", user_id)])
        logger.info(f"Rolle von {target.email}: {target.role.value} → {new_role.value}")
        return user_from_row(rows[0])

    # ─── Einladungscodes ───

    def generate_invite_code(self, actor: AppUser, school_id: str, role: UserRole,
                             class_id: Optional[str] = None, usage_limit: int = 1,
                             expires_at: Optional[datetime] = None) -> InviteCode:
        """Mehrfach nutzbarer Code; ohne Ablaufdatum 7 Tage gültig."""
        if not school_id:
            raise AdminError("schoolId cannot be empty")
        if usage_limit < 1:
            raise AdminError(f"usage_limit must be at least 1, got {usage_limit}")
        if not actor.has_admin_privileges or not actor.belongs_to_school(school_id):
            raise AdminError("You do not have permission to create invite codes")
        code = "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(INVITE_CODE_LENGTH))
        with store_errors(AdminError, "Failed to generate invite code"):
            row = self.store.insert("invite_codes", {
                "code": code,
                "role": role,
                "school_id": school_id,
                "class_id": class_id,
                "usage_limit": usage_limit,
                "times_used": 0,
                "is_active": True,
                "expires_at": to_storable(expires_at or utcnow() + INVITE_CODE_VALIDITY),
                "created_by": actor.id,
            })
        return invite_code_from_row(row)

    def school_invite_codes(self, school_id: str) -> list[InviteCode]:
        with store_errors(AdminError, "Failed to fetch invite codes"):
            rows = self.store.select("invite_codes", [eq("school_id", school_id)],
                                     order_by=[Order("created_at", desc=True)])
        return [invite_code_from_row(r) for r in rows]

    def deactivate_invite_code(self, actor: AppUser, code_id: str) -> InviteCode:
        with store_errors(AdminError, "Failed to deactivate invite code"):
            row = self.store.select_maybe("invite_codes", [eq("id", code_id)])
            if row is None:
                raise AdminError(f"Invite code not found with id {code_id}")
            if not actor.has_admin_privileges or not actor.belongs_to_school(row.get("school_id")):
                raise AdminError("You do not have permission to deactivate this code")
            rows = self.store.update("invite_codes", {"is_active": False}, [eq("id", code_id)])
        return invite_code_from_row(rows[0])

    # ─── Kennzahlen ───

    def school_stats(self, school_id: str) -> SchoolStats:
        """Benutzer je Rolle, Klassen und aktive Einladungs-Tokens der Schule."""
        with store_errors(AdminError, "Failed to fetch school stats"):
            roles = [UserRole.parse(r.get("role")) for r in
                     self.store.select("profiles", [eq("school_id", school_id)])]
            total_classes = self.store.count("classes", [eq("school_id", school_id)])
            tokens = self.store.select("invite_tokens", [eq("school_id", school_id)])
        teachers = roles.count(UserRole.TEACHER)
        admins = roles.count(UserRole.ADMIN) + roles.count(UserRole.BIGADMIN)
        active = sum(1 for t in tokens
                     if int(t.get("times_used") or 0) < int(t.get("usage_limit") or 1))
        return SchoolStats(
            total_staff=teachers + admins,
            total_teachers=teachers,
            total_admins=admins,
            total_classes=total_classes,
            total_students=roles.count(UserRole.STUDENT),
            total_parents=roles.count(UserRole.PARENT),
            active_invite_codes=active,
        )

    def deputy_stats(self, school_id: str) -> DeputyStats:
        """Kennzahlen für die Stellvertretung (Stundenplan und Eltern)."""
        with store_errors(AdminError, "Failed to fetch deputy stats"):
            class_ids = [c["id"] for c in self.store.select("classes", [eq("school_id", school_id)])]
            subject_ids = [s["id"] for s in self.store.select(
                "subjects", [in_("class_id", class_ids)])] if class_ids else []
            total_lessons = self.store.count(
                "lessons", [in_("subject_id", subject_ids)]) if subject_ids else 0
            total_teachers = self.store.count(
                "profiles", [eq("school_id", school_id), eq("role", UserRole.TEACHER)])
            invites = self.store.select("parent_invites", [eq("school_id", school_id)])
        pending = sum(1 for i in invites
                      if int(i.get("times_used") or 0) < int(i.get("usage_limit") or 1))
        return DeputyStats(
            total_lessons=total_lessons,
            total_classes=len(class_ids),
            students_without_parents=len(self.students_without_parents(school_id)),
            pending_parent_invites=pending,
            total_subjects=len(subject_ids),
            total_teachers=total_teachers,
        )
