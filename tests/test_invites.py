"""Tests für Einladungs-Tokens und Eltern-Einladungen."""

from datetime import datetime, timedelta, timezone

import pytest

from config.schema import InviteConfig
from data.store import eq
from models.roles import UserRole
from services.base import InviteError
from services.invites import TOKEN_ALPHABET, InviteService

NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


# ─── Hilfsfunktionen ──────────────────────────────────────────────────────────

def _make_service(school) -> InviteService:
    return InviteService(school.store, InviteConfig())


# ─── ERZEUGEN ─────────────────────────────────────────────────────────────────

class TestGenerateToken:
    def test_token_format(self, school):
        """16 Zeichen aus A-Z, a-z, 0-9."""
        token = _make_service(school).generate_token(
            school.bigadmin, UserRole.TEACHER, school.school_id)
        assert len(token) == 16
        assert all(c in TOKEN_ALPHABET for c in token)

    def test_row_written(self, school):
        token = _make_service(school).generate_token(
            school.admin, UserRole.TEACHER, school.school_id, usage_limit=3)
        row = school.store.select_single("invite_tokens", [eq("token", token)])
        assert row["role"] == "teacher"
        assert row["created_by_user_id"] == school.admin.id
        assert row["usage_limit"] == 3
        assert row["times_used"] == 0

    def test_role_not_allowed(self, school):
        with pytest.raises(InviteError, match="permission to create invites for students"):
            _make_service(school).generate_token(
                school.bigadmin, UserRole.STUDENT, school.school_id)

    def test_not_authenticated(self, school):
        with pytest.raises(InviteError, match="Not authenticated"):
            _make_service(school).generate_token(None, UserRole.STUDENT, school.school_id)

    def test_teacher_needs_class(self, school):
        with pytest.raises(InviteError, match="Class ID is required"):
            _make_service(school).generate_token(
                school.teacher, UserRole.STUDENT, school.school_id)

    def test_teacher_must_teach_class(self, school):
        """Lehrkraft lädt nur in Klassen ein, in denen sie unterrichtet."""
        other_class = school.store.insert("classes", {"school_id": school.school_id,
                                                      "name": "9a"})["id"]
        with pytest.raises(InviteError, match="do not teach any subjects"):
            _make_service(school).generate_token(
                school.teacher, UserRole.STUDENT, school.school_id, class_id=other_class)

    def test_teacher_invites_student(self, school):
        service = _make_service(school)
        token = service.generate_token(school.teacher, UserRole.STUDENT,
                                       school.school_id, class_id=school.class_id)
        assert service.validate_token(token).specific_class_id == school.class_id

    @pytest.mark.parametrize("limit", [0, -3])
    def test_usage_limit_below_one(self, school, limit):
        """Ein unbrauchbares Limit wird abgelehnt, bevor ein Token entsteht."""
        service = _make_service(school)
        with pytest.raises(InviteError, match="usage_limit must be at least 1"):
            service.generate_token(school.bigadmin, UserRole.TEACHER, school.school_id,
                                   usage_limit=limit)
        assert school.store.count("invite_tokens") == 0
        assert service.school_tokens(school.bigadmin, school.school_id) == []


class TestTokenCollisions:
    def _make_colliding(self, school, tokens: list[str]):
        """Service, dessen Zufallstokens aus tokens kommen; "TAKEN" existiert bereits."""
        service = _make_service(school)
        service.generate_token(school.bigadmin, UserRole.TEACHER, school.school_id)
        existing = school.store.select("invite_tokens")[0]["token"]
        school.store.update("invite_tokens", {"token": "TAKEN"}, [eq("token", existing)])
        calls = []

        def fake_token(prefix: str = "") -> str:
            calls.append(prefix)
            return tokens[min(len(calls), len(tokens)) - 1]

        service._random_token = fake_token
        return service, calls

    def test_retry_after_collision(self, school):
        service, calls = self._make_colliding(school, ["TAKEN", "TAKEN", "FRESH"])
        token = service.generate_token(school.bigadmin, UserRole.TEACHER, school.school_id)
        assert token == "FRESH"
        assert len(calls) == 3
        assert school.store.count("invite_tokens") == 2

    def test_gives_up_after_max_attempts(self, school):
        service, calls = self._make_colliding(school, ["TAKEN"])
        attempts = service.config.max_generate_attempts
        with pytest.raises(InviteError,
                           match=f"Failed to generate unique token after {attempts} attempts"):
            service.generate_token(school.bigadmin, UserRole.TEACHER, school.school_id)
        assert len(calls) == attempts
        assert school.store.count("invite_tokens") == 1

    def test_parent_code_retry(self, school):
        service, calls = self._make_colliding(school, ["P-TAKEN", "P-FRESH"])
        school.store.insert("parent_invites", {"code": "P-TAKEN",
                                               "student_id": school.student.id,
                                               "school_id": school.school_id})
        invite = service.generate_parent_invite(school.admin, school.student.id)
        assert invite.code == "P-FRESH"
        assert calls == ["P-", "P-"]


# ─── PRÜFEN & EINLÖSEN ────────────────────────────────────────────────────────

class TestValidateToken:
    def test_unknown_token(self, school):
        with pytest.raises(InviteError, match="Invalid or used token"):
            _make_service(school).validate_token("doesnotexist")

    def test_usage_limit(self, school):
        """Nach dem Einlösen ist ein Einmal-Token verbraucht."""
        service = _make_service(school)
        token = service.generate_token(school.bigadmin, UserRole.ADMIN, school.school_id)
        assert service.validate_token(token).role == UserRole.ADMIN
        service.mark_used(token)
        with pytest.raises(InviteError, match="usage limit"):
            service.validate_token(token)

    def test_multi_use(self, school):
        service = _make_service(school)
        token = service.generate_token(school.bigadmin, UserRole.TEACHER,
                                       school.school_id, usage_limit=2)
        service.mark_used(token)
        assert service.validate_token(token).times_used == 1

    def test_expired(self, school):
        service = _make_service(school)
        token = service.generate_token(school.bigadmin, UserRole.TEACHER, school.school_id,
                                       expires_at=NOW + timedelta(days=1))
        assert service.validate_token(token, now=NOW)
        with pytest.raises(InviteError, match="expired"):
            service.validate_token(token, now=NOW + timedelta(days=2))

    def test_mark_unknown_token_is_noop(self, school):
        _make_service(school).mark_used("doesnotexist")


# ─── VERWALTUNG ───────────────────────────────────────────────────────────────

class TestTokenManagement:
    def test_revoke_by_creator(self, school):
        service = _make_service(school)
        token = service.generate_token(school.teacher, UserRole.STUDENT,
                                       school.school_id, class_id=school.class_id)
        service.revoke_token(school.teacher, token)
        with pytest.raises(InviteError, match="usage limit"):
            service.validate_token(token)

    def test_revoke_by_school_admin(self, school):
        service = _make_service(school)
        token = service.generate_token(school.teacher, UserRole.STUDENT,
                                       school.school_id, class_id=school.class_id)
        service.revoke_token(school.admin, token)
        assert school.store.select_single(
            "invite_tokens", [eq("token", token)])["times_used"] == 1

    def test_revoke_forbidden(self, school):
        service = _make_service(school)
        token = service.generate_token(school.bigadmin, UserRole.TEACHER, school.school_id)
        with pytest.raises(InviteError, match="permission to revoke"):
            service.revoke_token(school.teacher2, token)

    def test_revoke_unknown(self, school):
        with pytest.raises(InviteError, match="Token not found"):
            _make_service(school).revoke_token(school.admin, "nope")

    def test_created_by_and_school_tokens(self, school):
        service = _make_service(school)
        service.generate_token(school.bigadmin, UserRole.TEACHER, school.school_id)
        service.generate_token(school.admin, UserRole.PARENT, school.school_id)
        assert len(service.created_by(school.admin)) == 1
        assert len(service.school_tokens(school.bigadmin, school.school_id)) == 2
        with pytest.raises(InviteError):
            service.school_tokens(school.teacher, school.school_id)

    def test_cleanup_expired(self, school):
        """Nur abgelaufene Tokens der Schule werden gelöscht."""
        service = _make_service(school)
        service.generate_token(school.bigadmin, UserRole.TEACHER, school.school_id,
                               expires_at=NOW - timedelta(days=1))
        service.generate_token(school.bigadmin, UserRole.TEACHER, school.school_id,
                               expires_at=NOW + timedelta(days=1))
        service.generate_token(school.bigadmin, UserRole.TEACHER, school.school_id)
        assert service.cleanup_expired(school.bigadmin, school.school_id, now=NOW) == 1
        assert school.store.count("invite_tokens") == 2


# ─── ELTERN-EINLADUNGEN ───────────────────────────────────────────────────────

class TestParentInvites:
    def test_generate_and_validate(self, school):
        """Eltern-Code mit "P-"-Präfix wird als Eltern-Token erkannt."""
        service = _make_service(school)
        invite = service.generate_parent_invite(school.admin, school.student2.id)
        assert invite.code.startswith("P-")
        assert invite.student_name == "Ole Ohneklasse"
        token = service.validate_token(invite.code)
        assert token.role == UserRole.PARENT
        assert token.specific_class_id == school.student2.id

    def test_use_links_parent(self, school):
        service = _make_service(school)
        invite = service.generate_parent_invite(school.admin, school.student2.id)
        service.mark_used(invite.code, user_id=school.parent.id)
        links = school.store.select("parent_student", [eq("student_id", school.student2.id)])
        assert [l["parent_id"] for l in links] == [school.parent.id]
        with pytest.raises(InviteError, match="usage limit"):
            service.validate_token(invite.code)
        assert service.pending_parent_invites(school.school_id) == []

    def test_unknown_parent_code(self, school):
        with pytest.raises(InviteError, match="Invalid or used token"):
            _make_service(school).validate_token("P-unknown")

    def test_teacher_not_allowed(self, school):
        with pytest.raises(InviteError, match="permission to create parent invites"):
            _make_service(school).generate_parent_invite(school.teacher, school.student.id)

    def test_not_a_student(self, school):
        with pytest.raises(InviteError, match="Student not found"):
            _make_service(school).generate_parent_invite(school.admin, school.teacher.id)

    def test_other_school(self, school):
        other_student = school.store.insert("profiles", {
            "email": "fremd@test.de", "role": "student",
            "school_id": school.other_school_id})
        with pytest.raises(InviteError, match="does not belong to your school"):
            _make_service(school).generate_parent_invite(school.admin, other_student["id"])

    def test_pending_and_revoke(self, school):
        service = _make_service(school)
        invite = service.generate_parent_invite(school.bigadmin, school.student2.id)
        assert [i.id for i in service.pending_parent_invites(school.school_id)] == [invite.id]
        service.revoke_parent_invite(invite.id)
        assert service.pending_parent_invites(school.school_id) == []
