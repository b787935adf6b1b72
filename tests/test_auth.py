"""Tests für Anmeldung, Registrierung per Einladung und Passwortregeln."""

from datetime import datetime, timedelta, timezone

import pytest

from access.rate_limiter import RateLimiter
from config.schema import AuthConfig, InviteConfig
from data.store import eq
from models.roles import UserRole
from services.auth import (
    AuthBackendError,
    AuthService,
    InMemoryAuthBackend,
    is_valid_email,
    password_error,
)
from services.base import AuthError
from services.invites import InviteService

PASSWORD = "Sicher!Passwort1"
WRONG_PASSWORD = "Falsch!Passwort2"


# ─── Hilfsfunktionen ──────────────────────────────────────────────────────────

class _FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _make_auth(school, rate_limiter: RateLimiter = None) -> AuthService:
    invites = InviteService(school.store, InviteConfig())
    return AuthService(school.store, InMemoryAuthBackend(iterations=1000), invites,
                       AuthConfig(), rate_limiter=rate_limiter)


def _register_teacher(school, auth: AuthService, email: str = "neu@test.de"):
    token = auth.invites.generate_token(school.bigadmin, UserRole.TEACHER, school.school_id)
    return auth.sign_up_with_invite_token(email, PASSWORD, token, "Nina", "Neu")


# ─── EINGABEREGELN ────────────────────────────────────────────────────────────

class TestInputRules:
    @pytest.mark.parametrize("password,message", [
        ("", "cannot be empty"),
        ("Kurz!1a", "at least 12 characters"),
        ("kleinbuchstaben!1", "uppercase"),
        ("GROSSBUCHSTABEN!1", "lowercase"),
        ("OhneZiffern!!abc", "number"),
        ("OhneSonderzeichen1", "special character"),
    ])
    def test_password_rules(self, password, message):
        """Jede Regel liefert ihre eigene Meldung."""
        assert message in password_error(password)

    def test_valid_password(self):
        assert password_error(PASSWORD) is None

    def test_custom_min_length(self):
        assert password_error("Ab!1efgh", min_length=8) is None

    @pytest.mark.parametrize("email,valid", [
        ("tina.lehrer@schule.de", True),
        ("a+b@x.io", True),
        ("ohne-at.de", False),
        ("a@", False),
        ("", False),
    ])
    def test_email_format(self, email, valid):
        assert is_valid_email(email) is valid


# ─── REGISTRIERUNG ────────────────────────────────────────────────────────────

class TestSignUp:
    def test_sign_up_takes_role_and_school(self, school):
        """Rolle und Schule kommen aus dem Token, das Profil wird angelegt."""
        auth = _make_auth(school)
        user = _register_teacher(school, auth)
        assert user.role == UserRole.TEACHER
        assert user.school_id == school.school_id
        assert auth.current_user == user
        profile = school.store.select_single("profiles", [eq("id", user.id)])
        assert profile["first_name"] == "Nina"

    def test_token_consumed(self, school):
        auth = _make_auth(school)
        token = auth.invites.generate_token(school.bigadmin, UserRole.TEACHER,
                                            school.school_id)
        auth.sign_up_with_invite_token("a@test.de", PASSWORD, token)
        with pytest.raises(AuthError, match="Invalid invite token: Token has reached"):
            auth.sign_up_with_invite_token("b@test.de", PASSWORD, token)

    def test_student_enrolled_in_class(self, school):
        auth = _make_auth(school)
        token = auth.invites.generate_token(school.teacher, UserRole.STUDENT,
                                            school.school_id, class_id=school.class_id)
        user = auth.sign_up_with_invite_token("kind@test.de", PASSWORD, token)
        enrolled = school.store.select("class_students", [eq("student_id", user.id)])
        assert [r["class_id"] for r in enrolled] == [school.class_id]

    def test_parent_code_links_child(self, school):
        """Eltern-Code: Rolle parent, Verknüpfung mit dem Kind statt Klasse."""
        auth = _make_auth(school)
        invite = auth.invites.generate_parent_invite(school.admin, school.student2.id)
        user = auth.sign_up_with_invite_token("mama@test.de", PASSWORD, invite.code)
        assert user.role == UserRole.PARENT
        links = school.store.select("parent_student", [eq("parent_id", user.id)])
        assert [l["student_id"] for l in links] == [school.student2.id]
        assert school.store.select("class_students", [eq("student_id", user.id)]) == []

    def test_empty_token(self, school):
        with pytest.raises(AuthError, match="Invite token cannot be empty"):
            _make_auth(school).sign_up_with_invite_token("a@test.de", PASSWORD, "  ")

    def test_invalid_token(self, school):
        with pytest.raises(AuthError, match="Invalid invite token: Invalid or used token"):
            _make_auth(school).sign_up_with_invite_token("a@test.de", PASSWORD, "nope")

    def test_weak_password_rejected_before_token_use(self, school):
        auth = _make_auth(school)
        token = auth.invites.generate_token(school.bigadmin, UserRole.TEACHER,
                                            school.school_id)
        with pytest.raises(AuthError, match="at least 12"):
            auth.sign_up_with_invite_token("a@test.de", "kurz", token)
        assert auth.invites.validate_token(token).times_used == 0

    def test_duplicate_account(self, school):
        auth = _make_auth(school)
        _register_teacher(school, auth)
        with pytest.raises(AuthError, match="Sign up failed: User already registered"):
            _register_teacher(school, auth)


# ─── ANMELDUNG ────────────────────────────────────────────────────────────────

class TestSignIn:
    def test_sign_in_loads_profile(self, school):
        auth = _make_auth(school)
        registered = _register_teacher(school, auth)
        auth.sign_out()
        assert not auth.is_authenticated

        user = auth.sign_in("NEU@test.de", PASSWORD)
        assert user.id == registered.id
        assert user.full_name == "Nina Neu"
        assert auth.is_authenticated

    def test_wrong_password(self, school):
        auth = _make_auth(school)
        _register_teacher(school, auth)
        with pytest.raises(AuthError, match="Sign in failed: Invalid login credentials"):
            auth.sign_in("neu@test.de", WRONG_PASSWORD)

    def test_invalid_email(self, school):
        with pytest.raises(AuthError, match="Invalid email format"):
            _make_auth(school).sign_in("kein-email", PASSWORD)

    def test_lockout(self, school):
        """Nach max_attempts Fehlversuchen wird die Adresse gesperrt."""
        limiter = RateLimiter(max_attempts=2, window=timedelta(minutes=15),
                              lockout=timedelta(minutes=30), clock=_FakeClock())
        auth = _make_auth(school, rate_limiter=limiter)
        _register_teacher(school, auth)
        for _ in range(2):
            with pytest.raises(AuthError, match="Sign in failed"):
                auth.sign_in("neu@test.de", WRONG_PASSWORD)
        with pytest.raises(AuthError, match="Try again in 30 minutes"):
            auth.sign_in("neu@test.de", PASSWORD)

    def test_success_clears_attempts(self, school):
        limiter = RateLimiter(max_attempts=3, clock=_FakeClock())
        auth = _make_auth(school, rate_limiter=limiter)
        _register_teacher(school, auth)
        with pytest.raises(AuthError):
            auth.sign_in("neu@test.de", WRONG_PASSWORD)
        auth.sign_in("neu@test.de", PASSWORD)
        assert limiter.remaining_attempts("neu@test.de") == 3

    def test_missing_profile_uses_account_metadata(self, school):
        """Ohne Profilzeile entsteht der Benutzer aus den Kontodaten."""
        auth = _make_auth(school)
        auth.backend.sign_up("ohneprofil@test.de", PASSWORD,
                             {"role": "admin", "school_id": school.school_id})
        user = auth.sign_in("ohneprofil@test.de", PASSWORD)
        assert user.role == UserRole.ADMIN
        assert user.school_id == school.school_id


class TestInMemoryBackend:
    def test_passwords_hashed(self):
        backend = InMemoryAuthBackend(iterations=1000)
        backend.sign_up("a@test.de", PASSWORD, {})
        _, _, digest = backend._accounts["a@test.de"]
        assert PASSWORD.encode() not in digest

    def test_unknown_account(self):
        with pytest.raises(AuthBackendError):
            InMemoryAuthBackend(iterations=1000).sign_in("x@test.de", PASSWORD)
