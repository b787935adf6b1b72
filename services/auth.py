"""Anmeldung, Registrierung per Einladung und Abmeldung.

AuthService prüft Eingaben, begrenzt Fehlversuche pro E-Mail-Adresse und
lädt nach erfolgreicher Anmeldung das Profil aus der Tabelle profiles.
Die eigentliche Kontoverwaltung übernimmt ein AuthBackend:
InMemoryAuthBackend für lokale Läufe und Tests, SupabaseAuthBackend für
den Betrieb gegen Supabase.
"""

import hashlib
import hmac
import logging
import math
import re
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from supabase import AuthError as SupabaseAuthError
from supabase import Client

from access.rate_limiter import RateLimiter
from config.defaults import PASSWORD_SPECIAL_CHARS
from config.schema import AuthConfig
from data.records import user_from_row
from data.store import StoreError, TableStore, eq, now_iso
from models.roles import UserRole
from models.user import AppUser
from services.base import AuthError, InviteError
from services.invites import InviteService

logger = logging.getLogger(__name__)

# Vereinfachte RFC-5322-Prüfung
EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)


def is_valid_email(email: str) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def password_error(password: str, min_length: int = 12) -> Optional[str]:
    """Erste verletzte Passwortregel als Meldung, oder None."""
    if not password:
        return "Password cannot be empty"
    if len(password) < min_length:
        return f"Password must be at least {min_length} characters"
    if not re.search(r"[A-Z]", password):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"[a-z]", password):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"[0-9]", password):
        return "Password must contain at least one number"
    if not any(c in PASSWORD_SPECIAL_CHARS for c in password):
        return f"Password must contain at least one special character ({PASSWORD_SPECIAL_CHARS})"
    return None


# ─── Backends ───

class AuthBackendError(Exception):
    """Vom Backend abgelehnte Anmeldung oder Registrierung."""


@dataclass
class AuthAccount:
    id: str
    email: str
    metadata: dict = field(default_factory=dict)


class AuthBackend:
    """Schnittstelle zur Kontoverwaltung."""

    def sign_up(self, email: str, password: str, metadata: dict) -> AuthAccount:
        raise NotImplementedError

    def sign_in(self, email: str, password: str) -> AuthAccount:
        raise NotImplementedError

    def sign_out(self) -> None:
        raise NotImplementedError


class InMemoryAuthBackend(AuthBackend):
    """Konten im Arbeitsspeicher, Passwörter als PBKDF2-SHA256-Hash."""

    def __init__(self, iterations: int = 120_000):
        self.iterations = iterations
        self._accounts: dict[str, tuple[AuthAccount, bytes, bytes]] = {}

    def _hash(self, password: str, salt: bytes) -> bytes:
        return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, self.iterations)

    def sign_up(self, email: str, password: str, metadata: dict) -> AuthAccount:
        key = email.strip().lower()
        if key in self._accounts:
            raise AuthBackendError("User already registered")
        salt = secrets.token_bytes(16)
        account = AuthAccount(id=str(uuid.uuid4()), email=key, metadata=dict(metadata))
        self._accounts[key] = (account, salt, self._hash(password, salt))
        return account

    def sign_in(self, email: str, password: str) -> AuthAccount:
        entry = self._accounts.get(email.strip().lower())
        if entry is None:
            raise AuthBackendError("Invalid login credentials")
        account, salt, digest = entry
        if not hmac.compare_digest(digest, self._hash(password, salt)):
            raise AuthBackendError("Invalid login credentials")
        return account

    def sign_out(self) -> None:
        pass


class SupabaseAuthBackend(AuthBackend):
    """Kontoverwaltung über die Auth-API von Supabase."""

    def __init__(self, client: Client):
        self.client = client

    @staticmethod
    def _account(response, email: str) -> AuthAccount:
        user = response.user
        if user is None:
            raise AuthBackendError("No user returned")
        return AuthAccount(id=user.id, email=user.email or email,
                           metadata=dict(user.user_metadata or {}))

    def sign_up(self, email: str, password: str, metadata: dict) -> AuthAccount:
        try:
            response = self.client.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": metadata},
            })
        except SupabaseAuthError as e:
            raise AuthBackendError(e.message) from e
        return self._account(response, email)

    def sign_in(self, email: str, password: str) -> AuthAccount:
        try:
            response = self.client.auth.sign_in_with_password(
                {"email": email, "password": password})
        except SupabaseAuthError as e:
            raise AuthBackendError(e.message) from e
        return self._account(response, email)

    def sign_out(self) -> None:
        try:
            self.client.auth.sign_out()
        except SupabaseAuthError as e:
            raise AuthBackendError(e.message) from e


# ─── Dienst ───

class AuthService:
    def __init__(self, store: TableStore, backend: AuthBackend,
                 invites: InviteService, config: Optional[AuthConfig] = None,
                 rate_limiter: Optional[RateLimiter] = None):
        self.store = store
        self.backend = backend
        self.invites = invites
        self.config = config or AuthConfig()
        self.rate_limiter = rate_limiter or RateLimiter(
            max_attempts=self.config.max_attempts,
            window=timedelta(minutes=self.config.window_minutes),
            lockout=timedelta(minutes=self.config.lockout_minutes),
        )
        self._current_user: Optional[AppUser] = None

    @property
    def current_user(self) -> Optional[AppUser]:
        return self._current_user

    @property
    def is_authenticated(self) -> bool:
        return self._current_user is not None

    def _check_password(self, password: str) -> None:
        error = password_error(password, self.config.min_password_length)
        if error is not None:
            raise AuthError(error)

    def sign_in(self, email: str, password: str) -> AppUser:
        """Meldet an und lädt das Profil. Gesperrte Adressen werden abgewiesen."""
        if not is_valid_email(email):
            raise AuthError("Invalid email format")
        remaining = self.rate_limiter.check(email)
        if remaining is not None:
            minutes = max(1, math.ceil(remaining.total_seconds() / 60))
            logger.warning(f"Anmeldung gesperrt für {email} (noch {minutes} min)")
            raise AuthError(
                f"Too many failed attempts. Try again in {minutes} minutes")
        self._check_password(password)

        try:
            account = self.backend.sign_in(email, password)
        except AuthBackendError as e:
            self.rate_limiter.record_attempt(email)
            left = self.rate_limiter.remaining_attempts(email)
            logger.warning(f"Anmeldung fehlgeschlagen für {email} "
                           f"({left} Versuche übrig)")
            raise AuthError(f"Sign in failed: {e}") from e

        self.rate_limiter.clear(email)
        self._current_user = self._load_profile(account)
        logger.info(f"Angemeldet: {self._current_user.email} "
                    f"({self._current_user.role.value})")
        return self._current_user

    def _load_profile(self, account: AuthAccount) -> AppUser:
        try:
            row = self.store.select_maybe("profiles", [eq("id", account.id)])
            if row is None:
                raise ValueError(f"Profil fehlt für Benutzer {account.id}")
            return user_from_row(row)
        except (StoreError, ValueError) as e:
            # Rückfall auf die Metadaten des Kontos
            logger.warning(f"Profil nicht ladbar, nutze Kontodaten: {e}")
            return AppUser(
                id=account.id,
                email=account.email,
                role=UserRole.parse(account.metadata.get("role")) or UserRole.STUDENT,
                school_id=account.metadata.get("school_id"),
            )

    def sign_up_with_invite_token(self, email: str, password: str, token: str,
                                  first_name: Optional[str] = None,
                                  last_name: Optional[str] = None) -> AppUser:
        """Registriert ein Konto mit Rolle und Schule aus dem Einladungs-Token.

        Schüler werden in die Klasse des Tokens eingeschrieben; ein Eltern-Code
        verknüpft das neue Konto mit dem Kind. Scheitert die Einschreibung,
        bleibt die Registrierung trotzdem gültig.
        """
        if not is_valid_email(email):
            raise AuthError("Invalid email format")
        if not token or not token.strip():
            raise AuthError("Invite token cannot be empty")
        token = token.strip()
        self._check_password(password)

        try:
            invite = self.invites.validate_token(token)
        except InviteError as e:
            raise AuthError(f"Invalid invite token: {e.message}") from e
        is_parent_code = self.invites.is_parent_code(token)

        metadata = {
            "role": invite.role.value,
            "school_id": invite.school_id,
            "first_name": first_name,
            "last_name": last_name,
            "invite_token": token,
        }
        if invite.specific_class_id and not is_parent_code:
            metadata["class_id"] = invite.specific_class_id

        try:
            account = self.backend.sign_up(email, password, metadata)
        except AuthBackendError as e:
            logger.error(f"Registrierung fehlgeschlagen für {email}: {e}")
            raise AuthError(f"Sign up failed: {e}") from e

        try:
            if self.store.select_maybe("profiles", [eq("id", account.id)]) is None:
                self.store.insert("profiles", {
                    "id": account.id,
                    "email": account.email,
                    "role": invite.role.value,
                    "first_name": first_name,
                    "last_name": last_name,
                    "school_id": invite.school_id,
                    "created_at": now_iso(),
                })
        except StoreError as e:
            raise AuthError(f"Sign up failed: {e.message}") from e

        try:
            self.invites.mark_used(token, user_id=account.id)
        except InviteError as e:
            logger.warning(f"Token konnte nicht als benutzt markiert werden: {e.message}")

        if invite.role == UserRole.STUDENT and invite.specific_class_id and not is_parent_code:
            try:
                self.store.insert("class_students", {
                    "class_id": invite.specific_class_id,
                    "student_id": account.id,
                    "enrolled_at": now_iso(),
                })
            except StoreError as e:
                logger.warning(f"Einschreibung in Klasse {invite.specific_class_id} "
                               f"fehlgeschlagen: {e.message}")

        user = AppUser(
            id=account.id,
            email=account.email,
            role=invite.role,
            first_name=first_name,
            last_name=last_name,
            school_id=invite.school_id,
        )
        self._current_user = user
        logger.info(f"Registriert: {user.email} als {user.role.value}")
        return user

    def sign_out(self) -> None:
        try:
            self.backend.sign_out()
        except AuthBackendError as e:
            raise AuthError(f"Sign out failed: {e}") from e
        self._current_user = None
