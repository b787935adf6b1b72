from pydantic import BaseModel, Field, model_validator
from typing import Optional
from enum import Enum


class BackendKind(str, Enum):
    MEMORY = "memory"
    JSON = "json"
    SUPABASE = "supabase"


# ─── BACKEND (Tabellen-Speicher) ───

class BackendConfig(BaseModel):
    """Auswahl und Zugangsdaten des Tabellen-Speichers.

    - memory:   flüchtig, nur für Tests und Demos
    - json:     lokale JSON-Datei (Offline-Betrieb)
    - supabase: gehostetes Postgres + REST
    """
    # Art des Speichers
    kind: BackendKind = Field(BackendKind.JSON,
        description="Speicher-Backend (memory/json/supabase)")
    # Pfad der JSON-Datei für das json-Backend
    data_path: str = Field("output/classio_data.json",
        description="JSON-Datei für das lokale Backend")
    # Projekt-URL, z.B. "https://xyz.supabase.co"
    supabase_url: Optional[str] = Field(None,
        description="Supabase-Projekt-URL")
    # API-Schlüssel (anon oder service_role)
    supabase_key: Optional[str] = Field(None,
        description="Supabase-API-Schlüssel")

    @model_validator(mode='after')
    def validate_supabase_credentials(self):
        """Supabase-Backend braucht URL und Schlüssel."""
        if self.kind == BackendKind.SUPABASE:
            if not self.supabase_url or not self.supabase_key:
                raise ValueError(
                    "Backend 'supabase' benötigt supabase_url und supabase_key")
        return self


# ─── ANMELDUNG ───

class AuthConfig(BaseModel):
    """Passwortregeln und Sperre nach Fehlversuchen."""
    # Mindestlänge für neue Passwörter
    min_password_length: int = Field(12, ge=8, le=64,
        description="Mindestlänge Passwort")
    # Erlaubte Fehlversuche pro Zeitfenster
    max_attempts: int = Field(5, ge=1, le=50,
        description="Max. Fehlversuche pro Zeitfenster")
    # Länge des Zeitfensters in Minuten
    window_minutes: int = Field(15, ge=1, le=1440,
        description="Zeitfenster für Fehlversuche (Minuten)")
    # Dauer der Sperre in Minuten
    lockout_minutes: int = Field(30, ge=1, le=1440,
        description="Sperrdauer nach zu vielen Fehlversuchen (Minuten)")


# ─── EINLADUNGEN ───

class InviteConfig(BaseModel):
    """Einstellungen für Einladungs-Tokens."""
    # Anzahl Zeichen eines Tokens (A-Z, a-z, 0-9)
    token_length: int = Field(16, ge=6, le=64,
        description="Zeichenanzahl eines Tokens")
    # Wiederholungen bei Token-Kollision
    max_generate_attempts: int = Field(5, ge=1, le=20,
        description="Versuche bei Token-Kollision")
    # Standard-Nutzungslimit eines neuen Tokens
    default_usage_limit: int = Field(1, ge=1,
        description="Standard-Nutzungslimit")
    # Präfix für Eltern-Einladungen
    parent_prefix: str = Field("P-",
        description="Präfix für Eltern-Einladungen")


# ─── STUNDENPLAN ───

class ScheduleConfig(BaseModel):
    """Darstellung und Standardwerte des Stundenplans."""
    # Standarddauer einer neu angelegten Stunde
    default_lesson_minutes: int = Field(45, ge=10, le=240,
        description="Standarddauer einer Stunde (Minuten)")
    # Anzahl angezeigter Schultage (5 oder 6)
    school_days: int = Field(5, ge=5, le=6,
        description="Angezeigte Schultage")
    # Namen der Wochentage, Montag zuerst
    day_names: list[str] = Field(
        default=["Mo", "Di", "Mi", "Do", "Fr", "Sa", "So"],
        description="Namen der Wochentage (Mo zuerst)")

    @model_validator(mode='after')
    def validate_day_names(self):
        if len(self.day_names) != 7:
            raise ValueError(
                f"day_names braucht 7 Einträge (gefunden: {len(self.day_names)})")
        return self


# ─── LOGGING ───

class LoggingConfig(BaseModel):
    """Protokollierung über logging + rich."""
    # Log-Level (DEBUG, INFO, WARNING, ERROR)
    level: str = Field("INFO",
        description="Log-Level")
    # Tracebacks farbig über rich ausgeben
    rich_tracebacks: bool = Field(True,
        description="Rich-Tracebacks aktiv")

    @model_validator(mode='after')
    def normalize_level(self):
        level = self.level.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unbekanntes Log-Level: {self.level}")
        self.level = level
        return self


# ─── GESAMTKONFIGURATION ───

class ClassioConfig(BaseModel):
    """Gesamtkonfiguration der Anwendung."""
    # Anzeigename der Anwendung
    app_name: str = Field("Classio",
        description="Anzeigename")
    backend: BackendConfig = Field(default_factory=BackendConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    invites: InviteConfig = Field(default_factory=InviteConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
