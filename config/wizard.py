"""Interaktiver Setup-Wizard für die Ersteinrichtung von Classio.

Fragt Backend, Passwortregeln, Einladungen und Stundenplan-Darstellung ab.
Nutzt rich für die Konsolenausgabe.
"""

from typing import Optional

from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table
from rich import box

from config.schema import (
    AuthConfig,
    BackendConfig,
    BackendKind,
    ClassioConfig,
    InviteConfig,
    LoggingConfig,
    ScheduleConfig,
)

console = Console()


def _header(title: str) -> None:
    console.print()
    console.print(Panel(f"[bold cyan]{title}[/bold cyan]", expand=False))


def _info(text: str) -> None:
    console.print(f"[dim]{text}[/dim]")


def _success(text: str) -> None:
    console.print(f"[green]✓[/green] {text}")


def _warn(text: str) -> None:
    console.print(f"[yellow]⚠[/yellow]  {text}")


# ─── SCHRITT 1: Backend ───

def _wizard_backend() -> BackendConfig:
    _header("Schritt 1 — Backend")
    _info("memory = flüchtig, json = lokale Datei, supabase = gehostet.")

    kind = BackendKind(Prompt.ask(
        "Backend",
        choices=[k.value for k in BackendKind],
        default=BackendKind.JSON.value,
    ))
    if kind == BackendKind.JSON:
        path = Prompt.ask("JSON-Datei", default="output/classio_data.json")
        return BackendConfig(kind=kind, data_path=path)
    if kind == BackendKind.SUPABASE:
        _warn("Der Schlüssel landet in der YAML-Datei. "
              "Alternativ CLASSIO_SUPABASE_KEY setzen.")
        while True:
            url = Prompt.ask("Supabase-URL")
            key = Prompt.ask("Supabase-Schlüssel", password=True)
            try:
                return BackendConfig(kind=kind, supabase_url=url, supabase_key=key)
            except ValidationError as e:
                _warn(f"Ungültige Angaben: {e.errors()[0]['msg']}")
    return BackendConfig(kind=kind)


# ─── SCHRITT 2: Anmeldung ───

def _wizard_auth() -> AuthConfig:
    _header("Schritt 2 — Anmeldung")
    defaults = AuthConfig()
    min_len = IntPrompt.ask("Mindestlänge Passwort", default=defaults.min_password_length)
    attempts = IntPrompt.ask("Fehlversuche bis zur Sperre", default=defaults.max_attempts)
    lockout = IntPrompt.ask("Sperrdauer (Minuten)", default=defaults.lockout_minutes)
    return AuthConfig(min_password_length=min_len, max_attempts=attempts,
                      lockout_minutes=lockout)


# ─── SCHRITT 3: Einladungen ───

def _wizard_invites() -> InviteConfig:
    _header("Schritt 3 — Einladungen")
    defaults = InviteConfig()
    length = IntPrompt.ask("Zeichen pro Token", default=defaults.token_length)
    limit = IntPrompt.ask("Standard-Nutzungslimit", default=defaults.default_usage_limit)
    return InviteConfig(token_length=length, default_usage_limit=limit)


# ─── SCHRITT 4: Stundenplan ───

def _wizard_schedule() -> ScheduleConfig:
    _header("Schritt 4 — Stundenplan")
    days = IntPrompt.ask("Schultage pro Woche", choices=["5", "6"], default=5)
    minutes = IntPrompt.ask("Standarddauer einer Stunde (Minuten)", default=45)
    return ScheduleConfig(school_days=days, default_lesson_minutes=minutes)


def _show_summary(config: ClassioConfig) -> None:
    """Zeigt die erzeugte Konfiguration als Tabelle an."""
    table = Table(title="Zusammenfassung", box=box.ROUNDED)
    table.add_column("Bereich", style="bold")
    table.add_column("Wert")

    backend = config.backend
    where = {
        BackendKind.JSON: backend.data_path,
        BackendKind.SUPABASE: backend.supabase_url or "",
        BackendKind.MEMORY: "flüchtig",
    }[backend.kind]
    table.add_row("Backend", f"{backend.kind.value} ({where})")
    table.add_row(
        "Passwörter",
        f"mind. {config.auth.min_password_length} Zeichen, "
        f"Sperre nach {config.auth.max_attempts} Fehlversuchen",
    )
    table.add_row("Tokens", f"{config.invites.token_length} Zeichen, "
                            f"Limit {config.invites.default_usage_limit}")
    table.add_row("Stundenplan", f"{config.schedule.school_days} Tage, "
                                 f"{config.schedule.default_lesson_minutes} min")
    console.print(table)


# ─── HAUPT-WIZARD ───

def run_wizard() -> Optional[ClassioConfig]:
    """Führt den vollständigen interaktiven Setup-Wizard aus.

    Returns:
        Fertige ClassioConfig oder None, wenn der Nutzer abbricht.
    """
    console.print()
    console.print(Panel(
        "[bold]Willkommen bei Classio![/bold]\n\n"
        "Der Wizard führt Sie durch alle Konfigurationsbereiche.\n"
        "[dim]Standard-Werte können mit Enter übernommen werden.[/dim]",
        title="[bold cyan]Classio[/bold cyan]",
        border_style="cyan",
    ))

    if not Confirm.ask("\nMöchten Sie Classio jetzt einrichten?", default=True):
        console.print("[yellow]Einrichtung abgebrochen.[/yellow]")
        return None

    try:
        config = ClassioConfig(
            backend=_wizard_backend(),
            auth=_wizard_auth(),
            invites=_wizard_invites(),
            schedule=_wizard_schedule(),
            logging=LoggingConfig(),
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Wizard abgebrochen.[/yellow]")
        return None
    except ValidationError as e:
        console.print(f"\n[red]Fehler während der Konfiguration: {e}[/red]")
        return None

    _show_summary(config)

    if not Confirm.ask("\nKonfiguration speichern?", default=True):
        console.print("[yellow]Konfiguration wird nicht gespeichert.[/yellow]")
        return None

    _success("Konfiguration wird gespeichert...")
    return config
