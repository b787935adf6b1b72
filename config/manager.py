"""Konfigurationsmanager: Laden, Speichern und Validieren.

Nutzt ruamel.yaml für YAML-Serialisierung mit Kommentaren. Umgebungsvariablen
(CLASSIO_*) überschreiben Werte aus der Datei, damit Zugangsdaten nicht im
Repository landen müssen.
"""

import json
import os
from datetime import date
from pathlib import Path
from typing import Optional

from rich.console import Console
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from config.schema import ClassioConfig

console = Console()
yaml = YAML()
yaml.default_flow_style = False
yaml.width = 120


# ─── YAML-KOMMENTAR-AUFBAU ───

_YAML_HEADER = f"""\
# ============================================
# Classio — Anwendungskonfiguration
# Erstellt: {date.today().isoformat()}
# ============================================
"""

_SECTION_COMMENTS = {
    "backend": (
        "Backend",
        "memory = flüchtig, json = lokale Datei, supabase = gehostet.\n"
        "Zugangsdaten besser über CLASSIO_SUPABASE_URL / CLASSIO_SUPABASE_KEY setzen.",
    ),
    "auth": (
        "Anmeldung",
        "Passwortregeln und Sperre nach Fehlversuchen.",
    ),
    "invites": (
        "Einladungen",
        None,
    ),
    "schedule": (
        "Stundenplan",
        None,
    ),
    "logging": (
        "Logging",
        None,
    ),
}

# Umgebungsvariable → (Abschnitt, Feld)
ENV_OVERRIDES = {
    "CLASSIO_BACKEND": ("backend", "kind"),
    "CLASSIO_DATA_PATH": ("backend", "data_path"),
    "CLASSIO_SUPABASE_URL": ("backend", "supabase_url"),
    "CLASSIO_SUPABASE_KEY": ("backend", "supabase_key"),
    "CLASSIO_LOG_LEVEL": ("logging", "level"),
}


def apply_env_overrides(raw: dict, environ: Optional[dict] = None) -> dict:
    """Überträgt gesetzte CLASSIO_*-Variablen in die Roh-Konfiguration."""
    environ = os.environ if environ is None else environ
    merged = dict(raw)
    for var, (section, field) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        block = dict(merged.get(section) or {})
        block[field] = value
        merged[section] = block
    return merged


class ConfigManager:
    CONFIG_DIR = Path("config")
    DEFAULT_CONFIG = CONFIG_DIR / "classio.yaml"

    def __init__(self, config_path: Optional[Path] = None,
                 environ: Optional[dict] = None) -> None:
        if config_path is not None:
            self.DEFAULT_CONFIG = Path(config_path)
        self._environ = environ

    def first_run_check(self) -> bool:
        """Gibt True zurück wenn noch keine Config existiert (Erstaufruf)."""
        return not self.DEFAULT_CONFIG.exists()

    # ─── Laden ───

    def load(self, path: Optional[Path] = None) -> ClassioConfig:
        """Lade Config aus YAML. Validiert automatisch via Pydantic."""
        target = Path(path) if path else self.DEFAULT_CONFIG
        if not target.exists():
            raise FileNotFoundError(
                f"Konfigurationsdatei nicht gefunden: {target}\n"
                f"Führen Sie 'python main.py setup' aus, um Classio einzurichten."
            )
        with open(target, "r", encoding="utf-8") as f:
            raw = yaml.load(f)
        try:
            data = apply_env_overrides(dict(raw or {}), self._environ)
            return ClassioConfig.model_validate(data)
        except Exception as e:
            raise ValueError(
                f"Konfigurationsdatei ungültig: {target}\n"
                f"Pydantic-Fehler: {e}"
            ) from e

    def load_or_default(self) -> ClassioConfig:
        """Wie load(), fällt aber ohne Datei auf die Standardkonfiguration zurück."""
        if self.first_run_check():
            from config.defaults import default_config
            raw = json.loads(default_config().model_dump_json())
            return ClassioConfig.model_validate(
                apply_env_overrides(raw, self._environ))
        return self.load()

    # ─── Speichern ───

    def save(self, config: ClassioConfig, path: Optional[Path] = None) -> None:
        """Speichere Config als YAML mit deutschen Kommentaren."""
        target = Path(path) if path else self.DEFAULT_CONFIG
        target.parent.mkdir(parents=True, exist_ok=True)

        data = self._build_commented_yaml(config)

        with open(target, "w", encoding="utf-8") as f:
            f.write(_YAML_HEADER + "\n")
            yaml.dump(data, f)

        console.print(f"[green]✓[/green] Konfiguration gespeichert: {target}")

    def _build_commented_yaml(self, config: ClassioConfig) -> CommentedMap:
        """Baut die YAML-Struktur mit Kommentaren auf."""
        raw = json.loads(config.model_dump_json())
        cm = CommentedMap(raw)

        for field, (label, comment) in _SECTION_COMMENTS.items():
            cm.yaml_set_comment_before_after_key(
                field,
                before=f"\n─── {label} ───" + (f"\n{comment}" if comment else ""),
            )

        if "auth" in cm:
            auth_map = CommentedMap(cm["auth"])
            auth_map.yaml_add_eol_comment("Minuten", "lockout_minutes")
            cm["auth"] = auth_map

        return cm
