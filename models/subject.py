"""Datenmodell für ein Unterrichtsfach (Pydantic v2)."""

import zlib
from typing import Optional

from pydantic import BaseModel, ConfigDict

# ARGB-Farbpalette für Fächer ohne eigene Farbe
SUBJECT_PALETTE = [
    0xFF2196F3,  # Blau
    0xFFFF5722,  # Tieforange
    0xFF4CAF50,  # Grün
    0xFF9C27B0,  # Lila
    0xFF009688,  # Petrol
    0xFFF44336,  # Rot
    0xFF3F51B5,  # Indigo
    0xFFFFC107,  # Bernstein
    0xFF00BCD4,  # Cyan
    0xFFE91E63,  # Pink
    0xFFCDDC39,  # Limette
    0xFF795548,  # Braun
    0xFF673AB7,  # Dunkellila
    0xFF03A9F4,  # Hellblau
    0xFFFF9800,  # Orange
]


def color_for_id(subject_id: str) -> int:
    """Stabile Palettenfarbe für eine Fach-ID (unabhängig von PYTHONHASHSEED)."""
    return SUBJECT_PALETTE[zlib.crc32(subject_id.encode("utf-8")) % len(SUBJECT_PALETTE)]


class Subject(BaseModel):
    """Repräsentiert ein Unterrichtsfach einer Klasse."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color: int                           # ARGB, z.B. 0xFF2196F3
    teacher_id: Optional[str] = None
    teacher_name: Optional[str] = None
    class_id: Optional[str] = None

    @property
    def color_hex(self) -> str:
        """Farbe als "#RRGGBB" (für rich)."""
        return f"#{self.color & 0xFFFFFF:06x}"
