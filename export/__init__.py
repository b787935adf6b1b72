"""Export-Modul: Terminal-Darstellung (rich) für Stundenpläne."""

from export.tui_renderer import build_diff_table, build_week_table, render_week_rows

__all__ = ["build_diff_table", "build_week_table", "render_week_rows"]
