"""Classio — Haupt-CLI.

Verwendung:
  python main.py setup                          Ersteinrichtung (Wizard)
  python main.py config show                    Konfiguration anzeigen
  python main.py seed                           Demo-Daten erzeugen
  python main.py timetable show 5a              Stundenplan der Woche
  python main.py timetable show 5a --stable     Stabiler Stundenplan
  python main.py timetable copy-week 5a         Wochenkopie anlegen
  python main.py timetable diff 5a              Abweichungen der Woche
  python main.py invite roles teacher           Einladbare Rollen
  python main.py invite create --as E --role R  Einladungs-Token erzeugen
  python main.py invite check <token>           Token prüfen
  python main.py grades <email>                 Notenübersicht
  python main.py assignments list <email>       Anstehende Hausaufgaben
  python main.py assignments create --as E ...  Hausaufgabe anlegen
  python main.py teacher-stats <email>          Dashboard einer Lehrkraft
  python main.py children <email>               Kinder eines Elternteils
  python main.py stats <schule>                 Schul-Kennzahlen
  python main.py route /school_admin --role teacher   Weiterleitung prüfen
"""

import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

console = Console()

_DATE = click.DateTime(formats=["%Y-%m-%d"])
_ROLE = click.Choice(["superadmin", "bigadmin", "admin", "teacher", "student", "parent"],
                     case_sensitive=False)


def _abort(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    sys.exit(1)


def _manager(ctx: click.Context):
    from config.manager import ConfigManager
    return ConfigManager(config_path=ctx.obj["config_path"])


def _open_store(ctx: click.Context):
    """Öffnet den konfigurierten Speicher (einmal pro Aufruf)."""
    from data.supabase_store import create_store
    from data.store import StoreError

    if "store" not in ctx.obj:
        try:
            ctx.obj["store"] = create_store(ctx.obj["config"].backend)
        except (StoreError, ValueError) as e:
            _abort(f"Speicher nicht verfügbar: {e}")
    return ctx.obj["store"]


def _persist(ctx: click.Context) -> None:
    """Schreibt den Bestand zurück, wenn das json-Backend aktiv ist."""
    from config.schema import BackendKind

    backend = ctx.obj["config"].backend
    if backend.kind == BackendKind.JSON:
        ctx.obj["store"].save_json(Path(backend.data_path))
    elif backend.kind == BackendKind.MEMORY:
        console.print("[yellow]⚠[/yellow]  memory-Backend: Änderungen gehen beim Beenden verloren.")


def _user_by_email(store, email: str):
    from data.records import user_from_row
    from data.store import eq

    row = store.select_maybe("profiles", [eq("email", email.strip().lower())])
    if row is None:
        _abort(f"Kein Benutzer mit E-Mail {email}")
    return user_from_row(row)


def _class_id(store, ref: str) -> str:
    """Klassen-ID zu einer ID oder einem Klassennamen (z.B. "5a")."""
    from data.store import eq

    row = store.select_maybe("classes", [eq("id", ref)]) \
        or store.select_maybe("classes", [eq("name", ref)])
    if row is None:
        _abort(f"Klasse nicht gefunden: {ref}")
    return row["id"]


def _school_id(store, ref: str) -> str:
    from data.store import eq

    row = store.select_maybe("schools", [eq("id", ref)]) \
        or store.select_maybe("schools", [eq("name", ref)])
    if row is None:
        _abort(f"Schule nicht gefunden: {ref}")
    return row["id"]


def _week_of(value: Optional[datetime]) -> date:
    from services.schedule import week_start
    return week_start(value.date() if value else date.today())


# ─── SETUP ────────────────────────────────────────────────────────────────────

@click.command("setup")
@click.pass_context
def cmd_setup(ctx: click.Context):
    """Ersteinrichtung: Konfiguration mit dem Setup-Wizard anlegen."""
    from config.wizard import run_wizard

    mgr = _manager(ctx)
    if not mgr.first_run_check():
        console.print(
            "[yellow]Eine Konfiguration existiert bereits.[/yellow]\n"
            f"Datei: [bold]{mgr.DEFAULT_CONFIG}[/bold]"
        )
        if not click.confirm("Trotzdem neu einrichten?", default=False):
            return

    config = run_wizard()
    if config is not None:
        mgr.save(config)
        console.print("[bold green]Einrichtung abgeschlossen![/bold green]")
        console.print("Führen Sie jetzt [bold]python main.py seed[/bold] aus.")


# ─── CONFIG ───────────────────────────────────────────────────────────────────

@click.group("config")
def cmd_config():
    """Konfiguration anzeigen."""


@cmd_config.command("show")
@click.pass_context
def config_show(ctx: click.Context):
    """Zeigt die aktuelle Konfiguration an."""
    config = ctx.obj["config"]
    backend = config.backend

    console.print(Panel(
        f"[bold]{config.app_name}[/bold]  |  Backend: {backend.kind.value}",
        title="Konfiguration",
        border_style="cyan",
    ))

    table = Table(title="Einstellungen", box=box.ROUNDED)
    table.add_column("Bereich", style="bold")
    table.add_column("Feld")
    table.add_column("Wert")
    for section in ("backend", "auth", "invites", "schedule", "logging"):
        values = getattr(config, section).model_dump(mode="json")
        for field, value in values.items():
            if field == "supabase_key" and value:
                value = "***"
            table.add_row(section, field, str(value))
            section = ""
    console.print(table)


# ─── SEED ─────────────────────────────────────────────────────────────────────

@click.command("seed")
@click.option("--seed", default=42, help="Zufalls-Seed für reproduzierbare Daten.")
@click.option("--classes", "num_classes", default=3, help="Anzahl Klassen.")
@click.option("--students", default=8, help="Schüler pro Klasse.")
@click.option("--teachers", default=6, help="Anzahl Lehrkräfte.")
@click.pass_context
def cmd_seed(ctx: click.Context, seed: int, num_classes: int, students: int, teachers: int):
    """Erzeugt Demo-Daten (Schule, Klassen, Stundenplan, Noten, Anwesenheit, Hausaufgaben)."""
    from data.fake_data import DemoDataGenerator

    store = _open_store(ctx)
    console.print("[bold]Demo-Daten werden erzeugt...[/bold]")
    gen = DemoDataGenerator(ctx.obj["config"], seed=seed, num_classes=num_classes,
                            students_per_class=students, num_teachers=teachers)
    summary = gen.generate(store)
    gen.print_summary(summary)
    _persist(ctx)
    console.print(f"[green]✓[/green] Schule angelegt: {summary.school_id}")


# ─── TIMETABLE ────────────────────────────────────────────────────────────────

@click.group("timetable")
def cmd_timetable():
    """Stundenplan anzeigen, kopieren und vergleichen."""


@cmd_timetable.command("show")
@click.argument("klasse")
@click.option("--week", type=_DATE, default=None, help="Ein Tag der Woche (JJJJ-MM-TT).")
@click.option("--stable", is_flag=True, default=False, help="Stabilen Plan anzeigen.")
@click.pass_context
def timetable_show(ctx: click.Context, klasse: str, week: Optional[datetime], stable: bool):
    """Zeigt den Stundenplan einer Klasse."""
    from export.tui_renderer import build_week_table
    from services import ScheduleError, ScheduleService

    config = ctx.obj["config"]
    store = _open_store(ctx)
    class_id = _class_id(store, klasse)
    monday = _week_of(week)
    service = ScheduleService(store, config.schedule)
    try:
        if stable:
            timetable = service.stable_timetable(class_id, monday)
            title = f"Stabiler Stundenplan {klasse}"
        else:
            timetable = service.week_timetable(class_id, monday)
            title = f"Stundenplan {klasse}, Woche ab {monday.strftime('%d.%m.%Y')}"
    except ScheduleError as e:
        _abort(str(e))
    console.print(build_week_table(timetable, config.schedule, title,
                                   week=None if stable else monday, stable_view=stable))


@cmd_timetable.command("copy-week")
@click.argument("klasse")
@click.option("--week", type=_DATE, default=None, help="Ein Tag der Woche (JJJJ-MM-TT).")
@click.pass_context
def timetable_copy_week(ctx: click.Context, klasse: str, week: Optional[datetime]):
    """Legt für eine Woche Kopien aller stabilen Stunden an."""
    from services import ScheduleError, ScheduleService

    store = _open_store(ctx)
    class_id = _class_id(store, klasse)
    monday = _week_of(week)
    try:
        timetable = ScheduleService(store, ctx.obj["config"].schedule) \
            .create_week_from_stable(class_id, monday)
    except ScheduleError as e:
        _abort(str(e))
    _persist(ctx)
    count = sum(len(lessons) for lessons in timetable.values())
    console.print(f"[green]✓[/green] Woche ab {monday.strftime('%d.%m.%Y')}: {count} Stunden")


@cmd_timetable.command("diff")
@click.argument("klasse")
@click.option("--week", type=_DATE, default=None, help="Ein Tag der Woche (JJJJ-MM-TT).")
@click.option("--json", "as_json", is_flag=True, default=False, help="Ausgabe als JSON.")
@click.pass_context
def timetable_diff(ctx: click.Context, klasse: str, week: Optional[datetime], as_json: bool):
    """Vergleicht den Wochenplan mit dem stabilen Plan."""
    from analysis.timetable_diff import diff_week_against_stable
    from export.tui_renderer import build_diff_table
    from services import ScheduleError, ScheduleService

    config = ctx.obj["config"]
    store = _open_store(ctx)
    class_id = _class_id(store, klasse)
    monday = _week_of(week)
    service = ScheduleService(store, config.schedule)
    try:
        diff = diff_week_against_stable(service.week_timetable(class_id, monday),
                                        service.stable_timetable(class_id, monday))
    except ScheduleError as e:
        _abort(str(e))

    if as_json:
        click.echo(diff.to_json())
    elif diff.is_empty():
        console.print("[green]Keine Abweichungen vom stabilen Plan.[/green]")
    else:
        console.print(build_diff_table(diff, config.schedule))


# ─── INVITE ───────────────────────────────────────────────────────────────────

@click.group("invite")
def cmd_invite():
    """Einladungs-Tokens erzeugen und prüfen."""


@cmd_invite.command("roles")
@click.argument("role", type=_ROLE)
def invite_roles(role: str):
    """Zeigt, für welche Rollen ROLE Einladungen erzeugen darf."""
    from access.permissions import invitable_roles
    from models.roles import UserRole

    creator = UserRole.parse(role)
    targets = invitable_roles(creator)
    if not targets:
        console.print(f"[dim]{creator.display_name} darf niemanden einladen.[/dim]")
        return
    table = Table(title=f"Einladbar durch {creator.display_name}", box=box.ROUNDED)
    table.add_column("Rolle", style="bold")
    table.add_column("Bezeichnung")
    for target in targets:
        table.add_row(target.value, target.display_name)
    console.print(table)


@cmd_invite.command("create")
@click.option("--as", "creator_email", required=True, help="E-Mail der einladenden Person.")
@click.option("--role", required=True, type=_ROLE, help="Rolle der eingeladenen Person.")
@click.option("--school", default=None, help="Schule (ID oder Name), sonst die eigene.")
@click.option("--class", "klasse", default=None, help="Klasse (nur für Schüler).")
@click.option("--usage-limit", default=None, type=int, help="Anzahl Nutzungen.")
@click.option("--days", default=None, type=int, help="Gültigkeit in Tagen.")
@click.pass_context
def invite_create(ctx: click.Context, creator_email: str, role: str, school: Optional[str],
                  klasse: Optional[str], usage_limit: Optional[int], days: Optional[int]):
    """Erzeugt ein Einladungs-Token."""
    from models.roles import UserRole
    from services import InviteError, InviteService

    store = _open_store(ctx)
    creator = _user_by_email(store, creator_email)
    school_id = _school_id(store, school) if school else creator.school_id
    class_id = _class_id(store, klasse) if klasse else None
    expires_at = datetime.now(timezone.utc) + timedelta(days=days) if days else None

    service = InviteService(store, ctx.obj["config"].invites)
    try:
        token = service.generate_token(creator, UserRole.parse(role), school_id,
                                       class_id=class_id, expires_at=expires_at,
                                       usage_limit=usage_limit)
    except InviteError as e:
        _abort(str(e))
    _persist(ctx)
    console.print(f"[green]✓[/green] Token: [bold]{token}[/bold]")


@cmd_invite.command("check")
@click.argument("token")
@click.pass_context
def invite_check(ctx: click.Context, token: str):
    """Prüft ein Einladungs-Token oder einen Eltern-Code."""
    from services import InviteError, InviteService

    store = _open_store(ctx)
    try:
        invite = InviteService(store, ctx.obj["config"].invites).validate_token(token)
    except InviteError as e:
        _abort(str(e))

    table = Table(title="Einladung", box=box.ROUNDED)
    table.add_column("Feld", style="bold")
    table.add_column("Wert")
    table.add_row("Rolle", invite.role.display_name)
    table.add_row("Schule", invite.school_id or "—")
    table.add_row("Klasse / Kind", invite.specific_class_id or "—")
    table.add_row("Nutzungen", f"{invite.times_used} / {invite.usage_limit}")
    table.add_row("Ablauf", invite.expires_at.isoformat() if invite.expires_at else "—")
    console.print(table)


# ─── GRADES ───────────────────────────────────────────────────────────────────

@click.command("grades")
@click.argument("student_email")
@click.pass_context
def cmd_grades(ctx: click.Context, student_email: str):
    """Zeigt die Notenübersicht eines Schülers."""
    from services import GradesError, GradesService

    store = _open_store(ctx)
    student = _user_by_email(store, student_email)
    try:
        stats = GradesService(store).subject_stats(student.id)
    except GradesError as e:
        _abort(str(e))

    table = Table(title=f"Noten {student.full_name}", box=box.ROUNDED)
    table.add_column("Fach", style="bold")
    table.add_column("Noten", justify="right")
    table.add_column("Durchschnitt", justify="right")
    table.add_column("Letzte")
    for s in stats:
        latest = s.grades[0] if s.grades else None
        table.add_row(
            s.subject_name,
            str(s.grade_count),
            "—" if s.has_no_grades else f"{s.average:.1f}",
            f"{latest.score:.0f} ({latest.description})" if latest else "",
        )
    console.print(table)


# ─── ASSIGNMENTS ──────────────────────────────────────────────────────────────

def _assignment_table(title: str, assignments) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Fällig", style="bold")
    table.add_column("Fach")
    table.add_column("Titel")
    table.add_column("Erledigt", justify="center")
    for a in assignments:
        table.add_row(a.due_date.strftime("%d.%m.%Y %H:%M"), a.subject.name, a.title,
                      "[green]✓[/green]" if a.is_completed else "")
    return table


@click.group("assignments")
def cmd_assignments():
    """Hausaufgaben anzeigen und anlegen."""


@cmd_assignments.command("list")
@click.argument("student_email")
@click.option("--days", default=7, help="Zeitraum in Tagen ab jetzt.")
@click.pass_context
def assignments_list(ctx: click.Context, student_email: str, days: int):
    """Zeigt die anstehenden Hausaufgaben eines Schülers."""
    from services import AssignmentError, AssignmentService

    store = _open_store(ctx)
    student = _user_by_email(store, student_email)
    try:
        upcoming = AssignmentService(store).upcoming_for_student(student.id, days=days)
    except AssignmentError as e:
        _abort(str(e))
    if not upcoming:
        console.print(f"[dim]Keine Hausaufgaben in den nächsten {days} Tagen.[/dim]")
        return
    console.print(_assignment_table(f"Hausaufgaben {student.full_name}", upcoming))


@cmd_assignments.command("create")
@click.option("--as", "teacher_email", required=True, help="E-Mail der Lehrkraft.")
@click.option("--subject", "subject_ref", required=True, help="Fach (ID oder Name).")
@click.option("--title", required=True, help="Titel der Hausaufgabe.")
@click.option("--due", required=True, type=_DATE, help="Fällig am (JJJJ-MM-TT).")
@click.option("--description", default=None, help="Beschreibung.")
@click.option("--max-score", default=100, type=int, help="Maximale Punktzahl.")
@click.pass_context
def assignments_create(ctx: click.Context, teacher_email: str, subject_ref: str, title: str,
                       due: datetime, description: Optional[str], max_score: int):
    """Legt eine Hausaufgabe an, fällig am Ende des Tages (UTC)."""
    from data.store import eq
    from services import AssignmentError, AssignmentService

    store = _open_store(ctx)
    teacher = _user_by_email(store, teacher_email)
    row = store.select_maybe("subjects", [eq("id", subject_ref)]) \
        or store.select_maybe("subjects", [eq("name", subject_ref), eq("teacher_id", teacher.id)])
    if row is None:
        _abort(f"Fach nicht gefunden: {subject_ref}")
    due_at = due.replace(hour=23, minute=59, tzinfo=timezone.utc)
    try:
        assignment = AssignmentService(store).create_assignment(
            teacher, row["id"], title, due_at, description=description, max_score=max_score)
    except AssignmentError as e:
        _abort(str(e))
    _persist(ctx)
    console.print(f"[green]✓[/green] Hausaufgabe [bold]{assignment.title}[/bold] "
                  f"({assignment.subject.name}), fällig {due_at.strftime('%d.%m.%Y')}")


# ─── TEACHER & PARENT ─────────────────────────────────────────────────────────

@click.command("teacher-stats")
@click.argument("teacher_email")
@click.pass_context
def cmd_teacher_stats(ctx: click.Context, teacher_email: str):
    """Zeigt das Dashboard einer Lehrkraft."""
    from services import ScheduleService, TeacherError, TeacherService

    config = ctx.obj["config"]
    store = _open_store(ctx)
    teacher = _user_by_email(store, teacher_email)
    service = TeacherService(store, ScheduleService(store, config.schedule))
    try:
        stats = service.teacher_stats(teacher)
        subjects = service.my_subjects(teacher)
    except TeacherError as e:
        _abort(str(e))

    table = Table(title=f"Lehrkraft {teacher.full_name}", box=box.ROUNDED)
    table.add_column("Kennzahl", style="bold")
    table.add_column("Wert", justify="right")
    table.add_row("Fächer", str(stats.total_subjects))
    table.add_row("Stunden pro Woche", str(stats.total_lessons))
    table.add_row("Schüler", str(stats.total_students))
    table.add_row("Stunden heute", str(stats.todays_lessons))
    table.add_row("Offene Entschuldigungen", str(stats.pending_excuses))
    table.add_row("Anwesenheit", f"{stats.average_attendance:.1f} %")
    table.add_row("Hausaufgaben offen", str(stats.assignments_due))
    console.print(table)
    if subjects:
        console.print("Fächer: " + ", ".join(s.name for s in subjects))


@click.command("children")
@click.argument("parent_email")
@click.pass_context
def cmd_children(ctx: click.Context, parent_email: str):
    """Zeigt die Kinder eines Elternteils mit Fehlzeiten und Hausaufgaben."""
    from services import ParentError, ParentService

    store = _open_store(ctx)
    parent = _user_by_email(store, parent_email)
    service = ParentService(store)
    try:
        children = service.my_children(parent)
        rows = [(child, service.child_attendance_issues(parent, child.id),
                 service.child_assignments(parent, child.id)) for child in children]
    except ParentError as e:
        _abort(str(e))
    if not rows:
        console.print("[dim]Keine Kinder verknüpft.[/dim]")
        return

    table = Table(title=f"Kinder von {parent.full_name}", box=box.ROUNDED)
    table.add_column("Kind", style="bold")
    table.add_column("Fehlzeiten/Verspätungen", justify="right")
    table.add_column("Hausaufgaben offen", justify="right")
    for child, issues, assignments in rows:
        open_count = sum(1 for a in assignments if not a.is_completed)
        table.add_row(child.full_name, str(len(issues)), str(open_count))
    console.print(table)


# ─── STATS ────────────────────────────────────────────────────────────────────

@click.command("stats")
@click.argument("school")
@click.pass_context
def cmd_stats(ctx: click.Context, school: str):
    """Zeigt Kennzahlen einer Schule (ID oder Name)."""
    from services import AdminError, SchoolAdminService

    store = _open_store(ctx)
    school_id = _school_id(store, school)
    service = SchoolAdminService(store)
    try:
        stats = service.school_stats(school_id)
        deputy = service.deputy_stats(school_id)
    except AdminError as e:
        _abort(str(e))

    table = Table(title="Schul-Kennzahlen", box=box.ROUNDED)
    table.add_column("Kennzahl", style="bold")
    table.add_column("Wert", justify="right")
    table.add_row("Personal", str(stats.total_staff))
    table.add_row("Lehrkräfte", str(stats.total_teachers))
    table.add_row("Leitung", str(stats.total_admins))
    table.add_row("Klassen", str(stats.total_classes))
    table.add_row("Schüler", str(stats.total_students))
    table.add_row("Eltern", str(stats.total_parents))
    table.add_row("Aktive Einladungen", str(stats.active_invite_codes))
    table.add_row("Fächer", str(deputy.total_subjects))
    table.add_row("Stunden", str(deputy.total_lessons))
    table.add_row("Schüler ohne Eltern", str(deputy.students_without_parents))
    table.add_row("Offene Eltern-Einladungen", str(deputy.pending_parent_invites))
    console.print(table)


# ─── ROUTE ────────────────────────────────────────────────────────────────────

@click.command("route")
@click.argument("path")
@click.option("--role", type=_ROLE, default=None, help="Rolle; ohne Angabe nicht angemeldet.")
def cmd_route(path: str, role: Optional[str]):
    """Zeigt, wohin PATH für ROLE weitergeleitet wird."""
    from access.routes import resolve_redirect
    from models.roles import UserRole
    from models.user import AppUser

    user = None
    if role:
        user = AppUser(id="cli", email="cli@classio.local", role=UserRole.parse(role))
    target = resolve_redirect(path, user)
    if target is None:
        console.print(f"[green]{path}[/green] (keine Weiterleitung)")
    else:
        console.print(f"{path} → [yellow]{target}[/yellow]")


# ─── HAUPT-CLI ────────────────────────────────────────────────────────────────

@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path),
              default=None, envvar="CLASSIO_CONFIG",
              help="Pfad der YAML-Konfiguration.")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]):
    """Classio: Schulverwaltung auf der Kommandozeile.

    Starten Sie mit: python main.py setup
    """
    from config.logging_setup import setup_logging
    from config.manager import ConfigManager

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    try:
        config = ConfigManager(config_path=config_path).load_or_default()
    except ValueError as e:
        _abort(str(e))
    ctx.obj["config"] = config
    setup_logging(config.logging)


def main():
    """Einstiegspunkt. Startet automatisch den Wizard beim ersten Aufruf."""
    from config.manager import ConfigManager
    mgr = ConfigManager()

    if len(sys.argv) == 1 and mgr.first_run_check():
        console.print(Panel(
            "[bold]Willkommen bei Classio![/bold]\n\n"
            "Keine Konfiguration gefunden.\n"
            "Der Setup-Wizard wird jetzt gestartet...",
            border_style="cyan",
        ))
        sys.argv.append("setup")

    cli()


# Befehle registrieren
cli.add_command(cmd_setup)
cli.add_command(cmd_config)
cli.add_command(cmd_seed)
cli.add_command(cmd_timetable)
cli.add_command(cmd_invite)
cli.add_command(cmd_grades)
cli.add_command(cmd_assignments)
cli.add_command(cmd_teacher_stats)
cli.add_command(cmd_children)
cli.add_command(cmd_stats)
cli.add_command(cmd_route)


if __name__ == "__main__":
    main()
