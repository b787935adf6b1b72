from config.schema import (
    AuthConfig,
    BackendConfig,
    BackendKind,
    ClassioConfig,
    InviteConfig,
    LoggingConfig,
    ScheduleConfig,
)


# Sonderzeichen, von denen ein Passwort mindestens eines enthalten muss
PASSWORD_SPECIAL_CHARS = '!@#$%^&*(),.?":{}|<>'

# Tabellen des Backends
TABLES = (
    "schools",
    "profiles",
    "classes",
    "class_students",
    "subjects",
    "lessons",
    "grades",
    "assignments",
    "assignment_submissions",
    "attendance",
    "absence_excuses",
    "message_groups",
    "message_group_members",
    "messages",
    "invite_tokens",
    "invite_codes",
    "parent_student",
    "parent_invites",
)

# Eindeutige Spalten(-kombinationen) je Tabelle (Postgres unique constraints)
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    "profiles": [("email",)],
    "invite_tokens": [("token",)],
    "invite_codes": [("code",)],
    "class_students": [("class_id", "student_id")],
    "parent_student": [("parent_id", "student_id")],
    "parent_invites": [("code",)],
    "attendance": [("lesson_id", "student_id", "date")],
    "absence_excuses": [("attendance_id",)],
    "assignment_submissions": [("assignment_id", "student_id")],
    "message_group_members": [("group_id", "user_id")],
}


def default_backend() -> BackendConfig:
    """Lokales JSON-Backend unter output/."""
    return BackendConfig(kind=BackendKind.JSON,
                         data_path="output/classio_data.json")


def default_config() -> ClassioConfig:
    """Vollständige Standardkonfiguration.

    Passwortregeln: mind. 12 Zeichen, 5 Fehlversuche in 15 Minuten
    führen zu 30 Minuten Sperre. Tokens: 16 Zeichen, einmal nutzbar.
    """
    return ClassioConfig(
        app_name="Classio",
        backend=default_backend(),
        auth=AuthConfig(),
        invites=InviteConfig(),
        schedule=ScheduleConfig(),
        logging=LoggingConfig(),
    )
