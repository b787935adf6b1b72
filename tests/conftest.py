"""Gemeinsame Fixtures: In-Memory-Speicher mit einer kleinen Schule."""

from dataclasses import dataclass

import pytest

from data.records import user_from_row
from data.store import InMemoryStore
from models.roles import UserRole
from models.user import AppUser


@dataclass
class MiniSchool:
    """Eine Schule mit Klasse 7b, zwei Fächern und je einer Person pro Rolle.

    student ist in 7b eingeschrieben und mit parent verknüpft, student2
    hat weder Klasse noch Eltern. other_teacher gehört zu einer zweiten Schule.
    """

    store: InMemoryStore
    school_id: str
    other_school_id: str
    class_id: str
    math_id: str          # Mathematik, unterrichtet von teacher
    art_id: str           # Kunst, unterrichtet von teacher2
    superadmin: AppUser
    bigadmin: AppUser
    admin: AppUser
    teacher: AppUser
    teacher2: AppUser
    student: AppUser
    student2: AppUser
    parent: AppUser
    other_teacher: AppUser


def _make_profile(store: InMemoryStore, role: UserRole, school_id, first: str,
                  last: str) -> AppUser:
    row = store.insert("profiles", {
        "email": f"{first}.{last}@test.de".lower(),
        "role": role,
        "first_name": first,
        "last_name": last,
        "school_id": school_id,
    })
    return user_from_row(row)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def school(store: InMemoryStore) -> MiniSchool:
    school_id = store.insert("schools", {"name": "Testschule"})["id"]
    other_school_id = store.insert("schools", {"name": "Andere Schule"})["id"]

    superadmin = _make_profile(store, UserRole.SUPERADMIN, None, "Sam", "Super")
    bigadmin = _make_profile(store, UserRole.BIGADMIN, school_id, "Berta", "Leitung")
    admin = _make_profile(store, UserRole.ADMIN, school_id, "Anton", "Vertretung")
    teacher = _make_profile(store, UserRole.TEACHER, school_id, "Tina", "Lehrer")
    teacher2 = _make_profile(store, UserRole.TEACHER, school_id, "Kurt", "Kunst")
    student = _make_profile(store, UserRole.STUDENT, school_id, "Sina", "Schmidt")
    student2 = _make_profile(store, UserRole.STUDENT, school_id, "Ole", "Ohneklasse")
    parent = _make_profile(store, UserRole.PARENT, school_id, "Petra", "Schmidt")
    other_teacher = _make_profile(store, UserRole.TEACHER, other_school_id, "Otto", "Fremd")

    class_id = store.insert("classes", {"school_id": school_id, "name": "7b",
                                        "grade_level": "7"})["id"]
    math_id = store.insert("subjects", {"name": "Mathematik", "class_id": class_id,
                                        "teacher_id": teacher.id, "color": 0xFF2196F3})["id"]
    art_id = store.insert("subjects", {"name": "Kunst", "class_id": class_id,
                                       "teacher_id": teacher2.id})["id"]
    store.insert("class_students", {"class_id": class_id, "student_id": student.id})
    store.insert("parent_student", {"parent_id": parent.id, "student_id": student.id})

    return MiniSchool(
        store=store,
        school_id=school_id,
        other_school_id=other_school_id,
        class_id=class_id,
        math_id=math_id,
        art_id=art_id,
        superadmin=superadmin,
        bigadmin=bigadmin,
        admin=admin,
        teacher=teacher,
        teacher2=teacher2,
        student=student,
        student2=student2,
        parent=parent,
        other_teacher=other_teacher,
    )
