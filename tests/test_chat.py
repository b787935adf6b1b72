"""Tests für Direktnachrichten, Gruppen und Ankündigungen."""

import pytest

from data.records import user_from_row
from models.chat import Conversation, MessageType
from models.roles import UserRole
from services.base import ChatError
from services.chat import ChatService


# ─── Hilfsfunktionen ──────────────────────────────────────────────────────────

def _make_foreign_admin(school):
    return user_from_row(school.store.insert("profiles", {
        "email": "fremd.admin@test.de", "role": UserRole.ADMIN,
        "first_name": "Fritz", "last_name": "Fremd", "school_id": school.other_school_id,
    }))


# ─── DIREKTNACHRICHTEN ────────────────────────────────────────────────────────

class TestDirectMessages:
    def test_teacher_writes_student(self, school):
        chat = ChatService(school.store)
        msg = chat.send_direct_message(school.teacher, school.student.id, "  Hallo Sina  ")
        assert msg.content == "Hallo Sina"
        assert msg.type == MessageType.DIRECT
        assert msg.sender_name == "Tina Lehrer"
        assert msg.recipient_id == school.student.id

    def test_student_cannot_start(self, school):
        """Schüler dürfen Lehrkräfte nicht von sich aus anschreiben."""
        with pytest.raises(ChatError, match="cannot start a conversation"):
            ChatService(school.store).send_direct_message(
                school.student, school.teacher.id, "Hallo")

    def test_student_may_reply(self, school):
        chat = ChatService(school.store)
        chat.send_direct_message(school.teacher, school.student.id, "Hausaufgaben?")
        chat.send_direct_message(school.student, school.teacher.id, "Erledigt")
        history = chat.direct_messages(school.student, school.teacher.id)
        assert [m.content for m in history] == ["Hausaufgaben?", "Erledigt"]

    def test_other_school(self, school):
        with pytest.raises(ChatError, match="not in your school"):
            ChatService(school.store).send_direct_message(
                school.teacher, school.other_teacher.id, "Hallo")

    def test_superadmin_reaches_all_schools(self, school):
        msg = ChatService(school.store).send_direct_message(
            school.superadmin, school.other_teacher.id, "Wartung heute Abend")
        assert msg.sender_name == "Admin Sam"

    def test_nobody_starts_with_superadmin(self, school):
        with pytest.raises(ChatError, match="cannot start a conversation"):
            ChatService(school.store).send_direct_message(
                school.bigadmin, school.superadmin.id, "Hallo")

    def test_empty_message(self, school):
        with pytest.raises(ChatError, match="Message cannot be empty"):
            ChatService(school.store).send_direct_message(
                school.teacher, school.student.id, "   ")

    def test_unknown_recipient(self, school):
        with pytest.raises(ChatError, match="recipient not found"):
            ChatService(school.store).send_direct_message(school.teacher, "nope", "Hallo")

    def test_mark_read(self, school):
        chat = ChatService(school.store)
        chat.send_direct_message(school.teacher, school.student.id, "Eins")
        chat.send_direct_message(school.teacher, school.student.id, "Zwei")
        assert chat.total_unread(school.student) == 2
        assert chat.total_unread(school.teacher) == 0
        assert chat.mark_direct_read(school.student, school.teacher.id) == 2
        assert chat.total_unread(school.student) == 0


# ─── GRUPPEN ──────────────────────────────────────────────────────────────────

class TestGroups:
    def test_create_group_includes_creator(self, school):
        chat = ChatService(school.store)
        group = chat.create_group(school.teacher, " Mathe-AG ",
                                  [school.student.id, school.student2.id])
        assert group.name == "Mathe-AG"
        assert group.school_id == school.school_id
        assert set(group.member_ids) == {school.teacher.id, school.student.id,
                                         school.student2.id}
        assert group.type == MessageType.GROUP

    def test_empty_name(self, school):
        with pytest.raises(ChatError, match="Group name cannot be empty"):
            ChatService(school.store).create_group(school.teacher, "  ", [])

    def test_superadmin_group_takes_member_school(self, school):
        group = ChatService(school.store).create_group(
            school.superadmin, "Support", [school.bigadmin.id])
        assert group.school_id == school.school_id
        names = {m.user_id: m.user_name for m in group.members}
        assert names[school.superadmin.id] == "Admin Sam"

    def test_group_messages_members_only(self, school):
        chat = ChatService(school.store)
        group = chat.create_group(school.teacher, "AG", [school.student.id])
        chat.send_group_message(school.student, group.id, "Frage")
        assert [m.content for m in chat.group_messages(school.teacher, group.id)] == ["Frage"]
        with pytest.raises(ChatError, match="not a member"):
            chat.group_messages(school.student2, group.id)
        with pytest.raises(ChatError, match="not a member"):
            chat.send_group_message(school.student2, group.id, "Hallo")

    def test_manage_members(self, school):
        chat = ChatService(school.store)
        group = chat.create_group(school.teacher, "AG", [school.student.id])
        chat.add_member(school.teacher, group.id, school.student2.id)
        chat.add_member(school.teacher, group.id, school.student2.id)
        assert len(chat.group(group.id).members) == 3
        chat.remove_member(school.teacher, group.id, school.student.id)
        assert school.student.id not in chat.group(group.id).member_ids

    def test_only_creator_or_admin_manages(self, school):
        chat = ChatService(school.store)
        group = chat.create_group(school.teacher, "AG", [school.student.id])
        with pytest.raises(ChatError, match="Only the group creator"):
            chat.add_member(school.teacher2, group.id, school.student2.id)
        chat.add_member(school.admin, group.id, school.student2.id)

    def test_leave_group(self, school):
        chat = ChatService(school.store)
        group = chat.create_group(school.teacher, "AG", [school.student.id])
        chat.leave_group(school.student, group.id)
        assert chat.group(group.id).member_ids == [school.teacher.id]

    def test_unknown_group(self, school):
        assert ChatService(school.store).group("nope") is None

    def test_group_unread(self, school):
        chat = ChatService(school.store)
        group = chat.create_group(school.teacher, "AG", [school.student.id])
        chat.send_group_message(school.student, group.id, "Frage")
        conversation = next(c for c in chat.conversations(school.teacher) if c.is_group)
        assert conversation.unread_count == 1
        assert conversation.last_message_preview == "Frage"
        assert chat.mark_group_read(school.teacher, group.id) == 1
        assert chat.total_unread(school.teacher) == 0


# ─── ANKÜNDIGUNGEN ────────────────────────────────────────────────────────────

class TestAnnouncements:
    def test_only_admins_create(self, school):
        with pytest.raises(ChatError, match="Only administrators can create announcement"):
            ChatService(school.store).create_group(
                school.teacher, "Info", [], type=MessageType.ANNOUNCEMENT)

    def test_members_cannot_post(self, school):
        chat = ChatService(school.store)
        group = chat.create_group(school.admin, "Info", [school.student.id],
                                  type=MessageType.ANNOUNCEMENT)
        with pytest.raises(ChatError, match="Only administrators can post"):
            chat.send_group_message(school.student, group.id, "Hallo")
        msg = chat.send_announcement(school.admin, group.id, "Schulfest am Freitag")
        assert msg.type == MessageType.ANNOUNCEMENT

    def test_send_announcement_requires_admin(self, school):
        chat = ChatService(school.store)
        group = chat.create_group(school.teacher, "AG", [school.student.id])
        with pytest.raises(ChatError, match="Only administrators can send announcements"):
            chat.send_announcement(school.teacher, group.id, "Info")

    def test_foreign_school_admin_rejected(self, school):
        """Eine Verwaltung einer anderen Schule darf weder posten noch Mitglieder ändern."""
        chat = ChatService(school.store)
        group = chat.create_group(school.admin, "Info", [school.student.id],
                                  type=MessageType.ANNOUNCEMENT)
        foreign = _make_foreign_admin(school)
        with pytest.raises(ChatError, match="Group belongs to another school"):
            chat.send_announcement(foreign, group.id, "Fremd")
        with pytest.raises(ChatError, match="Group belongs to another school"):
            chat.add_member(foreign, group.id, school.student2.id)
        with pytest.raises(ChatError, match="Group belongs to another school"):
            chat.remove_member(foreign, group.id, school.student.id)
        assert chat.group(group.id).member_ids == [school.admin.id, school.student.id]
        assert chat.send_announcement(school.superadmin, group.id, "Wartung").type \
            == MessageType.ANNOUNCEMENT


# ─── ÜBERSICHT ────────────────────────────────────────────────────────────────

class TestConversations:
    def test_lists_direct_and_groups(self, school):
        chat = ChatService(school.store)
        chat.send_direct_message(school.teacher, school.student.id, "Hallo")
        group = chat.create_group(school.teacher, "AG", [school.student.id])
        conversations = chat.conversations(school.student)
        ids = {c.id for c in conversations}
        assert ids == {school.teacher.id, group.id}
        direct = next(c for c in conversations if not c.is_group)
        assert direct.name == "Tina Lehrer"
        assert direct.participant_role == "teacher"

    def test_can_user_initiate(self, school):
        chat = ChatService(school.store)
        direct = Conversation(id=school.teacher.id, name="Tina", is_group=False,
                              participant_role="teacher")
        group = Conversation(id="g", name="AG", is_group=True)
        assert not chat.can_user_initiate(school.student, direct)
        assert chat.can_user_initiate(school.admin, direct)
        assert chat.can_user_initiate(school.student, group)

    def test_search_users_same_school(self, school):
        """Suche nach Name oder E-Mail, ohne sich selbst, nur eigene Schule."""
        chat = ChatService(school.store)
        hits = chat.search_users(school.teacher, "schmidt")
        assert [u.first_name for u in hits] == ["Petra", "Sina"]
        assert all(u.school_id == school.school_id for u in chat.search_users(school.teacher))
        assert school.teacher.id not in {u.id for u in chat.search_users(school.teacher)}

    def test_search_users_superadmin_all(self, school):
        hits = ChatService(school.store).search_users(school.superadmin, "fremd")
        assert [u.id for u in hits] == [school.other_teacher.id]

    def test_search_limit(self, school):
        assert len(ChatService(school.store).search_users(school.admin, limit=2)) == 2
