"""Nachrichten: Direktnachrichten, Gruppen und Ankündigungen.

Direktnachrichten tragen recipient_id, Gruppennachrichten group_id. Der
Lesestatus (is_read) gilt je Nachricht. Eine neue Direktunterhaltung darf
nur beginnen, wer in der Rollenfolge gleich oder höher steht als der
Empfänger; auf eine bestehende Unterhaltung darf jeder antworten.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from access.permissions import can_initiate_conversation
from data.records import (
    display_name,
    group_from_row,
    group_member_from_row,
    message_from_row,
    user_from_row,
)
from data.store import Order, TableStore, eq, in_, neq, now_iso
from models.chat import Conversation, Message, MessageGroup, MessageType
from models.roles import UserRole
from models.user import AppUser
from services.base import ChatError, store_errors

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ChatService:
    def __init__(self, store: TableStore):
        self.store = store

    # ─── Hilfen ───

    def _profile(self, user_id: str) -> Optional[dict]:
        return self.store.select_maybe("profiles", [eq("id", user_id)])

    def _profiles(self, user_ids) -> dict[str, dict]:
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        return {p["id"]: p for p in self.store.select("profiles", [in_("id", ids)])}

    def _messages(self, rows: list[dict]) -> list[Message]:
        senders = self._profiles(r["sender_id"] for r in rows)
        return [message_from_row(r, senders.get(r["sender_id"])) for r in rows]

    def _direct_rows(self, user_id: str, other_id: str) -> list[dict]:
        sent = self.store.select("messages", [
            eq("message_type", MessageType.DIRECT),
            eq("sender_id", user_id), eq("recipient_id", other_id)])
        received = self.store.select("messages", [
            eq("message_type", MessageType.DIRECT),
            eq("sender_id", other_id), eq("recipient_id", user_id)])
        return sorted(sent + received, key=lambda r: r["created_at"])

    def _is_member(self, group_id: str, user_id: str) -> bool:
        return self.store.select_maybe("message_group_members", [
            eq("group_id", group_id), eq("user_id", user_id)]) is not None

    def _insert_message(self, sender: AppUser, content: str, message_type: MessageType,
                        recipient_id: Optional[str] = None,
                        group_id: Optional[str] = None) -> Message:
        row = self.store.insert("messages", {
            "sender_id": sender.id,
            "recipient_id": recipient_id,
            "group_id": group_id,
            "content": content,
            "message_type": message_type,
            "is_read": False,
            "created_at": now_iso(),
        })
        return message_from_row(row, self._profile(sender.id))

    @staticmethod
    def _content(content: str) -> str:
        if not content or not content.strip():
            raise ChatError("Message cannot be empty")
        return content.strip()

    # ─── Direktnachrichten ───

    def send_direct_message(self, sender: AppUser, recipient_id: str, content: str) -> Message:
        content = self._content(content)
        action = "Failed to send message"
        with store_errors(ChatError, action):
            recipient = self._profile(recipient_id)
            if recipient is None:
                raise ChatError(f"{action}: recipient not found")
            if not sender.is_superadmin and recipient.get("role") != UserRole.SUPERADMIN.value \
                    and recipient.get("school_id") != sender.school_id:
                raise ChatError("Recipient is not in your school")
            existing = self._direct_rows(sender.id, recipient_id)
            if not existing and not can_initiate_conversation(
                    sender.role, UserRole.parse(recipient.get("role"))):
                raise ChatError("You cannot start a conversation with this user")
            return self._insert_message(sender, content, MessageType.DIRECT,
                                        recipient_id=recipient_id)

    def direct_messages(self, user: AppUser, other_id: str) -> list[Message]:
        """Verlauf mit other_id, älteste zuerst."""
        with store_errors(ChatError, "Failed to fetch messages"):
            return self._messages(self._direct_rows(user.id, other_id))

    def mark_direct_read(self, user: AppUser, other_id: str) -> int:
        with store_errors(ChatError, "Failed to mark messages as read"):
            updated = self.store.update("messages", {"is_read": True}, [
                eq("message_type", MessageType.DIRECT),
                eq("sender_id", other_id), eq("recipient_id", user.id),
                eq("is_read", False)])
        return len(updated)

    # ─── Gruppen ───

    def group(self, group_id: str) -> Optional[MessageGroup]:
        with store_errors(ChatError, "Failed to fetch group"):
            row = self.store.select_maybe("message_groups", [eq("id", group_id)])
            if row is None:
                return None
            member_rows = self.store.select("message_group_members", [eq("group_id", group_id)])
            profiles = self._profiles(m["user_id"] for m in member_rows)
        members = [group_member_from_row(m, profiles.get(m["user_id"])) for m in member_rows]
        return group_from_row(row, members)

    def create_group(self, creator: AppUser, name: str, member_ids: list[str],
                     type: MessageType = MessageType.GROUP) -> MessageGroup:
        """Legt eine Gruppe an; der Ersteller ist immer Mitglied."""
        if not name or not name.strip():
            raise ChatError("Group name cannot be empty")
        if type == MessageType.ANNOUNCEMENT and not creator.has_admin_privileges:
            raise ChatError("Only administrators can create announcement groups")
        action = "Failed to create group"
        with store_errors(ChatError, action):
            school_id = creator.school_id
            if school_id is None:
                if not creator.is_superadmin:
                    raise ChatError("User has no associated school")
                # superadmin: Schule des ersten Mitglieds, sonst schulübergreifend
                others = [p for p in self._profiles(member_ids).values()
                          if p.get("role") != UserRole.SUPERADMIN.value]
                school_id = others[0].get("school_id") if others else None
            row = self.store.insert("message_groups", {
                "school_id": school_id,
                "name": name.strip(),
                "type": type,
                "created_by": creator.id,
            })
            for user_id in [creator.id] + [m for m in member_ids if m != creator.id]:
                self.store.insert("message_group_members",
                                  {"group_id": row["id"], "user_id": user_id})
        logger.info(f"Gruppe '{name}' mit {len(set(member_ids) | {creator.id})} Mitgliedern angelegt")
        return self.group(row["id"])

    @staticmethod
    def _same_school(actor: AppUser, group_row: dict) -> bool:
        return actor.is_superadmin or actor.belongs_to_school(group_row.get("school_id"))

    def _require_manager(self, actor: AppUser, group_id: str) -> None:
        """Ersteller oder Verwaltung derselben Schule."""
        row = self.store.select_maybe("message_groups", [eq("id", group_id)])
        if row is None:
            raise ChatError("Group not found")
        if row.get("created_by") == actor.id:
            return
        if not actor.has_admin_privileges:
            raise ChatError("Only the group creator can manage members")
        if not self._same_school(actor, row):
            raise ChatError("Group belongs to another school")

    def add_member(self, actor: AppUser, group_id: str, user_id: str) -> None:
        with store_errors(ChatError, "Failed to add group member"):
            self._require_manager(actor, group_id)
            if not self._is_member(group_id, user_id):
                self.store.insert("message_group_members",
                                  {"group_id": group_id, "user_id": user_id})

    def remove_member(self, actor: AppUser, group_id: str, user_id: str) -> None:
        with store_errors(ChatError, "Failed to remove group member"):
            self._require_manager(actor, group_id)
            self.store.delete("message_group_members",
                              [eq("group_id", group_id), eq("user_id", user_id)])

    def leave_group(self, user: AppUser, group_id: str) -> None:
        with store_errors(ChatError, "Failed to leave group"):
            self.store.delete("message_group_members",
                              [eq("group_id", group_id), eq("user_id", user.id)])

    def group_messages(self, user: AppUser, group_id: str) -> list[Message]:
        with store_errors(ChatError, "Failed to fetch group messages"):
            if not self._is_member(group_id, user.id):
                raise ChatError("You are not a member of this group")
            rows = self.store.select("messages", [eq("group_id", group_id)],
                                     order_by=[Order("created_at")])
            return self._messages(rows)

    def send_group_message(self, sender: AppUser, group_id: str, content: str) -> Message:
        content = self._content(content)
        with store_errors(ChatError, "Failed to send group message"):
            if not self._is_member(group_id, sender.id):
                raise ChatError("You are not a member of this group")
            group = self.store.select_maybe("message_groups", [eq("id", group_id)]) or {}
            if MessageType.parse(group.get("type")) == MessageType.ANNOUNCEMENT \
                    and not sender.has_admin_privileges:
                raise ChatError("Only administrators can post in announcement groups")
            return self._insert_message(sender, content, MessageType.GROUP, group_id=group_id)

    def send_announcement(self, sender: AppUser, group_id: str, content: str) -> Message:
        if not sender.has_admin_privileges:
            raise ChatError("Only administrators can send announcements")
        content = self._content(content)
        with store_errors(ChatError, "Failed to send announcement"):
            group = self.store.select_maybe("message_groups", [eq("id", group_id)])
            if group is None:
                raise ChatError("Group not found")
            if not self._same_school(sender, group):
                raise ChatError("Group belongs to another school")
            return self._insert_message(sender, content, MessageType.ANNOUNCEMENT,
                                        group_id=group_id)

    def mark_group_read(self, user: AppUser, group_id: str) -> int:
        with store_errors(ChatError, "Failed to mark messages as read"):
            updated = self.store.update("messages", {"is_read": True}, [
                eq("group_id", group_id), neq("sender_id", user.id), eq("is_read", False)])
        return len(updated)

    # ─── Übersicht ───

    def conversations(self, user: AppUser) -> list[Conversation]:
        """Direkt- und Gruppenunterhaltungen, zuletzt aktive zuerst."""
        with store_errors(ChatError, "Failed to fetch conversations"):
            result = self._direct_conversations(user) + self._group_conversations(user)
        return sorted(result, key=lambda c: c.last_activity_time or _EPOCH, reverse=True)

    def _direct_conversations(self, user: AppUser) -> list[Conversation]:
        rows = self.store.select("messages", [eq("message_type", MessageType.DIRECT),
                                              eq("sender_id", user.id)])
        rows += self.store.select("messages", [eq("message_type", MessageType.DIRECT),
                                               eq("recipient_id", user.id)])
        by_partner: dict[str, list[dict]] = {}
        for row in rows:
            partner = row["recipient_id"] if row["sender_id"] == user.id else row["sender_id"]
            by_partner.setdefault(partner, []).append(row)
        profiles = self._profiles(by_partner)

        conversations = []
        for partner, messages in by_partner.items():
            last = max(messages, key=lambda r: r["created_at"])
            profile = profiles.get(partner)
            unread = sum(1 for r in messages
                         if r["sender_id"] == partner and not r.get("is_read"))
            conversations.append(Conversation(
                id=partner,
                name=display_name(profile) or "Unknown",
                is_group=False,
                last_message=message_from_row(
                    last, profile if last["sender_id"] == partner else self._profile(user.id)),
                unread_count=unread,
                participant_ids=[user.id, partner],
                participant_role=(profile or {}).get("role"),
            ))
        return conversations

    def _group_conversations(self, user: AppUser) -> list[Conversation]:
        memberships = self.store.select("message_group_members", [eq("user_id", user.id)])
        group_ids = [m["group_id"] for m in memberships]
        if not group_ids:
            return []
        conversations = []
        for row in self.store.select("message_groups", [in_("id", group_ids)]):
            messages = self.store.select("messages", [eq("group_id", row["id"])],
                                         order_by=[Order("created_at", desc=True)])
            members = self.store.select("message_group_members", [eq("group_id", row["id"])])
            last = self._messages(messages[:1])
            conversations.append(Conversation(
                id=row["id"],
                name=row.get("name") or "Group",
                is_group=True,
                last_message=last[0] if last else None,
                unread_count=sum(1 for m in messages
                                 if m["sender_id"] != user.id and not m.get("is_read")),
                participant_ids=[m["user_id"] for m in members],
                created_at=row.get("created_at"),
            ))
        return conversations

    def total_unread(self, user: AppUser) -> int:
        return sum(c.unread_count for c in self.conversations(user))

    def can_user_initiate(self, user: AppUser, conversation: Conversation) -> bool:
        """Gruppen immer; Direktunterhaltungen nach Rollenfolge."""
        if conversation.is_group:
            return True
        return can_initiate_conversation(user.role, UserRole.parse(conversation.participant_role))

    def search_users(self, user: AppUser, query: str = "", limit: int = 20) -> list[AppUser]:
        """Personen der eigenen Schule (superadmin: alle), Name oder E-Mail enthält query."""
        needle = query.strip().lower()
        filters = [neq("id", user.id)]
        if not user.is_superadmin:
            filters.append(eq("school_id", user.school_id))
        with store_errors(ChatError, "Failed to fetch recipients"):
            rows = self.store.select("profiles", filters,
                                     order_by=[Order("last_name"), Order("first_name")])
        hits = []
        for row in rows:
            haystack = " ".join(str(row.get(k) or "") for k in
                                ("first_name", "last_name", "email")).lower()
            if needle in haystack:
                hits.append(user_from_row(row))
            if len(hits) >= limit:
                break
        return hits
