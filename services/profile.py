"""Eigenes Profil bearbeiten: Name, Kurzbeschreibung, Telefon und Avatar."""

import logging
from typing import Optional

from data.records import user_from_row
from data.store import TableStore, eq
from models.user import AppUser
from services.base import ProfileError, store_errors

logger = logging.getLogger(__name__)


def _stripped(value: Optional[str]) -> Optional[str]:
    """Leerer Text löscht das Feld."""
    if value is None:
        return None
    return value.strip() or None


class ProfileService:
    def __init__(self, store: TableStore):
        self.store = store

    def _update(self, user: AppUser, values: dict, action: str) -> AppUser:
        with store_errors(ProfileError, action):
            rows = self.store.update("profiles", values, [eq("id", user.id)])
        if not rows:
            raise ProfileError(f"{action}: profile not found")
        return user_from_row(rows[0])

    def update_profile(self, user: AppUser, first_name: Optional[str] = None,
                       last_name: Optional[str] = None, bio: Optional[str] = None,
                       phone_number: Optional[str] = None) -> AppUser:
        """Ändert nur übergebene Felder; "" leert ein Feld."""
        fields = {"first_name": first_name, "last_name": last_name,
                  "bio": bio, "phone_number": phone_number}
        values = {k: _stripped(v) for k, v in fields.items() if v is not None}
        if not values:
            return user
        updated = self._update(user, values, "Failed to update profile")
        logger.info(f"Profil von {user.email} geändert: {', '.join(sorted(values))}")
        return updated

    def update_avatar(self, user: AppUser, avatar_url: str) -> AppUser:
        if not avatar_url or not avatar_url.strip():
            raise ProfileError("Avatar URL cannot be empty")
        updated = self._update(user, {"avatar_url": avatar_url.strip()},
                               "Failed to update avatar")
        logger.info(f"Avatar von {user.email} geändert")
        return updated
