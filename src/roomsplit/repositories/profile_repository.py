import logging
import secrets
import string
from dataclasses import fields as dataclass_fields
from decimal import Decimal
from typing import Any, Dict, List, Optional

from roomsplit.database.document_store import (
    Document,
    DocumentNotFoundError,
    DocumentStore,
    PersistenceError,
)
from roomsplit.domain.models import ReceiptFile, UserProfile
from roomsplit.storage.base import MediaStore

logger = logging.getLogger(__name__)

USERS = "users"

ROOM_ID_PREFIX = "room-"
ROOM_ID_ALPHABET = string.ascii_lowercase + string.digits
ROOM_ID_LENGTH = 8

PROFILE_FIELDS = {f.name for f in dataclass_fields(UserProfile)}


def generate_room_id() -> str:
    """New room key, e.g. 'room-k3x9a0qz'."""
    suffix = "".join(secrets.choice(ROOM_ID_ALPHABET) for _ in range(ROOM_ID_LENGTH))
    return f"{ROOM_ID_PREFIX}{suffix}"


class ProfileRepository:
    """
    User profiles and room membership.

    Rooms are not stored on their own: a room exists as long as some
    profile carries its room_id.
    """

    def __init__(self, store: DocumentStore, media_store: Optional[MediaStore] = None):
        self.store = store
        self.media_store = media_store

    def create(self, profile: UserProfile) -> UserProfile:
        """Store a new profile (sign-up)."""
        self.store.set(USERS, profile.user_id, self._profile_to_document(profile))
        return profile

    def get(self, user_id: str) -> Optional[UserProfile]:
        document = self.store.get(USERS, user_id)
        if document is None:
            return None
        return self._document_to_profile(document)

    def join(self, user_id: str, room_id: str) -> None:
        """
        Put a user in a room.

        Any room_id is accepted, there is nothing to check it against.
        """
        self._update(user_id, {"room_id": room_id})

    def create_room(self, user_id: str) -> str:
        """Generate a fresh room id and move the user into it."""
        room_id = generate_room_id()
        self.join(user_id, room_id)
        logger.info("User %s created room %s", user_id, room_id)
        return room_id

    def leave(self, user_id: str) -> None:
        self._update(user_id, {"room_id": None})

    def update_profile(self, user_id: str, partial: Dict[str, Any]) -> None:
        """
        Merge the supplied fields into the profile.

        Raises:
            ValueError: If partial tries to change user_id or names an
                unknown field
            PersistenceError: If the profile doesn't exist
        """
        if "user_id" in partial and partial["user_id"] != user_id:
            raise ValueError("user_id cannot be changed")

        unknown = set(partial) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

        changes = {k: v for k, v in partial.items() if k != "user_id"}
        self._update(user_id, self._serialize_fields(changes))

    def update_avatar(self, user_id: str, file: ReceiptFile) -> str:
        """
        Upload a new avatar and point the profile at it.

        Returns:
            The avatar's public URL

        Raises:
            StorageError: If the upload fails
        """
        if self.media_store is None:
            raise RuntimeError("ProfileRepository has no media store configured")

        stored = self.media_store.store(user_id, file, folder="avatars", unique=False)
        self._update(user_id, {"avatar_url": stored.url})
        return stored.url

    def list_members(self, room_id: str) -> List[UserProfile]:
        """Everyone currently in a room (the roster)."""
        return [
            self._document_to_profile(doc)
            for doc in self.store.query(USERS, "room_id", room_id)
        ]

    def _update(self, user_id: str, fields: Document) -> None:
        try:
            self.store.update(USERS, user_id, fields)
        except DocumentNotFoundError as e:
            raise PersistenceError(
                f"No profile found for user '{user_id}'. Please sign up first."
            ) from e

    def _serialize_fields(self, fields: Dict[str, Any]) -> Document:
        serialized = dict(fields)
        if serialized.get("monthly_budget") is not None:
            serialized["monthly_budget"] = str(serialized["monthly_budget"])
        if "category_budgets" in serialized:
            serialized["category_budgets"] = {
                category: str(limit)
                for category, limit in (serialized["category_budgets"] or {}).items()
            }
        return serialized

    def _profile_to_document(self, profile: UserProfile) -> Document:
        return self._serialize_fields({
            "user_id": profile.user_id,
            "name": profile.name,
            "email": profile.email,
            "room_id": profile.room_id,
            "avatar_url": profile.avatar_url,
            "monthly_budget": profile.monthly_budget,
            "category_budgets": profile.category_budgets,
        })

    def _document_to_profile(self, document: Document) -> UserProfile:
        monthly_budget = document.get("monthly_budget")
        return UserProfile(
            user_id=document.get("user_id") or document["id"],
            name=document.get("name", ""),
            email=document.get("email", ""),
            room_id=document.get("room_id"),
            avatar_url=document.get("avatar_url"),
            monthly_budget=Decimal(monthly_budget) if monthly_budget is not None else None,
            category_budgets={
                category: Decimal(limit)
                for category, limit in (document.get("category_budgets") or {}).items()
            },
        )
