from __future__ import annotations

from .models import UserProfile, to_document
from .store import DocumentStore

USERS = "users"


def load_profile(store: DocumentStore, user_id: str) -> UserProfile:
    data = store.get(USERS, user_id)
    if data is None:
        return UserProfile(user_id=user_id)
    data.setdefault("user_id", user_id)
    return UserProfile.model_validate(data)


def profile_exists(store: DocumentStore, user_id: str) -> bool:
    return store.get(USERS, user_id) is not None


def save_profile(store: DocumentStore, profile: UserProfile) -> None:
    store.set(USERS, profile.user_id, to_document(profile), merge=True)
