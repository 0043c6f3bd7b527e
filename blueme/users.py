"""
User record access on top of the record store.

Users are kept as a flat list of dicts in the "users" collection, keyed by
id with phone as a unique natural key. Records are never deleted.
"""

import logging
from typing import Optional

from blueme.errors import NotFoundError, ValidationError
from blueme.storage import RecordStore
from blueme.utils import new_id, now_iso

logger = logging.getLogger(__name__)

USERS = "users"

# Fields a profile update may touch
PROFILE_FIELDS = ("name", "status", "profilePicture")


def public_user(user: dict) -> dict:
    """Copy of a user record without the password hash."""
    return {key: value for key, value in user.items() if key != "password"}


def get_users(store: RecordStore) -> list:
    return store.load(USERS)


def find_user_by_id(users: list, user_id: str) -> Optional[dict]:
    return next((u for u in users if u.get("id") == user_id), None)


def find_user_by_phone(users: list, phone: str) -> Optional[dict]:
    return next((u for u in users if u.get("phone") == phone), None)


def get_user_by_id(store: RecordStore, user_id: str) -> Optional[dict]:
    return find_user_by_id(get_users(store), user_id)


def get_user_by_phone(store: RecordStore, phone: str) -> Optional[dict]:
    return find_user_by_phone(get_users(store), phone)


def require_user(store: RecordStore, user_id: str) -> dict:
    user = get_user_by_id(store, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def create_user(store: RecordStore, phone: str, password: str, name: str) -> dict:
    """
    Append a new user record and persist the users collection.

    Args:
        store: Record store
        phone: Normalized phone number
        password: Password hash, or "" for a placeholder account
        name: Display name

    Returns:
        The stored record (including the password hash)
    """
    users = get_users(store)
    user = {
        "id": new_id(),
        "phone": phone,
        "password": password,
        "name": name,
        "status": "",
        "profilePicture": "",
        "createdAt": now_iso(),
    }
    users.append(user)
    store.save(USERS, users)
    logger.info(f"Created user {user['id']}", extra={"user_id": user["id"], "placeholder": not password})
    return user


def update_user(store: RecordStore, user_id: str, updates: dict) -> dict:
    """
    Merge updates into a user record and stamp updatedAt.

    id, phone, password and createdAt cannot be changed through here.

    Raises:
        NotFoundError: if the user does not exist
    """
    protected = {"id", "phone", "password", "createdAt"} & set(updates)
    if protected:
        raise ValueError(f"Cannot update protected user fields: {sorted(protected)}")

    users = get_users(store)
    user = find_user_by_id(users, user_id)
    if user is None:
        raise NotFoundError("User not found")

    user.update(updates)
    user["updatedAt"] = now_iso()
    store.save(USERS, users)
    return user


def update_profile(
    store: RecordStore,
    user_id: str,
    name: Optional[str] = None,
    status: Optional[str] = None,
    profile_picture: Optional[str] = None,
) -> dict:
    """
    Update the caller's own profile. None means "leave unchanged";
    an empty profile_picture clears the picture.
    """
    updates = {}
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("Name cannot be empty")
        updates["name"] = name
    if status is not None:
        updates["status"] = status
    if profile_picture is not None:
        updates["profilePicture"] = profile_picture
        logger.debug(f"Updating profile picture: {profile_picture[:50]}...")

    return update_user(store, user_id, updates)


def set_credentials(store: RecordStore, user_id: str, password_hash: str, name: str) -> dict:
    """Give a placeholder account a password and name when its owner registers."""
    users = get_users(store)
    user = find_user_by_id(users, user_id)
    if user is None:
        raise NotFoundError("User not found")
    user["password"] = password_hash
    user["name"] = name
    user["updatedAt"] = now_iso()
    store.save(USERS, users)
    return user
