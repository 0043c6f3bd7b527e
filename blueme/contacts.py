"""
Contact directory.

Contacts are directed edges owner -> contact, stored in a map keyed by owner
id: {"<ownerId>": [{"userId", "contactId", "addedAt"}, ...]}. An edge is
never duplicated and adding one is not reciprocal.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from blueme.errors import NotFoundError, ValidationError
from blueme.messages import MESSAGES, unread_count
from blueme.presence import presence_of
from blueme.storage import RecordStore
from blueme.users import create_user, find_user_by_phone, get_user_by_id, get_users
from blueme.utils import normalize_phone, now_iso, utc_now, validate_phone

logger = logging.getLogger(__name__)

CONTACTS = "contacts"


@dataclass(frozen=True)
class AddByPhoneResult:
    """
    Outcome of add_contact_by_phone.

    created is True when no account existed for the phone and a placeholder
    user (empty password) was made for it.
    """
    user: dict
    created: bool


def get_contact_edges(store: RecordStore, owner_id: str) -> list:
    return store.load(CONTACTS).get(owner_id, [])


def _contact_ids(store: RecordStore, owner_id: str) -> set:
    return {edge["contactId"] for edge in get_contact_edges(store, owner_id)}


def _add_edge(store: RecordStore, owner_id: str, contact_id: str) -> bool:
    """Persist owner -> contact unless it already exists. Returns True if added."""
    contacts = store.load(CONTACTS)
    edges = contacts.setdefault(owner_id, [])
    if any(edge["contactId"] == contact_id for edge in edges):
        return False

    edges.append({
        "userId": owner_id,
        "contactId": contact_id,
        "addedAt": now_iso(),
    })
    store.save(CONTACTS, contacts)
    logger.info(f"Contact added: {owner_id} -> {contact_id}")
    return True


def list_contacts(store: RecordStore, owner_id: str, now: Optional[datetime] = None) -> list:
    """
    Owner's contacts joined with each contact's current profile, presence
    and the number of messages from them the owner has not read yet.
    """
    now = now or utc_now()
    users = {u["id"]: u for u in get_users(store)}
    messages = store.load(MESSAGES)

    result = []
    for edge in get_contact_edges(store, owner_id):
        user = users.get(edge["contactId"])
        if user is None:
            logger.warning(f"Contact edge {owner_id} -> {edge['contactId']} points at a missing user")
            continue
        result.append({
            "id": user["id"],
            "name": user.get("name", ""),
            "phone": user.get("phone", ""),
            "status": user.get("status") or "",
            "profilePicture": user.get("profilePicture") or "",
            "addedAt": edge["addedAt"],
            **presence_of(user, now),
            "unreadCount": unread_count(messages, owner_id, user["id"]),
        })
    return result


def search_users(store: RecordStore, query: Optional[str], excluding_owner_id: str) -> list:
    """
    Users whose name contains query (case-insensitive) or whose phone contains
    the whitespace-stripped query. The caller and their existing contacts are
    never returned.
    """
    query = query or ""
    name_query = query.lower()
    phone_query = normalize_phone(query)
    excluded = _contact_ids(store, excluding_owner_id) | {excluding_owner_id}

    return [
        {"id": user["id"], "name": user.get("name", ""), "phone": user.get("phone", "")}
        for user in get_users(store)
        if user["id"] not in excluded
        and (name_query in user.get("name", "").lower() or phone_query in user.get("phone", ""))
    ]


def add_contact_by_id(store: RecordStore, owner_id: str, target_id: str) -> dict:
    """
    Add an existing user as a contact. Adding the same user twice is a no-op.

    Raises:
        NotFoundError: target does not exist
        ValidationError: target is the owner
    """
    target = get_user_by_id(store, target_id)
    if target is None:
        raise NotFoundError("User not found")
    if target_id == owner_id:
        raise ValidationError("Cannot add yourself as a contact")

    _add_edge(store, owner_id, target_id)
    return target


def add_contact_by_phone(store: RecordStore, owner_id: str, phone: str, name: Optional[str]) -> AddByPhoneResult:
    """
    Add a contact by phone number, creating a placeholder account when the
    number is unknown. The placeholder has an empty password and cannot log
    in until its owner registers.

    Raises:
        ValidationError: bad phone format, missing name, target is the owner,
            or target is already a contact
    """
    normalized = validate_phone(phone)
    if not name or not name.strip():
        raise ValidationError("Either contactId or phone and name are required")

    target = find_user_by_phone(get_users(store), normalized)
    created = False
    if target is None:
        target = create_user(store, phone=normalized, password="", name=name.strip())
        created = True

    if target["id"] == owner_id:
        raise ValidationError("Cannot add yourself as a contact")
    if target["id"] in _contact_ids(store, owner_id):
        raise ValidationError("This contact is already in your contact list")

    _add_edge(store, owner_id, target["id"])
    return AddByPhoneResult(user=target, created=created)
