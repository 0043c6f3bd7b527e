"""
Message conversation log.

Messages live in one flat list. A conversation is the subset exchanged
between two users in either direction, ordered by timestamp. The only
mutation after a send is the read flag going from false to true.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from blueme.errors import NotFoundError, ValidationError
from blueme.storage import RecordStore
from blueme.users import get_user_by_id
from blueme.utils import new_id, now_iso, parse_iso

logger = logging.getLogger(__name__)

MESSAGES = "messages"
MAX_CONTENT_LENGTH = 4096
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _between(message: dict, user_a: str, user_b: str) -> bool:
    sender, receiver = message.get("senderId"), message.get("receiverId")
    return (sender == user_a and receiver == user_b) or (sender == user_b and receiver == user_a)


def _sort_key(message: dict):
    # Unparseable timestamps sort first rather than failing the whole fetch
    return parse_iso(message.get("timestamp")) or EPOCH


def get_conversation(store: RecordStore, user_a: str, user_b: str) -> list:
    """All messages between user_a and user_b, oldest first."""
    messages = [m for m in store.load(MESSAGES) if _between(m, user_a, user_b)]
    return sorted(messages, key=_sort_key)


def send(store: RecordStore, sender_id: str, receiver_id: Optional[str], content: Optional[str]) -> dict:
    """
    Append a message from sender to receiver.

    Raises:
        ValidationError: missing receiver, empty or oversized content
        NotFoundError: receiver does not exist
    """
    text = (content or "").strip()
    if not receiver_id or not text:
        raise ValidationError("Receiver ID and content are required")
    if len(text) > MAX_CONTENT_LENGTH:
        raise ValidationError(f"Message content must be at most {MAX_CONTENT_LENGTH} characters")
    if get_user_by_id(store, receiver_id) is None:
        raise NotFoundError("User not found")

    messages = store.load(MESSAGES)
    message = {
        "id": new_id(),
        "senderId": sender_id,
        "receiverId": receiver_id,
        "content": text,
        "timestamp": now_iso(),
        "read": False,
    }
    messages.append(message)
    store.save(MESSAGES, messages)
    logger.info(f"Message {message['id']} stored", extra={"sender_id": sender_id, "receiver_id": receiver_id})
    return message


def mark_read(store: RecordStore, reader_id: str, other_id: str) -> int:
    """
    Mark every unread message other -> reader as read.

    Returns:
        Number of messages that changed
    """
    messages = store.load(MESSAGES)
    changed = 0
    for message in messages:
        if message.get("senderId") == other_id and message.get("receiverId") == reader_id and not message.get("read"):
            message["read"] = True
            changed += 1

    if changed:
        store.save(MESSAGES, messages)
        logger.debug(f"Marked {changed} messages from {other_id} as read for {reader_id}")
    return changed


def unread_count(messages: list, reader_id: str, other_id: str) -> int:
    return sum(
        1 for m in messages
        if m.get("senderId") == other_id and m.get("receiverId") == reader_id and not m.get("read")
    )


def fetch_conversation(store: RecordStore, reader_id: str, other_id: str) -> list:
    """
    Return the conversation as the reader saw it, then mark incoming messages read.

    Read receipts are implicit: fetching is what marks a message read, so the
    first fetch after a send still reports read=false.
    """
    conversation = get_conversation(store, reader_id, other_id)
    mark_read(store, reader_id, other_id)
    return conversation
