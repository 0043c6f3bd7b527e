"""
Presence tracking.

A user's presence is just the lastSeen timestamp on their record, refreshed
by client heartbeats. "Online" means lastSeen falls inside a fixed window.
Clients poll for it; nothing is pushed.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from blueme.storage import RecordStore
from blueme.users import get_users, update_user
from blueme.utils import parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

ONLINE_THRESHOLD = timedelta(minutes=5)


def heartbeat(store: RecordStore, user_id: str, now: Optional[datetime] = None) -> str:
    """Set the user's lastSeen to now and return the stored timestamp."""
    last_seen = to_iso(now or utc_now())
    update_user(store, user_id, {"lastSeen": last_seen})
    logger.debug(f"Heartbeat from {user_id} at {last_seen}")
    return last_seen


def is_online(last_seen: Optional[str], now: Optional[datetime] = None) -> bool:
    seen = parse_iso(last_seen)
    if seen is None:
        return False
    return (now or utc_now()) - seen < ONLINE_THRESHOLD


def presence_of(user: dict, now: Optional[datetime] = None) -> dict:
    return {
        "isOnline": is_online(user.get("lastSeen"), now),
        "lastSeen": user.get("lastSeen"),
    }


def status_of(store: RecordStore, user_ids: Iterable[str], now: Optional[datetime] = None) -> dict:
    """
    Presence for each requested id, keyed by id.
    Ids that do not match a user are left out of the result.
    """
    now = now or utc_now()
    users = {u["id"]: u for u in get_users(store)}
    return {
        user_id: presence_of(users[user_id], now)
        for user_id in user_ids
        if user_id in users
    }


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''} ago"


def format_last_seen(last_seen: Optional[str], now: Optional[datetime] = None) -> str:
    """Human readable "last seen" text, e.g. "5 minutes ago"."""
    seen = parse_iso(last_seen)
    if seen is None:
        return "Offline"

    elapsed = (now or utc_now()) - seen
    minutes = int(elapsed.total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return _plural(minutes, "minute")
    if hours < 24:
        return _plural(hours, "hour")
    if days < 7:
        return _plural(days, "day")
    return seen.date().isoformat()
