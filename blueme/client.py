"""
Python client for the Blue+Me API and the polling loop that keeps a chat
view fresh.

ChatPoller mirrors what the browser does: independent asyncio timers on one
event loop re-fetch the open conversation, send heartbeats and refresh
contact presence. Each tick is launched as its own task, so a slow response
can overlap the next tick; nothing is coalesced, retried or backed off.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx

logger = logging.getLogger(__name__)

MESSAGE_POLL_INTERVAL = 2.0
HEARTBEAT_INTERVAL = 30.0
PRESENCE_POLL_INTERVAL = 10.0

MessagesCallback = Callable[[str, list], Any]
PresenceCallback = Callable[[dict], Any]


class BlueMeClient:
    """
    Thin async wrapper over the HTTP API. The session cookie set by login()
    is kept by the underlying httpx client and sent on every later call.
    """

    def __init__(self, base_url: str = "http://localhost:8000", http: Optional[httpx.AsyncClient] = None):
        self.http = http or httpx.AsyncClient(base_url=base_url)

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "BlueMeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        response = await self.http.request(method, url, **kwargs)
        response.raise_for_status()
        return response.json()

    # Auth

    async def register(self, phone: str, password: str, name: str) -> dict:
        return await self._request("POST", "/auth/register", json={"phone": phone, "password": password, "name": name})

    async def login(self, phone: str, password: str) -> dict:
        return await self._request("POST", "/auth/login", json={"phone": phone, "password": password})

    async def logout(self) -> dict:
        return await self._request("POST", "/auth/logout")

    # Contacts and users

    async def contacts(self) -> list:
        return await self._request("GET", "/contacts")

    async def add_contact(self, contact_id: Optional[str] = None, phone: Optional[str] = None,
                          name: Optional[str] = None) -> dict:
        if contact_id:
            body = {"contactId": contact_id}
        else:
            body = {"phone": phone, "name": name}
        return await self._request("POST", "/contacts", json=body)

    async def search_users(self, query: str) -> list:
        return await self._request("GET", "/users/search", params={"q": query})

    async def user(self, user_id: str) -> dict:
        return await self._request("GET", f"/users/{user_id}")

    # Messages

    async def conversation(self, user_id: str) -> list:
        return await self._request("GET", "/messages", params={"userId": user_id})

    async def send(self, receiver_id: str, content: str) -> dict:
        return await self._request("POST", "/messages", json={"receiverId": receiver_id, "content": content})

    # Presence

    async def heartbeat(self) -> dict:
        return await self._request("POST", "/users/status")

    async def statuses(self, user_ids: Iterable[str]) -> dict:
        ids = ",".join(user_ids)
        if not ids:
            return {}
        return await self._request("GET", "/users/status", params={"userIds": ids})

    # Profile

    async def profile(self) -> dict:
        return await self._request("GET", "/profile")

    async def update_profile(self, **fields) -> dict:
        return await self._request("PUT", "/profile", json=fields)


async def _maybe_await(value: Any) -> None:
    if asyncio.iscoroutine(value):
        await value


class ChatPoller:
    """
    Timer-driven refresh loop for one signed-in client.

    - every message_interval seconds while a conversation is open: fetch it
      and call on_messages(contact_id, messages)
    - every heartbeat_interval seconds: POST a heartbeat
    - every presence_interval seconds: fetch presence for the watched
      contacts and call on_presence(status_map)

    Every timer fires once straight away. open_conversation() replaces the
    conversation timer; stop() cancels all timers and waits for fetches that
    are still in flight.
    """

    def __init__(
        self,
        client: BlueMeClient,
        on_messages: Optional[MessagesCallback] = None,
        on_presence: Optional[PresenceCallback] = None,
        message_interval: float = MESSAGE_POLL_INTERVAL,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        presence_interval: float = PRESENCE_POLL_INTERVAL,
    ):
        self.client = client
        self.on_messages = on_messages
        self.on_presence = on_presence
        self.message_interval = message_interval
        self.heartbeat_interval = heartbeat_interval
        self.presence_interval = presence_interval

        self.contact_ids: list = []
        self.open_contact_id: Optional[str] = None
        self._timers: dict = {}
        self._in_flight: set = set()

    @property
    def running(self) -> bool:
        return bool(self._timers)

    # Timers

    def _start_timer(self, name: str, interval: float, tick: Callable[[], Awaitable[None]]) -> None:
        self._cancel_timer(name)
        self._timers[name] = asyncio.create_task(self._every(name, interval, tick), name=f"poller-{name}")

    def _cancel_timer(self, name: str) -> None:
        timer = self._timers.pop(name, None)
        if timer is not None:
            timer.cancel()

    async def _every(self, name: str, interval: float, tick: Callable[[], Awaitable[None]]) -> None:
        while True:
            task = asyncio.create_task(self._run_tick(name, tick))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            await asyncio.sleep(interval)

    async def _run_tick(self, name: str, tick: Callable[[], Awaitable[None]]) -> None:
        try:
            await tick()
        except httpx.HTTPError as e:
            # The next tick is the retry
            logger.warning(f"Poll '{name}' failed: {e}")
        except Exception:
            logger.exception(f"Poll '{name}' raised")

    # Ticks

    async def _fetch_conversation(self, contact_id: str) -> None:
        messages = await self.client.conversation(contact_id)
        if self.on_messages is not None:
            await _maybe_await(self.on_messages(contact_id, messages))

    async def _send_heartbeat(self) -> None:
        await self.client.heartbeat()

    async def _fetch_presence(self) -> None:
        if not self.contact_ids:
            return
        status_map = await self.client.statuses(self.contact_ids)
        if self.on_presence is not None:
            await _maybe_await(self.on_presence(status_map))

    # Public API

    async def start(self, contact_ids: Optional[Iterable[str]] = None) -> None:
        """
        Start heartbeat and presence timers. Without contact_ids the
        caller's contact list is fetched once to decide whom to watch.
        """
        if contact_ids is None:
            contact_ids = [contact["id"] for contact in await self.client.contacts()]
        self.watch(contact_ids)
        self._start_timer("heartbeat", self.heartbeat_interval, self._send_heartbeat)
        self._start_timer("presence", self.presence_interval, self._fetch_presence)

    def watch(self, contact_ids: Iterable[str]) -> None:
        """Replace the set of contacts whose presence is polled."""
        self.contact_ids = list(contact_ids)

    def open_conversation(self, contact_id: str) -> None:
        self.open_contact_id = contact_id
        self._start_timer(
            "conversation",
            self.message_interval,
            lambda: self._fetch_conversation(contact_id),
        )

    def close_conversation(self) -> None:
        self.open_contact_id = None
        self._cancel_timer("conversation")

    async def stop(self) -> None:
        """Cancel every timer, then let in-flight fetches settle."""
        for name in list(self._timers):
            self._cancel_timer(name)
        self.open_contact_id = None
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
