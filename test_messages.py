"""
Tests for the message conversation log: GET/POST /messages.

Tests cover:
- Sending messages and content validation
- Conversation symmetry and ordering
- Implicit read receipts on fetch
- The register / add contact / send / fetch scenario end to end
"""

import pytest

from blueme import messages as conversation_log
from blueme.errors import NotFoundError, ValidationError
from conftest import ALICE, BOB, login, register


class TestSendMessage:

    def test_send(self, alice, bob):
        alice_client, alice_user = alice
        _, bob_user = bob

        response = alice_client.post("/messages", json={"receiverId": bob_user["id"], "content": "  hi  "})

        assert response.status_code == 201
        message = response.json()
        assert message["senderId"] == alice_user["id"]
        assert message["receiverId"] == bob_user["id"]
        assert message["content"] == "hi"
        assert message["read"] is False
        assert message["id"]
        assert message["timestamp"].endswith("Z")

    @pytest.mark.parametrize("content", ["", "   ", None])
    def test_empty_content_rejected(self, alice, bob, content):
        alice_client, _ = alice
        _, bob_user = bob

        response = alice_client.post("/messages", json={"receiverId": bob_user["id"], "content": content})

        assert response.status_code == 400
        assert response.json()["detail"] == "Receiver ID and content are required"

    def test_missing_receiver(self, alice):
        alice_client, _ = alice

        response = alice_client.post("/messages", json={"content": "hi"})

        assert response.status_code == 400

    def test_unknown_receiver(self, alice):
        alice_client, _ = alice

        response = alice_client.post("/messages", json={"receiverId": "nobody", "content": "hi"})

        assert response.status_code == 404

    def test_content_too_long(self, alice, bob):
        alice_client, _ = alice
        _, bob_user = bob

        response = alice_client.post("/messages", json={"receiverId": bob_user["id"], "content": "x" * 4097})

        assert response.status_code == 400

    def test_send_refreshes_sender_presence(self, alice, bob, store):
        alice_client, alice_user = alice
        _, bob_user = bob
        before = next(u for u in store.load("users") if u["id"] == alice_user["id"])["lastSeen"]

        alice_client.post("/messages", json={"receiverId": bob_user["id"], "content": "hi"})

        after = next(u for u in store.load("users") if u["id"] == alice_user["id"])["lastSeen"]
        assert after >= before


class TestConversation:

    @pytest.fixture
    def chat(self, alice, bob):
        alice_client, alice_user = alice
        bob_client, bob_user = bob
        alice_client.post("/messages", json={"receiverId": bob_user["id"], "content": "one"})
        bob_client.post("/messages", json={"receiverId": alice_user["id"], "content": "two"})
        alice_client.post("/messages", json={"receiverId": bob_user["id"], "content": "three"})
        return alice_client, alice_user, bob_client, bob_user

    def test_missing_user_id(self, alice):
        alice_client, _ = alice

        response = alice_client.get("/messages")

        assert response.status_code == 400
        assert response.json()["detail"] == "User ID is required"

    def test_same_messages_from_both_sides(self, chat):
        alice_client, alice_user, bob_client, bob_user = chat

        from_alice = alice_client.get("/messages", params={"userId": bob_user["id"]}).json()
        from_bob = bob_client.get("/messages", params={"userId": alice_user["id"]}).json()

        assert [m["id"] for m in from_alice] == [m["id"] for m in from_bob]
        assert [m["content"] for m in from_alice] == ["one", "two", "three"]

    def test_sorted_by_timestamp(self, chat):
        alice_client, _, _, bob_user = chat

        conversation = alice_client.get("/messages", params={"userId": bob_user["id"]}).json()

        timestamps = [m["timestamp"] for m in conversation]
        assert timestamps == sorted(timestamps)

    def test_other_conversations_excluded(self, chat, make_client):
        alice_client, _, _, bob_user = chat
        carol_client = make_client()
        carol = register(carol_client, "5550001111", "pw", "Carol")
        login(carol_client, "5550001111", "pw")
        carol_client.post("/messages", json={"receiverId": bob_user["id"], "content": "private"})

        conversation = alice_client.get("/messages", params={"userId": bob_user["id"]}).json()

        assert "private" not in [m["content"] for m in conversation]
        assert carol["id"] not in {m["senderId"] for m in conversation}

    def test_sorting_uses_timestamp_not_insertion_order(self, store):
        store.save("messages", [
            {"id": "2", "senderId": "a", "receiverId": "b", "content": "late",
             "timestamp": "2025-01-15T10:05:00.000Z", "read": False},
            {"id": "1", "senderId": "b", "receiverId": "a", "content": "early",
             "timestamp": "2025-01-15T10:00:00.000Z", "read": False},
            {"id": "3", "senderId": "a", "receiverId": "c", "content": "elsewhere",
             "timestamp": "2025-01-15T09:00:00.000Z", "read": False},
        ])

        conversation = conversation_log.get_conversation(store, "a", "b")

        assert [m["id"] for m in conversation] == ["1", "2"]


class TestReadReceipts:

    def test_fetch_marks_incoming_read(self, alice, bob, store):
        alice_client, alice_user = alice
        bob_client, bob_user = bob
        alice_client.post("/messages", json={"receiverId": bob_user["id"], "content": "hi"})

        first = bob_client.get("/messages", params={"userId": alice_user["id"]}).json()
        second = bob_client.get("/messages", params={"userId": alice_user["id"]}).json()

        # The fetch that marks a message read still shows it as it was
        assert first[0]["read"] is False
        assert second[0]["read"] is True
        assert store.load("messages")[0]["read"] is True

    def test_sender_fetch_does_not_mark_read(self, alice, bob, store):
        alice_client, _ = alice
        _, bob_user = bob
        alice_client.post("/messages", json={"receiverId": bob_user["id"], "content": "hi"})

        alice_client.get("/messages", params={"userId": bob_user["id"]})

        assert store.load("messages")[0]["read"] is False

    def test_mark_read_counts_changes(self, store):
        store.save("messages", [
            {"id": "1", "senderId": "b", "receiverId": "a", "content": "x", "timestamp": "2025-01-15T10:00:00.000Z", "read": False},
            {"id": "2", "senderId": "b", "receiverId": "a", "content": "y", "timestamp": "2025-01-15T10:01:00.000Z", "read": True},
            {"id": "3", "senderId": "a", "receiverId": "b", "content": "z", "timestamp": "2025-01-15T10:02:00.000Z", "read": False},
        ])

        assert conversation_log.mark_read(store, "a", "b") == 1
        assert conversation_log.mark_read(store, "a", "b") == 0
        assert [m["read"] for m in store.load("messages")] == [True, True, False]

    def test_unread_count(self):
        messages = [
            {"senderId": "b", "receiverId": "a", "read": False},
            {"senderId": "b", "receiverId": "a", "read": True},
            {"senderId": "a", "receiverId": "b", "read": False},
            {"senderId": "c", "receiverId": "a", "read": False},
        ]
        assert conversation_log.unread_count(messages, "a", "b") == 1
        assert conversation_log.unread_count(messages, "b", "a") == 1
        assert conversation_log.unread_count(messages, "a", "c") == 1


class TestSendService:

    def test_unknown_receiver(self, store):
        with pytest.raises(NotFoundError):
            conversation_log.send(store, "a", "nobody", "hi")

    def test_whitespace_content(self, store):
        with pytest.raises(ValidationError):
            conversation_log.send(store, "a", "b", " \n\t ")


class TestScenario:

    def test_alice_and_bob(self, make_client, store):
        """Register both, Alice adds Bob by id and says hi, Bob reads it."""
        alice_client = make_client()
        bob_client = make_client()
        alice_user = register(alice_client, **ALICE)
        bob_user = register(bob_client, **BOB)
        login(alice_client, ALICE["phone"], ALICE["password"])
        login(bob_client, BOB["phone"], BOB["password"])

        assert alice_client.post("/contacts", json={"contactId": bob_user["id"]}).status_code == 201
        assert alice_client.post("/messages", json={"receiverId": bob_user["id"], "content": "hi"}).status_code == 201

        received = bob_client.get("/messages", params={"userId": alice_user["id"]}).json()

        assert len(received) == 1
        assert received[0]["content"] == "hi"
        assert store.load("messages")[0]["read"] is True
        assert bob_client.get("/messages", params={"userId": alice_user["id"]}).json()[0]["read"] is True

        bob_contact = alice_client.get("/contacts").json()[0]
        assert bob_contact["id"] == bob_user["id"]
        assert bob_contact["unreadCount"] == 0
