"""Tests for RealtimeCoordinator event handling.

Covers:
* authenticate: presence broadcast and online snapshot
* message:send / message:read routing and validation
* presence:update and notification:read fan-out
* disconnect cleanup
* push/broadcast entry points used by HTTP handlers
"""
import asyncio

import pytest

from agora.realtime import RealtimeCoordinator
from agora.realtime.messaging import INVALID_MESSAGE

from conftest import TYPING_WINDOW, FakeWebSocket, join


# ---------------------------------------------------------------------------
# authenticate
# ---------------------------------------------------------------------------


class TestAuthenticate:

    @pytest.mark.asyncio
    async def test_snapshot_and_online_broadcast(self, coordinator):
        _, alice_ws = await join(coordinator, "alice")

        bob_ws = FakeWebSocket()
        bob = coordinator.connect(bob_ws)
        await coordinator.handle(bob, "authenticate", "bob")

        assert alice_ws.payloads("user:status") == [{"userId": "bob", "status": "online"}]
        assert bob_ws.payloads("online:users") == [["alice"]]
        # The authenticating connection does not hear its own online event.
        assert bob_ws.events("user:status") == []

    @pytest.mark.asyncio
    async def test_snapshot_excludes_self(self, coordinator):
        ws = FakeWebSocket()
        cid = coordinator.connect(ws)
        await coordinator.handle(cid, "authenticate", {"userId": "alice"})
        assert ws.payloads("online:users") == [[]]

    @pytest.mark.asyncio
    async def test_unauthenticated_peers_hear_online(self, coordinator):
        _, lurker_ws = await join(coordinator)
        await join(coordinator, "alice")
        # join() clears its own socket only; the lurker saw alice come online.
        assert lurker_ws.payloads("user:status") == [{"userId": "alice", "status": "online"}]

    @pytest.mark.asyncio
    async def test_empty_user_id_is_silent_noop(self, coordinator):
        _, peer_ws = await join(coordinator, "peer")
        cid, ws = await join(coordinator)

        await coordinator.handle(cid, "authenticate", "")

        assert ws.sent == []
        assert peer_ws.sent == []
        assert coordinator.registry.user_for(cid) is None

    @pytest.mark.asyncio
    async def test_reauthentication_as_other_user_ignored(self, coordinator):
        cid, _ = await join(coordinator, "alice")
        await coordinator.handle(cid, "authenticate", "mallory")
        assert coordinator.registry.user_for(cid) == "alice"
        assert coordinator.registry.lookup("mallory") is None


# ---------------------------------------------------------------------------
# message:send
# ---------------------------------------------------------------------------


class TestMessageSend:

    @pytest.mark.asyncio
    async def test_delivers_and_confirms(self, coordinator):
        alice, alice_ws = await join(coordinator, "alice")
        _, bob_ws = await join(coordinator, "bob")

        await coordinator.handle(alice, "message:send", {"recipientId": "bob", "content": "hi"})

        [received] = bob_ws.payloads("message:new")
        [confirmed] = alice_ws.payloads("message:sent")
        assert received == confirmed
        assert received["senderId"] == "alice"
        assert received["recipientId"] == "bob"
        assert received["content"] == "hi"
        assert received["isRead"] is False
        assert received["id"]
        assert received["timestamp"]

    @pytest.mark.asyncio
    async def test_offline_recipient_still_confirmed(self, coordinator):
        alice, alice_ws = await join(coordinator, "alice")
        _, bob_ws = await join(coordinator, "bob")

        await coordinator.handle(alice, "message:send", {"recipientId": "ghost", "content": "hi"})

        assert len(alice_ws.events("message:sent")) == 1
        assert alice_ws.events("message:new") == []
        assert bob_ws.events("message:new") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [
        {"recipientId": "bob", "content": ""},
        {"recipientId": "", "content": "hi"},
        {"content": "hi"},
        None,
        "not an object",
    ])
    async def test_invalid_input_errors_to_sender_only(self, coordinator, data):
        alice, alice_ws = await join(coordinator, "alice")
        _, bob_ws = await join(coordinator, "bob")

        await coordinator.handle(alice, "message:send", data)

        assert alice_ws.payloads("error") == [{"message": INVALID_MESSAGE}]
        assert alice_ws.events("message:sent") == []
        assert bob_ws.sent == []

    @pytest.mark.asyncio
    async def test_unauthenticated_sender_gets_error(self, coordinator):
        cid, ws = await join(coordinator)
        _, bob_ws = await join(coordinator, "bob")

        await coordinator.handle(cid, "message:send", {"recipientId": "bob", "content": "hi"})

        assert ws.payloads("error") == [{"message": INVALID_MESSAGE}]
        assert bob_ws.sent == []

    @pytest.mark.asyncio
    async def test_message_ids_are_unique(self, coordinator):
        alice, alice_ws = await join(coordinator, "alice")
        for _ in range(5):
            await coordinator.handle(alice, "message:send", {"recipientId": "bob", "content": "x"})
        ids = {payload["id"] for payload in alice_ws.payloads("message:sent")}
        assert len(ids) == 5


# ---------------------------------------------------------------------------
# message:read, presence:update, notification:read
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_read_receipt_broadcast_to_others(coordinator):
    alice, alice_ws = await join(coordinator, "alice")
    _, bob_ws = await join(coordinator, "bob")
    _, carol_ws = await join(coordinator, "carol")

    await coordinator.handle(alice, "message:read", "msg-1")

    expected = [{"messageId": "msg-1", "readBy": "alice"}]
    assert bob_ws.payloads("message:read") == expected
    assert carol_ws.payloads("message:read") == expected
    assert alice_ws.events("message:read") == []


@pytest.mark.asyncio
async def test_read_receipt_requires_message_id(coordinator):
    alice, alice_ws = await join(coordinator, "alice")
    await coordinator.handle(alice, "message:read", None)
    assert len(alice_ws.events("error")) == 1


@pytest.mark.asyncio
async def test_presence_update_passthrough(coordinator):
    alice, alice_ws = await join(coordinator, "alice")
    _, bob_ws = await join(coordinator, "bob")

    await coordinator.handle(alice, "presence:update", "out-to-lunch")

    [payload] = bob_ws.payloads("user:presence")
    assert payload["userId"] == "alice"
    assert payload["status"] == "out-to-lunch"
    assert "lastSeen" in payload
    assert alice_ws.events("user:presence") == []


@pytest.mark.asyncio
async def test_presence_update_unauthenticated(coordinator):
    cid, ws = await join(coordinator)
    await coordinator.handle(cid, "presence:update", "away")
    assert ws.payloads("error") == [{"message": "Not authenticated"}]


@pytest.mark.asyncio
async def test_notification_read_reaches_other_sessions_only(coordinator):
    phone, phone_ws = await join(coordinator, "alice")
    _, laptop_ws = await join(coordinator, "alice")
    _, bob_ws = await join(coordinator, "bob")

    await coordinator.handle(phone, "notification:read", "n-42")

    assert laptop_ws.payloads("notification:marked-read") == ["n-42"]
    assert phone_ws.events("notification:marked-read") == []
    assert bob_ws.sent == []


@pytest.mark.asyncio
async def test_notification_read_requires_id_and_user(coordinator):
    phone, phone_ws = await join(coordinator, "alice")
    _, laptop_ws = await join(coordinator, "alice")
    anonymous, anonymous_ws = await join(coordinator)

    await coordinator.handle(phone, "notification:read", None)
    await coordinator.handle(phone, "notification:read", {"notificationId": ""})
    await coordinator.handle(anonymous, "notification:read", "n-42")

    assert phone_ws.payloads("error") == [{"message": "Invalid notification id"}] * 2
    assert anonymous_ws.payloads("error") == [{"message": "Not authenticated"}]
    assert laptop_ws.sent == []


@pytest.mark.asyncio
async def test_unknown_event_reports_error(coordinator):
    cid, ws = await join(coordinator, "alice")
    await coordinator.handle(cid, "post:like", {})
    assert ws.payloads("error") == [{"message": "Unknown event: post:like"}]


@pytest.mark.asyncio
async def test_typing_events_through_dispatch(coordinator):
    alice, _ = await join(coordinator, "alice")
    _, bob_ws = await join(coordinator, "bob")

    await coordinator.handle(alice, "typing:start", {"recipientId": "bob"})
    await coordinator.handle(alice, "typing:stop", {"recipientId": "bob"})

    assert [f["event"] for f in bob_ws.sent] == ["user:typing", "user:stopped-typing"]


@pytest.mark.asyncio
async def test_typing_from_unauthenticated_connection_ignored(coordinator):
    cid, ws = await join(coordinator)
    _, bob_ws = await join(coordinator, "bob")

    await coordinator.handle(cid, "typing:start", {"recipientId": "bob"})

    assert ws.events("user:typing") == []
    assert bob_ws.sent == []


# ---------------------------------------------------------------------------
# disconnect
# ---------------------------------------------------------------------------


class TestDisconnect:

    @pytest.mark.asyncio
    async def test_offline_broadcast(self, coordinator):
        _, alice_ws = await join(coordinator, "alice")
        bob, _ = await join(coordinator, "bob")
        alice_ws.clear()

        await coordinator.disconnect(bob)

        [payload] = alice_ws.payloads("user:status")
        assert payload["userId"] == "bob"
        assert payload["status"] == "offline"
        assert payload["lastSeen"]
        assert coordinator.registry.lookup("bob") is None

    @pytest.mark.asyncio
    async def test_cancels_only_that_users_timer(self, coordinator):
        alice, _ = await join(coordinator, "alice")
        _, bob_ws = await join(coordinator, "bob")
        await join(coordinator, "carol")

        await coordinator.typing.start("alice", "bob")
        await coordinator.typing.start("carol", "bob")
        bob_ws.clear()

        await coordinator.disconnect(alice)

        assert not coordinator.typing.is_typing("alice")
        assert coordinator.typing.is_typing("carol")
        assert coordinator.registry.lookup("carol") is not None

        await asyncio.sleep(TYPING_WINDOW * 2)
        # Only carol's indicator expires; alice's was dropped silently.
        assert bob_ws.payloads("user:stopped-typing") == [{"userId": "carol"}]

    @pytest.mark.asyncio
    async def test_stop_typing_on_disconnect_option(self):
        coord = RealtimeCoordinator(
            typing_window_seconds=TYPING_WINDOW, stop_typing_on_disconnect=True
        )
        try:
            alice, _ = await join(coord, "alice")
            _, bob_ws = await join(coord, "bob")
            await coord.typing.start("alice", "bob")

            await coord.disconnect(alice)

            assert bob_ws.payloads("user:stopped-typing") == [{"userId": "alice"}]
        finally:
            coord.shutdown()

    @pytest.mark.asyncio
    async def test_unauthenticated_disconnect_is_quiet(self, coordinator):
        _, alice_ws = await join(coordinator, "alice")
        cid, _ = await join(coordinator)

        await coordinator.disconnect(cid)

        assert alice_ws.sent == []
        assert coordinator.registry.connection_count() == 1

    @pytest.mark.asyncio
    async def test_superseded_connection_does_not_go_offline(self, coordinator):
        _, bob_ws = await join(coordinator, "bob")
        old, _ = await join(coordinator, "alice")
        new, _ = await join(coordinator, "alice")
        bob_ws.clear()

        await coordinator.disconnect(old)

        assert bob_ws.sent == []
        assert coordinator.registry.lookup("alice") == new


# ---------------------------------------------------------------------------
# Integration surface
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_push_to_user(coordinator):
    _, alice_ws = await join(coordinator, "alice")
    _, bob_ws = await join(coordinator, "bob")

    await coordinator.notifications.push_to_user("alice", {"type": "new_follower"})
    await coordinator.notifications.push_to_user("ghost", {"type": "new_follower"})

    assert alice_ws.payloads("notification:new") == [{"type": "new_follower"}]
    assert bob_ws.sent == []


@pytest.mark.asyncio
async def test_broadcast_all_reaches_every_connection(coordinator):
    _, alice_ws = await join(coordinator, "alice")
    _, anon_ws = await join(coordinator)

    await coordinator.notifications.broadcast_all("maintenance at noon")

    for ws in (alice_ws, anon_ws):
        [payload] = ws.payloads("announcement")
        assert payload["message"] == "maintenance at noon"
        assert payload["timestamp"]
