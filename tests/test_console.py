import asyncio
import json

import httpx
import pytest

from agent_relay.client.console import EMAIL_REQUESTED_TEXT, AdminConsoleSession
from agent_relay.models.schemas import MessageRole

API = "/api/agent"

REST_HISTORY = {
    "items": [{"role": "user", "text": "rest 1", "ts": "2024-01-01T10:00:00Z"}],
    "email": "ann@example.com",
}
SOCKET_HISTORY = [
    {"role": "user", "text": "socket 1", "ts": "2024-01-01T10:00:00Z"},
    {"role": "admin", "text": "socket 2", "ts": "2024-01-01T10:01:00Z"},
]


def room_item(room_id, email=None, unread=0):
    return {"roomId": room_id, "lastMsgAt": "2024-01-01T10:00:00", "unread": unread, "email": email}


@pytest.fixture
def console(api, sockets):
    return AdminConsoleSession(
        api, base_url="http://relay.test", socket_factory=sockets, history_fallback_delay=60,
    )


@pytest.fixture
async def connected(console):
    await console.connect()
    yield console
    await console.disconnect()


def texts(messages):
    return [m.text for m in messages]


async def test_connect_asks_for_presence(connected, sockets):
    socket = sockets.last
    assert "role=admin" in socket.url
    assert socket.emitted == [("agent:admin_status:get", None)]

    await socket.trigger("agent:admin_status", {"online": True})
    assert connected.online


async def test_select_room_requests_history(connected, sockets, relay):
    relay.add("GET", f"{API}/rooms", json={"items": [room_item("room-a", email="ann@example.com")]})
    await connected.refresh_rooms()

    await connected.select_room("room-a")

    assert ("agent:get_history", {"room": "room-a"}) in sockets.last.emitted
    assert connected.selected_room == "room-a"
    assert connected.selected_room_email == "ann@example.com"
    assert connected.loading_history
    assert connected.messages == []


async def test_socket_history_after_rest_history_wins(connected, sockets, relay):
    relay.add("GET", f"{API}/rooms/room-a/messages", json=REST_HISTORY)
    await connected.select_room("room-a")

    assert await connected.fetch_history_rest("room-a", connected.generation)
    assert texts(connected.messages) == ["rest 1"]

    await sockets.last.trigger("agent:room_history", {"room": "room-a", "messages": SOCKET_HISTORY})

    assert texts(connected.messages) == ["socket 1", "socket 2"]
    assert [m.role for m in connected.messages] == [MessageRole.USER, MessageRole.ADMIN]
    assert not connected.loading_history


async def test_rest_history_after_socket_history_is_dropped(connected, sockets, relay):
    relay.add("GET", f"{API}/rooms/room-a/messages", json=REST_HISTORY)
    await connected.select_room("room-a")
    await sockets.last.trigger(
        "agent:room_history", {"room": "room-a", "messages": SOCKET_HISTORY, "email": "ann@example.com"},
    )

    assert not await connected.fetch_history_rest("room-a", connected.generation)
    assert texts(connected.messages) == ["socket 1", "socket 2"]
    assert connected.selected_room_email == "ann@example.com"


async def test_rest_fallback_fills_history_when_socket_is_silent(api, sockets, relay):
    relay.add("GET", f"{API}/rooms/room-a/messages", json=REST_HISTORY)
    console = AdminConsoleSession(api, socket_factory=sockets, history_fallback_delay=0.01)
    await console.connect()

    await console.select_room("room-a")
    await asyncio.sleep(0.1)

    assert texts(console.messages) == ["rest 1"]
    assert console.selected_room_email == "ann@example.com"
    assert not console.loading_history
    await console.disconnect()


async def test_late_history_for_previous_room_is_ignored(connected, sockets, relay):
    relay.add("GET", f"{API}/rooms/room-a/messages", json=REST_HISTORY)
    relay.add("GET", f"{API}/rooms", json={"items": []})

    await connected.select_room("room-a")
    generation_a = connected.generation
    await connected.select_room("room-b")

    await sockets.last.trigger("agent:room_history", {"room": "room-a", "messages": SOCKET_HISTORY})
    assert connected.messages == []

    assert not await connected.fetch_history_rest("room-a", generation_a)
    assert connected.messages == []

    await sockets.last.trigger("agent:user_message", {"room": "room-a", "text": "from a"})
    assert connected.messages == []

    await sockets.last.trigger("agent:user_message", {"room": "room-b", "text": "from b"})
    assert texts(connected.messages) == ["from b"]
    assert connected.selected_room == "room-b"


async def test_live_events_append_and_refresh_rooms(connected, sockets, relay):
    relay.add("GET", f"{API}/rooms", json={"items": [room_item("room-a", unread=1)]})
    await connected.select_room("room-a")
    socket = sockets.last

    await socket.trigger("agent:user_message", {"room": "room-a", "text": "hello", "email": "ann@example.com"})
    await socket.trigger("agent:agent_reply", {"room": "room-a", "text": "auto"})
    await socket.trigger("agent:system", {"room": "room-a", "text": "Chat ended by user."})

    assert [(m.role, m.text) for m in connected.messages] == [
        ("user", "hello"), ("agent", "auto"), ("system", "Chat ended by user."),
    ]
    assert connected.selected_room_email == "ann@example.com"
    assert len(relay.calls("GET", f"{API}/rooms")) == 1
    assert connected.rooms[0].unread == 1


async def test_send_reply_is_optimistic(connected, sockets):
    await connected.select_room("room-a")

    message = await connected.send_reply("  On it  ")

    assert message.role == MessageRole.ADMIN
    assert connected.messages[-1].text == "On it"
    assert ("agent:admin_reply", {"room": "room-a", "text": "On it"}) in sockets.last.emitted


async def test_send_reply_is_listed_before_it_is_sent(connected, sockets):
    await connected.select_room("room-a")
    socket = sockets.last
    emit = socket.emit
    listed_at_emit = []

    async def recording_emit(event, data=None):
        listed_at_emit.append(texts(connected.messages))
        await emit(event, data)

    socket.emit = recording_emit
    await connected.send_reply("On it")

    assert listed_at_emit[-1][-1] == "On it"


async def test_send_reply_needs_room_and_text(connected):
    assert await connected.send_reply("hello") is None
    await connected.select_room("room-a")
    assert await connected.send_reply("   ") is None
    assert connected.messages == []


async def test_request_email(connected, sockets):
    await connected.select_room("room-a")
    await connected.request_email()

    assert ("agent:request_email", {"room": "room-a"}) in sockets.last.emitted
    assert connected.messages[-1].role == MessageRole.SYSTEM
    assert connected.messages[-1].text == EMAIL_REQUESTED_TEXT


async def test_toggle_presence(console, relay):
    relay.add("PUT", f"{API}/presence", json={"online": True})

    assert await console.toggle_presence() is True
    assert console.online
    assert console.notices.items[-1].level == "success"
    assert json.loads(relay.requests[0].content) == {"online": True}


async def test_toggle_presence_reverts_on_failure(console, relay):
    relay.add("PUT", f"{API}/presence", status_code=503, json={"detail": "Presence store unavailable"})

    assert await console.toggle_presence() is False
    assert not console.online
    assert len(console.notices.errors()) == 1


async def test_load_presence(console, relay):
    relay.add("GET", f"{API}/presence", json={"online": True})
    await console.load_presence()
    assert console.online


async def test_delete_room_requires_confirmation(connected, relay):
    relay.add("DELETE", f"{API}/rooms/room-a", json={"message": "Room deleted successfully"})
    await connected.select_room("room-a")

    assert not await connected.delete_room(confirm=False)
    assert not await connected.delete_room(confirm=lambda: False)
    assert relay.calls("DELETE", f"{API}/rooms/room-a") == []
    assert connected.selected_room == "room-a"


async def test_delete_room(connected, relay):
    remaining = [room_item("room-a"), room_item("room-b")]

    def list_rooms(request):
        return httpx.Response(200, json={"items": remaining})

    def delete(request):
        remaining.pop(0)
        return httpx.Response(200, json={"message": "Room deleted successfully"})

    relay.add("GET", f"{API}/rooms", handler=list_rooms)
    relay.add("DELETE", f"{API}/rooms/room-a", handler=delete)
    await connected.refresh_rooms()
    await connected.select_room("room-a")

    assert await connected.delete_room(confirm=lambda: True)

    assert connected.selected_room is None
    assert connected.messages == []
    assert [r.room_id for r in connected.rooms] == ["room-b"]
    assert not connected.deleting
    assert connected.notices.items[-1].text == "Room deleted"


async def test_delete_room_failure_keeps_selection(connected, relay):
    relay.add("DELETE", f"{API}/rooms/room-a", status_code=500, json={"detail": "boom"})
    await connected.select_room("room-a")

    assert not await connected.delete_room(confirm=True)
    assert connected.selected_room == "room-a"
    assert len(connected.notices.errors()) == 1


async def test_forward_transcript(connected, relay):
    relay.add("POST", f"{API}/rooms/room-a/forward", json={"success": True, "message": "Transcript forwarded"})
    await connected.select_room("room-a")

    assert await connected.forward_transcript("ops@example.com")

    [call] = relay.calls("POST", f"{API}/rooms/room-a/forward")
    assert json.loads(call.content) == {"to": "ops@example.com", "subject": "Chat transcript — Room room-a"}
    assert not connected.forwarding


async def test_forward_transcript_validates_recipient(connected, relay):
    await connected.select_room("room-a")
    assert not await connected.forward_transcript("nope")
    assert relay.calls("POST", f"{API}/rooms/room-a/forward") == []
    assert len(connected.notices.errors()) == 1


async def test_inbox(console, relay):
    entry = {
        "id": 1, "room": "room-a", "email": "ann@example.com", "question": "Pricing?",
        "status": "queued", "createdAt": "2024-01-01T10:00:00", "updatedAt": "2024-01-01T10:00:00",
    }
    relay.add("GET", f"{API}/inbox", json={"items": [entry], "total": 1, "page": 1, "limit": 50})
    relay.add("PUT", f"{API}/inbox/1", json={**entry, "status": "done"})

    assert [e["status"] for e in await console.load_inbox()] == ["queued"]
    assert await console.update_inbox_status(1, "done")
    assert console.inbox[0]["status"] == "done"
