from unittest.mock import AsyncMock

import pytest
import socketio

from streamroom.domain.broadcast import sockets
from streamroom.domain.broadcast.sockets import RoomsNamespace


def _namespace() -> RoomsNamespace:
	server = socketio.AsyncServer(async_mode="asgi")
	namespace = RoomsNamespace()
	server.register_namespace(namespace)
	namespace.emit = AsyncMock()
	namespace.enter_room = AsyncMock()
	namespace.leave_room = AsyncMock()
	return namespace


@pytest.mark.asyncio
async def test_connect_requires_phone_number():
	namespace = _namespace()
	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}})


@pytest.mark.asyncio
async def test_connect_with_header_acks_and_joins_room_channel():
	namespace = _namespace()
	scope = {"headers": [(b"x-phone-number", b"+15550001")]}
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": scope})

	assert namespace.emit.await_args_list[0].args[0] == "rooms:ack"

	await namespace.trigger_event("room_join", "sid-1", {"room_id": "room-1"})
	namespace.enter_room.assert_awaited_once_with("sid-1", "room:room-1")

	await namespace.trigger_event("room_leave", "sid-1", {"room_id": "room-1"})
	namespace.leave_room.assert_awaited_once_with("sid-1", "room:room-1")


@pytest.mark.asyncio
async def test_room_join_before_connect_is_refused():
	namespace = _namespace()
	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("room_join", "sid-9", {"room_id": "room-1"})


@pytest.mark.asyncio
async def test_emit_room_event_targets_room_channel(monkeypatch):
	namespace = _namespace()
	monkeypatch.setattr(sockets, "_namespace", namespace)

	await sockets.emit_room_event("room-1", {"type": "race_start"})

	namespace.emit.assert_awaited_once_with("room:event", {"type": "race_start"}, room="room:room-1")
