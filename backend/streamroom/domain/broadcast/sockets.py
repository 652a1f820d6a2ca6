"""Socket.IO namespace for room fan-out."""

from __future__ import annotations

from typing import Dict, Optional

import socketio

from streamroom.obs import metrics as obs_metrics

_namespace: "RoomsNamespace" | None = None


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


class RoomsNamespace(socketio.AsyncNamespace):
	"""Clients subscribe to a room channel and receive its broadcast events."""

	def __init__(self) -> None:
		super().__init__("/rooms")
		self._sessions: Dict[str, str] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		scope = environ.get("asgi.scope", environ)
		auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
		phone_number = auth_payload.get("phone_number") or _header(scope, "x-phone-number")
		if not phone_number:
			obs_metrics.socket_disconnected(self.namespace)
			raise ConnectionRefusedError("missing phone number")
		self._sessions[sid] = str(phone_number)
		await self.emit("rooms:ack", {"ok": True}, room=sid)

	async def on_disconnect(self, sid: str) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		self._sessions.pop(sid, None)

	async def on_room_join(self, sid: str, payload: dict) -> None:
		obs_metrics.socket_event(self.namespace, "room_join")
		if sid not in self._sessions:
			raise ConnectionRefusedError("unauthenticated")
		room_id = str(payload.get("room_id") or "")
		if not room_id:
			return
		await self.enter_room(sid, self.room_channel(room_id))

	async def on_room_leave(self, sid: str, payload: dict) -> None:
		obs_metrics.socket_event(self.namespace, "room_leave")
		if sid not in self._sessions:
			raise ConnectionRefusedError("unauthenticated")
		room_id = str(payload.get("room_id") or "")
		if not room_id:
			return
		await self.leave_room(sid, self.room_channel(room_id))

	@staticmethod
	def room_channel(room_id: str) -> str:
		return f"room:{room_id}"


def set_namespace(namespace: RoomsNamespace) -> None:
	global _namespace
	_namespace = namespace


async def emit_room_event(room_id: str, payload: dict) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, "room:event")
	await _namespace.emit("room:event", payload, room=RoomsNamespace.room_channel(room_id))
