"""
WebSocket connection manager.

Tracks active connections by room (``branch:{id}``, ``branch:{id}:kitchen``,
``branch:{id}:admin``). A connection may sit in several rooms; each event is
delivered to it at most once per ``(type, order_id, updated_at)`` key.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from shared.config.logging import ws_gateway_logger as logger
from shared.config.settings import settings

# Per-connection memory of recently delivered events
DELIVERED_KEYS_PER_CONNECTION = 256


def _is_ws_connected(ws: WebSocket) -> bool:
    """True if the connection is ready to send/receive messages."""
    return ws.client_state == WebSocketState.CONNECTED and ws.application_state == WebSocketState.CONNECTED


def _delivery_key(payload: dict[str, Any]) -> tuple[Any, Any, Any]:
    return payload.get("type"), payload.get("order_id"), payload.get("updated_at")


class ConnectionManager:
    """
    Manages WebSocket connections and their room memberships.

    Dict modifications happen under an asyncio.Lock; sends happen on a
    snapshot taken outside it.
    """

    def __init__(
        self,
        max_connections_per_user: int = settings.ws_max_connections_per_user,
        max_total_connections: int = settings.ws_max_total_connections,
        heartbeat_timeout: float = settings.ws_heartbeat_timeout,
    ):
        self.max_connections_per_user = max_connections_per_user
        self.max_total_connections = max_total_connections
        self.heartbeat_timeout = heartbeat_timeout
        self._shutdown = False
        self.rooms: dict[str, set[WebSocket]] = {}
        self.by_user: dict[int, set[WebSocket]] = {}
        self._ws_to_user: dict[WebSocket, int] = {}
        self._ws_to_rooms: dict[WebSocket, set[str]] = {}
        self._delivered: dict[WebSocket, OrderedDict] = {}
        self._last_heartbeat: dict[WebSocket, float] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: int, timeout: float = 5.0) -> None:
        """
        Accept a WebSocket connection and register it without any room.

        Raises:
            ConnectionError: shutting down, accept timed out, or a limit was hit
        """
        if self._shutdown:
            raise ConnectionError("Server is shutting down")

        try:
            await asyncio.wait_for(websocket.accept(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConnectionError("WebSocket accept timed out")

        if len(self.by_user.get(user_id, ())) >= self.max_connections_per_user:
            await websocket.close(code=1008, reason="Too many connections")
            raise ConnectionError(
                f"User {user_id} exceeded max connections ({self.max_connections_per_user})"
            )
        if self.total_connections >= self.max_total_connections:
            await websocket.close(code=1013, reason="Server at capacity")
            raise ConnectionError("Server at capacity")

        async with self._lock:
            self._last_heartbeat[websocket] = time.time()
            self.by_user.setdefault(user_id, set()).add(websocket)
            self._ws_to_user[websocket] = user_id
            self._ws_to_rooms[websocket] = set()
            self._delivered[websocket] = OrderedDict()

    async def join(self, websocket: WebSocket, room: str) -> None:
        async with self._lock:
            if websocket not in self._ws_to_rooms:
                return
            self.rooms.setdefault(room, set()).add(websocket)
            self._ws_to_rooms[websocket].add(room)

    async def leave(self, websocket: WebSocket, room: str) -> None:
        async with self._lock:
            self._discard_from_room(websocket, room)
            if websocket in self._ws_to_rooms:
                self._ws_to_rooms[websocket].discard(room)

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a connection from every room it joined."""
        async with self._lock:
            self._last_heartbeat.pop(websocket, None)
            self._delivered.pop(websocket, None)

            user_id = self._ws_to_user.pop(websocket, None)
            if user_id is not None and user_id in self.by_user:
                self.by_user[user_id].discard(websocket)
                if not self.by_user[user_id]:
                    del self.by_user[user_id]

            for room in self._ws_to_rooms.pop(websocket, set()):
                self._discard_from_room(websocket, room)

    def _discard_from_room(self, websocket: WebSocket, room: str) -> None:
        members = self.rooms.get(room)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self.rooms[room]

    def rooms_of(self, websocket: WebSocket) -> set[str]:
        return set(self._ws_to_rooms.get(websocket, ()))

    async def send_to_room(self, room: str, payload: dict[str, Any]) -> int:
        """
        Send an event to every connection in a room.

        Connections that already received the same ``(type, order_id,
        updated_at)`` through another room are skipped.

        Returns:
            Number of connections that received the message.
        """
        key = _delivery_key(payload)
        async with self._lock:
            targets = []
            for ws in self.rooms.get(room, ()):
                delivered = self._delivered.get(ws)
                if delivered is None or key in delivered:
                    continue
                delivered[key] = None
                if len(delivered) > DELIVERED_KEYS_PER_CONNECTION:
                    delivered.popitem(last=False)
                targets.append(ws)

        sent = 0
        for ws in targets:
            if not _is_ws_connected(ws):
                logger.debug("Skipping send to disconnected socket", room=room)
                continue
            try:
                await ws.send_json(payload)
                sent += 1
            except Exception as e:
                logger.warning("Failed to send message to room", room=room, error=str(e))
        return sent

    @property
    def total_connections(self) -> int:
        return len(self._ws_to_user)

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_connections": self.total_connections,
            "users_connected": len(self.by_user),
            "rooms": {room: len(members) for room, members in self.rooms.items()},
        }

    # =========================================================================
    # Heartbeats and shutdown
    # =========================================================================

    def record_heartbeat(self, websocket: WebSocket) -> None:
        self._last_heartbeat[websocket] = time.time()

    def get_stale_connections(self) -> list[WebSocket]:
        """Connections without a heartbeat within ``heartbeat_timeout``."""
        now = time.time()
        return [
            ws
            for ws, last_time in list(self._last_heartbeat.items())
            if now - last_time > self.heartbeat_timeout
        ]

    async def cleanup_stale_connections(self) -> int:
        stale = self.get_stale_connections()
        for ws in stale:
            try:
                await ws.close(code=1001, reason="Heartbeat timeout")
            except Exception as e:
                logger.warning("Failed to close stale connection", error=str(e))
            await self.disconnect(ws)
        return len(stale)

    async def shutdown(self) -> int:
        """Close every connection and reject new ones."""
        self._shutdown = True
        logger.info("WebSocket manager shutting down")

        async with self._lock:
            all_connections = list(self._ws_to_user)

        closed = 0
        for ws in all_connections:
            try:
                await ws.close(code=1001, reason="Server shutdown")
                closed += 1
            except Exception as e:
                logger.warning("Failed to close connection during shutdown", error=str(e))
            await self.disconnect(ws)

        logger.info("WebSocket shutdown complete", closed=closed)
        return closed

    def is_shutting_down(self) -> bool:
        return self._shutdown
