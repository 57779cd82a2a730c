"""Bookkeeping for live WebSocket clients and the date room each one is viewing."""

import asyncio
import logging
import time
from collections import defaultdict
from typing import Any, Protocol
from uuid import uuid4

logger = logging.getLogger(__name__)

IDLE_CLOSE_CODE = 1001


class Transport(Protocol):
    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class ClientConnection:
    def __init__(
        self,
        transport: Transport,
        username: str = "",
        role: str = "",
        connection_id: str | None = None,
        now: float | None = None,
    ) -> None:
        self.id = connection_id or uuid4().hex
        self.transport = transport
        self.username = username
        self.role = role
        self.room: str | None = None
        self.last_activity = now if now is not None else time.monotonic()

    async def send(self, event: str, data: Any, meta: dict[str, Any] | None = None) -> None:
        message: dict[str, Any] = {"event": event, "data": data}
        if meta is not None:
            message["meta"] = meta
        await self.transport.send_json(message)

    async def close(self, code: int = 1000) -> None:
        await self.transport.close(code=code)


class ConnectionRegistry:
    """Maps connection ids to connections and rooms to members.

    A connection is in at most one room. Never touches reservation data.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}
        self._rooms: dict[str, set[str]] = defaultdict(set)

    def register(self, connection: ClientConnection) -> None:
        self._connections[connection.id] = connection

    def get(self, connection_id: str) -> ClientConnection | None:
        return self._connections.get(connection_id)

    def count(self) -> int:
        return len(self._connections)

    def touch(self, connection_id: str, now: float | None = None) -> None:
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.last_activity = now if now is not None else time.monotonic()

    def _remove_from_room(self, connection: ClientConnection) -> None:
        if connection.room is None:
            return
        members = self._rooms.get(connection.room)
        if members is not None:
            members.discard(connection.id)
            if not members:
                del self._rooms[connection.room]
        connection.room = None

    def join(self, connection_id: str, room: str, now: float | None = None) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        if connection.room != room:
            self._remove_from_room(connection)
            self._rooms[room].add(connection_id)
            connection.room = room
        self.touch(connection_id, now=now)
        return True

    def leave(self, connection_id: str, room: str) -> None:
        connection = self._connections.get(connection_id)
        if connection is None or connection.room != room:
            return
        self._remove_from_room(connection)
        self.touch(connection_id)

    def on_disconnect(self, connection_id: str) -> ClientConnection | None:
        connection = self._connections.pop(connection_id, None)
        if connection is not None:
            self._remove_from_room(connection)
        return connection

    def room_of(self, connection_id: str) -> str | None:
        connection = self._connections.get(connection_id)
        return connection.room if connection else None

    def members(self, room: str) -> list[ClientConnection]:
        return [self._connections[cid] for cid in sorted(self._rooms.get(room, ())) if cid in self._connections]

    def rooms(self) -> dict[str, int]:
        return {room: len(members) for room, members in self._rooms.items()}

    async def sweep_idle(self, now: float, timeout: float) -> list[str]:
        """Disconnect every connection idle for longer than ``timeout`` seconds."""
        idle = [c for c in self._connections.values() if now - c.last_activity > timeout]
        evicted = []
        for connection in idle:
            self.on_disconnect(connection.id)
            evicted.append(connection.id)
            logger.info(
                "ws_idle_disconnect connection_id=%s idle_seconds=%.0f",
                connection.id,
                now - connection.last_activity,
            )
            try:
                await connection.close(code=IDLE_CLOSE_CODE)
            except Exception:
                logger.warning("ws_idle_close_failed connection_id=%s", connection.id, exc_info=True)
        return evicted


async def run_idle_sweeper(registry: ConnectionRegistry, interval: float, timeout: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await registry.sweep_idle(now=time.monotonic(), timeout=timeout)
        except Exception:
            logger.exception("ws_idle_sweep_failed")
