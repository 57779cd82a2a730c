"""Pushes the full reservation list of a date to everyone viewing that date.

Clients replace their whole list for the date with what arrives, so there is
nothing to merge. Each broadcast costs one query and O(reservations per date)
serialization, bounded by columns x slots per day.

Every broadcast carries a per-date revision that only grows; clients drop any
list whose revision is lower than the one they already hold.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Any, Callable

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.metrics import ROOM_BROADCASTS
from app.realtime.registry import ClientConnection, ConnectionRegistry
from app.services import reservation_service

logger = logging.getLogger(__name__)

RESERVATIONS_UPDATED = "reservations-updated"


def room_name(day: date | str) -> str:
    return day.isoformat() if isinstance(day, date) else day


class RoomBroadcaster:
    def __init__(self, registry: ConnectionRegistry, session_factory: Callable[[], Session]) -> None:
        self._registry = registry
        self._session_factory = session_factory
        self._revisions: dict[str, int] = defaultdict(int)

    def revision(self, day: date | str) -> int:
        return self._revisions.get(room_name(day), 0)

    def _load(self, day: date) -> list[dict[str, Any]]:
        db = self._session_factory()
        try:
            return [r.model_dump(mode="json") for r in reservation_service.list_for_date(db, day)]
        finally:
            db.close()

    async def load_for_date(self, day: date) -> list[dict[str, Any]]:
        return await run_in_threadpool(self._load, day)

    async def _deliver(self, connection: ClientConnection, payload: list[dict[str, Any]], meta: dict) -> bool:
        try:
            await connection.send(RESERVATIONS_UPDATED, payload, meta=meta)
        except Exception:
            logger.warning(
                "broadcast_delivery_failed connection_id=%s room=%s",
                connection.id,
                meta["date"],
                exc_info=True,
            )
            return False
        return True

    async def publish_for_date(self, day: date) -> int:
        """Send the authoritative list for ``day`` to its room, originator included.

        Returns the number of connections the list was delivered to.
        """
        room = room_name(day)
        # Taken before loading: a load that starts later never sees older state.
        self._revisions[room] += 1
        meta = {"date": room, "revision": self._revisions[room]}
        try:
            payload = await self.load_for_date(day)
        except Exception:
            logger.exception("broadcast_load_failed room=%s revision=%s", room, meta["revision"])
            return 0

        delivered = 0
        for connection in self._registry.members(room):
            if await self._deliver(connection, payload, meta):
                delivered += 1
        ROOM_BROADCASTS.inc()
        logger.info("room_broadcast room=%s revision=%s delivered=%s", room, meta["revision"], delivered)
        return delivered

    async def send_snapshot(self, connection: ClientConnection, day: date) -> None:
        """Private reply for a fetch; does not advance the revision."""
        payload = await self.load_for_date(day)
        room = room_name(day)
        await connection.send(RESERVATIONS_UPDATED, payload, meta={"date": room, "revision": self.revision(room)})
