from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from app.realtime.broadcaster import RoomBroadcaster
from app.realtime.gateway import EventGateway
from app.realtime.registry import ConnectionRegistry
from app.services.cleanup import CleanupScheduler, build_cleanup_scheduler
from app.storage.handwriting import HandwritingStorage


@dataclass
class RealtimeHub:
    """Everything a request or socket needs to reach the live rooms, built once per app."""

    registry: ConnectionRegistry
    broadcaster: RoomBroadcaster
    gateway: EventGateway
    storage: HandwritingStorage
    cleanup: CleanupScheduler
    session_factory: Callable[[], Session]


def build_realtime_hub(
    session_factory: Callable[[], Session],
    storage: HandwritingStorage | None = None,
    cleanup: CleanupScheduler | None = None,
) -> RealtimeHub:
    storage = storage or HandwritingStorage()
    cleanup = cleanup or build_cleanup_scheduler(storage)
    registry = ConnectionRegistry()
    broadcaster = RoomBroadcaster(registry=registry, session_factory=session_factory)
    gateway = EventGateway(
        registry=registry,
        broadcaster=broadcaster,
        session_factory=session_factory,
        cleanup=cleanup,
    )
    return RealtimeHub(
        registry=registry,
        broadcaster=broadcaster,
        gateway=gateway,
        storage=storage,
        cleanup=cleanup,
        session_factory=session_factory,
    )
