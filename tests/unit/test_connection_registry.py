import asyncio

from app.realtime.registry import IDLE_CLOSE_CODE, ClientConnection, ConnectionRegistry


class FakeTransport:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.closed_with: int | None = None

    async def send_json(self, data) -> None:
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code


def _connect(registry: ConnectionRegistry, connection_id: str, now: float = 0.0) -> ClientConnection:
    connection = ClientConnection(transport=FakeTransport(), connection_id=connection_id, now=now)
    registry.register(connection)
    return connection


def test_join_places_connection_in_room():
    registry = ConnectionRegistry()
    _connect(registry, "a")

    assert registry.join("a", "2025-07-16") is True
    assert registry.room_of("a") == "2025-07-16"
    assert [c.id for c in registry.members("2025-07-16")] == ["a"]


def test_joining_second_room_leaves_the_first():
    registry = ConnectionRegistry()
    _connect(registry, "a")

    registry.join("a", "2025-07-16")
    registry.join("a", "2025-07-17")

    assert registry.members("2025-07-16") == []
    assert [c.id for c in registry.members("2025-07-17")] == ["a"]
    assert registry.rooms() == {"2025-07-17": 1}


def test_join_unknown_connection_is_rejected():
    registry = ConnectionRegistry()

    assert registry.join("ghost", "2025-07-16") is False
    assert registry.members("2025-07-16") == []


def test_leave_is_noop_for_non_member():
    registry = ConnectionRegistry()
    _connect(registry, "a")
    registry.join("a", "2025-07-16")

    registry.leave("a", "2025-07-17")
    assert registry.room_of("a") == "2025-07-16"

    registry.leave("a", "2025-07-16")
    assert registry.room_of("a") is None
    assert registry.members("2025-07-16") == []


def test_disconnect_removes_membership_and_connection():
    registry = ConnectionRegistry()
    _connect(registry, "a")
    _connect(registry, "b")
    registry.join("a", "2025-07-16")
    registry.join("b", "2025-07-16")

    removed = registry.on_disconnect("a")

    assert removed is not None and removed.id == "a"
    assert registry.get("a") is None
    assert [c.id for c in registry.members("2025-07-16")] == ["b"]
    assert registry.count() == 1
    assert registry.on_disconnect("a") is None


def test_join_refreshes_last_activity():
    registry = ConnectionRegistry()
    connection = _connect(registry, "a", now=10.0)

    registry.join("a", "2025-07-16", now=50.0)

    assert connection.last_activity == 50.0


def test_sweep_idle_disconnects_only_stale_connections():
    registry = ConnectionRegistry()
    stale = _connect(registry, "stale", now=0.0)
    fresh = _connect(registry, "fresh", now=0.0)
    registry.join("stale", "2025-07-16", now=0.0)
    registry.join("fresh", "2025-07-16", now=1700.0)

    evicted = asyncio.run(registry.sweep_idle(now=1900.0, timeout=1800.0))

    assert evicted == ["stale"]
    assert stale.transport.closed_with == IDLE_CLOSE_CODE
    assert fresh.transport.closed_with is None
    assert registry.get("stale") is None
    assert [c.id for c in registry.members("2025-07-16")] == ["fresh"]


def test_sweep_idle_survives_close_failure():
    class BrokenTransport(FakeTransport):
        async def close(self, code: int = 1000) -> None:
            raise RuntimeError("socket already gone")

    registry = ConnectionRegistry()
    registry.register(ClientConnection(transport=BrokenTransport(), connection_id="broken", now=0.0))
    _connect(registry, "other", now=0.0)

    evicted = asyncio.run(registry.sweep_idle(now=5000.0, timeout=1800.0))

    assert sorted(evicted) == ["broken", "other"]
    assert registry.count() == 0
