import logging
import re
from datetime import date
from typing import Any, Awaitable, Callable, cast

from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.metrics import WS_EVENTS
from app.realtime.broadcaster import RoomBroadcaster, room_name
from app.realtime.registry import ClientConnection, ConnectionRegistry
from app.schemas.reservation import ReservationSaveRequest, ReservationUpdateCommand
from app.services import reservation_service
from app.services.reservation_service import (
    Deleted,
    InvalidReservation,
    ReservationNotFound,
    Saved,
    SlotConflict,
    StorageFailure,
)

logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

ERROR_EVENT = "error"
VALIDATION_ERROR = "VALIDATION_ERROR"
CONFLICT = "CONFLICT"
NOT_FOUND = "NOT_FOUND"
DATABASE_ERROR = "DATABASE_ERROR"
UNKNOWN_EVENT = "UNKNOWN_EVENT"
INTERNAL_ERROR = "INTERNAL_ERROR"


class CommandRejected(Exception):
    def __init__(self, code: str, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.detail = detail


def _validation_detail(exc: ValidationError) -> list[dict[str, Any]]:
    return [{"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()]


def parse_room_date(value: Any) -> date:
    if not isinstance(value, str) or not DATE_RE.match(value):
        raise CommandRejected(VALIDATION_ERROR, "date must be a YYYY-MM-DD string", {"field": "date", "value": value})
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise CommandRejected(VALIDATION_ERROR, "Invalid date", {"field": "date", "value": value}) from None


def parse_reservation_id(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise CommandRejected(VALIDATION_ERROR, "id must be a positive integer", {"field": "id", "value": value})
    return value


class EventGateway:
    """Turns client commands into service calls and service results into replies.

    Failures go back to the calling connection only. Successful mutations are
    announced through the broadcaster, which is also how the caller learns of
    its own success.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        broadcaster: RoomBroadcaster,
        session_factory: Callable[[], Session],
        cleanup: Callable[[str], None] | None = None,
    ) -> None:
        self._registry = registry
        self._broadcaster = broadcaster
        self._session_factory = session_factory
        self._cleanup = cleanup
        self._handlers: dict[str, Callable[[ClientConnection, Any], Awaitable[None]]] = {
            "join-date-room": self._join_room,
            "leave-date-room": self._leave_room,
            "fetch-reservations": self._fetch,
            "save-reservation": self._save,
            "update-reservation": self._update,
            "delete-reservation": self._delete,
        }

    async def _call_service(self, fn: Callable[..., Any], *args: Any) -> Any:
        def run() -> Any:
            db = self._session_factory()
            try:
                return fn(db, *args)
            finally:
                db.close()

        return await run_in_threadpool(run)

    async def reply_error(self, connection: ClientConnection, code: str, message: str, detail: Any = None) -> None:
        try:
            await connection.send(ERROR_EVENT, {"code": code, "message": message, "detail": detail})
        except Exception:
            logger.warning("ws_error_reply_failed connection_id=%s code=%s", connection.id, code, exc_info=True)

    async def handle(self, connection: ClientConnection, event: Any, data: Any) -> None:
        self._registry.touch(connection.id)
        handler = self._handlers.get(event) if isinstance(event, str) else None
        if handler is None:
            WS_EVENTS.labels(event="unknown", outcome="rejected").inc()
            await self.reply_error(connection, UNKNOWN_EVENT, f"Unknown event: {event}")
            return

        try:
            await handler(connection, data)
        except CommandRejected as exc:
            WS_EVENTS.labels(event=event, outcome=exc.code.lower()).inc()
            logger.info("ws_command_rejected event=%s code=%s connection_id=%s", event, exc.code, connection.id)
            await self.reply_error(connection, exc.code, exc.message, exc.detail)
        except Exception:
            WS_EVENTS.labels(event=event, outcome="internal_error").inc()
            logger.exception("ws_command_failed event=%s connection_id=%s", event, connection.id)
            await self.reply_error(connection, INTERNAL_ERROR, "An unexpected error occurred")
        else:
            WS_EVENTS.labels(event=event, outcome="ok").inc()

    async def _join_room(self, connection: ClientConnection, data: Any) -> None:
        day = parse_room_date(data)
        self._registry.join(connection.id, room_name(day))
        logger.info("ws_join_room connection_id=%s room=%s", connection.id, room_name(day))

    async def _leave_room(self, connection: ClientConnection, data: Any) -> None:
        day = parse_room_date(data)
        self._registry.leave(connection.id, room_name(day))

    async def _fetch(self, connection: ClientConnection, data: Any) -> None:
        day = parse_room_date(data)
        try:
            await self._broadcaster.send_snapshot(connection, day)
        except Exception:
            logger.exception("ws_fetch_failed room=%s", room_name(day))
            raise CommandRejected(DATABASE_ERROR, "Failed to fetch reservations") from None

    async def _save(self, connection: ClientConnection, data: Any) -> None:
        try:
            command = ReservationSaveRequest.model_validate(data)
        except ValidationError as exc:
            raise CommandRejected(VALIDATION_ERROR, "Invalid reservation", _validation_detail(exc)) from None
        await self._apply_save(connection, command)

    async def _update(self, connection: ClientConnection, data: Any) -> None:
        try:
            wrapper = ReservationUpdateCommand.model_validate(data)
            command = ReservationSaveRequest.model_validate({**wrapper.reservation, "id": wrapper.id})
        except ValidationError as exc:
            raise CommandRejected(VALIDATION_ERROR, "Invalid reservation", _validation_detail(exc)) from None
        await self._apply_save(connection, command)

    async def _apply_save(self, connection: ClientConnection, command: ReservationSaveRequest) -> None:
        outcome = await self._call_service(reservation_service.save_reservation, command)
        result = cast(Saved, self._raise_for_failure(outcome))
        logger.info(
            "reservation_saved id=%s created=%s connection_id=%s",
            result.reservation.id,
            result.created,
            connection.id,
        )
        await self._broadcaster.publish_for_date(result.reservation.date)
        if result.previous_date is not None:
            await self._broadcaster.publish_for_date(result.previous_date)

    async def _delete(self, connection: ClientConnection, data: Any) -> None:
        reservation_id = parse_reservation_id(data)
        outcome = await self._call_service(reservation_service.delete_reservation, reservation_id, self._cleanup)
        result = cast(Deleted, self._raise_for_failure(outcome))
        logger.info("reservation_deleted id=%s connection_id=%s", reservation_id, connection.id)
        await self._broadcaster.publish_for_date(result.reservation.date)

    @staticmethod
    def _raise_for_failure(result: Any) -> Any:
        if isinstance(result, SlotConflict):
            existing = result.existing.model_dump(mode="json") if result.existing else None
            raise CommandRejected(CONFLICT, result.message, {"conflicting_reservation": existing})
        if isinstance(result, ReservationNotFound):
            raise CommandRejected(NOT_FOUND, result.message, {"id": result.reservation_id})
        if isinstance(result, InvalidReservation):
            raise CommandRejected(VALIDATION_ERROR, result.message, {"field": result.field})
        if isinstance(result, StorageFailure):
            raise CommandRejected(DATABASE_ERROR, "Database operation failed")
        return result
