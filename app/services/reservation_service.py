"""Single entry point for changing reservation state.

The slot invariant (one reservation per date/time/column) is checked before
every write so callers get the conflicting record back, and the store's unique
constraint catches whatever slips between the check and the write. Both paths
end in the same ``SlotConflict`` result.

Expected outcomes are returned as result objects instead of raised, so the
WebSocket gateway and the REST routes have to handle every case explicitly.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db import reservation_store as store
from app.schemas.reservation import ReservationResponse, ReservationSaveRequest

logger = logging.getLogger(__name__)

SLOT_OCCUPIED_DETAIL = "Time slot already occupied"
CONTENT_REQUIRED_DETAIL = "either patient_name or handwriting is required"
SLOT_FIELDS = ("date", "time_min", "column_index")


@dataclass(frozen=True)
class Saved:
    reservation: ReservationResponse
    created: bool
    previous_date: date | None = None


@dataclass(frozen=True)
class Deleted:
    reservation: ReservationResponse


@dataclass(frozen=True)
class SlotConflict:
    existing: ReservationResponse | None
    message: str = SLOT_OCCUPIED_DETAIL


@dataclass(frozen=True)
class ReservationNotFound:
    reservation_id: int

    @property
    def message(self) -> str:
        return f"Reservation with id {self.reservation_id} not found"


@dataclass(frozen=True)
class InvalidReservation:
    message: str
    field: str | None = None


@dataclass(frozen=True)
class StorageFailure:
    message: str


SaveResult = Union[Saved, SlotConflict, ReservationNotFound, InvalidReservation, StorageFailure]
DeleteResult = Union[Deleted, ReservationNotFound, StorageFailure]
CleanupCallback = Callable[[str], None]


def _entity(row) -> ReservationResponse:
    return ReservationResponse.model_validate(row)


def _conflict_for(db: Session, values: dict[str, Any], exclude_id: int | None = None) -> SlotConflict:
    # The row that won a race may itself be gone by now; report the conflict anyway.
    existing = store.find_conflict(
        db,
        values["date"],
        values["time_min"],
        values["column_index"],
        exclude_id=exclude_id,
    )
    return SlotConflict(existing=_entity(existing) if existing else None)


def list_for_date(db: Session, day: date) -> list[ReservationResponse]:
    return [_entity(row) for row in store.find_by_date(db, day)]


def get_reservation(db: Session, reservation_id: int) -> ReservationResponse | None:
    row = store.find_by_id(db, reservation_id)
    return _entity(row) if row else None


def _create(db: Session, values: dict[str, Any]) -> SaveResult:
    conflict = store.find_conflict(db, values["date"], values["time_min"], values["column_index"])
    if conflict:
        return SlotConflict(existing=_entity(conflict))

    try:
        new_id = store.insert_reservation(db, values)
    except store.ConstraintViolation:
        logger.info(
            "reservation_insert_lost_race date=%s time_min=%s column_index=%s",
            values["date"],
            values["time_min"],
            values["column_index"],
        )
        return _conflict_for(db, values)

    created = store.find_by_id(db, new_id)
    if created is None:
        return StorageFailure(message="Failed to retrieve created reservation")
    return Saved(reservation=_entity(created), created=True)


def _update(db: Session, reservation_id: int, changes: dict[str, Any]) -> SaveResult:
    existing = store.find_by_id(db, reservation_id)
    if existing is None:
        return ReservationNotFound(reservation_id=reservation_id)

    merged = {
        "date": existing.date,
        "time_min": existing.time_min,
        "column_index": existing.column_index,
        "patient_name": existing.patient_name,
        "handwriting": existing.handwriting,
    }
    merged.update(changes)
    if not merged["patient_name"] and not merged["handwriting"]:
        return InvalidReservation(message=CONTENT_REQUIRED_DETAIL, field="patient_name")

    previous_date = existing.date
    slot_moved = any(merged[field] != getattr(existing, field) for field in SLOT_FIELDS)
    if slot_moved:
        conflict = store.find_conflict(
            db,
            merged["date"],
            merged["time_min"],
            merged["column_index"],
            exclude_id=reservation_id,
        )
        if conflict:
            return SlotConflict(existing=_entity(conflict))

    try:
        affected = store.update_reservation(db, reservation_id, changes)
    except store.ConstraintViolation:
        logger.info("reservation_update_lost_race id=%s", reservation_id)
        return _conflict_for(db, merged, exclude_id=reservation_id)
    if affected == 0:
        return ReservationNotFound(reservation_id=reservation_id)

    updated = store.find_by_id(db, reservation_id)
    if updated is None:
        return ReservationNotFound(reservation_id=reservation_id)
    return Saved(
        reservation=_entity(updated),
        created=False,
        previous_date=previous_date if previous_date != updated.date else None,
    )


def save_reservation(db: Session, command: ReservationSaveRequest) -> SaveResult:
    """Create the reservation when ``command.id`` is empty, update it otherwise."""
    try:
        if command.id is None:
            return _create(db, command.slot_values())
        return _update(db, command.id, command.slot_values())
    except SQLAlchemyError:
        db.rollback()
        logger.exception("reservation_save_failed id=%s", command.id)
        return StorageFailure(message="Failed to save reservation")


def update_reservation(db: Session, reservation_id: int, changes: dict[str, Any]) -> SaveResult:
    try:
        return _update(db, reservation_id, changes)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("reservation_update_failed id=%s", reservation_id)
        return StorageFailure(message="Failed to update reservation")


def delete_reservation(
    db: Session,
    reservation_id: int,
    cleanup: CleanupCallback | None = None,
) -> DeleteResult:
    try:
        existing = store.find_by_id(db, reservation_id)
        if existing is None:
            return ReservationNotFound(reservation_id=reservation_id)
        snapshot = _entity(existing)

        if store.delete_reservation(db, reservation_id) == 0:
            return ReservationNotFound(reservation_id=reservation_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("reservation_delete_failed id=%s", reservation_id)
        return StorageFailure(message="Failed to delete reservation")

    if snapshot.handwriting and cleanup is not None:
        try:
            cleanup(snapshot.handwriting)
        except Exception:
            logger.warning(
                "handwriting_cleanup_not_scheduled reservation_id=%s filename=%s",
                reservation_id,
                snapshot.handwriting,
                exc_info=True,
            )
    return Deleted(reservation=snapshot)
