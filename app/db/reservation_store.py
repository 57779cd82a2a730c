from datetime import date
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models import Reservation


class ConstraintViolation(Exception):
    """Raised when a write would put two reservations on the same slot."""

    def __init__(self, values: dict[str, Any]) -> None:
        super().__init__("reservation slot already occupied")
        self.values = values


def _range_query(
    date_from: date | None,
    date_to: date | None,
    column_index: int | None,
):
    query = select(Reservation)
    if date_from:
        query = query.where(Reservation.date >= date_from)
    if date_to:
        query = query.where(Reservation.date <= date_to)
    if column_index is not None:
        query = query.where(Reservation.column_index == column_index)
    return query


def find_by_id(db: Session, reservation_id: int) -> Reservation | None:
    return db.scalar(select(Reservation).where(Reservation.id == reservation_id))


def find_by_date(db: Session, day: date) -> list[Reservation]:
    return list(
        db.scalars(
            select(Reservation)
            .where(Reservation.date == day)
            .order_by(Reservation.time_min, Reservation.column_index, Reservation.id)
        ).all()
    )


def find_conflict(
    db: Session,
    day: date,
    time_min: int,
    column_index: int,
    exclude_id: int | None = None,
) -> Reservation | None:
    query = select(Reservation).where(
        Reservation.date == day,
        Reservation.time_min == time_min,
        Reservation.column_index == column_index,
    )
    if exclude_id is not None:
        query = query.where(Reservation.id != exclude_id)
    return db.scalar(query)


def find_in_range(
    db: Session,
    date_from: date | None = None,
    date_to: date | None = None,
    column_index: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Reservation]:
    query = _range_query(date_from, date_to, column_index)
    return list(
        db.scalars(
            query.order_by(Reservation.date, Reservation.time_min, Reservation.column_index)
            .limit(limit)
            .offset(offset)
        ).all()
    )


def count_in_range(
    db: Session,
    date_from: date | None = None,
    date_to: date | None = None,
    column_index: int | None = None,
) -> int:
    query = _range_query(date_from, date_to, column_index)
    return db.scalar(select(func.count()).select_from(query.subquery())) or 0


def list_handwriting_references(db: Session) -> set[str]:
    return set(db.scalars(select(Reservation.handwriting).where(Reservation.handwriting.is_not(None))).all())


def insert_reservation(db: Session, values: dict[str, Any]) -> int:
    reservation = Reservation(**values)
    db.add(reservation)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConstraintViolation(values) from None
    return reservation.id


def update_reservation(db: Session, reservation_id: int, values: dict[str, Any]) -> int:
    try:
        result = db.execute(
            update(Reservation)
            .where(Reservation.id == reservation_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConstraintViolation(values) from None
    return result.rowcount


def delete_reservation(db: Session, reservation_id: int) -> int:
    result = db.execute(
        delete(Reservation)
        .where(Reservation.id == reservation_id)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount
