from datetime import date

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.db.models import Holiday, HolidayType
from app.schemas.holiday import HolidayCreateRequest


def sunday_based_weekday(day: date) -> int:
    # date.weekday() is Monday-based; holiday rules count from Sunday.
    return (day.weekday() + 1) % 7


def list_holidays(db: Session) -> list[Holiday]:
    return list(db.scalars(select(Holiday).order_by(Holiday.id)).all())


def holidays_for_date(db: Session, day: date) -> list[Holiday]:
    return list(
        db.scalars(
            select(Holiday)
            .where(
                or_(
                    (Holiday.type == HolidayType.SPECIFIC_DATE.value) & (Holiday.date == day),
                    (Holiday.type == HolidayType.RECURRING_DAY.value)
                    & (Holiday.day_of_week == sunday_based_weekday(day)),
                )
            )
            .order_by(Holiday.id)
        ).all()
    )


def create_holiday(db: Session, payload: HolidayCreateRequest) -> Holiday:
    holiday = Holiday(
        type=payload.type.value,
        date=payload.date,
        day_of_week=payload.day_of_week,
        name=payload.name,
    )
    db.add(holiday)
    db.commit()
    db.refresh(holiday)
    return holiday


def delete_holiday(db: Session, holiday_id: int) -> None:
    holiday = db.get(Holiday, holiday_id)
    if not holiday:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Holiday not found")
    db.delete(holiday)
    db.commit()
