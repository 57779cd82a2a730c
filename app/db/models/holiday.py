import datetime as dt
from enum import Enum

from sqlalchemy import Date, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class HolidayType(str, Enum):
    SPECIFIC_DATE = "SPECIFIC_DATE"
    RECURRING_DAY = "RECURRING_DAY"


class Holiday(Base):
    __tablename__ = "holidays"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    date: Mapped[dt.date | None] = mapped_column(Date, nullable=True, index=True)
    # 0 = Sunday ... 6 = Saturday
    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
