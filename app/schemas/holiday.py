import datetime as dt

from pydantic import BaseModel, Field, model_validator

from app.db.models.holiday import HolidayType


class HolidayCreateRequest(BaseModel):
    type: HolidayType
    date: dt.date | None = None
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    name: str = Field(min_length=1, max_length=120)

    @model_validator(mode="after")
    def validate_rule(self) -> "HolidayCreateRequest":
        if self.type == HolidayType.SPECIFIC_DATE:
            if self.date is None:
                raise ValueError("date is required for SPECIFIC_DATE holidays")
            self.day_of_week = None
        else:
            if self.day_of_week is None:
                raise ValueError("day_of_week is required for RECURRING_DAY holidays")
            self.date = None
        return self


class HolidayResponse(BaseModel):
    id: int
    type: HolidayType
    date: dt.date | None
    day_of_week: int | None
    name: str

    model_config = {"from_attributes": True}
