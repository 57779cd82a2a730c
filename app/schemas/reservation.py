import datetime as dt

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.config import settings

HANDWRITING_FILENAME_PATTERN = r"^[a-f0-9-]+\.png$"
MINUTES_PER_DAY = 24 * 60


def _check_time_min(value: int) -> int:
    if value < 0 or value >= MINUTES_PER_DAY:
        raise ValueError(f"time_min must be between 0 and {MINUTES_PER_DAY - 1}")
    if value % settings.slot_interval_minutes != 0:
        raise ValueError(f"time_min must be a multiple of {settings.slot_interval_minutes} minutes")
    return value


def _check_column_index(value: int) -> int:
    if value < 0 or value >= settings.grid_columns:
        raise ValueError(f"column_index must be between 0 and {settings.grid_columns - 1}")
    return value


class ReservationSaveRequest(BaseModel):
    """Full reservation as sent by the grid; ``id`` present means update."""

    id: int | None = Field(default=None, ge=1)
    date: dt.date
    time_min: int
    column_index: int
    patient_name: str | None = Field(default=None, max_length=100)
    handwriting: str | None = Field(default=None, pattern=HANDWRITING_FILENAME_PATTERN)

    model_config = {"extra": "ignore"}

    @field_validator("time_min")
    @classmethod
    def validate_time_min(cls, value: int) -> int:
        return _check_time_min(value)

    @field_validator("column_index")
    @classmethod
    def validate_column_index(cls, value: int) -> int:
        return _check_column_index(value)

    @field_validator("patient_name")
    @classmethod
    def strip_patient_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @model_validator(mode="after")
    def validate_content(self) -> "ReservationSaveRequest":
        if not self.patient_name and not self.handwriting:
            raise ValueError("either patient_name or handwriting is required")
        return self

    def slot_values(self) -> dict:
        return {
            "date": self.date,
            "time_min": self.time_min,
            "column_index": self.column_index,
            "patient_name": self.patient_name,
            "handwriting": self.handwriting,
        }


class ReservationUpdateRequest(BaseModel):
    date: dt.date | None = None
    time_min: int | None = None
    column_index: int | None = None
    patient_name: str | None = Field(default=None, max_length=100)
    handwriting: str | None = Field(default=None, pattern=HANDWRITING_FILENAME_PATTERN)

    @field_validator("time_min")
    @classmethod
    def validate_time_min(cls, value: int | None) -> int | None:
        return None if value is None else _check_time_min(value)

    @field_validator("column_index")
    @classmethod
    def validate_column_index(cls, value: int | None) -> int | None:
        return None if value is None else _check_column_index(value)

    @model_validator(mode="after")
    def validate_not_empty(self) -> "ReservationUpdateRequest":
        if not self.model_fields_set:
            raise ValueError("no fields provided for update")
        for field in ("date", "time_min", "column_index"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} must not be null")
        return self

    def changes(self) -> dict:
        return {field: getattr(self, field) for field in self.model_fields_set}


class ReservationUpdateCommand(BaseModel):
    id: int = Field(ge=1)
    reservation: dict


class ReservationResponse(BaseModel):
    id: int
    date: dt.date
    time_min: int
    column_index: int
    patient_name: str | None
    handwriting: str | None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = {"from_attributes": True}


class ReservationListResponse(BaseModel):
    reservations: list[ReservationResponse]
    total_count: int
    page: int
    limit: int


class HandwritingUploadResponse(BaseModel):
    filename: str
    url: str
    size: int
    mime_type: str
