from datetime import date

import pytest
from pydantic import ValidationError

from app.db.models import HolidayType
from app.schemas.holiday import HolidayCreateRequest
from app.schemas.reservation import ReservationSaveRequest, ReservationUpdateRequest
from app.services.holiday_service import sunday_based_weekday


def _payload(**overrides) -> dict:
    payload = {"date": "2025-07-16", "time_min": 600, "column_index": 0, "patient_name": "Taro"}
    payload.update(overrides)
    return payload


@pytest.mark.parametrize(
    "field,value",
    [
        ("time_min", 602),
        ("time_min", -5),
        ("time_min", 1440),
        ("column_index", 10),
        ("column_index", -1),
        ("date", "2025-02-30"),
        ("handwriting", "../secret.png"),
        ("patient_name", "x" * 101),
    ],
)
def test_save_request_rejects_out_of_grid_values(field, value):
    with pytest.raises(ValidationError):
        ReservationSaveRequest.model_validate(_payload(**{field: value}))


def test_save_request_requires_name_or_handwriting():
    with pytest.raises(ValidationError):
        ReservationSaveRequest.model_validate(_payload(patient_name="   "))

    only_handwriting = ReservationSaveRequest.model_validate(
        _payload(patient_name=None, handwriting="0a1b2c3d-0000-4000-8000-000000000000.png")
    )
    assert only_handwriting.patient_name is None


def test_save_request_strips_name_and_ignores_unknown_fields():
    command = ReservationSaveRequest.model_validate(_payload(patient_name="  Taro  ", colour="red"))

    assert command.patient_name == "Taro"
    assert command.id is None
    assert command.slot_values()["date"] == date(2025, 7, 16)


def test_update_request_only_reports_sent_fields():
    payload = ReservationUpdateRequest.model_validate({"time_min": 615, "handwriting": None})

    assert payload.changes() == {"time_min": 615, "handwriting": None}


def test_update_request_must_not_be_empty():
    with pytest.raises(ValidationError):
        ReservationUpdateRequest.model_validate({})


@pytest.mark.parametrize(
    "day,expected",
    [
        (date(2025, 7, 13), 0),
        (date(2025, 7, 14), 1),
        (date(2025, 7, 19), 6),
    ],
)
def test_sunday_based_weekday(day, expected):
    assert sunday_based_weekday(day) == expected


def test_holiday_rule_keeps_only_matching_field():
    specific = HolidayCreateRequest.model_validate(
        {"type": "SPECIFIC_DATE", "date": "2025-08-11", "day_of_week": 3, "name": "Mountain Day"}
    )
    recurring = HolidayCreateRequest.model_validate(
        {"type": "RECURRING_DAY", "date": "2025-08-11", "day_of_week": 0, "name": "Sunday"}
    )

    assert specific.type == HolidayType.SPECIFIC_DATE
    assert specific.day_of_week is None
    assert recurring.date is None
    assert recurring.day_of_week == 0


def test_holiday_rule_requires_its_field():
    with pytest.raises(ValidationError):
        HolidayCreateRequest.model_validate({"type": "RECURRING_DAY", "name": "Closed"})
    with pytest.raises(ValidationError):
        HolidayCreateRequest.model_validate({"type": "SPECIFIC_DATE", "name": "Closed"})


@pytest.mark.parametrize("field", ["date", "time_min", "column_index"])
def test_update_request_rejects_null_slot_fields(field):
    with pytest.raises(ValidationError):
        ReservationUpdateRequest.model_validate({field: None})


def test_update_request_allows_clearing_content_fields():
    payload = ReservationUpdateRequest.model_validate({"patient_name": None})

    assert payload.changes() == {"patient_name": None}
