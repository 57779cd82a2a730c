import datetime as dt

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_roles
from app.db.models import User, UserRole
from app.db.session import get_db
from app.schemas.holiday import HolidayCreateRequest, HolidayResponse
from app.services import holiday_service

router = APIRouter(prefix="/api/holidays", tags=["holidays"])


@router.get("", response_model=list[HolidayResponse], status_code=status.HTTP_200_OK)
def list_holidays(
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[HolidayResponse]:
    return [HolidayResponse.model_validate(h) for h in holiday_service.list_holidays(db)]


@router.get("/for-date", response_model=list[HolidayResponse], status_code=status.HTTP_200_OK)
def list_holidays_for_date(
    day: dt.date = Query(alias="date"),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[HolidayResponse]:
    return [HolidayResponse.model_validate(h) for h in holiday_service.holidays_for_date(db, day)]


@router.post("", response_model=HolidayResponse, status_code=status.HTTP_201_CREATED)
def create_holiday(
    payload: HolidayCreateRequest,
    _: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> HolidayResponse:
    return HolidayResponse.model_validate(holiday_service.create_holiday(db, payload))


@router.delete("/{holiday_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_holiday(
    holiday_id: int,
    _: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> Response:
    holiday_service.delete_holiday(db, holiday_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
