import datetime as dt
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse, Response
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_realtime
from app.api.pagination import LimitParam, PageParam
from app.core.config import settings
from app.db import reservation_store as store
from app.db.models import User
from app.db.session import get_db
from app.realtime.hub import RealtimeHub
from app.schemas.reservation import (
    HandwritingUploadResponse,
    ReservationListResponse,
    ReservationResponse,
    ReservationSaveRequest,
    ReservationUpdateRequest,
)
from app.services import reservation_service
from app.services.reservation_service import (
    InvalidReservation,
    ReservationNotFound,
    Saved,
    SlotConflict,
    StorageFailure,
)
from app.storage.handwriting import InvalidFilename

router = APIRouter(prefix="/api", tags=["reservations"])

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def _raise_for_result(result: Any) -> None:
    if isinstance(result, SlotConflict):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": result.message,
                "conflicting_reservation": result.existing.model_dump(mode="json") if result.existing else None,
            },
        )
    if isinstance(result, ReservationNotFound):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)
    if isinstance(result, InvalidReservation):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=result.message)
    if isinstance(result, StorageFailure):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.message)


def _schedule_publish(background_tasks: BackgroundTasks, hub: RealtimeHub, result: Saved) -> None:
    background_tasks.add_task(hub.broadcaster.publish_for_date, result.reservation.date)
    if result.previous_date is not None:
        background_tasks.add_task(hub.broadcaster.publish_for_date, result.previous_date)


@router.get("/reservations", response_model=ReservationListResponse, status_code=status.HTTP_200_OK)
def list_reservations(
    date_filter: dt.date | None = Query(default=None, alias="date"),
    start_date: dt.date | None = Query(default=None),
    end_date: dt.date | None = Query(default=None),
    column_index: int | None = Query(default=None, ge=0),
    page: PageParam = 1,
    limit: LimitParam = 100,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ReservationListResponse:
    if date_filter:
        start_date = end_date = date_filter
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date must not be after end_date")

    rows = store.find_in_range(
        db,
        date_from=start_date,
        date_to=end_date,
        column_index=column_index,
        limit=limit,
        offset=(page - 1) * limit,
    )
    total = store.count_in_range(db, date_from=start_date, date_to=end_date, column_index=column_index)
    return ReservationListResponse(
        reservations=[ReservationResponse.model_validate(row) for row in rows],
        total_count=total,
        page=page,
        limit=limit,
    )


@router.get("/reservations/{reservation_id}", response_model=ReservationResponse, status_code=status.HTTP_200_OK)
def get_reservation(
    reservation_id: int,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ReservationResponse:
    reservation = reservation_service.get_reservation(db, reservation_id)
    if reservation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reservation not found")
    return reservation


@router.post("/reservations", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
def create_reservation(
    payload: ReservationSaveRequest,
    background_tasks: BackgroundTasks,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
) -> ReservationResponse:
    if payload.id is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="id must not be set when creating")

    result = reservation_service.save_reservation(db, payload)
    _raise_for_result(result)
    _schedule_publish(background_tasks, hub, result)
    return result.reservation


@router.put("/reservations/{reservation_id}", response_model=ReservationResponse, status_code=status.HTTP_200_OK)
def update_reservation(
    reservation_id: int,
    payload: ReservationUpdateRequest,
    background_tasks: BackgroundTasks,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
) -> ReservationResponse:
    result = reservation_service.update_reservation(db, reservation_id, payload.changes())
    _raise_for_result(result)
    _schedule_publish(background_tasks, hub, result)
    return result.reservation


@router.delete("/reservations/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_reservation(
    reservation_id: int,
    background_tasks: BackgroundTasks,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
) -> Response:
    result = reservation_service.delete_reservation(db, reservation_id, cleanup=hub.cleanup)
    _raise_for_result(result)
    background_tasks.add_task(hub.broadcaster.publish_for_date, result.reservation.date)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/handwriting", response_model=HandwritingUploadResponse, status_code=status.HTTP_201_CREATED)
def upload_handwriting(
    handwriting: UploadFile = File(...),
    _: User = Depends(get_current_user),
    hub: RealtimeHub = Depends(get_realtime),
) -> HandwritingUploadResponse:
    if handwriting.content_type != "image/png":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only PNG files are allowed")

    data = handwriting.file.read(settings.handwriting_max_bytes + 1)
    if len(data) > settings.handwriting_max_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large")
    if not data.startswith(PNG_SIGNATURE):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only PNG files are allowed")

    filename = hub.storage.store(data)
    return HandwritingUploadResponse(
        filename=filename,
        url=f"/api/handwriting/{filename}",
        size=len(data),
        mime_type="image/png",
    )


@router.get("/handwriting/{filename}", status_code=status.HTTP_200_OK)
def get_handwriting(
    filename: str,
    _: User = Depends(get_current_user),
    hub: RealtimeHub = Depends(get_realtime),
) -> FileResponse:
    try:
        path = hub.storage.path_for(filename)
    except InvalidFilename:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Handwriting not found") from None
    if not hub.storage.exists(filename):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Handwriting not found")
    return FileResponse(path, media_type="image/png")
